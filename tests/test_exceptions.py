import logging
from unittest.mock import patch

import pytest

from image_optimizer.core.exceptions import (
    ConfigurationError,
    CorruptImageError,
    EncodeFailureError,
    EnhancementGatewayError,
    ImageOptimizerError,
    ImageProcessingError,
    InvalidDimensionsError,
    InvalidOptionsError,
    InvalidResponseError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
    UnsupportedFormatError,
    UploadError,
    with_error_handling,
)


@with_error_handling
def _fail_func() -> None:
    raise ValueError("boom")


@with_error_handling
def _fail_with_pipeline_error() -> None:
    raise CorruptImageError("bad header", filename="a.jpg")


def test_with_error_handling_raises_image_processing_error() -> None:
    with pytest.raises(ImageProcessingError) as exc_info:
        _fail_func()
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_with_error_handling_keeps_pipeline_errors() -> None:
    with pytest.raises(CorruptImageError, match="bad header"):
        _fail_with_pipeline_error()


def test_with_error_handling_logs_error() -> None:
    with patch("image_optimizer.core.exceptions.get_logger") as mock_get_logger:
        mock_get_logger.return_value = logging.getLogger("test")
        with pytest.raises(ImageProcessingError):
            _fail_func()
        assert mock_get_logger.called


@pytest.mark.parametrize(
    "error_cls,parent",
    [
        (InvalidOptionsError, ConfigurationError),
        (InvalidDimensionsError, ImageProcessingError),
        (UnsupportedFormatError, ImageProcessingError),
        (CorruptImageError, ImageProcessingError),
        (EncodeFailureError, ImageProcessingError),
        (ServiceUnavailableError, EnhancementGatewayError),
        (InvalidResponseError, EnhancementGatewayError),
        (RateLimitedError, EnhancementGatewayError),
        (UnauthorizedError, EnhancementGatewayError),
        (UploadError, ImageOptimizerError),
        (ConfigurationError, ImageOptimizerError),
    ],
)
def test_error_hierarchy(error_cls, parent) -> None:
    assert issubclass(error_cls, parent)


def test_gateway_and_processing_errors_are_disjoint() -> None:
    assert not issubclass(EnhancementGatewayError, ImageProcessingError)
    assert not issubclass(ImageProcessingError, EnhancementGatewayError)


def test_str_includes_filename() -> None:
    assert str(CorruptImageError("truncated", filename="a.png")) == "a.png: truncated"
    assert str(CorruptImageError("truncated")) == "truncated"


def test_extra_attributes() -> None:
    assert ServiceUnavailableError("down", status_code=502).status_code == 502
    assert InvalidResponseError("no image", text="a cat").text == "a cat"
