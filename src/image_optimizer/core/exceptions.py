"""Custom exceptions and error handling utilities for the image optimizer."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .logging_config import get_logger


class ImageOptimizerError(Exception):
    """Base exception for all image optimizer errors.

    ``filename`` identifies the image the error belongs to, when known.
    """

    def __init__(self, message: str = "", *, filename: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.filename = filename

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}: {self.message}"
        return self.message


class ConfigurationError(ImageOptimizerError):
    """Error raised for invalid configuration detected before a run starts."""


class InvalidOptionsError(ConfigurationError):
    """Error raised when optimization options are out of range."""


class ImageProcessingError(ImageOptimizerError):
    """Error raised when the deterministic pipeline fails for one image."""


class InvalidDimensionsError(ImageProcessingError):
    """Native dimensions or resize bounds are not positive."""


class UnsupportedFormatError(ImageProcessingError):
    """The input or requested output format is not a supported raster format."""


class CorruptImageError(ImageProcessingError):
    """The image header or structure could not be parsed."""


class EncodeFailureError(ImageProcessingError):
    """The encoder failed internally; not retryable for the same item."""


class EnhancementGatewayError(ImageOptimizerError):
    """Base error for the AI enhancement path."""


class ServiceUnavailableError(EnhancementGatewayError):
    """The enhancement service could not be reached or failed server-side."""

    def __init__(
        self,
        message: str = "",
        *,
        filename: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, filename=filename)
        self.status_code = status_code


class InvalidResponseError(EnhancementGatewayError):
    """The enhancement service replied without a usable image.

    ``text`` carries any text the service returned instead of an image.
    """

    def __init__(
        self,
        message: str = "",
        *,
        filename: Optional[str] = None,
        text: Optional[str] = None,
    ):
        super().__init__(message, filename=filename)
        self.text = text


class RateLimitedError(EnhancementGatewayError):
    """The enhancement service rejected the request with HTTP 429."""


class UnauthorizedError(EnhancementGatewayError):
    """The enhancement service rejected the API key (HTTP 401/403)."""


class UploadError(ImageOptimizerError):
    """Error raised when uploading an optimized image to storage fails."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap a function with standardized error handling.

    Pipeline errors are logged and re-raised unchanged; anything else is
    converted into :class:`ImageProcessingError`.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("errors")
        try:
            return func(*args, **kwargs)
        except ImageOptimizerError as exc:
            logger.debug(f"{func.__name__} raised {type(exc).__name__}: {exc}")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Unhandled error in {func.__name__}: {exc}", exc_info=True)
            raise ImageProcessingError(str(exc)) from exc

    return wrapper  # type: ignore[return-value]
