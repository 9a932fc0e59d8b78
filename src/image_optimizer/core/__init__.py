"""Core utilities and shared components for the image optimizer."""

from .image_utils import (
    compute_target_size,
    export_filename,
    format_file_size,
    sniff_image_format,
)
from .logging_config import (
    get_logger,
    set_debug_logging,
    setup_logger,
)
from .exceptions import (
    ImageOptimizerError,
    ConfigurationError,
    InvalidOptionsError,
    ImageProcessingError,
    InvalidDimensionsError,
    UnsupportedFormatError,
    CorruptImageError,
    EncodeFailureError,
    EnhancementGatewayError,
    ServiceUnavailableError,
    InvalidResponseError,
    RateLimitedError,
    UnauthorizedError,
    UploadError,
    with_error_handling,
)
from .models import (
    BatchRun,
    Dimensions,
    ImageFormat,
    ItemState,
    OptimizationOptions,
    OptimizationResult,
    OptimizationSettings,
    ProcessedImage,
    ProgressEvent,
    SourceImage,
    Strategy,
)

__all__ = [
    "BatchRun",
    "Dimensions",
    "ImageFormat",
    "ItemState",
    "OptimizationOptions",
    "OptimizationResult",
    "OptimizationSettings",
    "ProcessedImage",
    "ProgressEvent",
    "SourceImage",
    "Strategy",
    "compute_target_size",
    "export_filename",
    "format_file_size",
    "sniff_image_format",
    "setup_logger",
    "get_logger",
    "set_debug_logging",
    "ImageOptimizerError",
    "ConfigurationError",
    "InvalidOptionsError",
    "ImageProcessingError",
    "InvalidDimensionsError",
    "UnsupportedFormatError",
    "CorruptImageError",
    "EncodeFailureError",
    "EnhancementGatewayError",
    "ServiceUnavailableError",
    "InvalidResponseError",
    "RateLimitedError",
    "UnauthorizedError",
    "UploadError",
    "with_error_handling",
]
