"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, Union

from .models import ImageFormat, OptimizationOptions, OptimizationResult, SourceImage


class S3ClientProtocol(Protocol):
    """Protocol for the S3 client operations used by the upload sink."""

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        """Put object to S3."""
        ...


class HTTPResponseProtocol(Protocol):
    """The parts of a ``requests.Response`` the gateway reads."""

    status_code: int
    reason: str
    text: str

    def json(self) -> Any:
        ...


class HTTPSessionProtocol(Protocol):
    """Protocol for the HTTP session used by the enhancement gateway."""

    def post(
        self,
        url: str,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[Union[float, Tuple[float, float]]] = None,
    ) -> HTTPResponseProtocol:
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...


class ImageCodecProtocol(Protocol):
    """Protocol for decoding and encoding raster images."""

    def decode(self, data: bytes, declared_mime_type: Optional[str] = None) -> Any:
        """Decode bytes into a pixel buffer."""
        ...

    def resample(self, pixels: Any, size: Tuple[int, int]) -> Any:
        """Resize a pixel buffer to exactly ``size``."""
        ...

    def encode(self, pixels: Any, image_format: ImageFormat, quality: float) -> bytes:
        """Encode a pixel buffer into bytes."""
        ...

    def can_encode(self, image_format: ImageFormat) -> bool:
        """Whether the codec can write ``image_format``."""
        ...


class OptimizationService(ABC):
    """Abstract deterministic single-image optimizer."""

    @abstractmethod
    def optimize(
        self, image: SourceImage, options: OptimizationOptions
    ) -> OptimizationResult:
        """Optimize a single image."""
        ...


class EnhancementGateway(ABC):
    """Abstract AI enhancement path."""

    @abstractmethod
    def enhance(
        self, image: SourceImage, options: OptimizationOptions
    ) -> OptimizationResult:
        """Enhance a single image through an external service."""
        ...


class UploadSink(ABC):
    """Abstract destination for optimized images."""

    @abstractmethod
    def upload(self, data: bytes, filename: str, content_type: str) -> bool:
        """Store ``data`` under ``filename``; return whether it succeeded."""
        ...
