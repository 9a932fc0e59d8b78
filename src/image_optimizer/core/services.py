"""Service implementations: codec adapter, optimization engine, orchestrator."""

import io
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError, features
from pydantic import ValidationError

from .exceptions import (
    ConfigurationError,
    CorruptImageError,
    EncodeFailureError,
    ImageProcessingError,
    InvalidOptionsError,
    UnsupportedFormatError,
    with_error_handling,
)
from .image_utils import (
    SUPPORTED_INPUT_FORMATS,
    compute_target_size,
    mime_type_to_format,
    sniff_image_format,
)
from .models import (
    BatchRun,
    Dimensions,
    ImageFormat,
    OptimizationOptions,
    OptimizationResult,
    OptimizationSettings,
    ProcessedImage,
    ProgressEvent,
    SourceImage,
    Strategy,
)
from .error_handling import BatchOperationContextManager
from .observability import LogContext, MetricsCollector, StructuredLogger
from .protocols import (
    EnhancementGateway,
    ImageCodecProtocol,
    LoggerProtocol,
    OptimizationService,
)
from ..processors import (
    CancellationToken,
    ProgressTracker,
    multithread_process_batch,
    process_single_image,
    serial_process_batch,
)

_PIL_FORMAT_NAMES = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
    ImageFormat.WEBP: "WEBP",
}

_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}

_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
    EOFError,
)


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded pixel data plus the format it was decoded from."""

    image: Image.Image
    source_format: str

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def dimensions(self) -> Dimensions:
        return Dimensions(width=self.width, height=self.height)


class ImageCodecService:
    """Pillow-backed codec with no I/O dependencies.

    Quality only affects the lossy encoders (JPEG and WebP), where it maps
    to Pillow's 1-100 scale. PNG is lossless: the quality argument is
    accepted and has no effect on the output; PNG is always written with
    ``optimize=True``. All three encoders produce byte-identical output for
    identical input on a given Pillow/libwebp build.
    """

    def __init__(
        self,
        max_image_pixels: Optional[int] = None,
        logger: Optional[LoggerProtocol] = None,
    ):
        self._max_image_pixels = max_image_pixels
        self._logger = logger or StructuredLogger("codec")

    def can_encode(self, image_format: Union[ImageFormat, str]) -> bool:
        """Whether the installed Pillow can write ``image_format``."""
        try:
            image_format = ImageFormat(image_format)
        except ValueError:
            return False
        if image_format is ImageFormat.WEBP and not features.check("webp"):
            return False
        Image.init()
        return _PIL_FORMAT_NAMES[image_format] in Image.SAVE

    def decode(self, data: bytes, declared_mime_type: Optional[str] = None) -> PixelBuffer:
        """
        Decode raw bytes into a :class:`PixelBuffer`.

        EXIF orientation is applied and animated images yield their first
        frame.

        Raises:
            UnsupportedFormatError: If the byte signature is not a supported raster format
            CorruptImageError: If the header or image data cannot be parsed
        """
        detected = sniff_image_format(data)
        if detected is None:
            raise UnsupportedFormatError(
                f"Unrecognized image data (declared {declared_mime_type or 'unknown'})"
            )

        declared = mime_type_to_format(declared_mime_type)
        if declared and declared != detected:
            self._logger.warning(
                f"Declared type {declared_mime_type} does not match detected {detected}; "
                "using detected format"
            )

        try:
            with Image.open(io.BytesIO(data)) as image:
                source_format = SUPPORTED_INPUT_FORMATS.get(image.format or "")
                if source_format is None:
                    raise UnsupportedFormatError(f"Unsupported image format {image.format}")
                self._check_pixel_limit(image.width, image.height)
                image.load()
                frame = ImageOps.exif_transpose(image)
        except ImageProcessingError:
            raise
        except _DECODE_ERRORS as e:
            raise CorruptImageError(f"Failed to decode {detected} image: {e}") from e

        return PixelBuffer(image=frame, source_format=source_format)

    def resample(self, pixels: PixelBuffer, size: Tuple[int, int]) -> PixelBuffer:
        """Resize with Lanczos filtering. Palette images are expanded first."""
        image = pixels.image
        if image.mode in ("1", "P"):
            image = image.convert("RGBA" if _has_alpha(image) else "RGB")
        resized = image.resize(size, Image.Resampling.LANCZOS)
        return PixelBuffer(image=resized, source_format=pixels.source_format)

    def encode(
        self,
        pixels: PixelBuffer,
        image_format: Union[ImageFormat, str],
        quality: float,
    ) -> bytes:
        """
        Encode ``pixels`` as ``image_format``.

        Raises:
            UnsupportedFormatError: If the format cannot be produced
            EncodeFailureError: On any internal encoder error
        """
        try:
            image_format = ImageFormat(image_format)
        except ValueError as e:
            raise UnsupportedFormatError(f"Cannot encode to {image_format!r}") from e
        if not self.can_encode(image_format):
            raise UnsupportedFormatError(
                f"Installed Pillow cannot encode {image_format.value}"
            )

        try:
            image = self._prepare_mode(pixels.image, image_format)
            output = io.BytesIO()
            image.save(
                output,
                format=_PIL_FORMAT_NAMES[image_format],
                **self._save_params(image_format, quality),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise EncodeFailureError(f"Failed to encode {image_format.value}: {e}") from e
        return output.getvalue()

    def _check_pixel_limit(self, width: int, height: int) -> None:
        if self._max_image_pixels is not None and width * height > self._max_image_pixels:
            raise CorruptImageError(
                f"Image of {width}x{height} exceeds the limit of "
                f"{self._max_image_pixels} pixels"
            )

    @staticmethod
    def _prepare_mode(image: Image.Image, image_format: ImageFormat) -> Image.Image:
        if image_format is ImageFormat.JPEG:
            if _has_alpha(image):
                # No alpha in JPEG: flatten onto white.
                rgba = image.convert("RGBA")
                background = Image.new("RGB", rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.getchannel("A"))
                return background
            if image.mode not in ("RGB", "L"):
                return image.convert("RGB")
            return image
        if image_format is ImageFormat.PNG:
            if image.mode not in _PNG_MODES:
                return image.convert("RGBA" if _has_alpha(image) else "RGB")
            return image
        if image.mode not in ("RGB", "RGBA"):
            return image.convert("RGBA" if _has_alpha(image) else "RGB")
        return image

    @staticmethod
    def _save_params(image_format: ImageFormat, quality: float) -> Dict[str, Any]:
        if image_format is ImageFormat.PNG:
            return {"optimize": True}
        pil_quality = max(1, min(100, round(quality * 100)))
        if image_format is ImageFormat.JPEG:
            return {"quality": pil_quality, "optimize": True}
        return {"quality": pil_quality, "method": 4}


class ImageOptimizationService(OptimizationService):
    """Deterministic single-image optimizer: decode, resize, encode, measure."""

    def __init__(
        self,
        codec: ImageCodecProtocol,
        logger: Optional[LoggerProtocol] = None,
    ):
        self._codec = codec
        self._logger = logger or StructuredLogger("engine")

    @property
    def codec(self) -> ImageCodecProtocol:
        return self._codec

    @with_error_handling
    def optimize(
        self, image: SourceImage, options: OptimizationOptions
    ) -> OptimizationResult:
        """Optimize ``image``. Codec errors propagate with the filename set."""
        return self.transcode(
            image.data,
            image.mime_type,
            image.original_size,
            options,
            filename=image.filename,
        )

    def transcode(
        self,
        data: bytes,
        mime_type: Optional[str],
        original_size: int,
        options: OptimizationOptions,
        filename: Optional[str] = None,
    ) -> OptimizationResult:
        """Run decode → resize → encode on raw bytes."""
        try:
            pixels = self._codec.decode(data, mime_type)
            target = compute_target_size(
                pixels.width,
                pixels.height,
                options.max_width,
                options.max_height,
                options.maintain_aspect_ratio,
            )
            resized = pixels if target == pixels.size else self._codec.resample(pixels, target)
            encoded = self._codec.encode(resized, options.format, options.quality)
        except ImageProcessingError as e:
            if e.filename is None:
                e.filename = filename
            raise

        result = OptimizationResult(
            data=encoded,
            format=options.format,
            original_size=original_size,
            optimized_size=len(encoded),
            original_dimensions=pixels.dimensions,
            optimized_dimensions=resized.dimensions,
        )
        self._logger.debug(
            f"Transcoded {filename or 'image'}: {pixels.dimensions} -> "
            f"{resized.dimensions} {options.format.value}, "
            f"{original_size} -> {result.optimized_size} bytes "
            f"({result.compression_ratio:.1f}%)"
        )
        return result


OptionsInput = Union[OptimizationOptions, OptimizationSettings, Mapping[str, Any], None]
ProgressCallback = Callable[[ProgressEvent], None]


class BatchOptimizationOrchestrator:
    """Runs a strategy over a list of images, one item at a time by default.

    Per-item failures are recorded on the item and never abort the run. Only
    configuration errors detected before the first item raise.
    """

    def __init__(
        self,
        engine: OptimizationService,
        gateway: Optional[EnhancementGateway] = None,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        workers: int = 1,
        default_settings: Optional[OptimizationSettings] = None,
    ):
        self._engine = engine
        self._gateway = gateway
        self._logger = logger or StructuredLogger("orchestrator")
        self._metrics_collector = metrics_collector
        self._workers = workers
        self._default_settings = default_settings or OptimizationSettings()

    @property
    def metrics_collector(self) -> Optional[MetricsCollector]:
        return self._metrics_collector

    def resolve_options(self, options: OptionsInput) -> OptimizationOptions:
        """
        Normalize caller options into engine options.

        ``OptimizationSettings`` and plain mappings carry a 0-100 quality and
        are rescaled; ``OptimizationOptions`` pass through.

        Raises:
            InvalidOptionsError: If a value is out of range
        """
        if isinstance(options, OptimizationOptions):
            return options
        try:
            if options is None:
                return self._default_settings.to_options()
            if isinstance(options, OptimizationSettings):
                return options.to_options()
            return OptimizationSettings(**dict(options)).to_options()
        except ValidationError as e:
            raise InvalidOptionsError(f"Invalid optimization options: {e}") from e

    @staticmethod
    def resolve_strategy(strategy: Union[Strategy, str]) -> Strategy:
        if isinstance(strategy, str) and strategy.lower() == "ai":
            return Strategy.AI_WITH_FALLBACK
        try:
            return Strategy(strategy)
        except ValueError as e:
            raise ConfigurationError(f"Unknown strategy {strategy!r}") from e

    def _validate(self, strategy: Strategy, options: OptimizationOptions) -> None:
        codec = getattr(self._engine, "codec", None)
        if codec is not None and not codec.can_encode(options.format):
            raise ConfigurationError(
                f"Target format {options.format.value} cannot be encoded by this installation"
            )
        if strategy is Strategy.AI_WITH_FALLBACK and self._gateway is None:
            raise ConfigurationError(
                "AI strategy requested but no enhancement gateway is configured "
                "(set GOOGLE_API_KEY)"
            )

    def run(
        self,
        images: Iterable[SourceImage],
        strategy: Union[Strategy, str] = Strategy.DEFAULT,
        options: OptionsInput = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchRun:
        """
        Process ``images`` in order with ``strategy``.

        Args:
            images: Source images, processed and returned in this order
            strategy: ``default`` or ``ai-with-fallback`` (``ai`` is accepted)
            options: Engine options, or 0-100 settings to be rescaled
            cancel_token: Checked before each item starts
            on_progress: Called with each :class:`ProgressEvent`

        Returns:
            The :class:`BatchRun` with one :class:`ProcessedImage` per input

        Raises:
            ConfigurationError: If the run cannot start
        """
        resolved_strategy = self.resolve_strategy(strategy)
        resolved_options = self.resolve_options(options)
        self._validate(resolved_strategy, resolved_options)

        token = cancel_token or CancellationToken()
        run = BatchRun(
            strategy=resolved_strategy,
            items=[
                ProcessedImage(original=image, index=index)
                for index, image in enumerate(images)
            ],
        )
        tracker = ProgressTracker(total=len(run.items))
        if on_progress is not None:
            tracker.subscribe(on_progress)

        batch_context = LogContext(
            operation="optimize_batch", component="orchestrator"
        ).with_metadata(
            strategy=resolved_strategy.value,
            format=resolved_options.format.value,
            quality=resolved_options.quality,
            items=len(run.items),
        )
        self._logger.info("Starting batch", batch_context)

        def handle(item: ProcessedImage) -> None:
            process_single_image(
                item,
                resolved_strategy,
                resolved_options,
                engine=self._engine,
                gateway=self._gateway,
                logger=self._logger,
                metrics_collector=self._metrics_collector,
                log_context=batch_context,
            )

        start_time = time.time()
        with BatchOperationContextManager(
            operation_name=f"Optimization batch ({resolved_strategy.value})",
            logger=self._logger,
        ) as batch_manager:
            if self._workers > 1 and len(run.items) > 1:
                multithread_process_batch(run.items, handle, tracker, token, self._workers)
            else:
                serial_process_batch(run.items, handle, tracker, token)

            for item in run.items:
                if item.failed:
                    batch_manager.add_error(
                        f"{item.error_type}: {item.error}", item.original.filename
                    )

        run.items.sort(key=lambda item: item.index)
        run.events = tracker.events
        run.progress = tracker.progress
        run.cancelled = token.cancelled and run.pending_count > 0
        run.processing_time = time.time() - start_time

        self._logger.info(
            "Finished batch",
            batch_context,
            succeeded=run.succeeded_count,
            failed=run.failed_count,
            pending=run.pending_count,
            ai_optimized=run.ai_count,
            cancelled=run.cancelled,
        )
        return run
