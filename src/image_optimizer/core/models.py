"""Shared data models for the image optimizer."""

import mimetypes
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    computed_field,
    field_validator,
)


class ImageFormat(str, Enum):
    """Output formats the pipeline can encode."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value

    @property
    def is_lossy(self) -> bool:
        return self is not ImageFormat.PNG


class Strategy(str, Enum):
    """Processing path for a batch."""

    DEFAULT = "default"
    AI_WITH_FALLBACK = "ai-with-fallback"


class ItemState(str, Enum):
    """Lifecycle of one item within a batch run."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    ItemState.PENDING: {ItemState.PROCESSING},
    ItemState.PROCESSING: {ItemState.SUCCEEDED, ItemState.FAILED},
    ItemState.SUCCEEDED: set(),
    ItemState.FAILED: set(),
}


def coerce_format(value: object) -> object:
    if isinstance(value, str):
        value = value.strip().lower()
        if value == "jpg":
            return "jpeg"
    return value


class Dimensions(BaseModel):
    """Pixel dimensions of an image."""

    model_config = ConfigDict(frozen=True)

    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class SourceImage(BaseModel):
    """An input image as submitted by the caller. Never mutated."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    filename: str
    mime_type: str = "application/octet-stream"

    @property
    def original_size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceImage":
        """Read a local file, guessing its MIME type from the extension."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            data=path.read_bytes(),
            filename=path.name,
            mime_type=mime_type or "application/octet-stream",
        )


class OptimizationOptions(BaseModel):
    """Engine-level options. ``quality`` is normalized to 0.0-1.0.

    A bound of ``None`` leaves that axis unconstrained.
    """

    model_config = ConfigDict(frozen=True)

    quality: float = Field(default=0.8, ge=0.0, le=1.0)
    format: ImageFormat = ImageFormat.JPEG
    max_width: Optional[PositiveInt] = 1920
    max_height: Optional[PositiveInt] = 1080
    maintain_aspect_ratio: bool = True

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, value: object) -> object:
        return coerce_format(value)


class OptimizationSettings(BaseModel):
    """User-facing settings, with quality expressed as a 0-100 percentage."""

    quality: float = Field(default=80, ge=0, le=100)
    format: ImageFormat = ImageFormat.WEBP
    max_width: Optional[PositiveInt] = 1920
    max_height: Optional[PositiveInt] = 1080
    maintain_aspect_ratio: bool = True

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, value: object) -> object:
        return coerce_format(value)

    def to_options(self) -> OptimizationOptions:
        """Rescale the percentage quality into engine options."""
        return OptimizationOptions(
            quality=self.quality / 100,
            format=self.format,
            max_width=self.max_width,
            max_height=self.max_height,
            maintain_aspect_ratio=self.maintain_aspect_ratio,
        )


class OptimizationResult(BaseModel):
    """Output of one transcode."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    format: ImageFormat
    original_size: int = Field(ge=0)
    optimized_size: int = Field(ge=0)
    original_dimensions: Dimensions
    optimized_dimensions: Dimensions

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    @computed_field  # type: ignore[prop-decorator]
    @property
    def compression_ratio(self) -> float:
        """Percentage size reduction; negative when the output grew."""
        if self.original_size == 0:
            return 0.0
        return (1 - self.optimized_size / self.original_size) * 100


class ProcessedImage(BaseModel):
    """Per-item unit produced by the orchestrator."""

    original: SourceImage
    index: int = 0
    state: ItemState = ItemState.PENDING
    result: Optional[OptimizationResult] = None
    ai_optimized: Optional[bool] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def optimized(self) -> Optional[bytes]:
        return self.result.data if self.result is not None else None

    @property
    def succeeded(self) -> bool:
        return self.state is ItemState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state is ItemState.FAILED

    def _transition(self, target: ItemState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid state transition for {self.original.filename}: "
                f"{self.state.value} -> {target.value}"
            )
        self.state = target

    def mark_processing(self) -> None:
        self._transition(ItemState.PROCESSING)

    def mark_succeeded(self, result: OptimizationResult, ai_optimized: bool) -> None:
        self._transition(ItemState.SUCCEEDED)
        self.result = result
        self.ai_optimized = ai_optimized

    def mark_failed(self, error: BaseException) -> None:
        self._transition(ItemState.FAILED)
        self.error = str(error)
        self.error_type = type(error).__name__


class ProgressEvent(BaseModel):
    """Notification emitted after an item has been attempted."""

    model_config = ConfigDict(frozen=True)

    index: int
    filename: str
    state: ItemState
    completed: int
    total: int
    progress: float


class BatchRun(BaseModel):
    """Ephemeral record of one orchestrator invocation."""

    strategy: Strategy
    items: List[ProcessedImage] = Field(default_factory=list)
    events: List[ProgressEvent] = Field(default_factory=list)
    progress: float = 0.0
    cancelled: bool = False
    processing_time: float = 0.0

    @property
    def succeeded_count(self) -> int:
        return sum(1 for item in self.items if item.state is ItemState.SUCCEEDED)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if item.state is ItemState.FAILED)

    @property
    def pending_count(self) -> int:
        return sum(1 for item in self.items if item.state is ItemState.PENDING)

    @property
    def ai_count(self) -> int:
        return sum(1 for item in self.items if item.succeeded and item.ai_optimized)

    @property
    def total_original_size(self) -> int:
        return sum(item.original.original_size for item in self.items if item.succeeded)

    @property
    def total_optimized_size(self) -> int:
        return sum(
            item.result.optimized_size
            for item in self.items
            if item.succeeded and item.result is not None
        )

    @property
    def compression_ratio(self) -> float:
        """Overall reduction across succeeded items."""
        if self.total_original_size == 0:
            return 0.0
        return (1 - self.total_optimized_size / self.total_original_size) * 100
