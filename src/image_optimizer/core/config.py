"""Pipeline configuration, threaded explicitly from the entry point."""

import os
from typing import Mapping, Optional

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigurationError
from .models import ImageFormat, OptimizationSettings, coerce_format

DEFAULT_AI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_AI_MODEL = "gemini-2.0-flash-exp"
DEFAULT_AI_PROMPT = (
    "Optimize this image for the web. Keep the subject, framing and colors "
    "identical; reduce noise and compression artifacts and return a single image."
)


class PipelineConfig(BaseModel):
    """Configuration for the optimizer and its collaborators."""

    # AI enhancement gateway
    api_key: Optional[str] = Field(default=None, repr=False)
    ai_endpoint: str = DEFAULT_AI_ENDPOINT
    ai_model: str = DEFAULT_AI_MODEL
    ai_prompt: str = DEFAULT_AI_PROMPT
    ai_connect_timeout: PositiveFloat = 10.0
    ai_read_timeout: PositiveFloat = 60.0

    # Defaults applied when the caller does not pass settings
    default_quality: float = Field(default=80, ge=0, le=100)
    default_format: ImageFormat = ImageFormat.WEBP
    default_max_width: Optional[PositiveInt] = 1920
    default_max_height: Optional[PositiveInt] = 1080

    # Codec resource bound; larger images are rejected as decompression bombs
    max_image_pixels: Optional[PositiveInt] = 89_478_485

    # Batch execution
    workers: PositiveInt = 1

    # Upload sink
    upload_bucket: Optional[str] = None
    upload_prefix: str = ""

    debug: bool = False

    @field_validator("default_format", mode="before")
    @classmethod
    def normalize_format(cls, value: object) -> object:
        return coerce_format(value)

    @property
    def ai_enabled(self) -> bool:
        return bool(self.api_key)

    def default_settings(self) -> OptimizationSettings:
        return OptimizationSettings(
            quality=self.default_quality,
            format=self.default_format,
            max_width=self.default_max_width,
            max_height=self.default_max_height,
        )

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "PipelineConfig":
        """
        Build a config from environment variables.

        Environment Variables:
            GOOGLE_API_KEY: API key for the enhancement service
            IMAGE_OPTIMIZER_AI_MODEL, IMAGE_OPTIMIZER_AI_ENDPOINT,
            IMAGE_OPTIMIZER_AI_PROMPT: Gemini model, base URL and prompt
            IMAGE_OPTIMIZER_AI_TIMEOUT: Read timeout in seconds
            IMAGE_OPTIMIZER_QUALITY, IMAGE_OPTIMIZER_FORMAT,
            IMAGE_OPTIMIZER_MAX_WIDTH, IMAGE_OPTIMIZER_MAX_HEIGHT: Defaults
            IMAGE_OPTIMIZER_WORKERS: Thread count for the multithread runner
            IMAGE_OPTIMIZER_UPLOAD_BUCKET, IMAGE_OPTIMIZER_UPLOAD_PREFIX: S3 sink

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ
        mapping = {
            "api_key": "GOOGLE_API_KEY",
            "ai_model": "IMAGE_OPTIMIZER_AI_MODEL",
            "ai_endpoint": "IMAGE_OPTIMIZER_AI_ENDPOINT",
            "ai_prompt": "IMAGE_OPTIMIZER_AI_PROMPT",
            "ai_read_timeout": "IMAGE_OPTIMIZER_AI_TIMEOUT",
            "default_quality": "IMAGE_OPTIMIZER_QUALITY",
            "default_format": "IMAGE_OPTIMIZER_FORMAT",
            "default_max_width": "IMAGE_OPTIMIZER_MAX_WIDTH",
            "default_max_height": "IMAGE_OPTIMIZER_MAX_HEIGHT",
            "workers": "IMAGE_OPTIMIZER_WORKERS",
            "upload_bucket": "IMAGE_OPTIMIZER_UPLOAD_BUCKET",
            "upload_prefix": "IMAGE_OPTIMIZER_UPLOAD_PREFIX",
        }
        values = {
            field_name: env[var]
            for field_name, var in mapping.items()
            if env.get(var) not in (None, "")
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
