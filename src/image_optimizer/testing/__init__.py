"""Testing utilities and fakes for the image optimizer."""

from .fakes import (
    FakeEnhancementGateway,
    FakeHTTPResponse,
    FakeHTTPSession,
    FakeLogger,
    FakeS3Client,
    S3Bucket,
    S3Object,
    create_source_image,
    create_test_image,
    gemini_image_response,
    gemini_text_response,
    setup_test_s3_environment,
)

__all__ = [
    "FakeEnhancementGateway",
    "FakeHTTPResponse",
    "FakeHTTPSession",
    "FakeLogger",
    "FakeS3Client",
    "S3Bucket",
    "S3Object",
    "create_source_image",
    "create_test_image",
    "gemini_image_response",
    "gemini_text_response",
    "setup_test_s3_environment",
]
