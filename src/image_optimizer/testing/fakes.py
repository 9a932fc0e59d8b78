"""Fake implementations for testing purposes."""

import base64
import io
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests
from botocore.exceptions import ClientError
from PIL import Image

from ..core.exceptions import EnhancementGatewayError, ServiceUnavailableError
from ..core.models import OptimizationOptions, OptimizationResult, SourceImage
from ..core.protocols import EnhancementGateway, OptimizationService


@dataclass
class FakeHTTPResponse:
    """Minimal stand-in for ``requests.Response``."""

    status_code: int = 200
    body: Any = None
    reason: str = "OK"
    text: str = ""

    def json(self) -> Any:
        if self.body is None:
            raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)
        return self.body


@dataclass
class RecordedRequest:
    url: str
    json: Optional[Mapping[str, Any]]
    headers: Optional[Mapping[str, str]]
    timeout: Any


class FakeHTTPSession:
    """Fake ``requests.Session`` returning queued responses.

    Queue either :class:`FakeHTTPResponse` objects or exceptions; when the
    queue is empty ``default_response`` is returned.
    """

    def __init__(self, default_response: Optional[FakeHTTPResponse] = None):
        self.requests: List[RecordedRequest] = []
        self._queue: List[Any] = []
        self.default_response = default_response or FakeHTTPResponse(
            status_code=503, reason="Service Unavailable"
        )

    def queue(self, *responses: Any) -> None:
        self._queue.extend(responses)

    def post(
        self,
        url: str,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Any = None,
    ) -> FakeHTTPResponse:
        self.requests.append(RecordedRequest(url=url, json=json, headers=headers, timeout=timeout))
        response = self._queue.pop(0) if self._queue else self.default_response
        if isinstance(response, BaseException):
            raise response
        return response


def gemini_image_response(
    image_bytes: bytes, mime_type: str = "image/png", status_code: int = 200
) -> FakeHTTPResponse:
    """Build a ``generateContent`` reply carrying one inline image."""
    return FakeHTTPResponse(
        status_code=status_code,
        body={
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Here is the optimized image."},
                            {
                                "inlineData": {
                                    "mimeType": mime_type,
                                    "data": base64.b64encode(image_bytes).decode("ascii"),
                                }
                            },
                        ]
                    }
                }
            ],
            "usageMetadata": {
                "promptTokenCount": 12,
                "candidatesTokenCount": 1290,
                "totalTokenCount": 1302,
            },
        },
    )


def gemini_text_response(text: str) -> FakeHTTPResponse:
    """Build a ``generateContent`` reply with text only."""
    return FakeHTTPResponse(
        body={"candidates": [{"content": {"parts": [{"text": text}]}}]}
    )


class FakeEnhancementGateway(EnhancementGateway):
    """Gateway double that fails or delegates to an engine.

    With ``error`` set every call raises it; otherwise the call is answered by
    ``engine.optimize`` so results look like a real enhancement.
    """

    def __init__(
        self,
        engine: Optional[OptimizationService] = None,
        error: Optional[Exception] = None,
        fail_for: Optional[List[str]] = None,
    ):
        self._engine = engine
        self.error = error
        self.fail_for = set(fail_for or [])
        self.calls: List[str] = []

    @classmethod
    def always_failing(cls, error: Optional[EnhancementGatewayError] = None) -> "FakeEnhancementGateway":
        return cls(error=error or ServiceUnavailableError("Simulated outage"))

    def enhance(
        self, image: SourceImage, options: OptimizationOptions
    ) -> OptimizationResult:
        self.calls.append(image.filename)
        if self.error is not None:
            raise self.error
        if image.filename in self.fail_for:
            raise ServiceUnavailableError("Simulated outage", filename=image.filename)
        if self._engine is None:
            raise ServiceUnavailableError("No engine configured", filename=image.filename)
        return self._engine.optimize(image, options)


@dataclass
class S3Object:
    """Fake S3 object for testing."""

    key: str
    body: bytes
    content_type: str = "image/jpeg"
    size: int = 0

    def __post_init__(self):
        if self.size == 0:
            self.size = len(self.body)


@dataclass
class S3Bucket:
    """Fake S3 bucket for testing."""

    name: str
    objects: Dict[str, S3Object] = field(default_factory=dict)

    def add_object(self, key: str, body: bytes, content_type: str = "image/jpeg") -> None:
        self.objects[key] = S3Object(key=key, body=body, content_type=content_type)

    def get_object(self, key: str) -> Optional[S3Object]:
        return self.objects.get(key)


class FakeS3Client:
    """Fake S3 client for testing uploads."""

    def __init__(self):
        self.buckets: Dict[str, S3Bucket] = {}
        self.operation_count = 0
        self.error_code: Optional[str] = None
        self.failures_remaining = 0

    def create_bucket(self, name: str) -> S3Bucket:
        bucket = S3Bucket(name=name)
        self.buckets[name] = bucket
        return bucket

    def get_bucket(self, name: str) -> Optional[S3Bucket]:
        return self.buckets.get(name)

    def set_failure_mode(self, error_code: Optional[str], times: int = 1_000_000) -> None:
        """Raise ``ClientError(error_code)`` for the next ``times`` calls."""
        self.error_code = error_code
        self.failures_remaining = times if error_code else 0

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        self.operation_count += 1

        if self.error_code and self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise ClientError(
                {"Error": {"Code": self.error_code, "Message": "Simulated failure"}},
                "PutObject",
            )

        bucket = self.buckets.get(Bucket)
        if not bucket:
            raise ClientError(
                {"Error": {"Code": "NoSuchBucket", "Message": f"Bucket {Bucket} not found"}},
                "PutObject",
            )

        bucket.add_object(Key, Body, ContentType)
        return {
            "ETag": f'"fake-etag-{Key}"',
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }


class FakeLogger:
    """Fake logger for testing with support for LogContext."""

    def __init__(self, name: str = "test_logger"):
        self.name = name
        self.logs: List[Dict[str, Any]] = []

    def _log(self, level: str, message: str, context: Any = None, **kwargs: Any) -> None:
        log_entry = {
            "level": level,
            "message": message,
            "timestamp": time.time(),
            **kwargs,
        }

        if context is not None:
            if hasattr(context, "correlation_id"):
                log_entry["correlation_id"] = context.correlation_id
            if hasattr(context, "operation"):
                log_entry["operation"] = context.operation
            if hasattr(context, "metadata"):
                log_entry.update(context.metadata)

        self.logs.append(log_entry)

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("DEBUG", message, context, **kwargs)

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("INFO", message, context, **kwargs)

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("WARNING", message, context, **kwargs)

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        self._log("ERROR", message, context, **kwargs)

    def get_logs(self, level: Optional[str] = None) -> List[Dict[str, Any]]:
        if level:
            return [log for log in self.logs if log["level"] == level]
        return self.logs.copy()

    def clear_logs(self) -> None:
        self.logs.clear()


def create_test_image(
    width: int = 100,
    height: int = 100,
    format: str = "JPEG",
    mode: str = "RGB",
) -> bytes:
    """Create a patterned test image in memory."""
    fill = (255, 0, 0, 128) if mode == "RGBA" else "red"
    image = Image.new(mode, (width, height), color=fill)

    # Add some pattern to make it more realistic
    block = (0, 0, 255, 255) if mode == "RGBA" else (0, 0, 255)
    for x in range(0, width, 20):
        for y in range(0, height, 20):
            if (x + y) % 40 == 0:
                image.paste(block, (x, y, min(x + 10, width), min(y + 10, height)))

    img_bytes = io.BytesIO()
    params = {"quality": 95} if format in ("JPEG", "WEBP") else {}
    image.save(img_bytes, format=format, **params)
    return img_bytes.getvalue()


def create_source_image(
    filename: str = "photo.jpg",
    width: int = 100,
    height: int = 100,
    format: str = "JPEG",
    mode: str = "RGB",
) -> SourceImage:
    """Create a :class:`SourceImage` around :func:`create_test_image`."""
    return SourceImage(
        data=create_test_image(width, height, format=format, mode=mode),
        filename=filename,
        mime_type=f"image/{format.lower()}",
    )


def setup_test_s3_environment(bucket: str = "test-optimized") -> FakeS3Client:
    """Set up a fake S3 client with an empty destination bucket."""
    s3_client = FakeS3Client()
    s3_client.create_bucket(bucket)
    return s3_client
