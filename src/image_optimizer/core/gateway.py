"""AI enhancement gateway backed by the Gemini ``generateContent`` REST API."""

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from .config import DEFAULT_AI_ENDPOINT, DEFAULT_AI_MODEL, DEFAULT_AI_PROMPT
from .exceptions import (
    ImageProcessingError,
    InvalidResponseError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from .image_utils import sniff_image_format
from .models import OptimizationOptions, OptimizationResult, SourceImage
from .observability import LogContext, StructuredLogger
from .protocols import EnhancementGateway, HTTPSessionProtocol, LoggerProtocol
from .services import ImageOptimizationService


@dataclass(frozen=True)
class EnhancementRequest:
    """Wire request: a prompt plus an optional reference image."""

    prompt: str
    reference_image_bytes: Optional[bytes] = None
    reference_mime_type: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Encode as a Gemini ``generateContent`` body."""
        parts = []
        if self.reference_image_bytes is not None:
            parts.append(
                {
                    "inlineData": {
                        "mimeType": self.reference_mime_type or "image/png",
                        "data": base64.b64encode(self.reference_image_bytes).decode("ascii"),
                    }
                }
            )
        parts.append({"text": self.prompt})
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }


@dataclass(frozen=True)
class EnhancementResponse:
    """Decoded inline image returned by the service."""

    data: bytes
    mime_type: str
    usage: Dict[str, Any]


def parse_response(body: Any) -> EnhancementResponse:
    """
    Extract the first inline image from a ``generateContent`` response.

    Raises:
        InvalidResponseError: If there is no candidate, no image part, or the
            image payload is not valid base64. Text-only replies are attached
            to the error as ``text``.
    """
    if not isinstance(body, dict):
        raise InvalidResponseError("Response body is not a JSON object")

    candidates = body.get("candidates") or []
    if not candidates:
        feedback = body.get("promptFeedback")
        raise InvalidResponseError(
            "No response from AI", text=str(feedback) if feedback else None
        )

    if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
        raise InvalidResponseError("Malformed candidate in AI response")
    content = candidates[0].get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    parts = [part for part in parts if isinstance(part, dict)]

    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            try:
                data = base64.b64decode(inline["data"], validate=True)
            except (binascii.Error, ValueError, TypeError) as e:
                raise InvalidResponseError(f"Image payload is not valid base64: {e}") from e
            mime_type = inline.get("mimeType") or inline.get("mime_type")
            if not isinstance(mime_type, str):
                mime_type = "image/png"
            usage = body.get("usageMetadata")
            return EnhancementResponse(
                data=data, mime_type=mime_type, usage=usage if isinstance(usage, dict) else {}
            )

    text = "".join(part["text"] for part in parts if isinstance(part.get("text"), str))
    raise InvalidResponseError("AI returned text instead of an image", text=text or None)


class GeminiEnhancementGateway(EnhancementGateway):
    """
    Sends the source image to Gemini and normalizes the returned image.

    The returned image is transcoded with the deterministic engine so the
    result honors the requested format, quality and bounds and has the same
    shape as the default path. No retries; the orchestrator falls back on the
    first failure.
    """

    def __init__(
        self,
        api_key: str,
        engine: ImageOptimizationService,
        session: Optional[HTTPSessionProtocol] = None,
        endpoint: str = DEFAULT_AI_ENDPOINT,
        model: str = DEFAULT_AI_MODEL,
        prompt: str = DEFAULT_AI_PROMPT,
        timeout: Tuple[float, float] = (10.0, 60.0),
        logger: Optional[LoggerProtocol] = None,
    ):
        self._api_key = api_key
        self._engine = engine
        self._session = session or requests.Session()
        self._url = f"{endpoint.rstrip('/')}/models/{model}:generateContent"
        self._prompt = prompt
        self._timeout = timeout
        self._logger = logger or StructuredLogger("gateway")

    @property
    def url(self) -> str:
        return self._url

    def build_request(self, image: SourceImage) -> EnhancementRequest:
        # Content beats the declared type, which may be a generic fallback.
        sniffed = sniff_image_format(image.data)
        return EnhancementRequest(
            prompt=self._prompt,
            reference_image_bytes=image.data,
            reference_mime_type=f"image/{sniffed}" if sniffed else image.mime_type,
        )

    def enhance(
        self, image: SourceImage, options: OptimizationOptions
    ) -> OptimizationResult:
        """
        Enhance ``image`` through the service.

        Raises:
            ServiceUnavailableError: Network failure, timeout or server error
            UnauthorizedError: HTTP 401/403
            RateLimitedError: HTTP 429
            InvalidResponseError: No usable image in the reply
        """
        context = LogContext(operation="enhance", component="gateway").with_metadata(
            filename=image.filename
        )
        body = self._post(self.build_request(image).to_payload(), image.filename)

        try:
            response = parse_response(body)
        except InvalidResponseError as e:
            e.filename = image.filename
            raise

        if response.usage:
            self._logger.debug(
                "Enhancement usage",
                context,
                prompt_tokens=response.usage.get("promptTokenCount"),
                candidate_tokens=response.usage.get("candidatesTokenCount"),
                total_tokens=response.usage.get("totalTokenCount"),
            )

        try:
            return self._engine.transcode(
                response.data,
                response.mime_type,
                image.original_size,
                options,
                filename=image.filename,
            )
        except ImageProcessingError as e:
            raise InvalidResponseError(
                f"Enhanced image could not be processed: {e.message}",
                filename=image.filename,
            ) from e

    def _post(self, payload: Dict[str, Any], filename: str) -> Any:
        headers = {"Content-Type": "application/json", "x-goog-api-key": self._api_key}
        try:
            response = self._session.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            )
        except requests.Timeout as e:
            raise ServiceUnavailableError(
                f"Enhancement request timed out: {e}", filename=filename
            ) from e
        except requests.RequestException as e:
            raise ServiceUnavailableError(
                f"Enhancement request failed: {e}", filename=filename
            ) from e

        status = response.status_code
        if status in (401, 403):
            raise UnauthorizedError(
                f"API error: {status} {response.reason}", filename=filename
            )
        if status == 429:
            raise RateLimitedError(f"API error: {status} {response.reason}", filename=filename)
        if not 200 <= status < 300:
            raise ServiceUnavailableError(
                f"API error: {status} {response.reason}",
                filename=filename,
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Response body is not valid JSON", filename=filename, text=response.text[:500]
            ) from e
