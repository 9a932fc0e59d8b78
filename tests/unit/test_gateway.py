"""Unit tests for the Gemini enhancement gateway."""

import base64

import pytest
import requests

from image_optimizer.core.exceptions import (
    InvalidResponseError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from image_optimizer.core.gateway import (
    EnhancementRequest,
    GeminiEnhancementGateway,
    parse_response,
)
from image_optimizer.core.models import ImageFormat, OptimizationOptions, SourceImage
from image_optimizer.core.services import ImageCodecService, ImageOptimizationService
from image_optimizer.testing.fakes import (
    FakeHTTPResponse,
    FakeHTTPSession,
    FakeLogger,
    create_source_image,
    create_test_image,
    gemini_image_response,
    gemini_text_response,
)


@pytest.fixture
def session():
    return FakeHTTPSession()


@pytest.fixture
def gateway(session):
    engine = ImageOptimizationService(ImageCodecService(), logger=FakeLogger())
    return GeminiEnhancementGateway(
        api_key="test-key",
        engine=engine,
        session=session,
        endpoint="https://ai.example/v1beta/",
        model="test-model",
        prompt="Make it smaller",
        timeout=(1.0, 5.0),
        logger=FakeLogger(),
    )


class TestEnhancementRequest:
    """Tests for the request payload."""

    def test_payload_with_reference_image(self):
        """Test that the image precedes the prompt as inline data."""
        payload = EnhancementRequest(
            prompt="hi", reference_image_bytes=b"\x01\x02", reference_mime_type="image/jpeg"
        ).to_payload()

        parts = payload["contents"][0]["parts"]
        assert parts[0]["inlineData"] == {
            "mimeType": "image/jpeg",
            "data": base64.b64encode(b"\x01\x02").decode("ascii"),
        }
        assert parts[1] == {"text": "hi"}
        assert payload["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]

    def test_payload_prompt_only(self):
        payload = EnhancementRequest(prompt="describe").to_payload()
        assert payload["contents"][0]["parts"] == [{"text": "describe"}]


class TestParseResponse:
    """Tests for response parsing."""

    def test_extracts_inline_image(self):
        body = gemini_image_response(b"PNGDATA", "image/png").body
        response = parse_response(body)
        assert response.data == b"PNGDATA"
        assert response.mime_type == "image/png"
        assert response.usage["totalTokenCount"] == 1302

    def test_accepts_snake_case_inline_data(self):
        body = {
            "candidates": [
                {"content": {"parts": [{"inline_data": {"mime_type": "image/webp", "data": "AAEC"}}]}}
            ]
        }
        response = parse_response(body)
        assert response.data == b"\x00\x01\x02"
        assert response.mime_type == "image/webp"

    def test_text_only_reply(self):
        """Test that a reply without an image keeps the returned text."""
        with pytest.raises(InvalidResponseError, match="text instead of an image") as exc_info:
            parse_response(gemini_text_response("I cannot edit images").body)
        assert exc_info.value.text == "I cannot edit images"

    @pytest.mark.parametrize("body", [{}, {"candidates": []}, {"promptFeedback": {"blockReason": "SAFETY"}}])
    def test_no_candidates(self, body):
        with pytest.raises(InvalidResponseError, match="No response from AI"):
            parse_response(body)

    def test_invalid_base64(self):
        body = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "!!not base64!!"}}]}}]}
        with pytest.raises(InvalidResponseError, match="base64"):
            parse_response(body)

    def test_non_object_body(self):
        with pytest.raises(InvalidResponseError):
            parse_response(["not", "a", "dict"])

    @pytest.mark.parametrize(
        "body",
        [
            {"candidates": ["oops"]},
            {"candidates": "oops"},
            {"candidates": [{"content": "oops"}]},
            {"candidates": [{"content": {"parts": "oops"}}]},
            {"candidates": [{"content": {"parts": ["oops", 42, None]}}]},
            {"candidates": [{"content": {"parts": [{"inlineData": "oops"}]}}]},
            {"candidates": [{"content": {"parts": [{"text": 42}]}}]},
        ],
    )
    def test_malformed_structure(self, body):
        """Test that unexpected JSON shapes are invalid responses."""
        with pytest.raises(InvalidResponseError):
            parse_response(body)

    @pytest.mark.parametrize("data", [123, ["AAEC"], {"bytes": "AAEC"}])
    def test_non_string_image_payload(self, data):
        body = {"candidates": [{"content": {"parts": [{"inlineData": {"data": data}}]}}]}
        with pytest.raises(InvalidResponseError, match="base64"):
            parse_response(body)

    def test_skips_non_object_parts(self):
        """Test that junk parts before the image are ignored."""
        body = {
            "candidates": [
                {"content": {"parts": ["junk", {"inlineData": {"mimeType": 7, "data": "AAEC"}}]}}
            ],
            "usageMetadata": "junk",
        }
        response = parse_response(body)
        assert response.data == b"\x00\x01\x02"
        assert response.mime_type == "image/png"
        assert response.usage == {}


class TestGeminiEnhancementGateway:
    """Tests for the HTTP gateway."""

    def test_url(self, gateway):
        assert gateway.url == "https://ai.example/v1beta/models/test-model:generateContent"

    def test_enhance_success(self, gateway, session):
        """Test that the returned image is normalized to the requested options."""
        session.queue(gemini_image_response(create_test_image(300, 100, format="PNG")))
        source = create_source_image("photo.jpg", 120, 80)
        options = OptimizationOptions(format="jpeg", max_width=150, max_height=150)

        result = gateway.enhance(source, options)

        assert result.format is ImageFormat.JPEG
        assert result.original_size == source.original_size
        assert (result.optimized_dimensions.width, result.optimized_dimensions.height) == (150, 50)

    def test_enhance_sends_key_prompt_and_timeout(self, gateway, session):
        session.queue(gemini_image_response(create_test_image(10, 10, format="PNG")))
        source = create_source_image("photo.jpg", 20, 20)

        gateway.enhance(source, OptimizationOptions())

        request = session.requests[0]
        assert request.headers["x-goog-api-key"] == "test-key"
        assert request.timeout == (1.0, 5.0)
        parts = request.json["contents"][0]["parts"]
        assert parts[0]["inlineData"]["mimeType"] == "image/jpeg"
        assert base64.b64decode(parts[0]["inlineData"]["data"]) == source.data
        assert parts[-1]["text"] == "Make it smaller"

    def test_reference_mime_type_follows_content(self, gateway):
        """Test that the sniffed format replaces a generic declared type."""
        source = SourceImage(
            data=create_test_image(10, 10, format="PNG"),
            filename="upload.bin",
            mime_type="application/octet-stream",
        )
        assert gateway.build_request(source).reference_mime_type == "image/png"

    def test_reference_mime_type_falls_back_to_declared(self, gateway):
        source = SourceImage(data=b"unknown", filename="a.bin", mime_type="image/heic")
        assert gateway.build_request(source).reference_mime_type == "image/heic"

    @pytest.mark.parametrize(
        "status,error_cls",
        [
            (401, UnauthorizedError),
            (403, UnauthorizedError),
            (429, RateLimitedError),
            (500, ServiceUnavailableError),
            (503, ServiceUnavailableError),
            (404, ServiceUnavailableError),
        ],
    )
    def test_http_status_mapping(self, gateway, session, status, error_cls):
        """Test that HTTP errors map onto the gateway taxonomy."""
        session.queue(FakeHTTPResponse(status_code=status, reason="Error"))

        with pytest.raises(error_cls) as exc_info:
            gateway.enhance(create_source_image("a.jpg", 10, 10), OptimizationOptions())

        assert exc_info.value.filename == "a.jpg"
        assert str(status) in exc_info.value.message

    def test_server_error_keeps_status_code(self, gateway, session):
        session.queue(FakeHTTPResponse(status_code=502, reason="Bad Gateway"))
        with pytest.raises(ServiceUnavailableError) as exc_info:
            gateway.enhance(create_source_image(), OptimizationOptions())
        assert exc_info.value.status_code == 502

    @pytest.mark.parametrize(
        "error",
        [requests.Timeout("read timed out"), requests.ConnectionError("connection refused")],
    )
    def test_network_errors(self, gateway, session, error):
        """Test that timeouts and connection failures are unavailability."""
        session.queue(error)
        with pytest.raises(ServiceUnavailableError):
            gateway.enhance(create_source_image(), OptimizationOptions())

    def test_invalid_json(self, gateway, session):
        session.queue(FakeHTTPResponse(status_code=200, body=None, text="<html>oops</html>"))
        with pytest.raises(InvalidResponseError) as exc_info:
            gateway.enhance(create_source_image(), OptimizationOptions())
        assert exc_info.value.text == "<html>oops</html>"

    def test_text_only_reply(self, gateway, session):
        session.queue(gemini_text_response("Here is a description of your image."))
        with pytest.raises(InvalidResponseError) as exc_info:
            gateway.enhance(create_source_image("cat.jpg"), OptimizationOptions())
        assert exc_info.value.filename == "cat.jpg"

    def test_undecodable_image(self, gateway, session):
        """Test that a reply whose image cannot be decoded is an invalid response."""
        session.queue(gemini_image_response(b"definitely not an image"))
        with pytest.raises(InvalidResponseError, match="could not be processed"):
            gateway.enhance(create_source_image(), OptimizationOptions())
