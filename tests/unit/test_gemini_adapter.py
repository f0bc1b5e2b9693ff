"""Unit tests for the Gemini adapter.

All tests run against FakeTransport; no network access.
"""

import base64
from pathlib import Path

import pytest

from conftest import FakeTransport, json_response, png_bytes
from imagebridge.core.adapters.gemini import GeminiAdapter
from imagebridge.core.errors import (
    ConfigurationError,
    InvalidResponseError,
    NetworkError,
    NoImageReturnedError,
    ProviderError,
    ProviderTimeoutError,
    UnsupportedCapabilityError,
)
from imagebridge.core.params import EditRequest, GenerateRequest
from imagebridge.core.transport import HttpResponse


def gemini_image_body(data: bytes, snake_case: bool = False) -> dict:
    encoded = base64.b64encode(data).decode("ascii")
    if snake_case:
        part = {"inline_data": {"mime_type": "image/png", "data": encoded}}
    else:
        part = {"inlineData": {"mimeType": "image/png", "data": encoded}}
    return {"candidates": [{"content": {"parts": [{"text": "here you go"}, part]}}]}


def b64(path) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


@pytest.fixture
def adapter(test_config, transport) -> GeminiAdapter:
    return GeminiAdapter(test_config, transport=transport)


def edit_request(source_image, **kwargs) -> EditRequest:
    values = dict(
        source_attachment_id=7,
        prompt="make it red",
        provider="gemini",
        source_path=str(source_image),
        target_width=40,
        target_height=30,
    )
    values.update(kwargs)
    return EditRequest(**values)


class TestGenerate:
    def test_returns_real_dimensions(self, adapter, transport):
        transport.responses.append(json_response(gemini_image_body(png_bytes(16, 9))))

        image = adapter.generate(GenerateRequest(prompt="a lighthouse", provider="gemini"))

        assert (image.width, image.height, image.mime) == (16, 9, "image/png")

    def test_request_shape(self, adapter, transport, test_config):
        transport.responses.append(json_response(gemini_image_body(png_bytes())))

        adapter.generate(GenerateRequest(prompt="line one\r\n\nline two  ", provider="gemini"))

        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == (
            f"{test_config.gemini_api_url}/gemini-2.5-flash-image-preview:generateContent"
        )
        assert call["headers"]["x-goog-api-key"] == "test-gemini-key"
        assert call["timeout"] == test_config.gemini_timeout
        body = call["json"]
        assert body["contents"][0]["parts"] == [{"text": "line one line two"}]
        assert body["generationConfig"]["responseModalities"] == ["IMAGE"]
        assert "imageConfig" not in body["generationConfig"]

    def test_image_config_for_pro_model(self, adapter, transport):
        transport.responses.append(json_response(gemini_image_body(png_bytes())))

        adapter.generate(
            GenerateRequest(
                prompt="x",
                provider="gemini",
                model="gemini-3-pro-image-preview",
                width=1920,
                height=1080,
                resolution="2K",
            )
        )

        image_config = transport.calls[0]["json"]["generationConfig"]["imageConfig"]
        assert image_config == {"aspectRatio": "16:9", "imageSize": "2K"}

    def test_explicit_aspect_ratio_wins(self, adapter, transport):
        transport.responses.append(json_response(gemini_image_body(png_bytes())))

        adapter.generate(
            GenerateRequest(prompt="x", provider="gemini", model="gemini-2.5-flash-image", aspect_ratio="4:5")
        )

        assert transport.calls[0]["json"]["generationConfig"]["imageConfig"] == {"aspectRatio": "4:5"}

    def test_snake_case_inline_data(self, adapter, transport):
        transport.responses.append(json_response(gemini_image_body(png_bytes(5, 5), snake_case=True)))
        image = adapter.generate(GenerateRequest(prompt="x", provider="gemini"))
        assert image.size == (5, 5)

    def test_references_in_caller_order(self, adapter, transport, make_reference):
        a = make_reference("a", (255, 0, 0, 255))
        b = make_reference("b", (0, 255, 0, 255))
        transport.responses.append(json_response(gemini_image_body(png_bytes())))

        adapter.generate(GenerateRequest(prompt="mix", provider="gemini", reference_images=[a, b]))

        parts = transport.calls[0]["json"]["contents"][0]["parts"]
        assert [p["inline_data"]["data"] for p in parts[1:]] == [b64(a.path), b64(b.path)]

    def test_missing_reference_is_skipped(self, adapter, transport, make_reference, temp_dir):
        a = make_reference("a")
        b = make_reference("b")
        (temp_dir / "b.png").unlink()
        transport.responses.append(json_response(gemini_image_body(png_bytes())))

        adapter.generate(GenerateRequest(prompt="mix", provider="gemini", reference_images=[a, b]))

        parts = transport.calls[0]["json"]["contents"][0]["parts"]
        assert len(parts) == 2


class TestEdit:
    def test_part_order_text_references_source(self, adapter, transport, source_image, make_reference):
        a = make_reference("a", (255, 0, 0, 255))
        b = make_reference("b", (0, 255, 0, 255))
        transport.responses.append(json_response(gemini_image_body(png_bytes(40, 30))))

        adapter.edit(edit_request(source_image, reference_images=[a, b]))

        parts = transport.calls[0]["json"]["contents"][0]["parts"]
        assert parts[0] == {"text": "make it red"}
        assert [p["inline_data"]["data"] for p in parts[1:]] == [
            b64(a.path),
            b64(b.path),
            b64(source_image),
        ]
        assert parts[3]["inline_data"]["mime_type"] == "image/png"

    def test_missing_source_is_configuration_error(self, adapter, transport, temp_dir):
        with pytest.raises(ConfigurationError):
            adapter.edit(edit_request(temp_dir / "nope.png"))
        assert transport.calls == []


class TestPreconditions:
    def test_missing_credential(self, test_config, transport):
        adapter = GeminiAdapter(test_config, api_key="", transport=transport)
        with pytest.raises(ConfigurationError) as exc_info:
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))
        assert exc_info.value.provider == "gemini"
        assert exc_info.value.operation == "generate"
        assert transport.calls == []

    def test_missing_model(self, test_config, transport):
        adapter = GeminiAdapter(test_config, model="", transport=transport)
        with pytest.raises(ConfigurationError):
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))
        assert transport.calls == []

    def test_multi_reference_rejected_before_network(self, adapter, transport, source_image, make_reference):
        refs = [make_reference("a"), make_reference("b")]
        with pytest.raises(UnsupportedCapabilityError):
            adapter.edit(edit_request(source_image, model="gemini-2.0-flash-exp", reference_images=refs))
        assert transport.calls == []


class TestResponseErrors:
    def test_structured_error(self, adapter, transport):
        transport.responses.append(
            json_response({"error": {"code": 429, "message": "Quota exceeded"}}, status=429)
        )
        with pytest.raises(ProviderError) as exc_info:
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))
        assert exc_info.value.user_message == "Quota exceeded"
        assert exc_info.value.status_code == 429
        assert exc_info.value.model == "gemini-2.5-flash-image-preview"

    def test_non_json_error_status(self, adapter, transport):
        transport.responses.append(HttpResponse(status_code=502, content=b"<html>bad gateway</html>"))
        with pytest.raises(InvalidResponseError):
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))

    def test_no_image_in_parts(self, adapter, transport):
        transport.responses.append(
            json_response({"candidates": [{"content": {"parts": [{"text": "I cannot"}]}}]})
        )
        with pytest.raises(NoImageReturnedError):
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))

    def test_blocked_prompt(self, adapter, transport):
        transport.responses.append(json_response({"promptFeedback": {"blockReason": "SAFETY"}}))
        with pytest.raises(NoImageReturnedError, match="SAFETY"):
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))

    def test_timeout_is_propagated(self, adapter):
        def raise_timeout(call):
            raise ProviderTimeoutError("Request timed out after 60s")

        adapter.transport = FakeTransport([raise_timeout])
        with pytest.raises(ProviderTimeoutError) as exc_info:
            adapter.generate(GenerateRequest(prompt="x", provider="gemini"))
        assert isinstance(exc_info.value, NetworkError)
        assert exc_info.value.provider == "gemini"


class TestImagenPredict:
    def test_predict_request_and_response(self, adapter, transport, test_config):
        encoded = base64.b64encode(png_bytes(20, 10)).decode("ascii")
        transport.responses.append(
            json_response({"predictions": [{"bytesBase64Encoded": encoded, "mimeType": "image/png"}]})
        )

        image = adapter.generate(
            GenerateRequest(prompt="a fox", provider="gemini", model="imagen-4.0-generate-001", width=1600, height=900)
        )

        call = transport.calls[0]
        assert call["url"] == f"{test_config.gemini_api_url}/imagen-4.0-generate-001:predict"
        assert call["json"] == {
            "instances": [{"prompt": "a fox"}],
            "parameters": {"sampleCount": 1, "aspectRatio": "16:9"},
        }
        assert image.size == (20, 10)

    def test_edit_is_unsupported(self, adapter, transport, source_image):
        with pytest.raises(UnsupportedCapabilityError):
            adapter.edit(edit_request(source_image, model="imagen-4.0-generate-001"))
        assert transport.calls == []

    def test_empty_predictions(self, adapter, transport):
        transport.responses.append(json_response({"predictions": []}))
        with pytest.raises(NoImageReturnedError):
            adapter.generate(GenerateRequest(prompt="x", provider="gemini", model="imagen-4.0-fast-generate-001"))
