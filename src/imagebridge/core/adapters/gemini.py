"""Gemini adapter.

Two endpoint families share this adapter:

- ``:generateContent`` models take a multi-modal ``parts`` list. The prompt
  goes first, then reference images in caller order, and for edits the source
  image last. Some models interpret part order as importance, so the order is
  fixed.
- ``:predict`` Imagen models take a bare prompt and return one base64 image.
  They cannot edit and take no reference images.
"""

import base64
import binascii
import logging
from typing import Any

from imagebridge.core.aspect_ratios import (
    DEFAULT_RESOLUTION,
    closest_aspect_ratio,
    sanitize_aspect_ratio,
    sanitize_resolution,
)
from imagebridge.core.errors import InvalidResponseError, NoImageReturnedError, UnsupportedCapabilityError
from imagebridge.core.images import BinaryImage, ReferenceImage
from imagebridge.core.model_catalog import ModelFamily, ModelSpec
from imagebridge.core.params import EditRequest, GenerateRequest
from imagebridge.core.provider_adapters import ProviderAdapterBase, normalize_prompt, provider_registry

logger = logging.getLogger(__name__)

IMAGEN_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")


class GeminiAdapter(ProviderAdapterBase):
    """Adapter for the Gemini ``generateContent`` and Imagen ``predict`` APIs."""

    name = "gemini"
    description = "Google Gemini multi-modal image generation and editing"
    version = "0.1.0"

    def _generate(self, req: GenerateRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        if spec.family == ModelFamily.GEMINI_PREDICT:
            return self._predict(req, spec, context)

        parts: list[dict[str, Any]] = [{"text": normalize_prompt(req.prompt)}]
        parts.extend(self._reference_parts(req.reference_images))

        payload = self._content_payload(
            parts,
            spec,
            aspect_ratio=sanitize_aspect_ratio(req.aspect_ratio)
            or closest_aspect_ratio(req.width, req.height),
            resolution=req.resolution,
        )
        return self._generate_content(spec, payload, context)

    def _edit(self, req: EditRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        source = self._read_file(req.source_path)
        source_mime = self._file_mime(req.source_path, source)

        parts: list[dict[str, Any]] = [{"text": normalize_prompt(req.prompt)}]
        parts.extend(self._reference_parts(req.reference_images))
        parts.append(self._inline_part(source, source_mime))

        payload = self._content_payload(
            parts,
            spec,
            aspect_ratio=closest_aspect_ratio(req.target_width, req.target_height),
            resolution=None,
        )
        return self._generate_content(spec, payload, context)

    # ------------------------------------------------------------------
    # generateContent
    # ------------------------------------------------------------------

    def _inline_part(self, data: bytes, mime: str) -> dict[str, Any]:
        return {"inline_data": {"mime_type": mime, "data": self._encode(data)}}

    def _reference_parts(self, references: list[ReferenceImage]) -> list[dict[str, Any]]:
        parts = []
        for ref in self._existing_references(references):
            data = self._read_file(ref.path)
            parts.append(self._inline_part(data, self._file_mime(ref.path, data, ref.mime)))
        return parts

    @staticmethod
    def _content_payload(
        parts: list[dict[str, Any]],
        spec: ModelSpec,
        aspect_ratio: str,
        resolution: str | None,
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE"]}

        image_config: dict[str, str] = {}
        if spec.supports("image_config"):
            image_config["aspectRatio"] = aspect_ratio
        if spec.supports("resolution"):
            image_config["imageSize"] = sanitize_resolution(resolution) or DEFAULT_RESOLUTION
        if image_config:
            generation_config["imageConfig"] = image_config

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }

    def _generate_content(
        self, spec: ModelSpec, payload: dict[str, Any], context: dict[str, Any]
    ) -> BinaryImage:
        response = self._send(
            "POST",
            self._url(spec, "generateContent"),
            context,
            timeout=self.config.gemini_timeout,
            headers=self._headers(),
            json_body=payload,
        )
        body = self._decode_json(response, context)
        data, mime = self._extract_inline_image(body)
        return self._build_image(data, mime)

    @staticmethod
    def _extract_inline_image(body: dict[str, Any]) -> tuple[bytes, str]:
        candidates = body.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            reason = (body.get("promptFeedback") or {}).get("blockReason")
            detail = f" (blocked: {reason})" if reason else ""
            raise NoImageReturnedError(f"Gemini response contained no candidates{detail}")

        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise NoImageReturnedError("Gemini response contained no content parts")

        for part in parts:
            if not isinstance(part, dict):
                continue
            inline = part.get("inlineData") or part.get("inline_data")
            if not isinstance(inline, dict):
                continue
            encoded = inline.get("data")
            if not isinstance(encoded, str) or not encoded:
                continue
            try:
                data = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidResponseError("Gemini returned invalid base64 image data") from e
            mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return data, mime

        raise NoImageReturnedError("Gemini response did not include image data")

    # ------------------------------------------------------------------
    # predict (Imagen)
    # ------------------------------------------------------------------

    def _predict(self, req: GenerateRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        if req.reference_images:
            raise UnsupportedCapabilityError(
                f"Model {spec.api_model} does not accept reference images"
            )

        aspect_ratio = sanitize_aspect_ratio(req.aspect_ratio)
        if aspect_ratio not in IMAGEN_ASPECT_RATIOS:
            aspect_ratio = closest_aspect_ratio(req.width, req.height, IMAGEN_ASPECT_RATIOS)

        payload = {
            "instances": [{"prompt": normalize_prompt(req.prompt)}],
            "parameters": {"sampleCount": 1, "aspectRatio": aspect_ratio},
        }
        response = self._send(
            "POST",
            self._url(spec, "predict"),
            context,
            timeout=self.config.gemini_timeout,
            headers=self._headers(),
            json_body=payload,
        )
        body = self._decode_json(response, context)

        predictions = body.get("predictions")
        if not isinstance(predictions, list) or not predictions:
            raise NoImageReturnedError("Imagen response contained no predictions")

        prediction = predictions[0] if isinstance(predictions[0], dict) else {}
        encoded = prediction.get("bytesBase64Encoded")
        if not isinstance(encoded, str) or not encoded:
            raise NoImageReturnedError("Imagen response did not include image data")
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidResponseError("Imagen returned invalid base64 image data") from e

        return self._build_image(data, prediction.get("mimeType") or "image/png")

    # ------------------------------------------------------------------

    def _url(self, spec: ModelSpec, action: str) -> str:
        return f"{self.config.gemini_api_url.rstrip('/')}/{spec.api_model}:{action}"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}


provider_registry.register(GeminiAdapter)
