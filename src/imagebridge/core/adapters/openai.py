"""OpenAI images adapter.

Three code paths:

1. plain generate: JSON to ``/images/generations``
2. generate with references: multipart to ``/images/edits`` with only the
   references as ``image[0]``, ``image[1]``, ... (the API has no
   multi-reference generation endpoint)
3. edit: multipart to ``/images/edits``; references first, source image last
   (``image[n]``), or a single ``image`` field without references

The response carries either ``b64_json`` or a ``url`` that must be fetched.
"""

import base64
import binascii
import logging
from typing import Any

from imagebridge.core.aspect_ratios import ratio_value, sanitize_aspect_ratio
from imagebridge.core.errors import InvalidInputError, InvalidResponseError, NoImageReturnedError
from imagebridge.core.images import BinaryImage, ReferenceImage, extension_from_mime
from imagebridge.core.model_catalog import ModelSpec
from imagebridge.core.params import EditRequest, GenerateRequest
from imagebridge.core.provider_adapters import ProviderAdapterBase, normalize_prompt, provider_registry

logger = logging.getLogger(__name__)

_RATIO_SIZES = {
    "1:1": "1024x1024",
    "3:2": "1536x1024",
    "2:3": "1024x1536",
}

MIN_DIMENSION = 256
MAX_DIMENSION = 1792


def size_for_request(width: int, height: int, aspect_ratio: str | None = None) -> str:
    """Map a requested size onto one of the canvas sizes the API accepts.

    An aspect ratio string wins over width/height. Ratios outside the direct
    mapping are bucketed by orientation. Width/height are clamped to 256-1792
    and bucketed by orientation and size; anything unmapped is ``1024x1024``.
    """
    ratio = sanitize_aspect_ratio(aspect_ratio)
    if ratio:
        if ratio in _RATIO_SIZES:
            return _RATIO_SIZES[ratio]
        value = ratio_value(ratio)
        if value > 1:
            return "1536x1024"
        if value < 1:
            return "1024x1536"
        return "1024x1024"

    width = max(MIN_DIMENSION, min(MAX_DIMENSION, int(width or 0)))
    height = max(MIN_DIMENSION, min(MAX_DIMENSION, int(height or 0)))

    if width == height:
        if width >= 1024:
            return "1024x1024"
        if width >= 512:
            return "512x512"
        return "256x256"

    if width > height:
        if width >= 1792 and height >= 1024:
            return "1792x1024"
        return "1024x1024"

    if height >= 1792 and width >= 1024:
        return "1024x1792"
    return "1024x1024"


class OpenAIAdapter(ProviderAdapterBase):
    """Adapter for the OpenAI ``/images`` endpoints."""

    name = "openai"
    description = "OpenAI image generation and multipart edits"
    version = "0.1.0"

    def _generate(self, req: GenerateRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        prompt = normalize_prompt(req.prompt)
        size = size_for_request(req.width, req.height, req.aspect_ratio)

        if req.reference_images:
            return self._generate_with_references(req, spec, prompt, size, context)

        payload = {"model": spec.api_model, "prompt": prompt, "n": 1, "size": size}
        response = self._send(
            "POST",
            self._url("images/generations"),
            context,
            timeout=self.config.openai_timeout,
            headers={**self._headers(), "Content-Type": "application/json"},
            json_body=payload,
        )
        return self._image_from_response(response, context)

    def _generate_with_references(
        self,
        req: GenerateRequest,
        spec: ModelSpec,
        prompt: str,
        size: str,
        context: dict[str, Any],
    ) -> BinaryImage:
        files = self._reference_files(req.reference_images)
        if not files:
            raise InvalidInputError("None of the reference images could be found")

        return self._post_edits(spec, prompt, size, files, context)

    def _edit(self, req: EditRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        source = self._read_file(req.source_path)
        source_mime = self._file_mime(req.source_path, source)
        source_name = f"source.{extension_from_mime(source_mime)}"

        files = self._reference_files(req.reference_images)
        if files:
            files.append((f"image[{len(files)}]", (source_name, source, source_mime)))
        else:
            files = [("image", (source_name, source, source_mime))]

        size = size_for_request(req.target_width, req.target_height)
        return self._post_edits(spec, normalize_prompt(req.prompt), size, files, context)

    # ------------------------------------------------------------------

    def _reference_files(self, references: list[ReferenceImage]) -> list:
        files = []
        for ref in self._existing_references(references):
            data = self._read_file(ref.path)
            mime = self._file_mime(ref.path, data, ref.mime)
            filename = ref.filename or f"reference-{len(files)}.{extension_from_mime(mime)}"
            files.append((f"image[{len(files)}]", (filename, data, mime)))
        return files

    def _post_edits(
        self, spec: ModelSpec, prompt: str, size: str, files: list, context: dict[str, Any]
    ) -> BinaryImage:
        fields = {"model": spec.api_model, "prompt": prompt, "n": "1", "size": size}
        response = self._send(
            "POST",
            self._url("images/edits"),
            context,
            timeout=self.config.openai_timeout,
            headers=self._headers(),
            data=fields,
            files=files,
        )
        return self._image_from_response(response, context)

    def _image_from_response(self, response, context: dict[str, Any]) -> BinaryImage:
        body = self._decode_json(response, context)

        data = body.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise NoImageReturnedError("OpenAI response did not include image data")

        first = data[0]
        encoded = first.get("b64_json")
        if isinstance(encoded, str) and encoded:
            try:
                raw = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidResponseError("OpenAI returned invalid base64 image data") from e
            return self._build_image(raw)

        url = first.get("url")
        if isinstance(url, str) and url:
            return self._download_image(url, context, self.config.openai_timeout)

        raise NoImageReturnedError("OpenAI response did not include image data")

    def _url(self, path: str) -> str:
        return f"{self.config.openai_api_url.rstrip('/')}/{path}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


provider_registry.register(OpenAIAdapter)
