"""Replicate adapter.

Predictions are asynchronous. Creation (sent with ``Prefer: wait``) either
returns a finished prediction or one that is still ``starting`` /
``processing``. In the second case the adapter polls the prediction's status
URL at a fixed interval until:

- output appears (success)
- an ``error`` appears, or status is ``failed`` / ``canceled`` (ProviderError)
- status leaves the polling set without output (NoImageReturnedError)
- the polling deadline passes (ProviderTimeoutError)

The deadline is measured on an injectable monotonic clock from the moment the
creation request returned, so tests can drive the loop without sleeping.

Input shaping depends on the model and is read from the resolved
``ModelSpec.shape``: the resolution parameter name, the reference image field
(and whether it is an array in reverse order), and per-family edit defaults.
"""

import logging
import time
from typing import Any, Callable

from imagebridge.core.aspect_ratios import (
    DEFAULT_RESOLUTION,
    closest_aspect_ratio,
    megapixels_for_resolution,
    sanitize_aspect_ratio,
    sanitize_resolution,
)
from imagebridge.core.errors import (
    InvalidInputError,
    InvalidResponseError,
    MissingOutputURLError,
    NoImageReturnedError,
    ProviderError,
    ProviderTimeoutError,
)
from imagebridge.core.images import BinaryImage, ReferenceImage
from imagebridge.core.model_catalog import ModelSpec, ReferenceField, RequestShape, ResolutionParam
from imagebridge.core.params import EditRequest, GenerateRequest
from imagebridge.core.provider_adapters import (
    ProviderAdapterBase,
    extract_error_message,
    normalize_prompt,
    provider_registry,
)
from imagebridge.core.transport import HttpResponse

logger = logging.getLogger(__name__)

POLLING_STATUSES = ("starting", "processing")
FAILED_STATUSES = ("failed", "canceled")
OUTPUT_URL_KEYS = ("image", "output", "url")
EDIT_OUTPUT_QUALITY = 80


def format_for_request(fmt: str) -> str:
    """Map an output format onto Replicate's ``output_format`` values."""
    fmt = (fmt or "").lower()
    if fmt == "webp":
        return "webp"
    if fmt in ("jpeg", "jpg"):
        return "jpg"
    return "png"


def extract_output_url(output: Any) -> str | None:
    """Find the image URL in a prediction's ``output``.

    Tries, in order: a bare URL string, a list whose first element is a URL
    string, and a list whose first element is a mapping carrying the URL under
    ``image``, ``output`` or ``url``.
    """
    if isinstance(output, str) and output:
        return output

    if isinstance(output, list) and output:
        first = output[0]
        if isinstance(first, str) and first:
            return first
        if isinstance(first, dict):
            for key in OUTPUT_URL_KEYS:
                value = first.get(key)
                if isinstance(value, str) and value:
                    return value
    return None


def apply_reference_images(
    payload: dict[str, Any], shape: RequestShape, uris: list[str], field: ReferenceField
) -> None:
    """Place data URIs into ``payload`` under the model's reference field."""
    if field.is_array:
        values = list(reversed(uris)) if shape.reverse_references else list(uris)
        payload[field.value] = values
    else:
        payload[field.value] = uris[0]


class ReplicateAdapter(ProviderAdapterBase):
    """Adapter for Replicate model predictions.

    Args:
        clock: Monotonic clock used for the polling deadline
        sleep: Function used to wait between polls
    """

    name = "replicate"
    description = "Replicate hosted models through the predictions API"
    version = "0.1.0"

    def __init__(
        self,
        config,
        *args,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> None:
        super().__init__(config, *args, **kwargs)
        self.clock = clock
        self.sleep = sleep

    def _generate(self, req: GenerateRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        payload: dict[str, Any] = {
            "prompt": normalize_prompt(req.prompt),
            "aspect_ratio": sanitize_aspect_ratio(req.aspect_ratio)
            or closest_aspect_ratio(req.width, req.height),
            "output_format": format_for_request(req.format),
        }
        self._apply_resolution(payload, spec.shape, req)

        if req.reference_images:
            uris = self._reference_uris(req.reference_images)
            if not uris:
                raise InvalidInputError("None of the reference images could be found")
            apply_reference_images(payload, spec.shape, uris, spec.shape.reference_field)

        return self._predict(spec, payload, context)

    def _edit(self, req: EditRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        source = self._read_file(req.source_path)
        source_uri = self._data_uri(source, self._file_mime(req.source_path, source))

        payload: dict[str, Any] = {
            "prompt": normalize_prompt(req.prompt),
            "output_format": format_for_request(req.format or self.config.default_format),
            "output_quality": EDIT_OUTPUT_QUALITY,
        }
        payload.update(dict(spec.shape.edit_defaults))

        field = spec.shape.edit_field
        if field.is_array:
            uris = self._reference_uris(req.reference_images) if req.reference_images else []
            if req.reference_images and not uris:
                raise InvalidInputError("None of the reference images could be found")
            uris.append(source_uri)
            apply_reference_images(payload, spec.shape, uris, field)
        else:
            payload[field.value] = source_uri

        return self._predict(spec, payload, context)

    # ------------------------------------------------------------------
    # Input shaping
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_resolution(payload: dict[str, Any], shape: RequestShape, req: GenerateRequest) -> None:
        preset = sanitize_resolution(req.resolution) or DEFAULT_RESOLUTION
        param = shape.resolution_param

        if param == ResolutionParam.RESOLUTION:
            payload["resolution"] = preset
        elif param == ResolutionParam.SIZE:
            payload["size"] = preset
        elif param == ResolutionParam.MEGAPIXELS:
            payload["megapixels"] = megapixels_for_resolution(preset)
        elif param == ResolutionParam.DIMENSIONS:
            payload["width"] = req.width
            payload["height"] = req.height

    def _reference_uris(self, references: list[ReferenceImage]) -> list[str]:
        uris = []
        for ref in self._existing_references(references):
            data = self._read_file(ref.path)
            uris.append(self._data_uri(data, self._file_mime(ref.path, data, ref.mime)))
        return uris

    # ------------------------------------------------------------------
    # Prediction lifecycle
    # ------------------------------------------------------------------

    def _predict(self, spec: ModelSpec, payload: dict[str, Any], context: dict[str, Any]) -> BinaryImage:
        response = self._send(
            "POST",
            f"{self.config.replicate_api_url.rstrip('/')}/{spec.api_model}/predictions",
            context,
            timeout=self.config.replicate_timeout,
            headers={**self._headers(), "Content-Type": "application/json", "Prefer": "wait"},
            json_body={"input": payload},
        )
        body = self._decode_json(response, context)
        deadline = self.clock() + self.config.replicate_poll_deadline

        url = self._wait_for_output(body, response, deadline, context)
        return self._download_image(url, context, self.config.replicate_timeout)

    def _wait_for_output(
        self,
        body: dict[str, Any],
        created: HttpResponse,
        deadline: float,
        context: dict[str, Any],
    ) -> str:
        status_url = self._status_url(body, created)
        polls = 0

        while True:
            self._raise_for_failure(body)

            output = body.get("output")
            if output:
                url = extract_output_url(output)
                if url is None:
                    raise MissingOutputURLError("Prediction output did not contain an image URL")
                if polls:
                    logger.info(f"Prediction finished after {polls} polls")
                return url

            status = body.get("status")
            if status not in POLLING_STATUSES:
                raise NoImageReturnedError(f"Prediction ended with status {status!r} and no output")

            if not status_url:
                raise InvalidResponseError("Prediction is pending but no status URL was returned")

            if self.clock() >= deadline:
                raise ProviderTimeoutError(
                    f"Prediction still {status} after {self.config.replicate_poll_deadline}s",
                    operation="poll",
                )

            self.sleep(self.config.replicate_poll_interval)
            polls += 1
            response = self._send(
                "GET",
                status_url,
                context,
                timeout=self.config.replicate_timeout,
                headers=self._headers(),
            )
            body = self._decode_json(response, context)

    @staticmethod
    def _status_url(body: dict[str, Any], created: HttpResponse) -> str:
        urls = body.get("urls")
        if isinstance(urls, dict):
            url = urls.get("get")
            if isinstance(url, str) and url:
                return url
        return created.header("location")

    @staticmethod
    def _raise_for_failure(body: dict[str, Any]) -> None:
        status = body.get("status")
        if body.get("error") or status in FAILED_STATUSES:
            message = extract_error_message(body) or f"Prediction {status}"
            raise ProviderError(message, upstream_message=message)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


provider_registry.register(ReplicateAdapter)
