"""Base classes and registry for provider adapters.

Each remote image API (Gemini, OpenAI, Replicate) has its own adapter that
implements a common interface while keeping the provider's own protocol
quirks: request shape, reference-image placement, sync vs. polled execution,
and where the image bytes live in the response.

Adapter Pattern
---------------
Callers only see two operations:

- ``generate(GenerateRequest) -> BinaryImage``
- ``edit(EditRequest) -> BinaryImage``

The public methods live on ``ProviderAdapterBase``. They check preconditions
(credential, model, source file, reference count) before any network call,
resolve the model once into a ``ModelSpec``, then delegate to the subclass's
``_generate`` / ``_edit``. Errors coming back are enriched with the operation,
provider and model, reported to plugins, logged and re-raised.

Usage Example
-------------
    >>> from imagebridge.core.provider_adapters import provider_registry
    >>> from imagebridge.core.config import config
    >>>
    >>> provider_registry.list_available()
    ['gemini', 'openai', 'replicate']
    >>> adapter = provider_registry.instantiate("gemini", config)
    >>> image = adapter.generate(GenerateRequest(prompt="a lighthouse", provider="gemini"))

Plugin Integration
------------------
Adapters call ``on_request`` before each HTTP request, ``on_response`` after
each decoded JSON body, and ``on_complete`` / ``on_error`` once per public
call. See ``imagebridge.plugins.base`` for the hook contract.
"""

import base64
import logging
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from imagebridge.plugins.base import PluginBase

from .config import ImageBridgeConfig
from .errors import (
    ConfigurationError,
    ConversionFailedError,
    ImageBridgeError,
    InvalidResponseError,
    NoImageReturnedError,
    ProviderError,
    TransportUnsupportedError,
    UnsupportedCapabilityError,
)
from .images import BinaryImage, ReferenceImage, inspect_image, mime_from_path, sniff_mime
from .model_catalog import ModelSpec, resolve_model
from .params import OUTPUT_FORMATS, EditRequest, GenerateRequest
from .transport import HttpResponse, HttpTransport

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"[\r\n]+")


def normalize_prompt(prompt: str) -> str:
    """Collapse runs of line breaks to a single space and trim."""
    return _LINE_BREAKS.sub(" ", prompt or "").strip()


def extract_error_message(body: Any) -> str:
    """Pull a human-readable message out of a provider error body.

    Looks at ``error.message``, ``error`` (string), ``message`` and ``detail``
    in that order. Returns ``""`` when none is present.
    """
    if not isinstance(body, dict):
        return ""

    error = body.get("error")
    if isinstance(error, dict):
        message = error.get("message") or error.get("detail")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(error, str) and error.strip():
        return error.strip()

    for key in ("message", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class ProviderAdapterBase(ABC):
    """Abstract base class for all provider adapters.

    Attributes
    ----------
    name : str
        Provider slug used as the registry key (``gemini``, ``openai``, ``replicate``)
    description : str
        Brief description of the remote API
    config : ImageBridgeConfig
        Explicit configuration (endpoints, timeouts, default format)
    api_key : str
        Credential sent with every request
    default_model : str
        Model used when a request leaves ``model`` empty
    transport : HttpTransport
        HTTP client; tests pass a scripted fake
    plugins : list[PluginBase]
        Active plugin instances

    Notes
    -----
    - Adapters read reference and source files to encode them; they never write files
    - All network I/O goes through ``self.transport``
    """

    name: str = "base"
    description: str = "Base class for provider adapters"
    version: str = "0.1.0"
    supported_formats: tuple[str, ...] = OUTPUT_FORMATS

    def __init__(
        self,
        config: ImageBridgeConfig,
        api_key: str | None = None,
        model: str | None = None,
        transport: HttpTransport | None = None,
        plugins: list[PluginBase] | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: Configuration object (endpoints, timeouts, formats)
            api_key: Credential; defaults to the one configured for this provider
            model: Default model; defaults to the one configured for this provider
            transport: HTTP transport; a new ``HttpTransport`` when omitted
            plugins: Plugin instances whose hooks wrap each call
        """
        self.config = config
        self.api_key = (config.credential_for(self.name) if api_key is None else api_key).strip()
        self.default_model = (config.model_for(self.name) if model is None else model).strip()
        self.transport = transport or HttpTransport()
        self.plugins: list[PluginBase] = plugins or []

        logger.info(f"Initialized {self.name} adapter (default model: {self.default_model or '-'})")
        if self.plugins:
            logger.info(f"Loaded {len(self.plugins)} plugins: {[p.name for p in self.plugins]}")

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def generate(self, req: GenerateRequest) -> BinaryImage:
        """Generate an image from a text prompt and optional references.

        Returns
        -------
        BinaryImage
            Decoded provider output with its real dimensions

        Raises
        ------
        ImageBridgeError
            Any subclass, carrying operation/provider/model context
        """
        return self._run(
            "generate",
            req.model,
            req.reference_images,
            None,
            lambda spec, ctx: self._generate(req, spec, ctx),
        )

    def edit(self, req: EditRequest) -> BinaryImage:
        """Edit ``req.source_path`` according to the prompt.

        Returns
        -------
        BinaryImage
            Decoded provider output; not yet resized to the target size

        Raises
        ------
        ImageBridgeError
            Any subclass, carrying operation/provider/model context
        """
        return self._run(
            "edit",
            req.model,
            req.reference_images,
            req.source_path,
            lambda spec, ctx: self._edit(req, spec, ctx),
        )

    def supports(self, capability: str, model: str = "") -> bool:
        """Check a capability for ``model`` (or the default model).

        Recognised capabilities: ``generate``, ``edit``, ``multi_reference``,
        ``resolution``, ``image_config``, ``formats:<a,b,...>`` and ``size:<any>``.
        """
        if capability.startswith("formats:"):
            wanted = capability.split(":", 1)[1].strip("[] ")
            formats = [f.strip().lower() for f in wanted.split(",") if f.strip()]
            return all(f in self.supported_formats for f in formats)
        if capability.startswith("size:"):
            return True

        model = (model or self.default_model).strip()
        if not model:
            return False
        return resolve_model(self.name, model).supports(capability)

    def get_adapter_info(self) -> dict[str, Any]:
        """Get information about this adapter.

        Returns
        -------
        dict[str, Any]
            Dictionary containing adapter metadata
        """
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "default_model": self.default_model,
            "configured": bool(self.api_key),
            "formats": list(self.supported_formats),
            "multi_reference": self.supports("multi_reference"),
        }

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _generate(self, req: GenerateRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        """Provider-specific generation; preconditions already hold."""

    @abstractmethod
    def _edit(self, req: EditRequest, spec: ModelSpec, context: dict[str, Any]) -> BinaryImage:
        """Provider-specific edit; preconditions already hold."""

    # ------------------------------------------------------------------
    # Call orchestration
    # ------------------------------------------------------------------

    def _run(self, operation, model, references, source_path, call) -> BinaryImage:
        context: dict[str, Any] = {
            "operation": operation,
            "provider": self.name,
            "model": (model or self.default_model).strip(),
            "reference_count": len(references),
            "started_at": time.monotonic(),
        }

        try:
            spec = self._check_preconditions(operation, model, references, source_path)
            context["model"] = spec.api_model
            logger.info(
                f"{self.name} {operation} with {spec.api_model} ({len(references)} reference images)"
            )
            image = call(spec, context)
        except ImageBridgeError as e:
            self._fill_error_context(e, context)
            logger.error(f"{self.name} {operation} failed: {e}")
            self._call_error_hooks(e, context)
            raise

        self._call_complete_hooks(image, context)
        logger.info(f"{self.name} {operation} returned {image.mime} {image.width}x{image.height}")
        return image

    def _check_preconditions(
        self,
        operation: str,
        model: str,
        references: list[ReferenceImage],
        source_path: str | None,
    ) -> ModelSpec:
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key is not configured")

        model = (model or self.default_model).strip()
        if not model:
            raise ConfigurationError(f"{self.name} model is not configured")

        spec = resolve_model(self.name, model)

        if not spec.supports(operation):
            raise UnsupportedCapabilityError(f"Model {spec.api_model} does not support {operation}")

        if len(references) > 1 and not spec.supports("multi_reference"):
            raise UnsupportedCapabilityError(
                f"Model {spec.api_model} does not support multiple reference images"
            )

        if source_path is not None and not Path(source_path).is_file():
            raise ConfigurationError("Source image file is missing or unreadable")

        return spec

    @staticmethod
    def _fill_error_context(error: ImageBridgeError, context: dict[str, Any]) -> None:
        error.operation = error.operation or context["operation"]
        error.provider = error.provider or context["provider"]
        error.model = error.model or context["model"]

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        url: str,
        context: dict[str, Any],
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        data: dict[str, str] | None = None,
        files: list | None = None,
    ) -> HttpResponse:
        """Run ``on_request`` hooks and send the request through the transport."""
        if files is not None and not self.transport.supports_multipart:
            raise TransportUnsupportedError(
                "HTTP transport cannot send multipart file uploads"
            )

        request = {
            "method": method,
            "url": url,
            "headers": dict(headers or {}),
            "json": json_body,
            "data": data,
            "files": files,
        }
        for plugin in self.plugins:
            if plugin.enabled and hasattr(plugin, "on_request"):
                replaced = plugin.on_request(request, context)
                if replaced is not None:
                    request = replaced

        response = self.transport.request(
            request["method"],
            request["url"],
            timeout=timeout,
            headers=request["headers"],
            json_body=request["json"],
            data=request["data"],
            files=request["files"],
        )
        context["status_code"] = response.status_code
        return response

    def _decode_json(self, response: HttpResponse, context: dict[str, Any]) -> dict[str, Any]:
        """Decode a JSON response and classify provider errors.

        A body carrying a structured error becomes ``ProviderError`` with the
        upstream message, whatever the status. A non-2xx status without one
        becomes ``InvalidResponseError``.
        """
        try:
            body = response.json()
        except InvalidResponseError:
            if not response.ok:
                raise InvalidResponseError(
                    f"Provider returned HTTP {response.status_code}",
                    status_code=response.status_code,
                ) from None
            raise

        if not isinstance(body, dict):
            raise InvalidResponseError(
                "Provider returned an unexpected JSON shape", status_code=response.status_code
            )

        upstream = extract_error_message(body) if (body.get("error") or not response.ok) else ""
        if upstream:
            raise ProviderError(
                upstream, upstream_message=upstream, status_code=response.status_code
            )
        if not response.ok:
            raise InvalidResponseError(
                f"Provider returned HTTP {response.status_code}", status_code=response.status_code
            )

        for plugin in self.plugins:
            if plugin.enabled and hasattr(plugin, "on_response"):
                replaced = plugin.on_response(body, context)
                if replaced is not None:
                    body = replaced
        return body

    def _download_image(self, url: str, context: dict[str, Any], timeout: float) -> BinaryImage:
        """Fetch an image URL returned by a provider.

        MIME comes from ``Content-Type`` (lower-cased, parameters stripped),
        falling back to sniffing the bytes.
        """
        response = self._send("GET", url, context, timeout=timeout)
        if response.status_code != 200:
            raise InvalidResponseError(
                f"Image download failed with HTTP {response.status_code}",
                operation="download",
                status_code=response.status_code,
            )
        if not response.content:
            raise NoImageReturnedError("Downloaded image is empty", operation="download")

        mime = response.header("content-type").split(";", 1)[0].strip().lower()
        if not mime.startswith("image/"):
            mime = sniff_mime(response.content)
        return self._build_image(response.content, mime)

    # ------------------------------------------------------------------
    # Image helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_file(path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Unable to read image file {Path(path).name}") from e

    @staticmethod
    def _file_mime(path: str, data: bytes, declared: str = "") -> str:
        if declared:
            return declared
        try:
            return inspect_image(data)[2] or mime_from_path(path)
        except ConversionFailedError:
            return mime_from_path(path)

    @staticmethod
    def _encode(data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")

    @classmethod
    def _data_uri(cls, data: bytes, mime: str) -> str:
        return f"data:{mime};base64,{cls._encode(data)}"

    def _existing_references(self, references: list[ReferenceImage]) -> list[ReferenceImage]:
        """Drop references whose file no longer exists, keeping caller order."""
        kept = []
        for ref in references:
            if ref.exists():
                kept.append(ref)
            else:
                logger.warning(f"Skipping missing reference image {ref.filename or ref.path}")
        return kept

    @staticmethod
    def _build_image(data: bytes, mime: str = "") -> BinaryImage:
        try:
            return BinaryImage.from_bytes(data, mime)
        except ConversionFailedError as e:
            raise ConversionFailedError(f"Provider returned undecodable image data: {e.message}") from e

    # ------------------------------------------------------------------
    # Plugin hooks
    # ------------------------------------------------------------------

    def _call_complete_hooks(self, image: BinaryImage, context: dict[str, Any]) -> None:
        for plugin in self.plugins:
            if plugin.enabled and hasattr(plugin, "on_complete"):
                plugin.on_complete(image, context)

    def _call_error_hooks(self, error: ImageBridgeError, context: dict[str, Any]) -> None:
        for plugin in self.plugins:
            if plugin.enabled and hasattr(plugin, "on_error"):
                plugin.on_error(error, context)


class ProviderRegistry:
    """Registry for managing available provider adapters.

    Usage
    -----
        >>> provider_registry.register(MyAdapter)
        >>> adapter = provider_registry.instantiate("gemini", config)
        >>> provider_registry.list_available()
        ['gemini', 'openai', 'replicate']

    Notes
    -----
    - Adapters must be registered before they can be instantiated
    - Registry is global and shared across the application
    """

    def __init__(self) -> None:
        self._adapters: dict[str, type[ProviderAdapterBase]] = {}

    def register(self, adapter_class: type[ProviderAdapterBase]) -> None:
        """Register a provider adapter class under its ``name``."""
        adapter_name = adapter_class.name

        if adapter_name in self._adapters:
            logger.warning(f"Provider adapter '{adapter_name}' is already registered, overwriting")

        self._adapters[adapter_name] = adapter_class
        logger.info(f"Registered provider adapter: {adapter_name}")

    def instantiate(
        self, adapter_name: str, config: ImageBridgeConfig, **kwargs: Any
    ) -> ProviderAdapterBase:
        """Create an instance of a registered provider adapter.

        Args:
            adapter_name: Provider slug
            config: Configuration object
            **kwargs: Forwarded to the adapter constructor (api_key, model,
                transport, plugins)

        Raises
        ------
        KeyError
            If adapter_name is not registered
        """
        if adapter_name not in self._adapters:
            available = ", ".join(self.list_available())
            raise KeyError(
                f"Provider adapter '{adapter_name}' not found. Available adapters: {available}"
            )

        instance = self._adapters[adapter_name](config=config, **kwargs)
        logger.info(f"Instantiated provider adapter: {adapter_name}")
        return instance

    def get_adapter_class(self, adapter_name: str) -> type[ProviderAdapterBase] | None:
        return self._adapters.get(adapter_name)

    def list_available(self) -> list[str]:
        return list(self._adapters.keys())

    def get_adapter_info(self, adapter_name: str) -> dict[str, Any] | None:
        """Get class-level metadata for a registered adapter, or None."""
        if adapter_name not in self._adapters:
            return None

        adapter_class = self._adapters[adapter_name]
        return {
            "name": adapter_class.name,
            "description": adapter_class.description,
            "version": adapter_class.version,
            "formats": list(adapter_class.supported_formats),
        }


# Global provider registry instance
provider_registry = ProviderRegistry()
