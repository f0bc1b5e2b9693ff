"""Orchestration of provider calls, normalization and edit staging."""

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from imagebridge.plugins.base import PluginBase
from imagebridge.plugins.call_log import CallLogPlugin

from . import adapters  # noqa: F401  (registers the provider adapters)
from .config import ImageBridgeConfig, config as default_config
from .edit_buffer import BufferRecord, EditBufferStore
from .errors import (
    BufferExpiredError,
    ConfigurationError,
    ConversionFailedError,
    InvalidInputError,
    UnsupportedCapabilityError,
)
from .history import build_marker, parse_history, resolve_base_token
from .images import BinaryImage, format_from_mime, sniff_mime
from .model_catalog import supports_multi_reference
from .normalizer import ImageNormalizer
from .params import EditRequest, GenerateRequest
from .provider_adapters import ProviderAdapterBase, ProviderRegistry, provider_registry
from .transport import HttpTransport

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    """Outcome of ``ImagePipeline.edit``.

    ``record`` and ``marker`` are set only for ``save_mode="buffer"``; the
    host embeds ``marker`` in its history entry.
    """

    image: BinaryImage
    save_mode: str
    record: BufferRecord | None = None
    marker: dict[str, Any] | None = None
    base_key: str | None = None

    @property
    def staged(self) -> bool:
        return self.record is not None


class ImagePipeline:
    """Choose an adapter, call it, normalize the result and optionally stage it."""

    def __init__(
        self,
        config: ImageBridgeConfig | None = None,
        buffer: EditBufferStore | None = None,
        normalizer: ImageNormalizer | None = None,
        transport: HttpTransport | None = None,
        plugins: list[PluginBase] | None = None,
        registry: ProviderRegistry = provider_registry,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Configuration object. If None, uses global default config.
            buffer: Edit buffer store; built from ``config.buffer_dir`` if None
            normalizer: Image normalizer; built from ``config.jpeg_background`` if None
            transport: HTTP transport shared by all adapters
            plugins: Plugins handed to every adapter. If None, a CallLogPlugin
                is enabled when ``config.call_log_path`` is set.
            registry: Provider registry to instantiate adapters from
        """
        self.config = config or default_config
        self.buffer = buffer or EditBufferStore(
            self.config.buffer_dir, self.config.buffer_ttl_seconds
        )
        self.normalizer = normalizer or ImageNormalizer(self.config.jpeg_background)
        self.transport = transport or HttpTransport()
        if plugins is None:
            plugins = []
            if self.config.call_log_path:
                plugins.append(CallLogPlugin(path=self.config.call_log_path))
        self.plugins = plugins
        self.registry = registry
        self._adapters: dict[str, ProviderAdapterBase] = {}

        logger.info(f"Initialized ImagePipeline (default provider: {self.config.default_provider})")

    def adapter_for(self, provider: str) -> ProviderAdapterBase:
        """Return the adapter for a provider slug, instantiating it once.

        Raises:
            InvalidInputError: If no adapter is registered for ``provider``
        """
        slug = (provider or self.config.default_provider).strip().lower()
        if slug not in self._adapters:
            if slug not in self.registry.list_available():
                raise InvalidInputError(f"Unknown provider: {provider!r}", provider=slug)
            self._adapters[slug] = self.registry.instantiate(
                slug, self.config, transport=self.transport, plugins=self.plugins
            )
        return self._adapters[slug]

    def generate(self, req: GenerateRequest) -> BinaryImage:
        """Generate an image and normalize it to the requested format and size.

        Raises:
            ImageBridgeError: Any subclass
        """
        req.validate(self.config.max_reference_images)
        adapter = self.adapter_for(req.provider)
        self._check_references(adapter, req.model, len(req.reference_images), "generate")

        image = adapter.generate(req)
        return self._normalize(adapter, req.model, image, req.format, req.width, req.height)

    def edit(
        self,
        req: EditRequest,
        base_buffer_key: str | None = None,
        user_id: int = 0,
    ) -> EditResult:
        """Edit an image, optionally on top of a staged edit.

        Args:
            req: Edit parameters
            base_buffer_key: Token of a staged edit to use as the source image
            user_id: Owner used for buffer lookups and new records

        Returns:
            EditResult; for ``save_mode="buffer"`` it carries the new record
            and its history marker

        Raises:
            BufferExpiredError: If ``base_buffer_key`` no longer resolves
            ImageBridgeError: Any other subclass from validation or the adapter
        """
        if base_buffer_key:
            record = self.buffer.get(base_buffer_key, user_id=user_id)
            if record is None:
                raise BufferExpiredError(
                    "Previous AI edit is no longer available", operation="edit"
                )
            logger.info(f"Editing on top of staged edit {base_buffer_key}")
            req = dataclasses.replace(req, source_path=str(record.path))

        req.validate(self.config.max_reference_images)
        adapter = self.adapter_for(req.provider)
        self._check_references(adapter, req.model, len(req.reference_images), "edit")

        image = adapter.edit(req)

        fmt = req.format
        if req.save_mode == "replace":
            fmt = self._source_format(req.source_path)

        normalized = self._normalize(
            adapter, req.model, image, fmt, req.target_width, req.target_height
        )

        if req.save_mode != "buffer":
            return EditResult(image=normalized, save_mode=req.save_mode, base_key=base_buffer_key)

        model = (req.model or adapter.default_model).strip()
        record = self.buffer.store(
            req.source_attachment_id,
            normalized,
            context={
                "provider": adapter.name,
                "model": model,
                "prompt": req.prompt,
                "action": "edit",
                "mode": req.save_mode,
            },
            user_id=user_id,
        )
        return EditResult(
            image=normalized,
            save_mode=req.save_mode,
            record=record,
            marker=build_marker(record),
            base_key=base_buffer_key,
        )

    def edit_from_history(
        self,
        req: EditRequest,
        operation_log: Any,
        undone_count: Any = 0,
        user_id: int = 0,
    ) -> EditResult:
        """Edit on top of the newest live AI edit found in the host's log.

        ``operation_log`` may be the parsed list or the host's JSON text.
        """
        key = resolve_base_token(parse_history(operation_log), undone_count)
        return self.edit(req, base_buffer_key=key, user_id=user_id)

    def _check_references(
        self, adapter: ProviderAdapterBase, model: str, count: int, operation: str
    ) -> None:
        """Reject references the model cannot compose.

        Generation may carry one reference on any model; edits already send
        the source image, so any reference needs a multi-reference model.
        """
        model = (model or adapter.default_model).strip()
        limit = 1 if operation == "generate" else 0
        if count > limit and not supports_multi_reference(adapter.name, model):
            raise UnsupportedCapabilityError(
                f"Model {model or '-'} does not support {count} reference images",
                operation=operation,
                provider=adapter.name,
                model=model,
            )

    def _normalize(
        self,
        adapter: ProviderAdapterBase,
        model: str,
        image: BinaryImage,
        fmt: str,
        width: int,
        height: int,
    ) -> BinaryImage:
        try:
            return self.normalizer.normalize(image.data, fmt, width, height)
        except ConversionFailedError as e:
            e.provider = e.provider or adapter.name
            e.model = e.model or (model or adapter.default_model)
            logger.error(f"Normalization failed: {e}")
            raise

    @staticmethod
    def _source_format(source_path: str) -> str:
        try:
            data = Path(source_path).read_bytes()
        except OSError as e:
            raise ConfigurationError("Unable to read source image", operation="edit") from e
        return format_from_mime(sniff_mime(data))
