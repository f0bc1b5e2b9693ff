"""Plugin that appends one JSON line per provider call."""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from imagebridge.plugins.base import PluginBase, plugin_registry

logger = logging.getLogger(__name__)


class CallLogPlugin(PluginBase):
    """
    Record provider calls to a JSON-lines file.

    Each line holds the operation, provider, model, outcome, HTTP status,
    elapsed time and reference count. Prompts, credentials and image bytes
    are never written.

    Configuration:
        path: Target file (required; the plugin disables itself without one)
    """

    name = "CallLog"
    description = "Append provider call records to a JSON-lines file"
    version = "0.1.0"

    def __init__(self, **config):
        super().__init__(**config)
        path = config.get("path")
        self.path: Path | None = Path(path) if path else None
        if self.path is None:
            self.enabled = False

    def on_complete(self, image: Any, context: dict[str, Any]) -> None:
        if not self.enabled:
            return
        record = self._base_record(context, "success")
        record["width"] = getattr(image, "width", None)
        record["height"] = getattr(image, "height", None)
        record["mime"] = getattr(image, "mime", None)
        self._write(record)

    def on_error(self, error: Exception, context: dict[str, Any]) -> None:
        if not self.enabled:
            return
        record = self._base_record(context, "error")
        kind = getattr(error, "kind", None)
        record["error_kind"] = kind.value if kind is not None else error.__class__.__name__
        record["error_message"] = getattr(error, "message", str(error))
        self._write(record)

    def _base_record(self, context: dict[str, Any], status: str) -> dict[str, Any]:
        started = context.get("started_at")
        elapsed_ms = int((time.monotonic() - started) * 1000) if started is not None else None
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "operation": context.get("operation", ""),
            "provider": context.get("provider", ""),
            "model": context.get("model", ""),
            "status": status,
            "status_code": context.get("status_code"),
            "response_time_ms": elapsed_ms,
            "reference_count": context.get("reference_count", 0),
        }

    def _write(self, record: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Error writing call log to {self.path}: {e}")


plugin_registry.register(CallLogPlugin)
