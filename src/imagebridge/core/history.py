"""Resolve chained AI edits from a host editor's operation log.

The host image editor persists only JSON operations. An AI edit shows up in
that log as an entry carrying a marker under ``HISTORY_KEY``::

    {"banana": {"key": "<buffer token>", "width": 800, "height": 600,
                "mime": "image/png", "provider": "gemini", ...}}

Together with the editor's undo watermark (the number of trailing undone
entries) the log tells which staged edit a new AI edit should build on: the
newest marker among the entries that are not undone.

Entries of any other shape are opaque and ignored. History is assumed to be
linear; an editor with branching undo trees would need a different resolver.
"""

import json
import logging
from typing import Any, Callable

from .edit_buffer import BufferRecord, EditBufferStore
from .errors import BufferExpiredError

logger = logging.getLogger(__name__)

HISTORY_KEY = "banana"


def _undone(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, count)


def resolve_base_token(operation_log: Any, undone_count: Any = 0) -> str | None:
    """Return the token of the newest AI edit that is not undone.

    Args:
        operation_log: The host's ordered list of operation entries
        undone_count: Number of trailing entries currently undone; negative
            or non-numeric values count as 0

    Returns:
        The marker's ``key``, or None when no live entry carries a marker
    """
    if not isinstance(operation_log, list):
        return None

    live = max(0, len(operation_log) - _undone(undone_count))
    for entry in reversed(operation_log[:live]):
        if not isinstance(entry, dict):
            continue
        marker = entry.get(HISTORY_KEY)
        if not isinstance(marker, dict):
            continue
        key = marker.get("key")
        if isinstance(key, str) and key:
            return key
    return None


def parse_history(value: Any) -> list:
    """Parse the host's JSON history field into a list (``[]`` when invalid)."""
    if isinstance(value, list):
        return value
    if not isinstance(value, (str, bytes)) or not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.warning("Ignoring unparseable edit history")
        return []
    return parsed if isinstance(parsed, list) else []


def build_marker(
    record: BufferRecord,
    provider: str = "",
    model: str = "",
    prompt: str = "",
) -> dict[str, Any]:
    """Marker dict the host embeds in its history entry for a staged edit."""
    marker: dict[str, Any] = {
        "key": record.key,
        "width": record.width,
        "height": record.height,
        "mime": record.mime,
    }
    for name, value in (
        ("provider", provider or record.context.get("provider", "")),
        ("model", model or record.context.get("model", "")),
        ("prompt", prompt or record.context.get("prompt", "")),
    ):
        if value:
            marker[name] = value
    return marker


def resolve_base_record(
    store: EditBufferStore,
    operation_log: Any,
    undone_count: Any = 0,
    user_id: int | None = None,
) -> BufferRecord | None:
    """Fetch the staged edit a new AI edit should build on.

    Returns:
        The live record, or None when the log holds no live AI edit

    Raises:
        BufferExpiredError: If the newest live marker no longer resolves
    """
    key = resolve_base_token(operation_log, undone_count)
    if key is None:
        return None

    record = store.get(key, user_id=user_id)
    if record is None:
        raise BufferExpiredError(
            "Previous AI edit is no longer available", operation="resolve_history"
        )
    return record


class EditHistory:
    """Track the host editor's operation log through explicit events.

    The host calls ``push`` when it records an operation and ``undo`` /
    ``redo`` / ``reset`` when its history changes. Subscribers are called with
    the history after every change.

    Example:
        >>> history = EditHistory()
        >>> history.subscribe(lambda h: print(h.base_token))
        >>> history.push({"banana": {"key": "A"}})
        A
        >>> history.undo()
        None
    """

    def __init__(self, entries: list | None = None, undone_count: int = 0) -> None:
        self.entries: list = list(entries or [])
        self.undone_count = min(_undone(undone_count), len(self.entries))
        self._subscribers: list[Callable[["EditHistory"], None]] = []

    @classmethod
    def from_json(cls, value: Any, undone_count: Any = 0) -> "EditHistory":
        return cls(parse_history(value), _undone(undone_count))

    def to_json(self) -> str:
        return json.dumps(self.entries)

    @property
    def live_entries(self) -> list:
        return self.entries[: len(self.entries) - self.undone_count]

    @property
    def base_token(self) -> str | None:
        return resolve_base_token(self.entries, self.undone_count)

    @property
    def can_undo(self) -> bool:
        return self.undone_count < len(self.entries)

    @property
    def can_redo(self) -> bool:
        return self.undone_count > 0

    def subscribe(self, callback: Callable[["EditHistory"], None]) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def push(self, entry: Any) -> None:
        """Record a new operation, discarding any undone tail."""
        self.entries = self.live_entries + [entry]
        self.undone_count = 0
        self._notify()

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self.undone_count += 1
        self._notify()
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self.undone_count -= 1
        self._notify()
        return True

    def reset(self, entries: list | None = None, undone_count: int = 0) -> None:
        self.entries = list(entries or [])
        self.undone_count = min(_undone(undone_count), len(self.entries))
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)
