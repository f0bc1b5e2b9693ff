"""Token-keyed store for staged AI edit results.

An AI edit that the user has not committed yet lives here: the image file sits
in ``buffer_dir`` and a row in ``index.sqlite3`` maps the token to the file,
the owning attachment and the provenance context.

Records are write-once. ``get`` never extends their lifetime; an external
scheduler calls ``purge_expired`` to sweep them. Each call opens its own
SQLite connection, so independent threads can ``store`` and ``get`` at the
same time.
"""

import json
import logging
import re
import secrets
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .errors import ConfigurationError
from .images import BinaryImage, extension_from_mime

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.sqlite3"
KEY_LENGTH = 32
_KEY_PATTERN = re.compile(r"^[a-f0-9]{32}$")
_PROVIDER_CHARS = re.compile(r"[^a-z0-9_\-]")
_MAX_KEY_ATTEMPTS = 5

CONTEXT_FIELDS = ("provider", "model", "prompt", "action", "mode", "user_id", "timestamp")


def is_valid_key(key: Any) -> bool:
    """Whether ``key`` has the shape of a buffer token."""
    return isinstance(key, str) and bool(_KEY_PATTERN.match(key))


def sanitize_context(context: dict[str, Any] | None, user_id: int, now: float) -> dict[str, Any]:
    """Keep only the known provenance fields, with defaults."""
    context = context or {}
    provider = _PROVIDER_CHARS.sub("", str(context.get("provider", "")).lower())
    return {
        "provider": provider,
        "model": str(context.get("model", "") or "").strip(),
        "prompt": str(context.get("prompt", "") or "").strip(),
        "action": str(context.get("action", "") or "edit").strip() or "edit",
        "mode": str(context.get("mode", "") or "").strip(),
        "user_id": int(user_id or context.get("user_id", 0) or 0),
        "timestamp": int(context.get("timestamp", now) or now),
    }


@dataclass(frozen=True)
class BufferRecord:
    """A staged edit result."""

    key: str
    path: Path
    width: int
    height: int
    mime: str
    attachment_id: int
    created_at: float
    expires_at: float
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> int:
        return int(self.context.get("user_id", 0))

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


class EditBufferStore:
    """Manage staged edit files and their SQLite index.

    Args:
        buffer_dir: Directory for staged files and ``index.sqlite3``
        ttl_seconds: Lifetime of each record
        clock: Wall-clock function returning seconds (``time.time``)
    """

    def __init__(
        self,
        buffer_dir: Path,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds < 1:
            raise ConfigurationError(f"Buffer TTL must be at least 1 second, got {ttl_seconds}")

        self.buffer_dir = Path(buffer_dir)
        self.buffer_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.buffer_dir / INDEX_FILENAME
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._initialize_db()
        logger.info(f"Initialized edit buffer at {self.buffer_dir}")

    def _initialize_db(self) -> None:
        """Create the index schema if it doesn't exist."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS buffer (
                    key TEXT PRIMARY KEY,
                    filename TEXT NOT NULL,
                    width INTEGER NOT NULL,
                    height INTEGER NOT NULL,
                    mime TEXT NOT NULL,
                    attachment_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    context TEXT NOT NULL
                )
                """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_buffer_expires_at
                ON buffer(expires_at)
                """)
            conn.commit()

    def store(
        self,
        attachment_id: int,
        image: BinaryImage,
        context: dict[str, Any] | None = None,
        user_id: int = 0,
    ) -> BufferRecord:
        """Stage an image and return its record.

        Args:
            attachment_id: Attachment the edit was made from
            image: Normalized edit result
            context: Provenance (provider, model, prompt, action, mode)
            user_id: Owner of the staged edit

        Returns:
            BufferRecord with a fresh 32-character token

        Raises:
            ConfigurationError: If the file or index row cannot be written
        """
        now = self.clock()
        clean = sanitize_context(context, user_id, now)
        extension = extension_from_mime(image.mime)

        for _ in range(_MAX_KEY_ATTEMPTS):
            key = secrets.token_hex(KEY_LENGTH // 2)
            filename = f"ai-edit-{int(attachment_id)}-{key}.{extension}"
            path = self.buffer_dir / filename

            try:
                with sqlite3.connect(self.db_path) as conn:
                    conn.execute(
                        """
                        INSERT INTO buffer (key, filename, width, height, mime, attachment_id,
                                            user_id, created_at, expires_at, context)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            key,
                            filename,
                            image.width,
                            image.height,
                            image.mime,
                            int(attachment_id),
                            clean["user_id"],
                            now,
                            now + self.ttl_seconds,
                            json.dumps(clean),
                        ),
                    )
                    conn.commit()
            except sqlite3.IntegrityError:
                logger.warning("Buffer key collision, generating a new key")
                continue
            except sqlite3.Error as e:
                raise ConfigurationError(f"Unable to write edit buffer index: {e}") from e

            try:
                path.write_bytes(image.data)
            except OSError as e:
                self._delete_row(key)
                raise ConfigurationError("Unable to write staged edit file") from e

            logger.info(f"Staged edit {key} for attachment {attachment_id}")
            return BufferRecord(
                key=key,
                path=path,
                width=image.width,
                height=image.height,
                mime=image.mime,
                attachment_id=int(attachment_id),
                created_at=now,
                expires_at=now + self.ttl_seconds,
                context=clean,
            )

        raise ConfigurationError("Unable to allocate a unique buffer key")

    def get(self, key: str, user_id: int | None = None) -> BufferRecord | None:
        """Look up a staged edit.

        Returns None for malformed or unknown keys, expired records, records
        owned by another user (when ``user_id`` is given) and records whose
        file has disappeared. The last case also removes the stale row.
        """
        if not is_valid_key(key):
            return None

        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                row = conn.execute("SELECT * FROM buffer WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error reading edit buffer index: {e}")
            return None

        if row is None:
            return None

        record = self._row_to_record(row)

        if record.is_expired(self.clock()):
            logger.debug(f"Buffer record {key} expired")
            return None

        if user_id is not None and record.user_id != int(user_id):
            logger.warning(f"Buffer record {key} requested by a different user")
            return None

        if not record.path.is_file():
            logger.warning(f"Buffer file for {key} is missing, removing stale row")
            self._delete_row(key)
            return None

        return record

    def delete(self, key: str) -> bool:
        """Remove a record and its file. Returns True when a row existed."""
        if not is_valid_key(key):
            return False

        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT filename FROM buffer WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error reading edit buffer index: {e}")
            return False

        if row is None:
            return False

        self._unlink(self.buffer_dir / row[0])
        self._delete_row(key)
        logger.info(f"Deleted staged edit {key}")
        return True

    def purge_expired(self, now: float | None = None) -> int:
        """Remove every expired record and its file.

        Returns:
            Number of records removed
        """
        now = self.clock() if now is None else now

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT key, filename FROM buffer WHERE expires_at <= ?", (now,)
            ).fetchall()
            for _, filename in rows:
                self._unlink(self.buffer_dir / filename)
            conn.execute("DELETE FROM buffer WHERE expires_at <= ?", (now,))
            conn.commit()

        if rows:
            logger.info(f"Purged {len(rows)} expired staged edits")
        return len(rows)

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM buffer").fetchone()[0]

    def _row_to_record(self, row: sqlite3.Row) -> BufferRecord:
        try:
            context = json.loads(row["context"])
        except ValueError:
            context = {}
        return BufferRecord(
            key=row["key"],
            path=self.buffer_dir / row["filename"],
            width=row["width"],
            height=row["height"],
            mime=row["mime"],
            attachment_id=row["attachment_id"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            context=context if isinstance(context, dict) else {},
        )

    def _delete_row(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM buffer WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error deleting buffer row {key}: {e}")

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error removing staged file {path.name}: {e}")
