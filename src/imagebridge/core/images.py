"""Immutable image value types.

``BinaryImage`` is what every adapter and the normalizer produce. Its width and
height always come from decoding the bytes with Pillow, never from a field a
provider sent back, because providers omit or misreport dimensions.

``ReferenceImage`` describes a caller-owned input file. The core only reads the
file; deleting it after the call (also on error) stays the caller's job.
"""

from __future__ import annotations

import io
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import ConversionFailedError

logger = logging.getLogger(__name__)

FORMAT_MIME: dict[str, str] = {
    "png": "image/png",
    "webp": "image/webp",
    "jpeg": "image/jpeg",
}

_MIME_EXTENSION: dict[str, str] = {
    "image/png": "png",
    "image/webp": "webp",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


def inspect_image(data: bytes) -> tuple[int, int, str]:
    """Decode image headers and return ``(width, height, mime)``.

    Raises:
        ConversionFailedError: If the bytes are not a readable image
    """
    if not data:
        raise ConversionFailedError("Image data is empty", operation="inspect")
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            mime = Image.MIME.get(img.format or "", "")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ConversionFailedError(f"Failed to determine image size: {e}", operation="inspect") from e

    if width <= 0 or height <= 0:
        raise ConversionFailedError(
            f"Decoded image has invalid size {width}x{height}", operation="inspect"
        )
    return width, height, mime


def sniff_mime(data: bytes, default: str = "image/png") -> str:
    """Best-effort MIME detection from image bytes."""
    try:
        return inspect_image(data)[2] or default
    except ConversionFailedError:
        return default


def mime_from_path(path: str | Path, default: str = "image/png") -> str:
    """Guess a MIME type from a file name, falling back to ``default``."""
    mime, _ = mimetypes.guess_type(str(path))
    return mime or default


def extension_from_mime(mime: str) -> str:
    """File extension for a MIME type (``img`` when unknown)."""
    return _MIME_EXTENSION.get(mime.lower(), "img")


def format_from_mime(mime: str) -> str:
    """Normalizer format name for a MIME type (``png`` when unknown)."""
    mime = mime.lower()
    if mime in ("image/jpeg", "image/jpg"):
        return "jpeg"
    if mime == "image/webp":
        return "webp"
    return "png"


@dataclass(frozen=True)
class BinaryImage:
    """Raw image bytes with their MIME type and decoded dimensions."""

    data: bytes
    mime: str
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def from_bytes(cls, data: bytes, mime: str = "") -> "BinaryImage":
        """Build a BinaryImage, reading dimensions from the bytes themselves.

        Args:
            data: Encoded image bytes
            mime: MIME type reported alongside the bytes; sniffed when empty

        Raises:
            ConversionFailedError: If the bytes cannot be decoded
        """
        width, height, sniffed = inspect_image(data)
        return cls(data=data, mime=mime or sniffed or "image/png", width=width, height=height)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def __repr__(self) -> str:
        return f"BinaryImage(mime={self.mime!r}, width={self.width}, height={self.height}, bytes={len(self.data)})"


@dataclass(frozen=True)
class ReferenceImage:
    """Caller-supplied image used to condition generation or editing."""

    path: str
    mime: str
    width: int
    height: int
    filename: str

    @classmethod
    def from_path(cls, path: str | Path, filename: str = "") -> "ReferenceImage":
        """Describe an existing image file, reading its size and type."""
        path = Path(path)
        width, height, mime = inspect_image(path.read_bytes())
        return cls(
            path=str(path),
            mime=mime or mime_from_path(path),
            width=width,
            height=height,
            filename=filename or path.name,
        )

    def exists(self) -> bool:
        return Path(self.path).is_file()
