"""Request values handed to provider adapters."""

import logging
from dataclasses import dataclass, field
from typing import Literal

from .errors import InvalidInputError
from .images import ReferenceImage

logger = logging.getLogger(__name__)

MAX_REFERENCE_IMAGES = 4
OUTPUT_FORMATS = ("png", "webp", "jpeg")
SAVE_MODES = ("new", "replace", "buffer")

SaveMode = Literal["new", "replace", "buffer"]


def _validate_common(prompt: str, fmt: str, references: list[ReferenceImage], limit: int) -> None:
    if not prompt or not prompt.strip():
        raise InvalidInputError("Prompt must not be empty")
    if fmt not in OUTPUT_FORMATS:
        raise InvalidInputError(f"Format must be one of {', '.join(OUTPUT_FORMATS)}, got {fmt!r}")
    if len(references) > limit:
        raise InvalidInputError(
            f"At most {limit} reference images are allowed, got {len(references)}"
        )


@dataclass
class GenerateRequest:
    """Parameters for text-to-image generation.

    ``aspect_ratio`` and ``resolution`` are optional hints; adapters that
    cannot use them fall back to ``width``/``height``.
    """

    prompt: str
    provider: str
    model: str = ""
    width: int = 1024
    height: int = 1024
    format: str = "png"
    aspect_ratio: str | None = None
    resolution: str | None = None
    reference_images: list[ReferenceImage] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.reference_images = list(self.reference_images)

    def validate(self, max_reference_images: int = MAX_REFERENCE_IMAGES) -> None:
        """Check field constraints before an adapter is called.

        Raises:
            InvalidInputError: If any parameter is invalid
        """
        _validate_common(self.prompt, self.format, self.reference_images, max_reference_images)
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"Size must be positive, got {self.width}x{self.height}")


@dataclass
class EditRequest:
    """Parameters for editing an existing image.

    ``source_path`` is read, never written. ``target_width``/``target_height``
    are the dimensions the normalized result must have (usually the original
    attachment's size).
    """

    source_attachment_id: int
    prompt: str
    provider: str
    source_path: str
    target_width: int
    target_height: int
    model: str = ""
    format: str = "png"
    save_mode: str = "new"
    reference_images: list[ReferenceImage] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.reference_images = list(self.reference_images)
        if self.save_mode not in SAVE_MODES:
            logger.warning(f"Unknown save mode {self.save_mode!r}, using 'new'")
            self.save_mode = "new"

    def validate(self, max_reference_images: int = MAX_REFERENCE_IMAGES) -> None:
        """Check field constraints before an adapter is called.

        Raises:
            InvalidInputError: If any parameter is invalid
        """
        _validate_common(self.prompt, self.format, self.reference_images, max_reference_images)
        if not self.source_path:
            raise InvalidInputError("Source path must not be empty")
        if self.target_width <= 0 or self.target_height <= 0:
            raise InvalidInputError(
                f"Target size must be positive, got {self.target_width}x{self.target_height}"
            )
