"""Supported aspect ratios and resolution presets."""

from __future__ import annotations

ASPECT_RATIOS: tuple[str, ...] = (
    "1:1",
    "16:9",
    "21:9",
    "3:2",
    "2:3",
    "4:5",
    "5:4",
    "3:4",
    "4:3",
    "9:16",
    "9:21",
)
DEFAULT_ASPECT_RATIO = "1:1"

RESOLUTIONS: tuple[str, ...] = ("1K", "2K", "4K")
DEFAULT_RESOLUTION = "1K"


def sanitize_aspect_ratio(ratio: str | None) -> str:
    """Return the canonical ratio, or ``""`` when it is not supported."""
    if not ratio:
        return ""
    canonical = ratio.strip().upper()
    return canonical if canonical in ASPECT_RATIOS else ""


def sanitize_resolution(resolution: str | None) -> str:
    """Return the canonical resolution, or ``""`` when it is not supported."""
    if not resolution:
        return ""
    canonical = resolution.strip().upper()
    return canonical if canonical in RESOLUTIONS else ""


def ratio_value(ratio: str) -> float:
    """Quotient of a ``W:H`` ratio string."""
    left, right = ratio.split(":", 1)
    return max(1.0, float(left)) / max(1.0, float(right))


def closest_aspect_ratio(
    width: int, height: int, candidates: tuple[str, ...] = ASPECT_RATIOS
) -> str:
    """Pick the supported ratio whose quotient is nearest to ``width / height``.

    Ties keep the earlier candidate, so ``1:1`` wins for square or degenerate
    input.
    """
    if width <= 0 or height <= 0:
        return DEFAULT_ASPECT_RATIO

    target = width / height
    best = candidates[0]
    best_diff = abs(ratio_value(best) - target)
    for candidate in candidates[1:]:
        diff = abs(ratio_value(candidate) - target)
        if diff < best_diff:
            best, best_diff = candidate, diff
    return best


def megapixels_for_resolution(resolution: str) -> str:
    """Map a ``1K/2K/4K`` preset to a megapixel string (``"1"``, ``"4"``, ``"16"``)."""
    return {"1K": "1", "2K": "4", "4K": "16"}.get(sanitize_resolution(resolution) or DEFAULT_RESOLUTION, "1")
