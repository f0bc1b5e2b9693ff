"""Model catalog and per-call model resolution.

Raw model identifiers are resolved exactly once per adapter call into a
``ModelSpec``. The spec records which endpoint family the model belongs to,
how its request must be shaped, and which capabilities it has, so adapters
branch on typed fields rather than re-matching substrings at every call site.

Model Families
--------------
- ``GEMINI_CONTENT``: ``:generateContent`` multi-modal models (text + inline images)
- ``GEMINI_PREDICT``: ``:predict`` Imagen models (generation only, no references)
- ``OPENAI_IMAGES``: ``/images/generations`` + ``/images/edits``
- ``REPLICATE_PREDICTION``: ``/models/{owner}/{name}/predictions``

Capabilities
------------
- ``generate`` / ``edit``: supported operations
- ``multi_reference``: more than one reference image may be composed
- ``image_config``: Gemini ``generationConfig.imageConfig.aspectRatio`` accepted
- ``resolution``: a ``1K/2K/4K`` size preset is accepted

Usage Example
-------------
    >>> spec = resolve_model("replicate", "google/nano-banana")
    >>> spec.shape.reference_field
    <ReferenceField.IMAGE_INPUT: 'image_input'>
    >>> spec.supports("multi_reference")
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# Gemini
GEMINI_FLASH_IMAGE_PREVIEW = "gemini-2.5-flash-image-preview"
GEMINI_FLASH_IMAGE = "gemini-2.5-flash-image"
GEMINI_3_PRO_IMAGE_PREVIEW = "gemini-3-pro-image-preview"
IMAGEN_4_GENERATE = "imagen-4.0-generate-001"
IMAGEN_4_ULTRA_GENERATE = "imagen-4.0-ultra-generate-001"
IMAGEN_4_FAST_GENERATE = "imagen-4.0-fast-generate-001"

# OpenAI
OPENAI_GPT_IMAGE_1 = "gpt-image-1"
OPENAI_GPT_IMAGE_1_MINI = "gpt-image-1-mini"

# Replicate
REPLICATE_NANO_BANANA = "google/nano-banana"
REPLICATE_NANO_BANANA_PRO = "google/nano-banana-pro"
REPLICATE_GEMINI_FLASH_IMAGE = "google/gemini-2.5-flash-image"
REPLICATE_IMAGEN_4 = "google/imagen-4"
REPLICATE_SEEDREAM_4 = "bytedance/seedream-4"
REPLICATE_SEEDEDIT_30 = "bytedance/seededit-3.0"
REPLICATE_FLUX = "black-forest-labs/flux"
REPLICATE_FLUX_11_PRO = "black-forest-labs/flux-1.1-pro"
REPLICATE_FLUX_DEV = "black-forest-labs/flux-dev"
REPLICATE_FLUX_SCHNELL = "black-forest-labs/flux-schnell"
REPLICATE_FLUX_2_PRO = "black-forest-labs/flux-2-pro"
REPLICATE_FLUX_KONTEXT_MAX = "black-forest-labs/flux-kontext-max"
REPLICATE_FLUX_KONTEXT_DEV = "black-forest-labs/flux-kontext-dev"
REPLICATE_QWEN_IMAGE_EDIT = "qwen/qwen-image-edit"
REPLICATE_REVE_EDIT = "reve/edit"
REPLICATE_REVE_REMIX = "reve/remix"

PROVIDERS = ("gemini", "openai", "replicate")

MULTI_REFERENCE_MODELS: dict[str, tuple[str, ...]] = {
    "gemini": (GEMINI_FLASH_IMAGE_PREVIEW, GEMINI_FLASH_IMAGE, GEMINI_3_PRO_IMAGE_PREVIEW),
    "openai": (OPENAI_GPT_IMAGE_1, OPENAI_GPT_IMAGE_1_MINI),
    "replicate": (
        REPLICATE_NANO_BANANA,
        REPLICATE_NANO_BANANA_PRO,
        REPLICATE_SEEDREAM_4,
        REPLICATE_REVE_REMIX,
        REPLICATE_FLUX_2_PRO,
    ),
}

RESOLUTION_MODELS: dict[str, tuple[str, ...]] = {
    "gemini": (GEMINI_3_PRO_IMAGE_PREVIEW,),
    "replicate": (REPLICATE_NANO_BANANA_PRO, REPLICATE_SEEDREAM_4),
}

IMAGE_CONFIG_MODELS: tuple[str, ...] = (GEMINI_FLASH_IMAGE, GEMINI_3_PRO_IMAGE_PREVIEW)


class ModelFamily(str, Enum):
    GEMINI_CONTENT = "gemini_content"
    GEMINI_PREDICT = "gemini_predict"
    OPENAI_IMAGES = "openai_images"
    REPLICATE_PREDICTION = "replicate_prediction"


class ResolutionParam(str, Enum):
    """How a Replicate model receives the requested output size."""

    NONE = "none"
    RESOLUTION = "resolution"  # "resolution": "1K" | "2K" | "4K"
    MEGAPIXELS = "megapixels"  # "megapixels": "1" | "4" | "16"
    SIZE = "size"  # "size": "1K" | "2K" | "4K"
    DIMENSIONS = "dimensions"  # explicit "width" / "height"


class ReferenceField(str, Enum):
    """Where a Replicate model expects reference images."""

    IMAGE_INPUT = "image_input"  # array, sent in reverse order
    INPUT_IMAGES = "input_images"  # array
    REFERENCE_IMAGES = "reference_images"  # array
    IMAGE = "image"  # single data URI
    INPUT_IMAGE = "input_image"  # single data URI

    @property
    def is_array(self) -> bool:
        return self in (
            ReferenceField.IMAGE_INPUT,
            ReferenceField.INPUT_IMAGES,
            ReferenceField.REFERENCE_IMAGES,
        )


@dataclass(frozen=True)
class RequestShape:
    """Request-building choices that vary per model."""

    resolution_param: ResolutionParam = ResolutionParam.NONE
    reference_field: ReferenceField = ReferenceField.IMAGE
    edit_field: ReferenceField = ReferenceField.IMAGE
    reverse_references: bool = False
    edit_defaults: tuple[tuple[str, object], ...] = ()


@dataclass(frozen=True)
class ModelSpec:
    """Resolved view of a model identifier."""

    provider: str
    api_model: str
    family: ModelFamily
    shape: RequestShape = field(default_factory=RequestShape)
    capabilities: frozenset[str] = frozenset({"generate", "edit"})

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


def supports_multi_reference(provider: str, model: str) -> bool:
    """Whether the model composes multiple reference images."""
    return model.strip() in MULTI_REFERENCE_MODELS.get(provider, ())


def supports_resolution(provider: str, model: str) -> bool:
    """Whether the model accepts a ``1K/2K/4K`` resolution preset."""
    return model.strip() in RESOLUTION_MODELS.get(provider, ())


def _capabilities(provider: str, model: str, *, edit: bool = True) -> frozenset[str]:
    caps = {"generate"}
    if edit:
        caps.add("edit")
    if supports_multi_reference(provider, model):
        caps.add("multi_reference")
    if supports_resolution(provider, model):
        caps.add("resolution")
    return frozenset(caps)


def _resolve_gemini(model: str) -> ModelSpec:
    if model.lower().startswith("imagen"):
        return ModelSpec(
            provider="gemini",
            api_model=model,
            family=ModelFamily.GEMINI_PREDICT,
            capabilities=frozenset({"generate"}),
        )

    caps = set(_capabilities("gemini", model))
    if model in IMAGE_CONFIG_MODELS:
        caps.add("image_config")
    return ModelSpec(
        provider="gemini",
        api_model=model,
        family=ModelFamily.GEMINI_CONTENT,
        capabilities=frozenset(caps),
    )


def _replicate_shape(model: str) -> RequestShape:
    needle = model.lower()

    if "nano-banana" in needle or "seedream" in needle:
        resolution = ResolutionParam.NONE
        if needle == REPLICATE_NANO_BANANA_PRO:
            resolution = ResolutionParam.RESOLUTION
        elif "seedream" in needle:
            resolution = ResolutionParam.SIZE
        return RequestShape(
            resolution_param=resolution,
            reference_field=ReferenceField.IMAGE_INPUT,
            edit_field=ReferenceField.IMAGE_INPUT,
            reverse_references=True,
        )

    if "flux-kontext" in needle:
        defaults: list[tuple[str, object]] = [
            ("aspect_ratio", "match_input_image"),
            ("output_format", "jpg"),
        ]
        if "flux-kontext-max" in needle:
            defaults.append(("safety_tolerance", 2))
        elif "flux-kontext-dev" in needle:
            defaults.extend([("go_fast", True), ("guidance", 2.5), ("num_inference_steps", 30)])
        return RequestShape(
            reference_field=ReferenceField.INPUT_IMAGE,
            edit_field=ReferenceField.INPUT_IMAGE,
            edit_defaults=tuple(defaults),
        )

    if "flux-2" in needle:
        return RequestShape(
            resolution_param=ResolutionParam.DIMENSIONS,
            reference_field=ReferenceField.INPUT_IMAGES,
            edit_field=ReferenceField.INPUT_IMAGES,
        )

    if needle in (REPLICATE_FLUX_DEV, REPLICATE_FLUX_SCHNELL):
        return RequestShape(resolution_param=ResolutionParam.MEGAPIXELS)

    if needle == REPLICATE_FLUX_11_PRO:
        return RequestShape(resolution_param=ResolutionParam.DIMENSIONS)

    if needle == REPLICATE_REVE_REMIX:
        return RequestShape(
            reference_field=ReferenceField.REFERENCE_IMAGES,
            edit_field=ReferenceField.REFERENCE_IMAGES,
        )

    if "qwen-image-edit" in needle:
        return RequestShape(edit_defaults=(("go_fast", True),))

    # seededit, reve/edit and unknown models take a single "image" field.
    return RequestShape()


def resolve_model(provider: str, model: str) -> ModelSpec:
    """Resolve a raw model identifier for a provider.

    Args:
        provider: Provider slug (``gemini``, ``openai`` or ``replicate``)
        model: Model identifier as selected by the caller (already defaulted)

    Returns:
        ModelSpec describing family, request shape and capabilities

    Raises:
        ValueError: If the provider slug is unknown
    """
    model = model.strip()

    if provider == "gemini":
        return _resolve_gemini(model)

    if provider == "openai":
        return ModelSpec(
            provider="openai",
            api_model=model,
            family=ModelFamily.OPENAI_IMAGES,
            capabilities=_capabilities("openai", model),
        )

    if provider == "replicate":
        return ModelSpec(
            provider="replicate",
            api_model=model,
            family=ModelFamily.REPLICATE_PREDICTION,
            shape=_replicate_shape(model),
            capabilities=_capabilities("replicate", model),
        )

    raise ValueError(f"Unknown provider: {provider}")
