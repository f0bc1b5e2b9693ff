"""Core functionality for ImageBridge.

- **Provider adapters** (provider_adapters.py, adapters/): Gemini, OpenAI and
  Replicate behind one ``generate`` / ``edit`` interface
- **provider_registry**: registry for discovering and instantiating adapters
- **ImageNormalizer**: re-encodes provider output to the requested format and size
- **EditBufferStore**: token-keyed staging area for uncommitted AI edits
- **history**: resolves which staged edit a chained edit builds on
- **ImagePipeline**: orchestration used by an outer REST layer
- **ImageBridgeConfig** / **config**: Pydantic Settings configuration

Usage Example
-------------
    >>> from imagebridge.core import ImagePipeline, GenerateRequest
    >>> pipeline = ImagePipeline()
    >>> image = pipeline.generate(GenerateRequest(prompt="a red kite", provider="openai"))
    >>> image.mime, image.width, image.height
    ('image/png', 1024, 1024)
"""

from .config import ImageBridgeConfig, config
from .edit_buffer import BufferRecord, EditBufferStore
from .errors import ErrorKind, ImageBridgeError
from .history import EditHistory, build_marker, parse_history, resolve_base_record, resolve_base_token
from .images import BinaryImage, ReferenceImage
from .model_catalog import ModelSpec, resolve_model
from .normalizer import ImageNormalizer
from .params import EditRequest, GenerateRequest
from .pipeline import EditResult, ImagePipeline
from .provider_adapters import ProviderAdapterBase, ProviderRegistry, provider_registry
from .transport import HttpResponse, HttpTransport

__all__ = [
    "ImageBridgeConfig",
    "config",
    "BufferRecord",
    "EditBufferStore",
    "ErrorKind",
    "ImageBridgeError",
    "EditHistory",
    "build_marker",
    "parse_history",
    "resolve_base_record",
    "resolve_base_token",
    "BinaryImage",
    "ReferenceImage",
    "ModelSpec",
    "resolve_model",
    "ImageNormalizer",
    "EditRequest",
    "GenerateRequest",
    "EditResult",
    "ImagePipeline",
    "ProviderAdapterBase",
    "ProviderRegistry",
    "provider_registry",
    "HttpResponse",
    "HttpTransport",
]
