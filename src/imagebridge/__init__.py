"""ImageBridge - uniform access to remote AI image generation and editing APIs."""

__version__ = "0.1.0"

from imagebridge.core.config import ImageBridgeConfig, config
from imagebridge.core.errors import ErrorKind, ImageBridgeError
from imagebridge.core.images import BinaryImage, ReferenceImage
from imagebridge.core.params import EditRequest, GenerateRequest
from imagebridge.core.pipeline import EditResult, ImagePipeline
from imagebridge.core.provider_adapters import ProviderAdapterBase, provider_registry

# Import adapters to ensure they're registered
from imagebridge.core.adapters import GeminiAdapter, OpenAIAdapter, ReplicateAdapter  # noqa: F401

__all__ = [
    "ImageBridgeConfig",
    "config",
    "ErrorKind",
    "ImageBridgeError",
    "BinaryImage",
    "ReferenceImage",
    "GenerateRequest",
    "EditRequest",
    "ImagePipeline",
    "EditResult",
    "ProviderAdapterBase",
    "provider_registry",
    "GeminiAdapter",
    "OpenAIAdapter",
    "ReplicateAdapter",
]
