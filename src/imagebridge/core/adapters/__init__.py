"""Provider adapters. Importing this package registers all of them."""

from .gemini import GeminiAdapter
from .openai import OpenAIAdapter, size_for_request
from .replicate import ReplicateAdapter, extract_output_url, format_for_request

__all__ = [
    "GeminiAdapter",
    "OpenAIAdapter",
    "ReplicateAdapter",
    "size_for_request",
    "extract_output_url",
    "format_for_request",
]
