"""Configuration management for ImageBridge.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the IMAGEBRIDGE_ prefix,
allowing credentials and provider defaults to be supplied without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (IMAGEBRIDGE_* prefix)
2. .env file in the project root
3. Default values defined in ImageBridgeConfig

Example .env file:
    IMAGEBRIDGE_GEMINI_API_KEY=...
    IMAGEBRIDGE_REPLICATE_API_TOKEN=...
    IMAGEBRIDGE_DEFAULT_FORMAT=webp
    IMAGEBRIDGE_BUFFER_DIR=cache/edit-buffer

Explicit Configuration
----------------------
Provider adapters never read the global instance themselves. The pipeline (or a
test) passes an ``ImageBridgeConfig`` into each adapter's constructor, so an
adapter's behaviour is a function of its explicit inputs only.

Usage Example
-------------
    from imagebridge.core.config import config

    print(config.default_provider)
    print(config.buffer_dir)

    custom = ImageBridgeConfig(
        openai_api_key="sk-test",
        default_format="jpeg",
        buffer_dir="/tmp/buffer",
    )

Timeouts
--------
Every provider call carries its own timeout instead of relying on the HTTP
library default:
- gemini_timeout: synchronous generateContent / predict calls
- openai_timeout: generation, edit and image download calls
- replicate_timeout: prediction creation and each poll request
- replicate_poll_deadline: extra polling budget after creation returns
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImageBridgeConfig(BaseSettings):
    """Main configuration for ImageBridge.

    Attributes
    ----------
    Provider Credentials:
        gemini_api_key : str
            API key sent as ``x-goog-api-key``
        openai_api_key : str
            Bearer token for the OpenAI images API
        replicate_api_token : str
            Bearer token for the Replicate predictions API

    Provider Defaults:
        default_provider : Literal["gemini", "openai", "replicate"]
            Provider used when a request does not name one
        gemini_model / openai_model / replicate_model : str
            Model used when a request leaves ``model`` empty

    Transport:
        gemini_timeout / openai_timeout / replicate_timeout : float
            Per-request timeouts in seconds
        replicate_poll_interval : float
            Seconds slept between prediction status polls
        replicate_poll_deadline : float
            Polling budget in seconds after the creation request returns

    Output:
        default_format : Literal["png", "webp", "jpeg"]
            Output format used when a request does not specify one
        jpeg_background : str
            Background colour used when flattening alpha for JPEG output

    Edit Buffer:
        buffer_dir : Path
            Directory holding staged edit files and the SQLite index
        buffer_ttl_seconds : int
            Lifetime of a staged edit record

    Limits and Logging:
        max_reference_images : int
            Maximum reference images accepted per request (0-4)
        call_log_path : Path | None
            Optional JSON-lines file for provider call records

    Notes
    -----
    - ``buffer_dir`` is created automatically on initialization
    - Empty credentials are allowed here; adapters raise ConfigurationError
      when they are asked to work without one
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEBRIDGE_",
        case_sensitive=False,
    )

    # Provider credentials
    gemini_api_key: str = Field(default="", description="Gemini API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    replicate_api_token: str = Field(default="", description="Replicate API token")

    # Provider defaults
    default_provider: Literal["gemini", "openai", "replicate"] = Field(
        default="gemini",
        description="Provider used when a request does not name one",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash-image-preview",
        description="Default Gemini model",
    )
    openai_model: str = Field(default="gpt-image-1", description="Default OpenAI model")
    replicate_model: str = Field(
        default="black-forest-labs/flux",
        description="Default Replicate model (owner/name)",
    )

    # Endpoints
    gemini_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Gemini models endpoint base",
    )
    openai_api_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base",
    )
    replicate_api_url: str = Field(
        default="https://api.replicate.com/v1/models",
        description="Replicate models endpoint base",
    )

    # Transport
    gemini_timeout: float = Field(default=60.0, gt=0)
    openai_timeout: float = Field(default=120.0, gt=0)
    replicate_timeout: float = Field(default=60.0, gt=0)
    replicate_poll_interval: float = Field(
        default=2.0,
        description="Seconds between prediction status polls",
        gt=0,
    )
    replicate_poll_deadline: float = Field(
        default=60.0,
        description="Polling budget after the creation request returns",
        gt=0,
    )

    # Output
    default_format: Literal["png", "webp", "jpeg"] = Field(
        default="png",
        description="Output format when a request does not specify one",
    )
    jpeg_background: str = Field(
        default="#ffffff",
        description="Background colour used when flattening alpha for JPEG",
    )

    # Edit buffer
    buffer_dir: Path = Field(
        default=Path("cache/edit-buffer"),
        description="Directory for staged AI edit files and their index",
    )
    buffer_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of a staged edit in seconds",
        ge=1,
    )

    # Limits
    max_reference_images: int = Field(default=4, ge=0, le=4)

    # Logging
    call_log_path: Path | None = Field(
        default=None,
        description="JSON-lines file for provider call records (disabled when unset)",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the buffer directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.buffer_dir.mkdir(parents=True, exist_ok=True)

    def credential_for(self, provider: str) -> str:
        """Return the configured credential for a provider slug."""
        if provider == "gemini":
            return self.gemini_api_key
        if provider == "openai":
            return self.openai_api_key
        if provider == "replicate":
            return self.replicate_api_token
        return ""

    def model_for(self, provider: str) -> str:
        """Return the configured default model for a provider slug."""
        if provider == "gemini":
            return self.gemini_model
        if provider == "openai":
            return self.openai_model
        if provider == "replicate":
            return self.replicate_model
        return ""


# Global configuration instance, loaded from IMAGEBRIDGE_* variables and .env.
config = ImageBridgeConfig()
