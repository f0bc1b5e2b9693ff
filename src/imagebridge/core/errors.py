"""Error taxonomy for provider calls, normalization and edit chaining.

Every failure in ImageBridge is raised as a subclass of ``ImageBridgeError``.
The hierarchy is closed: callers pattern-match on the class (or on ``kind``)
instead of parsing message text.

Each error carries a structured payload:

- ``kind``: an ``ErrorKind`` member
- ``operation``: ``generate``, ``edit``, ``download``, ``poll``, ``normalize`` ...
- ``provider`` / ``model``: which adapter and resolved model were involved
- ``upstream_message``: the provider's own message, when one was returned
- ``status_code``: HTTP status, when the failure came from a response

``str(error)`` is meant for logs. ``error.user_message`` is what an end user
should see: the upstream message for ``ProviderError`` and a generic category
message otherwise, so internal paths never leak to clients.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories."""

    CONFIGURATION = "configuration"
    INVALID_INPUT = "invalid_input"
    UNSUPPORTED_CAPABILITY = "unsupported_capability"
    TRANSPORT_UNSUPPORTED = "transport_unsupported"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    INVALID_RESPONSE = "invalid_response"
    NO_IMAGE_RETURNED = "no_image_returned"
    MISSING_OUTPUT_URL = "missing_output_url"
    CONVERSION_FAILED = "conversion_failed"
    BUFFER_EXPIRED = "buffer_expired"


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CONFIGURATION: "The image provider is not configured. Check the API key and model settings.",
    ErrorKind.INVALID_INPUT: "The request is not valid for the selected provider.",
    ErrorKind.UNSUPPORTED_CAPABILITY: "The selected model does not support this request.",
    ErrorKind.TRANSPORT_UNSUPPORTED: "The HTTP transport cannot send this request.",
    ErrorKind.NETWORK: "Could not reach the image provider. Try again.",
    ErrorKind.TIMEOUT: "The image provider timed out. Try again.",
    ErrorKind.PROVIDER_ERROR: "The image provider returned an error.",
    ErrorKind.INVALID_RESPONSE: "The image provider returned an unexpected response.",
    ErrorKind.NO_IMAGE_RETURNED: "The image provider did not return an image.",
    ErrorKind.MISSING_OUTPUT_URL: "The image provider did not return an image.",
    ErrorKind.CONVERSION_FAILED: "The generated image could not be processed.",
    ErrorKind.BUFFER_EXPIRED: "Previous AI edit is no longer available. Reapply the edit before continuing.",
}


class ImageBridgeError(Exception):
    """Base class for all ImageBridge errors."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        provider: str = "",
        model: str = "",
        upstream_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.provider = provider
        self.model = model
        self.upstream_message = upstream_message
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        """Message safe to show to an end user."""
        return _USER_MESSAGES[self.kind]

    @property
    def is_recoverable(self) -> bool:
        """True when retrying the same action may succeed."""
        return self.kind in (ErrorKind.TIMEOUT, ErrorKind.BUFFER_EXPIRED)

    def to_dict(self) -> dict:
        """Structured payload for logging and transport-level mapping."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "operation": self.operation,
            "provider": self.provider,
            "model": self.model,
            "upstream_message": self.upstream_message,
            "status_code": self.status_code,
        }

    def __str__(self) -> str:
        scope = "/".join(part for part in (self.provider, self.model, self.operation) if part)
        return f"[{scope}] {self.message}" if scope else self.message


class ConfigurationError(ImageBridgeError):
    """Missing credential, model, or unreadable source file."""

    kind = ErrorKind.CONFIGURATION


class InvalidInputError(ImageBridgeError):
    """Request shape is invalid for the adapter."""

    kind = ErrorKind.INVALID_INPUT


class UnsupportedCapabilityError(InvalidInputError):
    """The resolved model cannot serve the request (e.g. multi-reference)."""

    kind = ErrorKind.UNSUPPORTED_CAPABILITY


class TransportUnsupportedError(ImageBridgeError):
    """The HTTP transport cannot send in-memory files as multipart parts."""

    kind = ErrorKind.TRANSPORT_UNSUPPORTED


class NetworkError(ImageBridgeError):
    """Connection, DNS or other transport-level failure."""

    kind = ErrorKind.NETWORK


class ProviderTimeoutError(NetworkError):
    """A request timed out or the prediction polling deadline elapsed."""

    kind = ErrorKind.TIMEOUT


class ProviderError(ImageBridgeError):
    """The remote API returned a structured error."""

    kind = ErrorKind.PROVIDER_ERROR

    @property
    def user_message(self) -> str:
        return self.upstream_message or self.message or super().user_message


class InvalidResponseError(ImageBridgeError):
    """Non-2xx status, undecodable JSON, or missing expected fields."""

    kind = ErrorKind.INVALID_RESPONSE


class NoImageReturnedError(ImageBridgeError):
    """Well-formed response without a usable image."""

    kind = ErrorKind.NO_IMAGE_RETURNED


class MissingOutputURLError(NoImageReturnedError):
    """Prediction output held no URL in any known shape."""

    kind = ErrorKind.MISSING_OUTPUT_URL


class ConversionFailedError(ImageBridgeError):
    """Image bytes could not be decoded or re-encoded."""

    kind = ErrorKind.CONVERSION_FAILED


class BufferExpiredError(ImageBridgeError):
    """A chained edit token no longer resolves to a live buffer record."""

    kind = ErrorKind.BUFFER_EXPIRED
