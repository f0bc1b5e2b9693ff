"""HTTP transport used by the provider adapters.

A thin wrapper around ``requests.Session``. Its job is narrow:

- every call carries an explicit timeout (no library default)
- ``requests`` exceptions are mapped onto the ImageBridge error taxonomy
- responses are returned as a plain ``HttpResponse`` value so adapters never
  touch ``requests`` objects directly, and tests can script responses

Status codes are *not* interpreted here. Deciding whether a 4xx body carries a
structured provider error is the adapter's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import InvalidResponseError, NetworkError, ProviderTimeoutError

logger = logging.getLogger(__name__)

# (field name, (filename, bytes, mime))
MultipartFile = tuple[str, tuple[str, bytes, str]]


@dataclass
class HttpResponse:
    """Status, headers and raw body of a completed HTTP exchange."""

    status_code: int
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.headers = {str(k).lower(): str(v) for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            InvalidResponseError: If the body is not valid JSON
        """
        try:
            return json.loads(self.content)
        except ValueError as e:
            raise InvalidResponseError(
                f"Response body is not valid JSON (HTTP {self.status_code})",
                status_code=self.status_code,
            ) from e


class HttpTransport:
    """Blocking HTTP client with explicit timeouts.

    Args:
        session: Optional ``requests.Session`` to reuse connections
        supports_multipart: Whether in-memory files can be sent as multipart
            parts. Adapters that need multipart raise
            ``TransportUnsupportedError`` when this is False.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        supports_multipart: bool = True,
    ) -> None:
        self.session = session or requests.Session()
        self.supports_multipart = supports_multipart

    def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        data: dict[str, str] | None = None,
        files: list[MultipartFile] | None = None,
    ) -> HttpResponse:
        """Send one request and return its response.

        Raises:
            ProviderTimeoutError: If the request exceeded ``timeout``
            NetworkError: On connection, DNS or other transport failures
        """
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                data=data,
                files=files,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError(f"Request timed out after {timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"HTTP request failed: {e.__class__.__name__}") from e

        return HttpResponse(
            status_code=response.status_code,
            content=response.content or b"",
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self.session.close()
