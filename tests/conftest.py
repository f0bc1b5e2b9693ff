"""Shared pytest fixtures for ImageBridge tests."""

import io
import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from PIL import Image

from imagebridge.core.config import ImageBridgeConfig
from imagebridge.core.edit_buffer import EditBufferStore
from imagebridge.core.images import ReferenceImage
from imagebridge.core.transport import HttpResponse, HttpTransport


# ============================================================================
# Helpers
# ============================================================================


def png_bytes(
    width: int = 8,
    height: int = 6,
    color: tuple = (255, 0, 0, 255),
    mode: str = "RGBA",
    fmt: str = "PNG",
) -> bytes:
    """Encode a solid-colour image."""
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def json_response(body: Any, status: int = 200, headers: dict | None = None) -> HttpResponse:
    """Build an HttpResponse carrying a JSON body."""
    return HttpResponse(
        status_code=status,
        content=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json", **(headers or {})},
    )


def image_response(data: bytes, content_type: str = "image/png", status: int = 200) -> HttpResponse:
    headers = {"Content-Type": content_type} if content_type else {}
    return HttpResponse(status_code=status, content=data, headers=headers)


class FakeTransport(HttpTransport):
    """Transport that records requests and replays scripted responses.

    Responses are matched first against routes added with ``route`` (method
    plus URL substring), then taken from the ``responses`` queue in order. A
    response may be a callable receiving the recorded call.
    """

    def __init__(self, responses: list | None = None, supports_multipart: bool = True):
        self.supports_multipart = supports_multipart
        self.responses = list(responses or [])
        self.routes: list[tuple[str, str, Any]] = []
        self.calls: list[dict[str, Any]] = []

    def route(self, method: str, url_part: str, response: Any) -> None:
        self.routes.append((method, url_part, response))

    def request(
        self,
        method,
        url,
        *,
        timeout,
        headers=None,
        json_body=None,
        data=None,
        files=None,
    ) -> HttpResponse:
        call = {
            "method": method,
            "url": url,
            "timeout": timeout,
            "headers": dict(headers or {}),
            "json": json_body,
            "data": data,
            "files": files,
        }
        self.calls.append(call)

        for route_method, url_part, response in self.routes:
            if route_method == method and url_part in url:
                return response(call) if callable(response) else response

        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        return response(call) if callable(response) else response

    def calls_to(self, url_part: str, method: str | None = None) -> list[dict[str, Any]]:
        return [
            c for c in self.calls if url_part in c["url"] and (method is None or c["method"] == method)
        ]


class StubClock:
    """Manually advanced monotonic clock; ``sleep`` moves it forward."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> ImageBridgeConfig:
    """Configuration with test credentials and a temporary buffer directory."""
    return ImageBridgeConfig(
        gemini_api_key="test-gemini-key",
        openai_api_key="test-openai-key",
        replicate_api_token="test-replicate-token",
        buffer_dir=str(temp_dir / "buffer"),
        replicate_poll_interval=2.0,
        replicate_poll_deadline=60.0,
        _env_file=None,
    )


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Factory for small encoded test images."""
    return png_bytes


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> StubClock:
    return StubClock()


@pytest.fixture
def source_image(temp_dir: Path) -> Path:
    """A 40x30 PNG on disk used as the edit source."""
    path = temp_dir / "source.png"
    path.write_bytes(png_bytes(40, 30, (0, 0, 255, 255)))
    return path


@pytest.fixture
def make_reference(temp_dir: Path) -> Callable[..., ReferenceImage]:
    """Factory writing a reference PNG to disk and describing it."""

    def _make(name: str, color: tuple = (0, 255, 0, 255), size: tuple = (10, 10)) -> ReferenceImage:
        path = temp_dir / f"{name}.png"
        path.write_bytes(png_bytes(size[0], size[1], color))
        return ReferenceImage.from_path(path)

    return _make


@pytest.fixture
def buffer_store(temp_dir: Path, clock: StubClock) -> EditBufferStore:
    clock.now = 1_700_000_000.0
    return EditBufferStore(temp_dir / "edit-buffer", ttl_seconds=3600, clock=clock)
