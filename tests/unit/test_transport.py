"""Tests for HttpTransport and HttpResponse."""

from unittest.mock import MagicMock

import pytest
import requests

from imagebridge.core.errors import InvalidResponseError, NetworkError, ProviderTimeoutError
from imagebridge.core.transport import HttpResponse, HttpTransport


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def fake_response(status=200, content=b"{}", headers=None):
    response = MagicMock()
    response.status_code = status
    response.content = content
    response.headers = headers or {"Content-Type": "application/json"}
    return response


class TestHttpResponse:
    def test_headers_are_case_insensitive(self):
        response = HttpResponse(200, b"", {"Content-Type": "image/png", "Location": "https://x"})
        assert response.header("content-type") == "image/png"
        assert response.header("LOCATION") == "https://x"
        assert response.header("missing", "d") == "d"

    @pytest.mark.parametrize("status, ok", [(200, True), (201, True), (299, True), (301, False), (404, False)])
    def test_ok(self, status, ok):
        assert HttpResponse(status).ok is ok

    def test_json(self):
        assert HttpResponse(200, b'{"a": 1}').json() == {"a": 1}

    def test_invalid_json(self):
        with pytest.raises(InvalidResponseError) as exc_info:
            HttpResponse(502, b"<html>").json()
        assert exc_info.value.status_code == 502


class TestHttpTransport:
    def test_request_passes_explicit_timeout(self, session):
        session.request.return_value = fake_response(201, b'{"id": "p1"}', {"Location": "https://poll"})
        transport = HttpTransport(session=session)

        response = transport.request("POST", "https://api", timeout=12.5, headers={"A": "b"}, json_body={"x": 1})

        session.request.assert_called_once_with(
            "POST",
            "https://api",
            headers={"A": "b"},
            json={"x": 1},
            data=None,
            files=None,
            timeout=12.5,
        )
        assert response.status_code == 201
        assert response.json() == {"id": "p1"}
        assert response.header("location") == "https://poll"

    def test_multipart(self, session):
        session.request.return_value = fake_response()
        transport = HttpTransport(session=session)
        files = [("image", ("a.png", b"\x89PNG", "image/png"))]

        transport.request("POST", "https://api", timeout=5, data={"n": "1"}, files=files)

        kwargs = session.request.call_args.kwargs
        assert kwargs["data"] == {"n": "1"}
        assert kwargs["files"] == files
        assert kwargs["json"] is None

    def test_get(self, session):
        session.request.return_value = fake_response(200, b"bytes", {"Content-Type": "image/png"})
        response = HttpTransport(session=session).request("GET", "https://cdn/img", timeout=3)
        assert session.request.call_args.args == ("GET", "https://cdn/img")
        assert response.content == b"bytes"

    def test_timeout_maps_to_provider_timeout(self, session):
        session.request.side_effect = requests.ReadTimeout("slow")
        with pytest.raises(ProviderTimeoutError):
            HttpTransport(session=session).request("GET", "https://api", timeout=1)

    def test_connection_error_maps_to_network_error(self, session):
        session.request.side_effect = requests.ConnectionError("dns")
        with pytest.raises(NetworkError) as exc_info:
            HttpTransport(session=session).request("GET", "https://api", timeout=1)
        assert not isinstance(exc_info.value, ProviderTimeoutError)

    def test_error_statuses_are_returned(self, session):
        session.request.return_value = fake_response(429, b'{"error": "slow down"}')
        response = HttpTransport(session=session).request("GET", "https://api", timeout=1)
        assert response.status_code == 429
        assert not response.ok

    def test_none_content(self, session):
        session.request.return_value = fake_response(204, None, {})
        assert HttpTransport(session=session).request("GET", "https://api", timeout=1).content == b""

    def test_close(self, session):
        HttpTransport(session=session).close()
        session.close.assert_called_once()
