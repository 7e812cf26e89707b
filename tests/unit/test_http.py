"""Unit tests for the urllib fetcher and URL helpers."""

from __future__ import annotations

import io
import socket
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from hotcode.infrastructure.http import (
    FetchError,
    UrllibFetcher,
    add_query_parameter,
    join_url,
)


def _response(body: bytes, status: int = 200, headers=None) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = body
    resp.status = status
    resp.headers = headers or {"Content-Type": "application/json"}
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    return resp


def test_get_returns_body_and_lowercased_headers() -> None:
    fetcher = UrllibFetcher(timeout=3.0)
    with patch("urllib.request.urlopen", return_value=_response(b"{}")) as urlopen:
        response = fetcher.get("http://example.test/__cordova/manifest.json")

    assert response.body == b"{}"
    assert response.status == 200
    assert response.headers == {"content-type": "application/json"}
    request = urlopen.call_args.args[0]
    assert request.full_url == "http://example.test/__cordova/manifest.json"
    assert request.get_header("User-agent").startswith("hotcode/")
    assert urlopen.call_args.kwargs["timeout"] == 3.0


def test_http_error_becomes_fetch_error() -> None:
    error = urllib.error.HTTPError("http://x/", 404, "Not Found", {}, io.BytesIO(b""))
    with patch("urllib.request.urlopen", side_effect=error):
        with pytest.raises(FetchError) as excinfo:
            UrllibFetcher().get("http://x/")
    assert excinfo.value.status == 404
    assert excinfo.value.url == "http://x/"


@pytest.mark.parametrize(
    "error",
    [urllib.error.URLError("refused"), socket.timeout("timed out"), ConnectionResetError("reset")],
)
def test_transport_errors_become_fetch_error(error: Exception) -> None:
    with patch("urllib.request.urlopen", side_effect=error):
        with pytest.raises(FetchError) as excinfo:
            UrllibFetcher().get("http://x/")
    assert excinfo.value.status is None


def test_non_success_status_is_rejected() -> None:
    with patch("urllib.request.urlopen", return_value=_response(b"", status=204)):
        assert UrllibFetcher().get("http://x/").status == 204
    with patch("urllib.request.urlopen", return_value=_response(b"", status=302)):
        with pytest.raises(FetchError):
            UrllibFetcher().get("http://x/")


def test_join_url_treats_base_as_directory() -> None:
    assert join_url("http://h/__cordova/", "manifest.json") == "http://h/__cordova/manifest.json"
    assert join_url("http://h/__cordova", "manifest.json") == "http://h/__cordova/manifest.json"
    assert join_url("http://h/__cordova/", "") == "http://h/__cordova/"
    assert join_url("http://h/__cordova/", "app/app.js") == "http://h/__cordova/app/app.js"


def test_add_query_parameter_keeps_existing_query() -> None:
    assert add_query_parameter("http://h/a.js", "x", "1") == "http://h/a.js?x=1"
    assert add_query_parameter("http://h/a.js?v=2", "x", "1") == "http://h/a.js?v=2&x=1"
