"""Minimal HTTP GET client used for manifests and asset files."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Mapping, Optional, Protocol

from hotcode import __version__ as HOTCODE_VERSION

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Transport-level failure: connection error, timeout or non-2xx status."""

    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


@dataclass(frozen=True)
class HttpResponse:
    url: str
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)


class Fetcher(Protocol):
    def get(self, url: str) -> HttpResponse: ...


class UrllibFetcher:
    """Blocking fetcher with a bounded connect/read timeout."""

    def __init__(self, *, timeout: float = 10.0, useragent: Optional[str] = None) -> None:
        self._timeout = timeout
        self._useragent = useragent or f"hotcode/{HOTCODE_VERSION}"

    def get(self, url: str) -> HttpResponse:
        request = urllib.request.Request(url, headers={"User-Agent": self._useragent})
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as resp:
                body = resp.read()
                status = getattr(resp, "status", 200)
                headers = {key.lower(): value for key, value in resp.headers.items()}
        except urllib.error.HTTPError as exc:
            logger.debug("HTTP error %s for %s: %s", exc.code, url, exc)
            raise FetchError(url, f"Non-success status code {exc.code}", exc.code) from exc
        except urllib.error.URLError as exc:
            logger.warning("Request failed for %s: %s", url, exc)
            raise FetchError(url, f"Request failed: {exc.reason}") from exc
        except OSError as exc:
            logger.warning("Request failed for %s: %s", url, exc)
            raise FetchError(url, f"Request failed: {exc}") from exc

        if not 200 <= status < 300:
            raise FetchError(url, f"Non-success status code {status}", status)
        return HttpResponse(url=url, status=status, body=body, headers=headers)


def join_url(base_url: str, relative: str) -> str:
    """Resolve ``relative`` against a directory-style base URL."""
    if not base_url.endswith("/"):
        base_url = base_url + "/"
    return urllib.parse.urljoin(base_url, relative)


def add_query_parameter(url: str, name: str, value: str) -> str:
    parts = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
    query.append((name, value))
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))
