"""Test helper utilities."""

from .bundles import (
    APP_ID,
    BASE_URL,
    ROOT_URL,
    FakeFetcher,
    FakeWebView,
    index_html,
    program_json,
    serve_version,
    sha1_hex,
    write_packaged_bundle,
    expire_startup_deadline,
)

__all__ = [
    "APP_ID",
    "BASE_URL",
    "ROOT_URL",
    "FakeFetcher",
    "FakeWebView",
    "index_html",
    "program_json",
    "serve_version",
    "sha1_hex",
    "write_packaged_bundle",
    "expire_startup_deadline",
]
