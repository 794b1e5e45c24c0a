"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment so settings never pick up a developer's .env file
or a real storage backend.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LIMITR_STORAGE", "memory")
os.environ.setdefault("LIMITR_LIMIT", "100")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["APP_API_KEY_REQUIRED"] = "true"
os.environ["APP_API_KEYS"] = "test-admin-key,second-admin-key"

from typing import Callable

import pytest
from starlette.requests import Request


class FakeClock:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def build_request(
    path: str = "/api/hello",
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request for unit tests."""
    raw_headers = [
        (name.lower().encode(), value.encode()) for name, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "root_path": "",
        "query_string": b"",
        "headers": raw_headers,
    }
    return Request(scope)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request
