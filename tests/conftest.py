"""
Shared fixtures: an in-memory HTTP transport and a client wired to it.
"""

from __future__ import annotations

from typing import Any

import pytest

from escrow.api_client import ApiClient
from escrow.session import Session
from escrow.settings import Settings


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeHttp:
    """
    Stands in for ``requests.Session``. Routes are keyed by
    ``(METHOD, path)`` with the base URL stripped; unrouted calls 404.
    """

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[dict[str, Any]] = []

    def route(self, method: str, path: str, body: Any = None, status: int = 200) -> None:
        self.routes[(method.upper(), path)] = FakeResponse(status, body)

    def fail(self, method: str, path: str, error: Exception) -> None:
        self.routes[(method.upper(), path)] = error

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        path = url[len(self.base_url):]
        self.calls.append({
            "method": method, "path": path, "json": json,
            "params": params, "headers": headers, "timeout": timeout,
        })
        result = self.routes.get((method, path))
        if result is None:
            return FakeResponse(404, {"success": False, "message": "Route not found"})
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1]


def escrow_doc(status: str = "pending", **overrides: Any) -> dict[str, Any]:
    doc = {
        "_id": "esc-1",
        "title": "Vintage camera",
        "amount": "250.00",
        "currency": "USD",
        "status": status,
        "buyer": {"_id": "u-buyer", "name": "Ada"},
        "seller": {"_id": "u-seller", "name": "Kemi"},
    }
    doc.update(overrides)
    return doc


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


@pytest.fixture
def settings(tmp_path):
    return Settings(environ={
        "ESCROW_API_URL": "http://api.test/api/",
        "ESCROW_SESSION_PATH": str(tmp_path / "session.json"),
        "ESCROW_AUDIT_DIR": str(tmp_path / "audit"),
    })


@pytest.fixture
def http(settings):
    return FakeHttp(settings.api_url)


@pytest.fixture
def session(settings):
    return Session.load(settings.session_path)


@pytest.fixture
def client(session, settings, http):
    return ApiClient(session, settings, http=http)
