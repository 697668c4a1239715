"""
Test configuration and fixtures for the URL Lens API.

Environment is set before anything from urllens is imported so the settings
singleton picks up a throwaway SQLite database and the in-memory limiter.
"""

import asyncio
import os
import tempfile
from typing import Generator

import httpx
import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

load_dotenv()

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["LOG_TO_FILE"] = "false"
os.environ["AUDIT_FEATURE_ENABLED"] = "true"

HTML = "text/html; charset=utf-8"

RICH_PAGE = (
    "<html><head><title>Example</title></head><body>"
    "<h1>Welcome to the example store</h1>"
    "<p>We sell hand-made furniture, ship worldwide and answer every email within a day. "
    "Browse the catalog, read the blog or get in touch with the team.</p>"
    "</body></html>"
)


class FakeSite:
    """
    Scripted HTTP server behind httpx.MockTransport.

    Routes are keyed by (method, url); a route registered without a method
    answers every method. HEAD responses never carry a body. Unknown URLs
    answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.transport = httpx.MockTransport(self._handle)

    @staticmethod
    def _key(url: str) -> str:
        return str(httpx.URL(url))

    def add(self, url, status=200, body=b"", headers=None, method=None, error=None, delay=0.0):
        self.routes[(method, self._key(url))] = {
            "status": status,
            "body": body.encode() if isinstance(body, str) else body,
            "headers": headers or [],
            "error": error,
            "delay": delay,
        }

    def html(self, url, body=RICH_PAGE, status=200, headers=None, **kwargs):
        extra = list(headers.items()) if isinstance(headers, dict) else list(headers or [])
        self.add(url, status=status, body=body, headers=[("content-type", HTML)] + extra, **kwargs)

    def redirect(self, url, location, status=301):
        self.add(url, status=status, headers=[("location", location)])

    def fail(self, url, error):
        self.add(url, error=error)

    def calls(self, method=None):
        return [url for m, url in self.requests if method is None or m == method]

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))

        route = self.routes.get((request.method, url)) or self.routes.get((None, url))
        if route is None:
            return httpx.Response(404, headers=[("content-type", HTML)], content=b"<html>Not found</html>")

        if route["delay"]:
            await asyncio.sleep(route["delay"])
        if route["error"] is not None:
            raise route["error"]

        content = b"" if request.method == "HEAD" else route["body"]
        return httpx.Response(route["status"], headers=route["headers"], content=content)


@pytest.fixture
def fake_site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def audit_store():
    from urllens.features.audit.services.store import InMemoryAuditStore

    return InMemoryAuditStore()


@pytest.fixture
def test_app(fake_site, audit_store):
    """FastAPI app wired to the fake site, an in-memory store and its own limiter."""
    from urllens.features.audit.routes.audit import get_audit_store, get_prober
    from urllens.features.audit.services.probing.url_prober import UrlProber
    from urllens.main import create_app
    from urllens.platform.utils.rate_limit import InMemoryRateLimiter

    app = create_app(rate_limiter=InMemoryRateLimiter())
    app.dependency_overrides[get_audit_store] = lambda: audit_store
    app.dependency_overrides[get_prober] = lambda: UrlProber(transport=fake_site.transport)
    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    Entering the client runs the app lifespan, which creates the tables.
    """
    with TestClient(test_app) as test_client:
        yield test_client
