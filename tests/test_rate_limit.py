# tests/test_rate_limit.py
import pytest
from httpx import ASGITransport, AsyncClient

from urllens.main import create_app
from urllens.platform.config import settings
from urllens.platform.utils.rate_limit import InMemoryRateLimiter, build_rate_limiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_audit_rate_limit():
    limit = settings.RATE_LIMITS["/api/v1/audit"]
    app = create_app(rate_limiter=InMemoryRateLimiter())

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        # Requests under limit reach the route (and fail validation there)
        for i in range(limit):
            res = await ac.post("/api/v1/audit", json={"mode": "batch"})
            assert res.status_code == 422
            assert res.headers["X-RateLimit-Remaining"] == str(limit - i - 1)

        # Next request should be blocked
        res = await ac.post("/api/v1/audit", json={"mode": "batch"})
        assert res.status_code == 429
        assert "Retry-After" in res.headers
        assert res.json()["message"] == "Too Many Requests - Rate limit exceeded."


@pytest.mark.asyncio
async def test_reads_are_not_limited():
    app = create_app(rate_limiter=InMemoryRateLimiter())

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        for _ in range(20):
            res = await ac.get("/health")
            assert res.status_code == 200
            assert "X-RateLimit-Limit" not in res.headers


@pytest.mark.asyncio
async def test_limits_are_per_app_instance():
    first = create_app(rate_limiter=InMemoryRateLimiter())
    second = create_app(rate_limiter=InMemoryRateLimiter())
    limit = settings.RATE_LIMITS["/api/v1/audit"]

    async with AsyncClient(transport=ASGITransport(app=first), base_url="http://testserver") as ac:
        for _ in range(limit + 1):
            await ac.post("/api/v1/audit", json={"mode": "batch"})

    async with AsyncClient(transport=ASGITransport(app=second), base_url="http://testserver") as ac:
        res = await ac.post("/api/v1/audit", json={"mode": "batch"})
        assert res.status_code == 422


@pytest.mark.asyncio
async def test_window_resets():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock=clock)

    assert (await limiter.hit("ip:/x", 2, 60)).allowed
    assert (await limiter.hit("ip:/x", 2, 60)).remaining == 0

    blocked = await limiter.hit("ip:/x", 2, 60)
    assert not blocked.allowed
    assert blocked.reset_after == 60

    clock.now += 61
    again = await limiter.hit("ip:/x", 2, 60)
    assert again.allowed
    assert again.remaining == 1


@pytest.mark.asyncio
async def test_reset_clears_key():
    limiter = InMemoryRateLimiter()
    await limiter.hit("k", 1, 60)
    assert not (await limiter.hit("k", 1, 60)).allowed

    await limiter.reset("k")
    assert (await limiter.hit("k", 1, 60)).allowed


def test_build_rate_limiter_defaults_to_memory():
    assert isinstance(build_rate_limiter("memory"), InMemoryRateLimiter)
