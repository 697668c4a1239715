# urllens/middlewares/rate_limit.py
from typing import Dict, Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from urllens.platform.config import settings
from urllens.platform.response import rate_limit_headers
from urllens.platform.utils.rate_limit import RateLimiter


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client, per-path request limits. The limiter backend is injected so
    its lifetime and sharding are decided by whoever builds the app.
    """

    def __init__(
        self,
        app,
        limiter: RateLimiter,
        limits: Optional[Dict[str, int]] = None,
        window_seconds: Optional[int] = None,
        whitelist: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.limits = dict(settings.RATE_LIMITS if limits is None else limits)
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.whitelist = set(settings.WHITELIST_IPS if whitelist is None else whitelist)

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "testclient"

        # Skip limit if whitelisted
        if client_ip in self.whitelist:
            return await call_next(request)

        path = request.url.path.rstrip("/") or "/"
        limit = self.limits.get(path)

        # Only mutating calls are limited; polling a session stays free
        if limit is None or request.method != "POST":
            return await call_next(request)

        result = await self.limiter.hit(f"{client_ip}:{path}", limit, self.window_seconds)
        headers = rate_limit_headers(result.limit, result.remaining, result.reset_after)

        if not result.allowed:
            headers["Retry-After"] = str(result.reset_after)
            return JSONResponse(
                status_code=429,
                content={
                    "status_code": 429,
                    "status": "error",
                    "message": "Too Many Requests - Rate limit exceeded.",
                    "data": {},
                },
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
