import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from urllens.api_routers.v1 import api_router
from urllens.features.health.routes.health import router as health_router
from urllens.middlewares.rate_limit import RateLimitMiddleware
from urllens.platform.config import settings
from urllens.platform.db.session import init_models
from urllens.platform.exceptions import add_exception_handlers
from urllens.platform.logger import LOG_FORMAT
from urllens.platform.utils.rate_limit import RateLimiter, build_rate_limiter

# Configure logging to show INFO level messages
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO), format=LOG_FORMAT)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await init_models()
        logger.info("Audit tables ready")
    yield


def create_app(rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Scrapability audits: how easily can each URL be fetched and parsed by a bot?",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": settings.APP_NAME,
            "description": "Scores URLs 0-100 for scrapability and fingerprints bot protection.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    limiter = rate_limiter or build_rate_limiter()
    app.state.rate_limiter = limiter

    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
