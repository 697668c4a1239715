from fastapi import APIRouter

from urllens.features.audit.routes.audit import router as audit_router
from urllens.features.health.routes.health import router as health_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(audit_router)
api_router.include_router(health_router)
