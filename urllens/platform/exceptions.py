import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from urllens.platform.response import api_response

logger = logging.getLogger(__name__)


class UrlLensError(Exception):
    """Base class for errors raised by the audit service."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class AuditInputError(UrlLensError):
    """Input reached the engine that the boundary should have rejected."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid audit request"


class FeatureDisabledError(UrlLensError):
    status_code = status.HTTP_403_FORBIDDEN
    public_message = "This feature is not yet available"


class SessionNotFoundError(UrlLensError):
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Audit session not found"


class InvalidSessionTransition(UrlLensError):
    public_message = "Invalid audit session transition"


class SignatureCatalogError(UrlLensError):
    public_message = "Signature catalog could not be loaded"


class AuditFailedError(UrlLensError):
    """An audit run aborted; the session has already been marked failed."""

    public_message = "Audit failed. Please try again later."

    def __init__(self, session_id: str, message: str):
        super().__init__(message)
        self.session_id = session_id


def add_exception_handlers(app):
    @app.exception_handler(UrlLensError)
    async def url_lens_exception_handler(request: Request, exc: UrlLensError):
        if exc.status_code >= 500:
            # Internal details stay in the logs
            logger.error(f"{type(exc).__name__}: {exc.message}")
            return api_response(message=exc.public_message, status_code=exc.status_code)
        return api_response(message=exc.message, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
