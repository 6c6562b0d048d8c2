"""
Error taxonomy for share management and the FastAPI handlers that render it.
"""
import logging

from fastapi import Request, status
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "Internal server error."


class ShareError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class AuthenticationFailure(ShareError):
    """The presented credential was not recognised."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationFailure(ShareError):
    """The credential is valid but does not allow the action."""

    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailure(ShareError):
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(ShareError):
    status_code = status.HTTP_409_CONFLICT


class NotFound(ShareError):
    status_code = status.HTTP_404_NOT_FOUND


class StorageFailure(ShareError):
    """Store or filesystem failure. The detail is logged, never returned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# fastapi docs on error handlers: https://fastapi.tiangolo.com/tutorial/handling-errors/
async def handle_share_errors(request: Request, exc: ShareError) -> PlainTextResponse:
    """Render a ShareError as a plain text response."""
    if isinstance(exc, StorageFailure):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.detail}")
        return PlainTextResponse(INTERNAL_ERROR_DETAIL, status_code=exc.status_code)
    return PlainTextResponse(exc.detail, status_code=exc.status_code)


# fastapi docs on middlewares: https://fastapi.tiangolo.com/tutorial/middleware/
async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that goes unhandled by a more specific exception handler."""
    try:
        return await call_next(request)
    except Exception as err:  # pylint: disable=broad-except
        logger.exception(
            f"Unhandled exception on {request.method} {request.url.path}: "
            f"{type(err).__name__}: {err}"
        )
        return PlainTextResponse(
            INTERNAL_ERROR_DETAIL,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
