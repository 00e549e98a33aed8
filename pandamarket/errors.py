"""
Application error taxonomy.

Services raise these at the point of detection; they propagate unmodified
to the transport boundary, where a single exception handler maps each kind
to a fixed status code and a stable machine-readable ``code``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input; no side effects were performed."""

    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    """Missing, invalid or expired credentials; no identity established."""

    status_code = 401
    code = "authentication_error"


class ForbiddenError(AppError):
    """Valid identity, but it does not own the target resource."""

    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class FanOutPartialFailure(AppError):
    """
    The resource mutation committed but the notification batch could not
    be persisted.  Surfaced distinctly so operators can reconcile.
    """

    status_code = 500
    code = "fanout_partial_failure"

    def __init__(self, message: str | None = None, *, resource_id: int | None = None,
                 recipients: int = 0) -> None:
        super().__init__(message)
        self.resource_id = resource_id
        self.recipients = recipients


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
