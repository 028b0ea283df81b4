"""Domain exceptions shared by the billing, order and delivery modules.

Each exception carries the HTTP status it maps to; the handlers registered
in ``register_exception_handlers`` turn them into ``{"detail": ...}``
responses so routers never translate them by hand.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tiffin.core.logging import log_warning

logger = logging.getLogger(__name__)


class TiffinError(Exception):
    """Base exception for business-rule failures."""

    status_code = 400
    error_code = "TIFFIN_ERROR"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error_code": self.error_code}


class ValidationError(TiffinError):
    """Malformed or missing input: dates, amounts, ids."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(TiffinError):
    """Record absent or not owned by the requester."""

    status_code = 404
    error_code = "NOT_FOUND"


class PolicyViolation(TiffinError):
    """Request is well-formed but forbidden by a business rule."""

    error_code = "POLICY_VIOLATION"


class AuthorizationError(TiffinError):
    """Requester lacks the role required for the operation."""

    status_code = 403
    error_code = "FORBIDDEN"


class GatewayError(TiffinError):
    """Payment gateway rejected a request or could not be reached."""

    error_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers mapping domain exceptions to JSON responses."""

    @app.exception_handler(TiffinError)
    async def tiffin_error_handler(request: Request, exc: TiffinError):
        log_warning(
            logger,
            "Request rejected",
            path=request.url.path,
            method=request.method,
            error_code=exc.error_code,
            reason=exc.message,
            **exc.context,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
