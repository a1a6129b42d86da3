"""Structured error responses: consistent JSON format for all errors.

Consent domain failures are raised as ConsentError subclasses by the
services and mapped to HTTP status codes here.
"""

import logging
import uuid
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("medilocker")

CONSENT_ROUTE_PREFIX = "/consents"


class ConsentError(Exception):
    """Base class for consent and sharing failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Consent request failed"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ConsentValidationError(ConsentError):
    """Create-time input rejected. Carries field-level errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Validation error"

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = errors
        super().__init__("; ".join(e["message"] for e in errors) or None)


class ConsentNotFound(ConsentError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Consent not found"


class ConsentForbidden(ConsentError):
    """Authenticated owner asked for a consent that belongs to someone else."""

    status_code = status.HTTP_403_FORBIDDEN
    detail = "Access denied"


class AccessDenied(ConsentError):
    """Live share token, but the requested resource is outside its grant."""

    status_code = status.HTTP_403_FORBIDDEN
    detail = "Access denied"


class ConsentGone(ConsentError):
    """Share token resolved to an expired or revoked consent."""

    status_code = status.HTTP_410_GONE

    def __init__(self, consent_id: uuid.UUID, consent_status: str, timestamp: datetime | None):
        self.consent_id = consent_id
        self.consent_status = consent_status
        self.timestamp = timestamp
        if consent_status == "revoked":
            message = "This consent has been revoked"
        else:
            message = "This consent has expired"
        super().__init__(message)


class StorageError(ConsentError):
    """Underlying store failed or token generation was exhausted."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Service temporarily unavailable"


def gone_response(request: Request, exc: ConsentGone) -> JSONResponse:
    """410 body disclosing only the terminal state and when it was reached."""
    key = "revokedAt" if exc.consent_status == "revoked" else "expiresAt"
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "status_code": exc.status_code,
            "detail": exc.detail,
            "consent": {
                "id": str(exc.consent_id),
                "status": exc.consent_status,
                key: exc.timestamp.isoformat() if exc.timestamp else None,
            },
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(ConsentError)
    async def consent_exception_handler(request: Request, exc: ConsentError):
        if isinstance(exc, ConsentGone):
            return gone_response(request, exc)
        request_id = getattr(request.state, "request_id", None)
        content = {
            "error": True,
            "status_code": exc.status_code,
            "detail": exc.detail,
            "request_id": request_id,
        }
        if isinstance(exc, ConsentValidationError):
            content["errors"] = exc.errors
        if isinstance(exc, StorageError):
            logger.error("request_id=%s storage failure: %s", request_id, exc)
            content["detail"] = StorageError.detail
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "status_code": exc.status_code,
                "detail": exc.detail,
                "request_id": request_id,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None)
        if request.url.path.startswith(CONSENT_ROUTE_PREFIX):
            # Consent payloads share one 400 shape whether the type check or
            # the field rules reject them.
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": True,
                    "status_code": 400,
                    "detail": "Validation error",
                    "errors": field_errors(exc),
                    "request_id": request_id,
                },
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "status_code": 422,
                "detail": "Validation error",
                "errors": jsonable_errors(exc),
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.exception("request_id=%s unhandled error", request_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "status_code": 500,
                "detail": "Internal server error",
                "request_id": request_id,
            },
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold exception instances that JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


def field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    """Flatten request validation errors to [{field, message}].

    The field is the first location part after the source ("body",
    "query", ...), which for JSON bodies is the camelCase key the client
    sent. A body that is not a JSON object at all reports field "body".
    """
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        field = loc[1] if len(loc) > 1 else (loc[0] if loc else "body")
        errors.append({"field": field, "message": err.get("msg", "Invalid value")})
    return errors
