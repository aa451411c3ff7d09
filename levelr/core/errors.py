"""Error normalization and handlers."""

import logging
import builtins
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from levelr.core.config import settings
from levelr.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class AuthenticationError(AppError):
    code = "authentication_required"
    status_code = 401


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class DevelopmentOnlyError(PermissionError):
    """Raised when a development helper is called outside development."""
    code = "development_only"


class UpstreamError(AppError):
    code = "upstream_error"
    status_code = 502


class ServiceUnavailableError(AppError):
    code = "service_unavailable"
    status_code = 503


class GateError(AppError):
    """Gate denial carrying a machine-readable reason for upgrade prompts."""

    def __init__(
        self,
        reason: str,
        message: str,
        *,
        status_code: int,
        feature: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message, code=reason, status_code=status_code, request_id=request_id)
        self.reason = reason
        self.feature = feature

    def payload(self) -> dict:
        body = {"reason": self.reason, "message": self.message}
        if self.feature:
            body["feature"] = self.feature
        return body


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


def _expose_details(request: Request) -> bool:
    cfg = getattr(request.app.state, "settings", None) or settings
    return not cfg.is_production


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid)
    logger = logging.getLogger("levelr")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def gate_error_handler(request: Request, exc: GateError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("levelr")
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.INFO,
        "gate.denied",
        extra={"request_id": rid, "reason": exc.reason, "feature": exc.feature, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=exc.payload())
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else (first.get("msg") or "Invalid request body")
    logger = logging.getLogger("levelr")
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    response = JSONResponse(status_code=400, content=_error_payload("validation_error", message, rid))
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("levelr")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("levelr")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    message = f"Unexpected error: {exc}" if _expose_details(request) else "Unexpected error"
    payload = _error_payload("internal_error", message, rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
