"""Typed admission errors and FastAPI handlers.

Every rejection leaves the gateway as ``{"error", "code", "request_id", ...}``
with an explicit status code; nothing is silently downgraded.
"""

import logging
import math
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from gateway.core.logging import get_request_id
from gateway.core.metrics import admission_rejections_total


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

    def details(self) -> Dict[str, Any]:
        """Extra body fields merged into the error payload."""
        return {}

    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class EmptyInputError(ValidationError):
    code = "empty_input"

    def __init__(self, field: str, **kwargs):
        super().__init__(f"{field} must not be empty", **kwargs)
        self.field = field

    def details(self) -> Dict[str, Any]:
        return {"field": self.field}


class InputTooLongError(ValidationError):
    code = "input_too_long"

    def __init__(self, field: str, max_length: int, **kwargs):
        super().__init__(f"{field} too long. Maximum {max_length} characters allowed.", **kwargs)
        self.field = field
        self.max_length = max_length

    def details(self) -> Dict[str, Any]:
        return {"field": self.field, "maxLength": self.max_length}


class AmbiguousCredentialsError(ValidationError):
    code = "ambiguous_credentials"


class AuthRequiredError(AppError):
    code = "auth_required"
    status_code = 401


class InvalidTokenError(AppError):
    code = "invalid_token"
    status_code = 401


class PlanForbiddenError(AppError):
    """Capability outside the caller's plan; carries the entitlements for an upgrade path."""
    code = "plan_forbidden"
    status_code = 403

    def __init__(self, capability: str, plan: str, available: Iterable[str], *, upgrade_url: Optional[str] = None, **kwargs):
        super().__init__(f"Capability '{capability}' is not available on the '{plan}' plan", **kwargs)
        self.capability = capability
        self.plan = plan
        self.available = list(available)
        self.upgrade_url = upgrade_url

    def details(self) -> Dict[str, Any]:
        payload = {"capability": self.capability, "plan": self.plan, "available": self.available}
        if self.upgrade_url:
            payload["upgradeUrl"] = self.upgrade_url
        return payload


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: float = 1, limit: Optional[int] = None, plan: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = max(1, int(math.ceil(retry_after)))
        self.limit = limit
        self.plan = plan

    def details(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"retryAfter": self.retry_after}
        if self.limit is not None:
            payload["limit"] = self.limit
        if self.plan:
            payload["plan"] = self.plan
        return payload

    def headers(self) -> Dict[str, str]:
        headers = {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(self.retry_after),
        }
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        return headers


class ResponderError(AppError):
    code = "responder_unavailable"
    status_code = 502


class FreeModeUnavailableError(AppError):
    code = "free_mode_unconfigured"
    status_code = 503


class ConfigurationError(RuntimeError):
    """Bad static configuration; raised at startup, never per request."""


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, extra: Optional[Dict[str, Any]] = None) -> dict:
    payload = {"error": message, "code": code, "request_id": request_id}
    if extra:
        payload.update(extra)
    return payload


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details())
    logger = logging.getLogger("gateway")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    admission_rejections_total.inc(labels={"code": exc.code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    for name, value in exc.headers().items():
        response.headers[name] = value
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("gateway")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    problems = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    logging.getLogger("gateway").warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error"})
    admission_rejections_total.inc(labels={"code": "validation_error"})
    payload = _error_payload("validation_error", "Invalid request body", rid, {"problems": problems})
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("gateway")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
