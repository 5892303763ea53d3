"""Tests for normalized error responses."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException

from gateway.core.errors import (
    AmbiguousCredentialsError,
    AppError,
    AuthRequiredError,
    EmptyInputError,
    FreeModeUnavailableError,
    InputTooLongError,
    InvalidTokenError,
    PlanForbiddenError,
    RateLimitError,
    ResponderError,
    ValidationError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from gateway.core.metrics import admission_rejections_total
from gateway.core.middleware.request_id import RequestIdMiddleware


@pytest.mark.parametrize("error,code,status", [
    (EmptyInputError("message"), "empty_input", 400),
    (InputTooLongError("message", 2000), "input_too_long", 400),
    (ValidationError("bad"), "validation_error", 400),
    (AmbiguousCredentialsError("both"), "ambiguous_credentials", 400),
    (AuthRequiredError("who"), "auth_required", 401),
    (InvalidTokenError("bad token"), "invalid_token", 401),
    (PlanForbiddenError("x", "free", ["compliance"]), "plan_forbidden", 403),
    (RateLimitError(retry_after=5), "rate_limited", 429),
    (ResponderError("down"), "responder_unavailable", 502),
    (FreeModeUnavailableError("off"), "free_mode_unconfigured", 503),
])
def test_error_taxonomy(error, code, status):
    assert isinstance(error, AppError)
    assert error.code == code
    assert error.status_code == status


def test_rate_limit_retry_after_rounds_up():
    assert RateLimitError(retry_after=0.2).retry_after == 1
    assert RateLimitError(retry_after=59.01).retry_after == 60


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/limited")
    async def limited():
        raise RateLimitError("slow down", retry_after=12.5, limit=10, plan="free")

    @app.get("/forbidden")
    async def forbidden():
        raise PlanForbiddenError("sourcing", "free", ["compliance", "science"])

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return app


def test_app_error_shape():
    client = TestClient(_make_app())
    resp = client.get("/forbidden")
    rid = resp.headers.get("x-request-id")
    assert resp.status_code == 403
    assert resp.json() == {
        "error": "Capability 'sourcing' is not available on the 'free' plan",
        "code": "plan_forbidden",
        "request_id": rid,
        "capability": "sourcing",
        "plan": "free",
        "available": ["compliance", "science"],
    }
    assert admission_rejections_total.value(labels={"code": "plan_forbidden"}) == 1


def test_rate_limit_headers_and_body():
    client = TestClient(_make_app())
    resp = client.get("/limited")
    assert resp.status_code == 429
    body = resp.json()
    assert body["retryAfter"] == 13
    assert body["limit"] == 10
    assert body["plan"] == "free"
    assert resp.headers["Retry-After"] == "13"
    assert resp.headers["X-RateLimit-Limit"] == "10"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["X-RateLimit-Reset"] == "13"


def test_not_found_is_normalized():
    client = TestClient(_make_app())
    resp = client.get("/nope")
    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == "not_found"
    assert body["request_id"] == resp.headers.get("x-request-id")


def test_unhandled_error_is_500_without_details():
    client = TestClient(_make_app(), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "internal_error"
    assert "kaboom" not in resp.text
