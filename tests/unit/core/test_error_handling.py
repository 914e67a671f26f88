"""
Tests for error handling middleware and exception handlers.
Covers the error envelope, lifecycle error mapping and message sanitization.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, OperationalError

from core.errors import (
    Conflict,
    DuplicateApplication,
    Forbidden,
    InvalidStatus,
    InvalidTransition,
    JobNotAcceptingApplications,
    JobNotFound,
    LifecycleError,
    NotFound,
    TalentProfileRequired,
    Unavailable,
)
from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    error_response,
    sanitize_error_message,
    setup_error_handlers,
)


def _operational_error():
    return OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))


class Payload(BaseModel):
    name: str = Field(min_length=2)


def build_app(debug: bool = False, handlers: bool = True) -> FastAPI:
    app = FastAPI()
    if handlers:
        setup_error_handlers(app)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)

    @app.get("/conflict")
    async def conflict():
        raise Conflict()

    @app.get("/forbidden")
    async def forbidden():
        raise Forbidden("You are not allowed to set status 'withdrawn'")

    @app.get("/store-down")
    async def store_down():
        raise _operational_error()

    @app.get("/integrity")
    async def integrity():
        raise IntegrityError("INSERT", {}, Exception("constraint"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError('failed with password="hunter2"')

    @app.post("/validate")
    async def validate(payload: Payload):
        return payload

    return app


class TestErrorTaxonomy:
    """Status codes and retryability of lifecycle errors."""

    @pytest.mark.parametrize("error_cls,status_code,code,retryable", [
        (NotFound, 404, "NOT_FOUND", False),
        (JobNotAcceptingApplications, 400, "JOB_NOT_ACCEPTING_APPLICATIONS", False),
        (DuplicateApplication, 409, "DUPLICATE_APPLICATION", False),
        (TalentProfileRequired, 400, "TALENT_PROFILE_REQUIRED", False),
        (InvalidTransition, 409, "INVALID_TRANSITION", False),
        (InvalidStatus, 422, "INVALID_STATUS", False),
        (Forbidden, 403, "FORBIDDEN", False),
        (Conflict, 409, "CONFLICT", True),
        (Unavailable, 503, "UNAVAILABLE", True),
    ])
    def test_error_kinds(self, error_cls, status_code, code, retryable):
        error = error_cls()
        assert isinstance(error, LifecycleError)
        assert error.status_code == status_code
        assert error.code == code
        assert error.retryable is retryable
        assert error.to_dict() == {
            "code": code, "message": error.default_message, "retryable": retryable,
        }

    def test_missing_job_is_both_not_found_and_not_accepting(self):
        error = JobNotFound(job_id=3)
        assert isinstance(error, NotFound)
        assert isinstance(error, JobNotAcceptingApplications)
        assert error.status_code == 404
        assert error.context == {"job_id": 3}

    def test_custom_message(self):
        assert str(Forbidden("Only admins")) == "Only admins"


class TestSanitization:
    """Secrets never reach error responses."""

    @pytest.mark.parametrize("message", [
        'password="secret123"',
        'token: abc.def.ghi',
        'api_key=sk_live_12345',
        'client_secret: xyz',
        'SSN 123-45-6789',
        'card 4111111111111111',
    ])
    def test_redacts(self, message):
        assert "[REDACTED]" in sanitize_error_message(message)

    @pytest.mark.parametrize("message", [
        "Application not found",
        "Job is closed and not accepting applications",
        "count=12345",
    ])
    def test_keeps_safe_messages(self, message):
        assert sanitize_error_message(message) == message

    def test_accepts_non_strings(self):
        assert sanitize_error_message(404) == "404"

    def test_error_response_envelope(self):
        response = error_response(409, "CONFLICT", "stale", "/x", "PATCH", retryable=True)
        assert response.status_code == 409
        assert response.body == (
            b'{"error":{"code":"CONFLICT","message":"stale","path":"/x",'
            b'"method":"PATCH","retryable":true}}'
        )


class TestExceptionHandlers:
    """Errors raised inside routes."""

    def test_lifecycle_error(self):
        client = TestClient(build_app())

        response = client.get("/conflict")

        assert response.status_code == 409
        assert response.json() == {
            "error": {
                "code": "CONFLICT",
                "message": Conflict.default_message,
                "path": "/conflict",
                "method": "GET",
                "retryable": True,
            }
        }

    def test_forbidden_message_passes_through(self):
        response = TestClient(build_app()).get("/forbidden")

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "You are not allowed to set status 'withdrawn'"

    def test_store_unavailable(self):
        response = TestClient(build_app()).get("/store-down")

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "UNAVAILABLE"
        assert error["retryable"] is True

    def test_other_database_errors(self):
        response = TestClient(build_app()).get("/integrity")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"

    def test_validation_error(self):
        response = TestClient(build_app()).post("/validate", json={"name": "x"})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"][0]["field"] == "body.name"
        assert error["details"][0]["input"] == "x"

    def test_unknown_route(self):
        response = TestClient(build_app()).get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestMiddlewareSafetyNet:
    """Errors that escape every handler."""

    def test_unhandled_exception_is_hidden(self):
        client = TestClient(build_app(), raise_server_exceptions=False)

        response = client.get("/boom")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_SERVER_ERROR"
        assert error["message"] == "An unexpected error occurred"
        assert "details" not in error
        assert "hunter2" not in response.text

    def test_debug_details_are_sanitized(self):
        client = TestClient(build_app(debug=True), raise_server_exceptions=False)

        response = client.get("/boom")

        details = response.json()["error"]["details"]
        assert details["type"] == "RuntimeError"
        assert "hunter2" not in details["message"]

    def test_middleware_alone_maps_lifecycle_and_store_errors(self):
        client = TestClient(build_app(handlers=False), raise_server_exceptions=False)

        conflict = client.get("/conflict", headers={"X-Request-ID": "abc"})
        store_down = client.get("/store-down")

        assert conflict.status_code == 409
        assert conflict.json()["error"]["request_id"] == "abc"
        assert store_down.status_code == 503
        assert store_down.json()["error"]["code"] == "UNAVAILABLE"
