"""Unit tests for the global exception handlers.

All tests use a standalone FastAPI app with inline routes so that
no engine, database or provider is needed.
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from finbuild.errors import (
    CompletionFailedError,
    GenerationFailedError,
    MissingVariableError,
    ProjectNotFoundError,
    RateLimitedError,
    VersionConflictError,
)
from finbuild.middleware import RequestIDMiddleware
from finbuild.middleware.exception_handler import setup_exception_handlers


@pytest.fixture()
def test_app() -> FastAPI:
    """A minimal app with the handlers and request-id middleware registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/raise-unhandled")
    async def _raise_unhandled() -> None:
        raise RuntimeError("something went very wrong")

    @app.get("/raise-http-403")
    async def _raise_http_403() -> None:
        raise HTTPException(status_code=403, detail="Not your desk")

    class Order(BaseModel):
        symbol: str
        quantity: float

    @app.post("/validate")
    async def _validate(order: Order) -> dict:
        return order.model_dump()

    @app.get("/raise-value-error")
    async def _raise_value_error() -> None:
        raise ValueError("Invalid symbol")

    @app.get("/raise-project-not-found")
    async def _raise_not_found() -> None:
        raise ProjectNotFoundError()

    @app.get("/raise-missing-variable")
    async def _raise_missing() -> None:
        raise MissingVariableError("generate_blueprint", ["projectName", "techStack"])

    @app.get("/raise-rate-limited")
    async def _raise_rate_limited() -> None:
        raise RateLimitedError("anthropic rate limit persisted after 4 attempts", attempts=4)

    @app.get("/raise-completion-failed")
    async def _raise_completion_failed() -> None:
        raise CompletionFailedError("anthropic API 500: overloaded", provider_status=500)

    @app.get("/raise-generation-failed")
    async def _raise_generation_failed() -> None:
        raise GenerationFailedError("No files generated")

    @app.get("/raise-conflict")
    async def _raise_conflict() -> None:
        raise VersionConflictError()

    @app.get("/ok")
    async def _ok() -> dict:
        return {"status": "ok"}

    return app


@pytest.fixture()
def client(test_app: FastAPI) -> TestClient:
    return TestClient(test_app, raise_server_exceptions=False)


# ------------------------------------------------------------------
# Generic unhandled exception → 500
# ------------------------------------------------------------------

def test_unhandled_exception_returns_500(client: TestClient) -> None:
    response = client.get("/raise-unhandled")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal Server Error"
    assert body["request_id"]


def test_unhandled_exception_does_not_leak_message(client: TestClient) -> None:
    body = client.get("/raise-unhandled").json()
    assert "something went very wrong" not in str(body)


def test_unhandled_exception_is_logged_with_traceback(client: TestClient) -> None:
    with patch("finbuild.middleware.exception_handler.logger") as mock_logger:
        client.get("/raise-unhandled")
    mock_logger.error.assert_called_once()
    call_args = mock_logger.error.call_args
    assert "GET" in str(call_args)
    assert "/raise-unhandled" in str(call_args)
    assert call_args.kwargs.get("exc_info") is not None


# ------------------------------------------------------------------
# Framework errors
# ------------------------------------------------------------------

def test_http_exception_preserves_status(client: TestClient) -> None:
    response = client.get("/raise-http-403")
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "Forbidden"
    assert body["detail"] == "Not your desk"


def test_validation_error_returns_422(client: TestClient) -> None:
    response = client.post("/validate", json={"symbol": "EURUSD"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation failed"
    assert isinstance(body["detail"], list)


def test_value_error_returns_400(client: TestClient) -> None:
    response = client.get("/raise-value-error")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid symbol"


# ------------------------------------------------------------------
# Domain errors → mapped status
# ------------------------------------------------------------------

@pytest.mark.parametrize("path, status_code, error", [
    ("/raise-project-not-found", 404, "Not Found"),
    ("/raise-completion-failed", 502, "Bad Gateway"),
    ("/raise-generation-failed", 502, "Bad Gateway"),
    ("/raise-conflict", 409, "Conflict"),
])
def test_domain_errors_map_to_status(client: TestClient, path, status_code, error) -> None:
    response = client.get(path)
    assert response.status_code == status_code
    assert response.json()["error"] == error


def test_missing_variable_lists_names(client: TestClient) -> None:
    response = client.get("/raise-missing-variable")
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["missing"] == ["projectName", "techStack"]
    assert "generate_blueprint" in detail["message"]


def test_rate_limited_sets_retry_after(client: TestClient) -> None:
    response = client.get("/raise-rate-limited")
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"


def test_request_id_is_echoed_in_error_body(client: TestClient) -> None:
    response = client.get("/raise-project-not-found", headers={"X-Request-ID": "req-77"})
    assert response.json()["request_id"] == "req-77"
    assert response.headers["X-Request-ID"] == "req-77"


def test_successful_request_not_affected(client: TestClient) -> None:
    response = client.get("/ok")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
