"""Tests for global exception handlers.

Validates that rate limiting errors map to consistent HTTP status codes and
error bodies, and that unexpected errors leak no internals.
"""

import asyncio
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from limitr.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    MalformedReplyAppError,
    StorageAppError,
)
from limitr.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_storage_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/storage")
        async def storage_endpoint():
            raise StorageAppError(
                code="storage_redis_error",
                message="Redis reset failed",
                details={"storage": "redis", "operation": "reset"},
            )

        response = client.get("/storage")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "storage_redis_error"
        assert data["error"]["details"]["storage"] == "redis"
        assert "request_id" in data["error"]

    def test_malformed_reply_is_a_storage_error(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/malformed")
        async def malformed_endpoint():
            raise MalformedReplyAppError(code="storage_empty_reply", message="Empty reply")

        response = client.get("/malformed")

        assert response.status_code == 503
        assert "details" not in response.json()["error"]

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/config")
        async def config_endpoint():
            raise ConfigurationAppError(
                code="redis_storage_not_configured",
                message="Redis configuration or client is required when using redis storage",
            )

        response = client.get("/config")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "redis_storage_not_configured"

    def test_base_app_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/generic")
        async def generic_endpoint():
            raise AppError(code="bad_input", message="Bad input")

        response = client.get("/generic")

        assert response.status_code == 400


class TestGeneralExceptionHandler:
    """Test the safety-net handler directly (TestClient re-raises server errors)."""

    def test_returns_generic_500_without_internals(self, make_request):
        request = make_request("/boom")
        exc = RuntimeError("connection string postgresql://user:secret@db/limits")

        response = asyncio.run(general_exception_handler(request, exc))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["error"]["code"] == "internal_server_error"
        assert "secret" not in response.body.decode()


class TestAuthenticationMapping:
    def test_authentication_error_returns_403(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/auth")
        async def auth_endpoint():
            raise AuthenticationAppError(code="invalid_api_key", message="Invalid or missing API key")

        response = client.get("/auth")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"
