"""
Unit tests for request ID middleware.

Tests the RequestIDMiddleware to ensure it correctly generates,
extracts, and propagates request IDs for correlation.
"""

import uuid

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from errors.exceptions import AppException, tracking_disabled
from errors.handlers import handle_app_exception
from middleware.request_id import (
    REQUEST_ID_HEADER,
    RequestIDMiddleware,
    request_id_var,
    resolve_request_id,
)
from telemetry.service import get_request_id


class TestResolveRequestId:
    """Tests for resolve_request_id."""

    @pytest.mark.parametrize("value", ["abc-123", "req.42:retry_1", "a" * 128])
    def test_accepts_sane_ids(self, value):
        assert resolve_request_id(value) == value

    @pytest.mark.parametrize("value", [None, "", "a" * 129, "has space", "new\nline", "<script>"])
    def test_replaces_missing_or_malformed_ids(self, value):
        result = resolve_request_id(value)

        assert result != value
        assert str(uuid.UUID(result)) == result


class TestRequestIDMiddleware:
    """Tests for the RequestIDMiddleware class."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)

        @app.get("/test")
        async def endpoint(request: Request):
            return {
                "request_id_from_state": request.state.request_id,
                "request_id_from_context": request_id_var.get(),
                "request_id_from_telemetry": get_request_id(),
            }

        return TestClient(app)

    def test_generates_request_id_when_not_provided(self, client):
        response = client.get("/test")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert str(uuid.UUID(request_id)) == request_id
        assert response.json()["request_id_from_state"] == request_id

    def test_uses_existing_request_id_from_header(self, client):
        response = client.get("/test", headers={REQUEST_ID_HEADER: "courier-app-77"})

        assert response.headers[REQUEST_ID_HEADER] == "courier-app-77"
        assert response.json() == {
            "request_id_from_state": "courier-app-77",
            "request_id_from_context": "courier-app-77",
            "request_id_from_telemetry": "courier-app-77",
        }

    def test_malformed_header_is_replaced(self, client):
        response = client.get("/test", headers={REQUEST_ID_HEADER: "x" * 200})

        assert response.headers[REQUEST_ID_HEADER] != "x" * 200
        assert len(response.headers[REQUEST_ID_HEADER]) == 36

    def test_different_requests_get_different_ids(self, client):
        first = client.get("/test").headers[REQUEST_ID_HEADER]
        second = client.get("/test").headers[REQUEST_ID_HEADER]

        assert first != second

    def test_context_variable_reset_after_request(self, client):
        client.get("/test", headers={REQUEST_ID_HEADER: "temporary-id"})

        assert request_id_var.get() == ""


class TestRequestIDMiddlewareWithExceptions:
    """Tests for middleware behavior when exceptions occur."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)
        app.add_exception_handler(AppException, handle_app_exception)

        @app.get("/error")
        async def error_endpoint():
            raise ValueError("Test error")

        @app.post("/locations")
        async def locations_endpoint():
            raise tracking_disabled("SHP-1001")

        @app.get("/success")
        async def success_endpoint(request: Request):
            return {"request_id": request.state.request_id}

        return TestClient(app, raise_server_exceptions=False)

    def test_context_variable_reset_even_on_exception(self, client):
        client.get("/error", headers={REQUEST_ID_HEADER: "error-request-id"})

        assert request_id_var.get() == ""

    def test_subsequent_request_works_after_exception(self, client):
        client.get("/error", headers={REQUEST_ID_HEADER: "error-request-id"})

        response = client.get("/success", headers={REQUEST_ID_HEADER: "success-request-id"})

        assert response.json()["request_id"] == "success-request-id"

    def test_error_response_includes_request_id(self, client):
        response = client.post("/locations", headers={REQUEST_ID_HEADER: "error-handler-test-id"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "TRACKING_DISABLED"
        assert response.json()["request_id"] == "error-handler-test-id"
        assert response.headers[REQUEST_ID_HEADER] == "error-handler-test-id"
