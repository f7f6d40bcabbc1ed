"""
Integration tests for the public API surface.

Tests the full request/response cycle.
"""

import pytest
from fastapi.testclient import TestClient


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client: TestClient):
        """Root endpoint should return welcome message."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "message" in data

    def test_health_endpoint(self, client: TestClient):
        """Health endpoint should return healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"


class TestCheckoutEndpoints:
    """Request validation on billing endpoints."""

    def test_checkout_requires_plan_id(self, client: TestClient, auth_headers):
        """Checkout should require planId."""
        response = client.post("/api/stripe/checkout", json={}, headers=auth_headers)
        assert response.status_code == 422  # Validation error

    def test_checkout_requires_auth(self, client: TestClient):
        response = client.post("/api/stripe/checkout", json={"planId": "x"})
        assert response.status_code == 401


class TestErrorHandlers:
    """Application exceptions render as JSON with the right status."""

    @pytest.fixture
    def failing_client(self, app, client):
        from app.infrastructure.exceptions import DatabaseError, NotFoundError

        @app.get("/api/_test/not-found")
        async def not_found():
            raise NotFoundError("Plan 'free' not found", operation="lookup", table="subscription_plans")

        @app.get("/api/_test/db-error")
        async def db_error():
            raise DatabaseError("connection refused", operation="read", table="subscriptions")

        yield client

        app.router.routes = [
            route for route in app.router.routes
            if not getattr(route, "path", "").startswith("/api/_test/")
        ]

    def test_not_found_is_404(self, failing_client):
        response = failing_client.get("/api/_test/not-found")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_database_error_is_500(self, failing_client):
        response = failing_client.get("/api/_test/db-error")

        assert response.status_code == 500
        assert response.json()["details"]["table"] == "subscriptions"
