"""Tests for health check endpoints."""

from unittest.mock import patch

import redis
from fastapi.testclient import TestClient


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client: TestClient):
        """Test /health returns 200."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client: TestClient):
        """Test /health/live returns 200."""
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe_healthy(self, client: TestClient):
        """Test /health/ready when the database and broker are up."""
        with patch("procureflow.api.routers.health.redis.from_url") as from_url:
            from_url.return_value.info.return_value = {"redis_version": "7.2.4"}
            response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["redis"]["version"] == "7.2.4"

    def test_readiness_probe_broker_down(self, client: TestClient):
        """Test /health/ready returns 503 when Redis is unreachable."""
        with patch("procureflow.api.routers.health.redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("refused")
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["failed"] == ["redis"]
