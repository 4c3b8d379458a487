"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response in the envelope with status, version, and components fields
  - components.database reports 'ok' when the store is reachable
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_env):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_env.client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["error"] is None
    data = body["data"]
    assert data["status"] == "healthy"
    assert data["version"]
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_env):
    """Health endpoint is accessible without any authentication headers."""
    resp = api_env.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


def test_unknown_route_uses_error_envelope(api_env):
    """Framework 404s are rendered in the same envelope as handler errors."""
    resp = api_env.client.get("/api/v1/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "NOT_FOUND"
