"""
CORS tests for the HTTP service.

- CORS is off unless API_CORS_ORIGINS is set
- Only configured origins get CORS headers
- Only GET is allowed cross-origin (the API is read-only)
"""

import importlib
import os

from fastapi.testclient import TestClient


def _make_app(cors_value: str | None = None):
    """Create a fresh app with a specific API_CORS_ORIGINS value.

    CORSMiddleware is added at import time in app.py, so the module is
    reloaded to pick up a different env value.
    """
    env_key = "API_CORS_ORIGINS"
    original = os.environ.get(env_key)

    try:
        if cors_value is None:
            os.environ.pop(env_key, None)
        else:
            os.environ[env_key] = cors_value

        import app as app_module

        importlib.reload(app_module)
        return app_module.app
    finally:
        if original is None:
            os.environ.pop(env_key, None)
        else:
            os.environ[env_key] = original


def _preflight(client, origin: str, method: str = "GET", path: str = "/api/v1/markets"):
    return client.options(
        path,
        headers={"Origin": origin, "Access-Control-Request-Method": method},
    )


class TestCORSDisabledByDefault:
    def test_no_cors_headers_when_unset(self):
        client = TestClient(_make_app(cors_value=None))
        response = _preflight(client, origin="https://dash.example.com")
        assert "access-control-allow-origin" not in response.headers

    def test_no_cors_headers_with_blank_list(self):
        client = TestClient(_make_app(cors_value=" , "))
        response = _preflight(client, origin="https://dash.example.com")
        assert "access-control-allow-origin" not in response.headers


class TestCORSEnabled:
    def test_configured_origins(self):
        client = TestClient(
            _make_app(cors_value="https://dash.example.com, http://localhost:3000")
        )

        r1 = _preflight(client, origin="https://dash.example.com")
        assert r1.headers.get("access-control-allow-origin") == "https://dash.example.com"

        r2 = _preflight(client, origin="http://localhost:3000")
        assert r2.headers.get("access-control-allow-origin") == "http://localhost:3000"

        r3 = _preflight(client, origin="https://evil.com")
        assert "access-control-allow-origin" not in r3.headers

    def test_writes_are_not_allowed(self):
        client = TestClient(_make_app(cors_value="https://dash.example.com"))
        response = _preflight(client, origin="https://dash.example.com", method="DELETE")
        assert response.status_code == 400
