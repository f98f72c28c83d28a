import importlib
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def strict_mode_client(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "fake_jwt_secret")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://app.example.com")
    monkeypatch.setenv("CORS_ALLOW_ORIGIN_REGEX", "")

    config_module = importlib.import_module("app.config")
    importlib.reload(config_module)
    main_module = importlib.import_module("app.main")
    main_module = importlib.reload(main_module)

    transport = ASGITransport(app=main_module.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, main_module

    # Restore default test module state after reload in strict-mode tests.
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "")
    importlib.reload(config_module)
    importlib.reload(main_module)


def _assert_error_envelope(payload: dict, code: str) -> None:
    assert "error" in payload
    assert payload["error"]["code"] == code
    assert "message" in payload["error"]
    assert "details" in payload["error"]


@pytest.mark.asyncio
async def test_cors_preflight_allowed_origin_includes_expected_headers(strict_mode_client):
    client, _ = strict_mode_client

    response = await client.options(
        "/api/habits",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "PUT",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code in (200, 204)
    assert response.headers.get("access-control-allow-origin") == "https://app.example.com"
    assert response.headers.get("access-control-allow-credentials") == "true"
    assert "PUT" in response.headers.get("access-control-allow-methods", "")


@pytest.mark.asyncio
async def test_cors_preflight_disallowed_origin_has_no_allow_origin_in_production_strict(strict_mode_client):
    client, _ = strict_mode_client

    response = await client.options(
        "/api/habits",
        headers={
            "Origin": "https://evil.example",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code in (200, 400, 204)
    assert "access-control-allow-origin" not in response.headers


@pytest.mark.asyncio
async def test_login_invalid_credentials_returns_error_envelope(strict_mode_client):
    client, main_module = strict_mode_client

    with patch.object(main_module, "fetch_user_by_email", new_callable=AsyncMock) as mock_fetch:
        mock_fetch.return_value = None

        response = await client.post(
            "/api/auth/login",
            json={"email": "ada@example.com", "password": "hunter22"},
        )

    assert response.status_code == 400
    _assert_error_envelope(response.json(), "INVALID_CREDENTIALS")
    assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_protected_endpoint_without_token_returns_unauthorized_envelope(strict_mode_client):
    client, _ = strict_mode_client

    response = await client.get("/api/auth/me")

    assert response.status_code == 401
    _assert_error_envelope(response.json(), "UNAUTHORIZED")
    assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_unknown_route_returns_not_found_envelope(strict_mode_client):
    client, _ = strict_mode_client

    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    _assert_error_envelope(response.json(), "NOT_FOUND")
