"""Middleware tests — request ID, CORS, error handling."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert "x-request-id" in response.headers
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """A request ID forwarded by the progress service is echoed back."""
    response = await client.get("/health", headers={"X-Request-Id": "progress-abc-123"})
    assert response.headers["x-request-id"] == "progress-abc-123"


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/gamification/config",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_cors_rejects_unknown_origin(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"Origin": "http://evil.example"})
    assert "access-control-allow-origin" not in response.headers


@pytest.mark.asyncio
async def test_404_is_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_validation_error_format(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/gamification/events/lesson-complete",
        json={"user_id": "u1"},
        headers={"X-Service-Token": "test-service-token"},
    )
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert any(err["loc"][-1] == "lesson_id" for err in data["errors"])
