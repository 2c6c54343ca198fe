"""Tests for the health endpoint and error envelope."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_missing_tenant_id_is_validation_error(client: AsyncClient):
    resp = await client.get("/appointments")
    assert resp.status_code == 400
    data = resp.json()
    assert data["success"] is False
    assert data["error"] == "VALIDATION_ERROR"
    assert data["fields"] == ["tenantId"]
