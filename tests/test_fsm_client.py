"""Tests for the FSM platform client and the activities endpoint."""

import base64
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from fsm_booking.api.deps import get_fsm_client_factory
from fsm_booking.core import cache
from fsm_booking.core.errors import UpstreamError
from fsm_booking.main import app
from fsm_booking.models.appointment import AppointmentInstance
from fsm_booking.models.base import utcnow
from fsm_booking.models.tenant import Tenant
from fsm_booking.services.fsm_client import FsmClient, cluster_base_url, decode_activities
from tests.payloads import activity_payload, tenant_payload

TENANT_ID = "86810_111214"


@pytest.fixture(autouse=True)
def _clear_token_cache():
    cache.clear()
    yield
    cache.clear()


def _tenant(cluster: str = "eu") -> Tenant:
    now = utcnow()
    return Tenant(
        tenant_id=TENANT_ID, account_id="86810", account_name="Acme Account",
        company_id="111214", company_name="Acme Field Service", cluster=cluster,
        contact_company_name="Acme Ltd", contact_full_name="Sam Dispatcher",
        contact_email_address="sam@acme-service.com", client_id="0001531a-acme",
        encrypted_client_secret="unused", valid_from=now, valid_to=now, is_active=True,
    )


class FsmStub:
    """Minimal FSM cluster: OAuth token endpoint plus the Activity Data API."""

    def __init__(self, activities_body=None, activities_status: int = 200, token_status: int = 200):
        self.activities_body = activities_body if activities_body is not None else {
            "data": [{"activity": activity_payload("A1")}, {"activity": activity_payload("A2")}],
        }
        self.activities_status = activities_status
        self.token_status = token_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/oauth2/v1/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "tok-123", "expires_in": 3600})
        if request.url.path == "/api/data/v4/Activity":
            return httpx.Response(self.activities_status, json=self.activities_body)
        return httpx.Response(404)

    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/token")]


def _client(stub: FsmStub, cluster: str = "eu") -> FsmClient:
    return FsmClient(_tenant(cluster), "super-secret-value", transport=httpx.MockTransport(stub))


# ── Client ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_token_request_uses_client_credentials():
    stub = FsmStub()
    token = await _client(stub).get_bearer_token()

    assert token == "tok-123"
    request = stub.requests[0]
    assert str(request.url) == "https://eu.fsm.cloud.sap/api/oauth2/v1/token"
    assert request.method == "POST"
    expected = base64.b64encode(b"0001531a-acme:super-secret-value").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.headers["X-Account-ID"] == "86810"
    assert request.headers["X-Company-ID"] == "111214"
    assert b"grant_type=client_credentials" in request.content


@pytest.mark.asyncio
async def test_list_activities_request_shape():
    stub = FsmStub()
    activities = await _client(stub).list_activities()

    assert [a.id for a in activities] == ["A1", "A2"]
    request = stub.requests[-1]
    assert request.url.params["dtos"] == "Activity.43"
    assert request.url.params["pageSize"] == "50"
    assert request.headers["Authorization"] == "Bearer tok-123"
    assert "X-Client-ID" in request.headers


@pytest.mark.asyncio
async def test_token_is_cached_per_tenant():
    stub = FsmStub()
    client = _client(stub)

    await client.list_activities()
    await client.list_activities()

    assert len(stub.token_requests()) == 1


@pytest.mark.asyncio
async def test_unauthorized_drops_cached_token():
    stub = FsmStub(activities_status=401, activities_body={"error": "expired"})
    client = _client(stub)

    with pytest.raises(UpstreamError):
        await client.list_activities()
    assert cache.get(("fsm-token", TENANT_ID)) is None


@pytest.mark.asyncio
async def test_token_failure_is_upstream_error():
    stub = FsmStub(token_status=401)

    with pytest.raises(UpstreamError) as exc_info:
        await _client(stub).list_activities()
    assert "401" in exc_info.value.message


@pytest.mark.asyncio
async def test_custom_cluster_url():
    stub = FsmStub()
    await _client(stub, cluster="https://fsm.internal.example.com/").get_bearer_token()

    assert stub.requests[0].url.host == "fsm.internal.example.com"


def test_cluster_base_url():
    assert cluster_base_url("de") == "https://de.fsm.cloud.sap"
    assert cluster_base_url("https://x.example.com/") == "https://x.example.com"


# ── Response decoding ───────────────────────────────────────


@pytest.mark.parametrize("payload", [
    {"data": [{"activity": activity_payload("A1")}]},
    [activity_payload("A1")],
    {"value": [activity_payload("A1")]},
    {"results": [activity_payload("A1")]},
])
def test_decode_known_shapes(payload):
    activities = decode_activities(payload)

    assert len(activities) == 1
    assert activities[0].id == "A1"
    assert activities[0].object.object_id == "SC-A1"


def test_decode_unrecognized_shape():
    with pytest.raises(UpstreamError):
        decode_activities({"items": [activity_payload("A1")]})


def test_decode_malformed_item():
    with pytest.raises(UpstreamError):
        decode_activities([{"subject": "no id"}])


# ── /activities ─────────────────────────────────────────────


async def _with_stub(client: AsyncClient, stub: FsmStub) -> None:
    app.dependency_overrides[get_fsm_client_factory] = lambda: (
        lambda tenant, secret: FsmClient(tenant, secret, transport=httpx.MockTransport(stub))
    )
    resp = await client.post("/tenant", json=tenant_payload())
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_activities_flag_existing_instances(client: AsyncClient):
    stub = FsmStub()
    await _with_stub(client, stub)
    await client.post(
        "/appointments",
        params={"tenantId": TENANT_ID},
        json={"activities": [activity_payload("A1")]},
    )

    resp = await client.get("/activities", params={"tenantId": TENANT_ID})
    assert resp.status_code == 200
    flags = {a["id"]: a["hasInstance"] for a in resp.json()["data"]}
    assert flags == {"A1": True, "A2": False}

    # Decrypted secret went out on the token request
    expected = base64.b64encode(b"0001531a-acme:super-secret-value").decode()
    assert stub.token_requests()[0].headers["Authorization"] == f"Basic {expected}"


async def _link(client: AsyncClient, activity_id: str) -> dict:
    resp = await client.post(
        "/appointments",
        params={"tenantId": TENANT_ID},
        json={"activities": [activity_payload(activity_id)]},
    )
    return resp.json()["data"]["instances"][0]


async def _activity_flags(client: AsyncClient) -> dict[str, bool]:
    resp = await client.get("/activities", params={"tenantId": TENANT_ID})
    assert resp.status_code == 200
    return {a["id"]: a["hasInstance"] for a in resp.json()["data"]}


@pytest.mark.asyncio
async def test_expired_link_frees_activity(client: AsyncClient, session):
    await _with_stub(client, FsmStub())
    instance = await _link(client, "A1")
    assert (await _activity_flags(client))["A1"] is True

    row = await session.get(AppointmentInstance, (TENANT_ID, instance["instanceId"]))
    row.valid_until = utcnow() - timedelta(days=1)
    session.add(row)
    await session.commit()

    assert await _activity_flags(client) == {"A1": False, "A2": False}


@pytest.mark.asyncio
async def test_rejected_booking_frees_activity(client: AsyncClient):
    await _with_stub(client, FsmStub())
    instance = await _link(client, "A1")
    await client.put(
        f"/appointments/token/{instance['customerAccessToken']}",
        json={"customerName": "Jane Doe", "customerEmail": "jane@x.com"},
    )
    assert (await _activity_flags(client))["A1"] is True

    resp = await client.put(
        f"/appointments/{instance['instanceId']}/response",
        params={"tenantId": TENANT_ID},
        json={"response": "reject", "respondedBy": "dispatcher"},
    )
    assert resp.status_code == 200

    assert await _activity_flags(client) == {"A1": False, "A2": False}


@pytest.mark.asyncio
async def test_activities_storage_failure(client: AsyncClient):
    await _with_stub(client, FsmStub())

    failing_execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
    with patch.object(AsyncSession, "execute", failing_execute):
        resp = await client.get("/activities", params={"tenantId": TENANT_ID})

    assert resp.status_code == 500
    assert resp.json()["error"] == "STORAGE_ERROR"


@pytest.mark.asyncio
async def test_activities_with_unreadable_client_secret(client: AsyncClient, session):
    stub = FsmStub()
    await _with_stub(client, stub)
    tenant = await session.get(Tenant, TENANT_ID)
    tenant.encrypted_client_secret = "not-fernet-ciphertext"
    session.add(tenant)
    await session.commit()

    resp = await client.get("/activities", params={"tenantId": TENANT_ID})

    assert resp.status_code == 500
    assert resp.json()["error"] == "STORAGE_ERROR"
    assert stub.requests == []


@pytest.mark.asyncio
async def test_activities_upstream_failure(client: AsyncClient):
    await _with_stub(client, FsmStub(activities_status=500, activities_body={}))

    resp = await client.get("/activities", params={"tenantId": TENANT_ID})
    assert resp.status_code == 502
    assert resp.json()["error"] == "UPSTREAM_ERROR"


@pytest.mark.asyncio
async def test_activities_unknown_tenant(client: AsyncClient):
    resp = await client.get("/activities", params={"tenantId": "nobody_here"})
    assert resp.status_code == 404
