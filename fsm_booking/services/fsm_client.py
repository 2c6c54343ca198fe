"""FSM platform client — OAuth client-credentials token + Data API activities."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from fsm_booking.core import cache
from fsm_booking.core.config import Settings, get_settings
from fsm_booking.core.errors import UpstreamError
from fsm_booking.models.appointment import FsmObjectRef
from fsm_booking.models.base import CamelModel
from fsm_booking.models.tenant import Tenant

logger = logging.getLogger(__name__)

ACTIVITY_DTO_VERSION = "Activity.43"
# Seconds shaved off ``expires_in`` so a cached token is never used at the edge
TOKEN_EXPIRY_MARGIN = 60


class FsmActivity(CamelModel):
    id: str
    code: str | None = None
    subject: str | None = None
    status: str | None = None
    start_date_time: str | None = None
    end_date_time: str | None = None
    business_partner: str | None = None
    object: FsmObjectRef | None = None
    responsibles: list[str] = []
    type: str | None = None
    execution_stage: str | None = None
    service_call_id: str | None = None
    service_call_number: str | None = None
    equipment: str | None = None
    has_instance: bool = False


def cluster_base_url(cluster: str) -> str:
    """``eu`` -> ``https://eu.fsm.cloud.sap``; full URLs pass through."""
    if cluster.startswith(("http://", "https://")):
        return cluster.rstrip("/")
    return f"https://{cluster}.fsm.cloud.sap"


# ── Response decoding ────────────────────────────────────────
# Shapes the Data API has been seen to return, tried in this order.

def _data_envelope(payload: Any) -> list | None:
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, list) and all(isinstance(i, dict) and "activity" in i for i in data):
        return [item["activity"] for item in data]
    return None


def _bare_list(payload: Any) -> list | None:
    return payload if isinstance(payload, list) else None


def _odata_value(payload: Any) -> list | None:
    value = payload.get("value") if isinstance(payload, dict) else None
    return value if isinstance(value, list) else None


def _results(payload: Any) -> list | None:
    results = payload.get("results") if isinstance(payload, dict) else None
    return results if isinstance(results, list) else None


_DECODERS: tuple[tuple[str, Callable[[Any], list | None]], ...] = (
    ("data", _data_envelope),
    ("list", _bare_list),
    ("value", _odata_value),
    ("results", _results),
)


def decode_activities(payload: Any) -> list[FsmActivity]:
    """Decode a Data API payload; raise ``UpstreamError`` if no shape matches."""
    for shape, decoder in _DECODERS:
        items = decoder(payload)
        if items is None:
            continue
        try:
            return [FsmActivity.model_validate(item) for item in items]
        except PydanticValidationError as exc:
            raise UpstreamError(
                f"Malformed activity in FSM response ({shape} shape)"
            ) from exc
    raise UpstreamError("Unrecognized FSM activities response")


# ── Client ───────────────────────────────────────────────────

class FsmClient:
    """Talks to one tenant's FSM cluster. Fixed timeout, no retries."""

    def __init__(
        self,
        tenant: Tenant,
        client_secret: str,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.tenant = tenant
        self._client_secret = client_secret
        self.settings = settings or get_settings()
        self.base_url = cluster_base_url(tenant.cluster)
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.fsm_http_timeout,
            transport=self._transport,
        )

    def _identity_headers(self) -> dict[str, str]:
        return {
            "X-Account-ID": self.tenant.account_id,
            "X-Company-ID": self.tenant.company_id,
        }

    async def get_bearer_token(self) -> str:
        cache_key = ("fsm-token", self.tenant.tenant_id)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        url = f"{self.base_url}/api/oauth2/v1/token"
        try:
            async with self._http() as client:
                resp = await client.post(
                    url,
                    data={"grant_type": "client_credentials"},
                    auth=(self.tenant.client_id, self._client_secret),
                    headers={**self._identity_headers(), "Accept": "application/json"},
                )
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "FSM token request for tenant %s failed: %s",
                self.tenant.tenant_id, exc.response.status_code,
            )
            raise UpstreamError(
                f"FSM token request failed with status {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("FSM token request for tenant %s failed", self.tenant.tenant_id)
            raise UpstreamError("No valid response from FSM token endpoint") from exc

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise UpstreamError("No access token received from FSM")

        expires_in = body.get("expires_in") or 0
        if expires_in > TOKEN_EXPIRY_MARGIN:
            cache.put(cache_key, token, ttl=expires_in - TOKEN_EXPIRY_MARGIN)
        return token

    async def list_activities(self) -> list[FsmActivity]:
        token = await self.get_bearer_token()
        url = f"{self.base_url}/api/data/v4/Activity"
        params = {
            "dtos": ACTIVITY_DTO_VERSION,
            "pageSize": str(self.settings.fsm_activity_page_size),
        }
        headers = {
            "Authorization": f"Bearer {token}",
            **self._identity_headers(),
            "X-Client-ID": self.settings.fsm_client_id,
            "X-Client-Version": self.settings.fsm_client_version,
            "Accept": "application/json",
        }
        try:
            async with self._http() as client:
                resp = await client.get(url, params=params, headers=headers)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                cache.invalidate(("fsm-token", self.tenant.tenant_id))
            logger.warning(
                "FSM activities request for tenant %s failed: %s",
                self.tenant.tenant_id, exc.response.status_code,
            )
            raise UpstreamError(
                f"FSM Data API error: {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("FSM activities request for tenant %s failed", self.tenant.tenant_id)
            raise UpstreamError("No valid response from FSM Data API") from exc

        return decode_activities(payload)
