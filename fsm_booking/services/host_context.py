"""Host shell handshake — resolves account / company / user identity.

The embedding FSM shell answers a ``REQUIRE_CONTEXT`` request with the
current identity. The bridge is constructed explicitly and handed to the
components that need identity; there is no process-wide instance.

States::

    uninitialized ─▶ awaiting_host ─┬─▶ ready      (host answered)
                                    ├─▶ fallback   (timeout / host error)
                                    └─▶ failed     (no host channel)

In fallback mode identity is parsed from the page URL query and the
referrer, with ``"unknown"`` for anything missing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol
from urllib.parse import parse_qs, urlsplit

from fsm_booking.core.config import Settings, get_settings
from fsm_booking.core.errors import UpstreamError
from fsm_booking.models.tenant import make_tenant_id

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
DEFAULT_HANDSHAKE_TIMEOUT = 10.0
QUERY_TIMEOUT = 5.0
MODAL_TIMEOUT = 30.0


class ShellEvent(StrEnum):
    REQUIRE_CONTEXT = "V1.REQUIRE_CONTEXT"
    ERROR = "V1.ERROR"
    SHOW_NOTIFICATION = "V1.SHOW_NOTIFICATION"
    OPEN_MODAL = "V1.OPEN_MODAL"
    MODAL_RESPONSE = "V1.MODAL_RESPONSE"
    NAVIGATE = "V1.NAVIGATE"
    GET_SETTINGS = "V1.GET_SETTINGS"
    GET_STORAGE_ITEM = "V1.GET_STORAGE_ITEM"
    GET_PERMISSIONS = "V3.GET_PERMISSIONS"


class BridgeState(StrEnum):
    UNINITIALIZED = "uninitialized"
    AWAITING_HOST = "awaiting_host"
    READY = "ready"
    FALLBACK = "fallback"
    FAILED = "failed"


class HostChannel(Protocol):
    """Message channel to the embedding shell."""

    def emit(self, event: str, payload: Any) -> None: ...

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe ``handler``; returns a callable that unsubscribes it."""
        ...


class HostFallback(Protocol):
    """Non-host replacements for the shell's side-channel actions."""

    def notify(self, message: str, type_: str) -> None: ...

    def open_url(self, url: str) -> Any: ...

    def navigate(self, path: str) -> None: ...


class LoggingFallback:
    """Fallback used outside the shell: records the action and does nothing else."""

    def notify(self, message: str, type_: str) -> None:
        logger.info("[%s] %s", type_.upper(), message)

    def open_url(self, url: str) -> None:
        logger.info("Open %s", url)

    def navigate(self, path: str) -> None:
        logger.info("Navigate to %s", path)


@dataclass(frozen=True)
class HostUser:
    id: str
    name: str
    email: str | None = None


@dataclass(frozen=True)
class HostContext:
    account_id: str
    company_id: str
    account_name: str
    company_name: str
    user: HostUser
    tenant: str
    base_url: str
    selected_locale: str | None = None
    is_fallback: bool = False

    @property
    def tenant_id(self) -> str:
        return make_tenant_id(self.account_id, self.company_id)


# ── Parsing ──────────────────────────────────────────────────

def parse_host_payload(payload: Any, default_base_url: str = "") -> HostContext:
    """Build a context from the shell's answer (dict or JSON string).

    Accepts both the ``accountId`` and the short ``account`` spellings.
    Raises ``ValueError`` for payloads that are not an object.
    """
    if isinstance(payload, (str, bytes)):
        payload = json.loads(payload)
    if not isinstance(payload, dict):
        raise ValueError("Host context payload must be an object")

    def pick(*keys: str) -> str | None:
        for key in keys:
            value = payload.get(key)
            if value not in (None, ""):
                return str(value)
        return None

    return HostContext(
        account_id=pick("accountId", "account") or UNKNOWN,
        company_id=pick("companyId", "company") or UNKNOWN,
        account_name=pick("accountName", "account") or "Unknown Account",
        company_name=pick("companyName", "company") or "Unknown Company",
        user=HostUser(
            id=pick("userId", "user") or UNKNOWN,
            name=pick("userName", "user") or "Unknown User",
            email=pick("userEmail"),
        ),
        tenant=pick("tenant", "selectedLocale") or "default",
        base_url=pick("baseUrl") or default_base_url,
        selected_locale=pick("selectedLocale"),
    )


_TENANT_IN_URL = re.compile(r"tenant[=:]([^&/]+)", re.IGNORECASE)


def context_from_location(url: str, referrer: str = "") -> HostContext:
    """Degraded identity parsed from the page URL, then the referrer."""
    query: dict[str, list[str]] = {}
    for source in (referrer, url):  # url wins over referrer
        if source:
            query.update(parse_qs(urlsplit(source).query))

    def first(*keys: str) -> str | None:
        for key in keys:
            if query.get(key):
                return query[key][0]
        return None

    tenant_match = _TENANT_IN_URL.search(url) or _TENANT_IN_URL.search(referrer)
    parts = urlsplit(url)
    return HostContext(
        account_id=first("accountId", "account") or UNKNOWN,
        company_id=first("companyId", "company") or UNKNOWN,
        account_name="Unknown Account",
        company_name="Unknown Company",
        user=HostUser(id=UNKNOWN, name="Unknown User"),
        tenant=tenant_match.group(1) if tenant_match else "default",
        base_url=f"{parts.scheme}://{parts.netloc}" if parts.netloc else "",
        is_fallback=True,
    )


# ── Bridge ───────────────────────────────────────────────────

class HostContextBridge:
    def __init__(
        self,
        channel: HostChannel | None,
        *,
        client_identifier: str,
        location_url: str = "",
        referrer: str = "",
        timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        fallback: HostFallback | None = None,
    ) -> None:
        self.channel = channel
        self.client_identifier = client_identifier
        self.location_url = location_url
        self.referrer = referrer
        self.timeout = timeout
        self.fallback = fallback or LoggingFallback()
        self.state = BridgeState.UNINITIALIZED
        self._context: HostContext | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        channel: HostChannel | None,
        *,
        settings: Settings | None = None,
        location_url: str = "",
        referrer: str = "",
        fallback: HostFallback | None = None,
    ) -> HostContextBridge:
        """Bridge configured from ``HOST_CLIENT_IDENTIFIER`` / ``HOST_HANDSHAKE_TIMEOUT``."""
        settings = settings or get_settings()
        return cls(
            channel,
            client_identifier=settings.host_client_identifier,
            location_url=location_url,
            referrer=referrer,
            timeout=settings.host_handshake_timeout,
            fallback=fallback,
        )

    # -- identity --

    def get_context(self) -> HostContext | None:
        """Last resolved context, without waiting."""
        return self._context

    @property
    def is_connected(self) -> bool:
        return self.state == BridgeState.READY and self.channel is not None

    async def initialize(self) -> HostContext | None:
        """Run the handshake once; later calls return the cached result."""
        async with self._lock:
            if self.state in (BridgeState.READY, BridgeState.FALLBACK, BridgeState.FAILED):
                return self._context
            self._context = await self._handshake()
            return self._context

    async def refresh(self) -> HostContext | None:
        """Drop the cached context and handshake again."""
        async with self._lock:
            self.state = BridgeState.UNINITIALIZED
            self._context = None
            self._context = await self._handshake()
            return self._context

    async def _handshake(self) -> HostContext | None:
        if self.channel is None:
            logger.info("Not embedded in the FSM shell; no host context available")
            self.state = BridgeState.FAILED
            return None

        self.state = BridgeState.AWAITING_HOST
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[tuple[str, Any]] = loop.create_future()

        def _resolve(kind: str) -> Callable[[Any], None]:
            def handler(payload: Any) -> None:
                if not outcome.done():
                    outcome.set_result((kind, payload))
            return handler

        unsubscribers: list[Callable[[], None]] = []
        try:
            unsubscribers.append(self.channel.on(ShellEvent.REQUIRE_CONTEXT, _resolve("context")))
            unsubscribers.append(self.channel.on(ShellEvent.ERROR, _resolve("error")))
            self.channel.emit(
                ShellEvent.REQUIRE_CONTEXT,
                {"clientIdentifier": self.client_identifier},
            )
            kind, payload = await asyncio.wait_for(outcome, timeout=self.timeout)
        except TimeoutError:
            logger.warning("Host handshake timed out after %.1fs, using fallback", self.timeout)
            return self._use_fallback()
        except Exception:
            logger.exception("Host channel failed during handshake")
            self.state = BridgeState.FAILED
            return None
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

        if kind == "error":
            logger.warning("Host reported an error during handshake: %s", payload)
            return self._use_fallback()

        try:
            context = parse_host_payload(payload, default_base_url=self._own_base_url())
        except ValueError:
            logger.warning("Unparsable host context payload, using fallback")
            return self._use_fallback()

        self.state = BridgeState.READY
        logger.info("Host context resolved for tenant %s", context.tenant_id)
        return context

    def _use_fallback(self) -> HostContext:
        self.state = BridgeState.FALLBACK
        return context_from_location(self.location_url, self.referrer)

    def _own_base_url(self) -> str:
        parts = urlsplit(self.location_url)
        return f"{parts.scheme}://{parts.netloc}" if parts.netloc else ""

    # -- side channels --

    def show_notification(self, message: str, type_: str = "info") -> None:
        if self.is_connected:
            self.channel.emit(ShellEvent.SHOW_NOTIFICATION, {"message": message, "type": type_})
        else:
            self.fallback.notify(message, type_)

    async def open_modal(self, url: str, options: dict | None = None) -> Any:
        if not self.is_connected:
            return self.fallback.open_url(url)
        modal_id = f"modal_{uuid.uuid4().hex[:12]}"
        found, result = await self._request(
            ShellEvent.OPEN_MODAL,
            {"url": url, "modalId": modal_id, "options": options or {}},
            response_event=f"{ShellEvent.MODAL_RESPONSE}_{modal_id}",
            timeout=MODAL_TIMEOUT,
        )
        if not found:
            raise UpstreamError("Modal timeout")
        return result

    def navigate(self, path: str) -> None:
        if self.is_connected:
            self.channel.emit(ShellEvent.NAVIGATE, {"path": path})
        else:
            self.fallback.navigate(path)

    async def get_permissions(self, object_name: str) -> dict | None:
        """``{"permission": {CREATE, READ, UPDATE, DELETE}, "UI_PERMISSIONS": [...]}``."""
        if not self.is_connected:
            logger.warning("Host not available for permissions check")
            return None
        _, result = await self._request(ShellEvent.GET_PERMISSIONS, {"objectName": object_name})
        return result

    async def get_company_setting(self, key: str) -> Any | None:
        if not self.is_connected:
            return None
        _, result = await self._request(ShellEvent.GET_SETTINGS, key)
        return result

    async def get_user_setting(self, key: str) -> Any | None:
        if not self.is_connected:
            return None
        _, result = await self._request(ShellEvent.GET_STORAGE_ITEM, key)
        return result

    def current_locale(self) -> str | None:
        return self._context.selected_locale if self._context else None

    async def _request(
        self,
        event: str,
        payload: Any,
        *,
        response_event: str | None = None,
        timeout: float = QUERY_TIMEOUT,
    ) -> tuple[bool, Any]:
        """Emit ``event`` and wait for the first answer. ``(False, None)`` on timeout."""
        loop = asyncio.get_running_loop()
        answer: asyncio.Future[Any] = loop.create_future()

        def handler(value: Any) -> None:
            if not answer.done():
                answer.set_result(value)

        unsubscribe = self.channel.on(response_event or event, handler)
        try:
            self.channel.emit(event, payload)
            return True, await asyncio.wait_for(answer, timeout=timeout)
        except TimeoutError:
            logger.warning("No host answer to %s within %.1fs", event, timeout)
            return False, None
        finally:
            unsubscribe()
