"""FastAPI dependencies shared by the routers."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fsm_booking.core.database import get_session
from fsm_booking.models.tenant import Tenant
from fsm_booking.services.fsm_client import FsmClient

FsmClientFactory = Callable[[Tenant, str], FsmClient]


def get_fsm_client_factory() -> FsmClientFactory:
    """Builds the outbound FSM client; overridden in tests."""
    return FsmClient


# Typed shorthand for use in route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
TenantId = Annotated[str, Query(alias="tenantId", min_length=1, description="accountId_companyId")]
OptionalTenantId = Annotated[str | None, Query(alias="tenantId")]
FsmClients = Annotated[FsmClientFactory, Depends(get_fsm_client_factory)]
