"""FSM activities proxy for the dispatcher view."""

from fastapi import APIRouter

from fsm_booking.api.deps import FsmClients, Session, TenantId
from fsm_booking.models.base import CamelModel
from fsm_booking.services.appointments import linked_activity_ids
from fsm_booking.services.fsm_client import FsmActivity
from fsm_booking.services.tenants import client_secret_for, require_valid_tenant

router = APIRouter(prefix="/activities", tags=["activities"])


class ActivityListResponse(CamelModel):
    success: bool = True
    data: list[FsmActivity]


@router.get("", response_model=ActivityListResponse)
async def list_activities(
    tenant_id: TenantId,
    session: Session,
    fsm_clients: FsmClients,
) -> ActivityListResponse:
    """Activities from the FSM Data API, flagged when a live booking link exists."""
    tenant = await require_valid_tenant(session, tenant_id)
    client = fsm_clients(tenant, client_secret_for(tenant))
    activities = await client.list_activities()

    linked = await linked_activity_ids(session, tenant_id)
    for activity in activities:
        activity.has_instance = activity.id in linked
    return ActivityListResponse(data=activities)
