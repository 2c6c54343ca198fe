"""Appointment instance endpoints.

Dispatcher routes are scoped by ``tenantId``. Customer routes are addressed
by the access token alone; the token is the credential.
"""

from fastapi import APIRouter, Query, status

from fsm_booking.api.deps import OptionalTenantId, Session, TenantId
from fsm_booking.core.errors import ValidationError
from fsm_booking.models.appointment import (
    CustomerBooking,
    CustomerBookingStatus,
    CustomerBookingUpdate,
    DispatcherResponseCreate,
    InstanceCreateRequest,
    InstanceRead,
    TimeSlot,
)
from fsm_booking.models.base import CamelModel, utcnow
from fsm_booking.services import appointments as lifecycle
from fsm_booking.services.time_slots import MIN_HORIZON_DAYS, generate_time_slots

router = APIRouter(prefix="/appointments", tags=["appointments"])


# ── Response envelopes ────────────────────────────────────────

class InstanceListResponse(CamelModel):
    success: bool = True
    data: list[InstanceRead]


class InstanceResponse(CamelModel):
    success: bool = True
    data: InstanceRead


class CreatedInstances(CamelModel):
    instances: list[InstanceRead]
    customer_urls: list[str]
    total_created: int


class InstancesCreatedResponse(CamelModel):
    success: bool = True
    data: CreatedInstances


class BookingUpdateResponse(CamelModel):
    success: bool = True
    message: str
    status: CustomerBookingStatus
    customer_booking: CustomerBooking


class TimeSlotListResponse(CamelModel):
    success: bool = True
    data: list[TimeSlot]


# ── Dispatcher ────────────────────────────────────────────────

@router.get("", response_model=InstanceListResponse)
async def list_instances(
    tenant_id: TenantId,
    session: Session,
    activity_id: str | None = Query(default=None, alias="activityId"),
) -> InstanceListResponse:
    now = utcnow()
    instances = await lifecycle.list_instances(session, tenant_id, activity_id=activity_id)
    return InstanceListResponse(data=[lifecycle.to_read(i, now) for i in instances])


@router.post("", response_model=InstancesCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_instances(
    body: InstanceCreateRequest,
    tenant_id: TenantId,
    session: Session,
) -> InstancesCreatedResponse:
    """Create one booking link per activity. All-or-nothing."""
    activities = body.activities
    if body.activity_ids:
        known = {a.id for a in activities}
        unknown = sorted(set(body.activity_ids) - known)
        if unknown:
            raise ValidationError(f"Activity data missing for ids: {', '.join(unknown)}")
        selected = set(body.activity_ids)
        activities = [a for a in activities if a.id in selected]

    instances = await lifecycle.create_appointment_instances(session, tenant_id, activities)
    reads = [lifecycle.to_read(i) for i in instances]
    return InstancesCreatedResponse(data=CreatedInstances(
        instances=reads,
        customer_urls=[r.customer_url for r in reads],
        total_created=len(reads),
    ))


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(
    instance_id: str,
    tenant_id: TenantId,
    session: Session,
) -> InstanceResponse:
    instance = await lifecycle.get_instance(session, tenant_id, instance_id)
    return InstanceResponse(data=lifecycle.to_read(instance))


@router.put("/{instance_id}/response", response_model=InstanceResponse)
async def respond_to_booking(
    instance_id: str,
    body: DispatcherResponseCreate,
    tenant_id: TenantId,
    session: Session,
) -> InstanceResponse:
    instance = await lifecycle.respond_to_customer_booking(session, tenant_id, instance_id, body)
    return InstanceResponse(data=lifecycle.to_read(instance))


@router.put("/{instance_id}/complete", response_model=InstanceResponse)
async def complete_appointment(
    instance_id: str,
    tenant_id: TenantId,
    session: Session,
) -> InstanceResponse:
    instance = await lifecycle.complete_appointment(session, tenant_id, instance_id)
    return InstanceResponse(data=lifecycle.to_read(instance))


# ── Customer (token-addressed) ────────────────────────────────

@router.get("/token/{token}", response_model=InstanceResponse)
async def get_instance_by_token(
    token: str,
    session: Session,
    tenant_id: OptionalTenantId = None,
) -> InstanceResponse:
    instance = await lifecycle.get_instance_by_token(session, token, tenant_id=tenant_id)
    return InstanceResponse(data=lifecycle.to_read(instance))


@router.get("/token/{token}/time-slots", response_model=TimeSlotListResponse)
async def list_time_slots(
    token: str,
    session: Session,
    tenant_id: OptionalTenantId = None,
    days: int = Query(default=MIN_HORIZON_DAYS),
) -> TimeSlotListResponse:
    await lifecycle.get_instance_by_token(session, token, tenant_id=tenant_id)
    return TimeSlotListResponse(data=generate_time_slots(utcnow(), horizon_days=days))


@router.put("/token/{token}", response_model=BookingUpdateResponse)
async def update_customer_booking(
    token: str,
    body: CustomerBookingUpdate,
    session: Session,
    tenant_id: OptionalTenantId = None,
) -> BookingUpdateResponse:
    _, booking = await lifecycle.update_customer_booking(session, token, body, tenant_id=tenant_id)
    return BookingUpdateResponse(
        message="Customer booking updated successfully",
        status=booking.status,
        customer_booking=booking,
    )
