"""Appointment instance lifecycle.

  (none) ──create──▶ pending ──customer submits──▶ SUBMITTED | REQUESTED
                                                        │
                                     dispatcher responds ▼
                                           confirmed | rejected
                                               │
                                               ▼
                                           completed

Any state reads as ``expired`` once ``now > valid_until``. Expiry is
evaluated on read and never written back; the sweeper in
``fsm_booking.workers.expiry`` removes rows physically once their ``ttl``
has passed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fsm_booking.core.config import get_settings
from fsm_booking.core.errors import (
    Expired,
    InvalidState,
    NotFound,
    StorageError,
    ValidationError,
)
from fsm_booking.core.security import generate_access_token, generate_instance_id, mask_token
from fsm_booking.models.appointment import (
    CUSTOMER_EDITABLE,
    TERMINAL,
    ActivityInput,
    AppointmentInstance,
    CustomerBooking,
    CustomerBookingStatus,
    CustomerBookingUpdate,
    DispatcherResponseCreate,
    FsmActivitySnapshot,
    FsmResponse,
    InstanceRead,
    InstanceStatus,
    dump_document,
)
from fsm_booking.models.base import as_naive_utc, to_epoch, utcnow
from fsm_booking.services.tenants import require_valid_tenant

logger = logging.getLogger(__name__)


def is_expired(instance: AppointmentInstance, now: datetime | None = None) -> bool:
    return (now or utcnow()) > instance.valid_until


def effective_status(instance: AppointmentInstance, now: datetime | None = None) -> InstanceStatus:
    """Stored status, or ``expired`` once the validity window has passed."""
    if is_expired(instance, now):
        return InstanceStatus.EXPIRED
    return instance.status


def to_read(instance: AppointmentInstance, now: datetime | None = None) -> InstanceRead:
    return InstanceRead(
        tenant_id=instance.tenant_id,
        instance_id=instance.instance_id,
        customer_access_token=instance.customer_access_token,
        customer_url=instance.customer_url,
        valid_from=instance.valid_from,
        valid_until=instance.valid_until,
        ttl=instance.ttl,
        status=effective_status(instance, now),
        is_expired=is_expired(instance, now),
        created_at=instance.created_at,
        updated_at=instance.updated_at,
        fsm_activity=FsmActivitySnapshot.model_validate(instance.fsm_activity),
        customer_booking=(
            CustomerBooking.model_validate(instance.customer_booking)
            if instance.customer_booking else None
        ),
        fsm_response=(
            FsmResponse.model_validate(instance.fsm_response)
            if instance.fsm_response else None
        ),
    )


def build_customer_url(token: str) -> str:
    origin = get_settings().public_booking_origin.rstrip("/")
    return f"{origin}/booking/{token}"


def snapshot_activity(activity: ActivityInput) -> FsmActivitySnapshot:
    return FsmActivitySnapshot(
        activity_id=activity.id,
        activity_code=activity.code,
        subject=activity.subject,
        status=activity.status,
        business_partner=activity.business_partner,
        object=activity.object,
        service_call_id=activity.service_call_id or (
            activity.object.object_id if activity.object else None
        ),
        service_call_number=activity.service_call_number,
        equipment=activity.equipment,
    )


# ── Dispatcher: create ───────────────────────────────────────

async def create_appointment_instances(
    session: AsyncSession,
    tenant_id: str,
    activities: list[ActivityInput],
    now: datetime | None = None,
) -> list[AppointmentInstance]:
    """Create one booking instance per activity, all in one transaction.

    Either every instance is written or none is. No deduplication against
    existing instances happens here; callers filter with
    ``linked_activity_ids`` first.
    """
    if not activities:
        raise ValidationError("At least one activity is required")

    settings = get_settings()
    now = now or utcnow()
    await require_valid_tenant(session, tenant_id, now)

    valid_until = now + timedelta(days=settings.instance_validity_days)
    instances: list[AppointmentInstance] = []
    for activity in activities:
        token = generate_access_token()
        instance = AppointmentInstance(
            tenant_id=tenant_id,
            instance_id=generate_instance_id(),
            customer_access_token=token,
            customer_url=build_customer_url(token),
            valid_from=now,
            valid_until=valid_until,
            ttl=to_epoch(valid_until),
            status=InstanceStatus.PENDING,
            created_at=now,
            updated_at=now,
            fsm_activity=dump_document(snapshot_activity(activity)),
        )
        session.add(instance)
        instances.append(instance)

    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception(
            "Failed to create %d appointment instances for tenant %s",
            len(activities), tenant_id,
        )
        raise StorageError("Failed to create appointment instances") from exc

    logger.info("Created %d appointment instances for tenant %s", len(instances), tenant_id)
    return instances


# ── Reads ────────────────────────────────────────────────────

async def list_instances(
    session: AsyncSession,
    tenant_id: str,
    activity_id: str | None = None,
) -> list[AppointmentInstance]:
    stmt = (
        select(AppointmentInstance)
        .where(AppointmentInstance.tenant_id == tenant_id)
        .order_by(AppointmentInstance.created_at.desc())  # type: ignore[union-attr]
    )
    instances = await _fetch(session, stmt)
    if activity_id is not None:
        instances = [i for i in instances if i.fsm_activity.get("activityId") == activity_id]
    return instances


async def get_instance(
    session: AsyncSession,
    tenant_id: str,
    instance_id: str,
) -> AppointmentInstance:
    """Primary-key lookup for the dispatcher view. No expiry check."""
    try:
        instance = await session.get(AppointmentInstance, (tenant_id, instance_id))
    except SQLAlchemyError as exc:
        logger.exception("Appointment instance lookup failed for %s", instance_id)
        raise StorageError() from exc
    if instance is None:
        raise NotFound("Appointment instance not found", instance_id=instance_id)
    return instance


async def get_instance_by_token(
    session: AsyncSession,
    token: str,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> AppointmentInstance:
    """Resolve a customer access token through its unique index.

    Raises ``NotFound`` for unknown tokens (or tokens of another tenant when
    ``tenant_id`` is given) and ``Expired`` once the validity window has
    passed, even though the row still exists.
    """
    stmt = select(AppointmentInstance).where(
        AppointmentInstance.customer_access_token == token,
    )
    matches = await _fetch(session, stmt)
    instance = matches[0] if matches else None

    if instance is None or (tenant_id is not None and instance.tenant_id != tenant_id):
        raise NotFound("Appointment instance not found")
    if is_expired(instance, now):
        raise Expired("Appointment instance has expired", instance_id=instance.instance_id)
    return instance


async def linked_activity_ids(
    session: AsyncSession,
    tenant_id: str,
    now: datetime | None = None,
) -> set[str]:
    """Activity ids that already have a live booking link."""
    now = now or utcnow()
    stmt = select(AppointmentInstance).where(
        AppointmentInstance.tenant_id == tenant_id,
        AppointmentInstance.valid_until >= now,
    )
    return {
        i.fsm_activity["activityId"]
        for i in await _fetch(session, stmt)
        if i.status not in TERMINAL
    }


# ── Customer: submit ─────────────────────────────────────────

async def update_customer_booking(
    session: AsyncSession,
    token: str,
    body: CustomerBookingUpdate,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> tuple[AppointmentInstance, CustomerBooking]:
    """Store the customer's booking request. Last write wins.

    A concrete ``requested_date_time`` marks the booking ``requested`` and
    the instance ``REQUESTED``; otherwise ``submitted`` / ``SUBMITTED``.
    Resubmission keeps the first ``submitted_at``.
    """
    now = now or utcnow()
    instance = await get_instance_by_token(session, token, tenant_id=tenant_id, now=now)

    if instance.status not in CUSTOMER_EDITABLE or instance.fsm_response:
        raise InvalidState(
            "This booking has already been answered and can no longer be changed",
            instance_id=instance.instance_id,
        )

    if body.requested_date_time is not None:
        booking_status = CustomerBookingStatus.REQUESTED
        instance_status = InstanceStatus.REQUESTED
    else:
        booking_status = CustomerBookingStatus.SUBMITTED
        instance_status = InstanceStatus.SUBMITTED

    previous = (
        CustomerBooking.model_validate(instance.customer_booking)
        if instance.customer_booking else None
    )
    booking = CustomerBooking(
        customer_name=body.customer_name,
        customer_email=str(body.customer_email),
        customer_phone=body.customer_phone,
        preferred_time_slots=body.preferred_time_slots,
        customer_message=body.customer_message,
        special_requirements=body.special_requirements,
        requested_date_time=(
            as_naive_utc(body.requested_date_time) if body.requested_date_time else None
        ),
        status=booking_status,
        submitted_at=previous.submitted_at if previous else now,
        last_modified_at=now,
    )

    instance.customer_booking = dump_document(booking)
    instance.status = instance_status
    instance.updated_at = now
    await _save(session, instance)

    logger.info(
        "Customer booking %s for instance %s (token %s)",
        booking_status, instance.instance_id, mask_token(token),
    )
    return instance, booking


# ── Dispatcher: respond / complete ───────────────────────────

async def respond_to_customer_booking(
    session: AsyncSession,
    tenant_id: str,
    instance_id: str,
    body: DispatcherResponseCreate,
    now: datetime | None = None,
) -> AppointmentInstance:
    """Approve or reject a submitted booking."""
    now = now or utcnow()
    instance = await get_instance(session, tenant_id, instance_id)

    if not instance.customer_booking:
        raise InvalidState(
            "The customer has not submitted a booking yet",
            instance_id=instance_id,
        )
    if instance.status in TERMINAL:
        raise InvalidState(
            f"Booking is already {instance.status}",
            instance_id=instance_id,
        )
    if is_expired(instance, now):
        raise Expired("Appointment instance has expired", instance_id=instance_id)

    response = FsmResponse(
        response=body.response,
        selected_time_slot=body.selected_time_slot,
        fsm_message=body.fsm_message,
        technician_notes=body.technician_notes,
        responded_at=as_naive_utc(body.responded_at) if body.responded_at else now,
        responded_by=body.responded_by,
    )
    approved = body.response == "approve"

    booking = dict(instance.customer_booking)
    booking["status"] = (
        CustomerBookingStatus.APPROVED if approved else CustomerBookingStatus.REJECTED
    ).value
    booking["lastModifiedAt"] = now.isoformat()

    instance.fsm_response = dump_document(response)
    instance.customer_booking = booking
    instance.status = InstanceStatus.CONFIRMED if approved else InstanceStatus.REJECTED
    instance.updated_at = now
    await _save(session, instance)

    logger.info("Dispatcher %s instance %s", "approved" if approved else "rejected", instance_id)
    return instance


async def complete_appointment(
    session: AsyncSession,
    tenant_id: str,
    instance_id: str,
    now: datetime | None = None,
) -> AppointmentInstance:
    instance = await get_instance(session, tenant_id, instance_id)
    if instance.status != InstanceStatus.CONFIRMED:
        raise InvalidState(
            "Only confirmed appointments can be completed",
            instance_id=instance_id,
        )
    instance.status = InstanceStatus.COMPLETED
    instance.updated_at = now or utcnow()
    await _save(session, instance)
    return instance


# ── Internal helpers ──────────────────────────────────────────

async def _fetch(session: AsyncSession, stmt) -> list[AppointmentInstance]:
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        logger.exception("Appointment instance query failed")
        raise StorageError() from exc
    return list(result.scalars().all())


async def _save(session: AsyncSession, instance: AppointmentInstance) -> None:
    session.add(instance)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Failed to save appointment instance %s", instance.instance_id)
        raise StorageError("Failed to save appointment instance") from exc
    await session.refresh(instance)
