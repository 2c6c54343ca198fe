"""Appointment instance model — one tokenized booking link per FSM activity."""

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import EmailStr
from pydantic import Field as PydanticField
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from fsm_booking.models.base import CamelModel, TimestampMixin


class InstanceStatus(StrEnum):
    PENDING = "pending"        # created, customer has not submitted yet
    ACTIVE = "active"          # customer is booking
    SCHEDULED = "scheduled"    # customer picked time slots
    SUBMITTED = "SUBMITTED"    # customer submitted preferences
    REQUESTED = "REQUESTED"    # customer submitted a concrete date/time
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    COMPLETED = "completed"


class CustomerBookingStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REQUESTED = "requested"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Instance states a customer submission may start from
CUSTOMER_EDITABLE = frozenset({
    InstanceStatus.PENDING,
    InstanceStatus.ACTIVE,
    InstanceStatus.SCHEDULED,
    InstanceStatus.SUBMITTED,
    InstanceStatus.REQUESTED,
})

# Instance states after which no further customer/dispatcher exchange happens
TERMINAL = frozenset({
    InstanceStatus.CONFIRMED,
    InstanceStatus.REJECTED,
    InstanceStatus.COMPLETED,
    InstanceStatus.EXPIRED,
})


class AppointmentInstance(TimestampMixin, SQLModel, table=True):
    __tablename__ = "appointment_instances"

    tenant_id: str = Field(foreign_key="tenants.tenant_id", primary_key=True, max_length=255)
    instance_id: str = Field(primary_key=True, max_length=64)

    # Bearer capability for the customer page; unique secondary index
    customer_access_token: str = Field(nullable=False, unique=True, index=True, max_length=128)
    customer_url: str = Field(max_length=2048, nullable=False)

    valid_from: datetime = Field(nullable=False)
    valid_until: datetime = Field(nullable=False)
    # Epoch seconds of valid_until; rows past it are purged by the sweeper
    ttl: int = Field(nullable=False, index=True)

    status: InstanceStatus = Field(default=InstanceStatus.PENDING)

    # Embedded documents, validated through the schemas below
    fsm_activity: dict = Field(sa_column=Column(JSON, nullable=False))
    customer_booking: dict | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    fsm_response: dict | None = Field(default=None, sa_column=Column(JSON, nullable=True))


# ── Embedded value objects ───────────────────────────────────

class TimeSlot(CamelModel):
    id: str
    start_time: datetime
    end_time: datetime
    is_available: bool = True
    is_selected: bool = False


class FsmObjectRef(CamelModel):
    object_id: str
    object_type: str


class FsmActivitySnapshot(CamelModel):
    """Copy of the FSM activity at creation time. Never re-synced."""
    activity_id: str
    activity_code: str | None = None
    subject: str | None = None
    status: str | None = None
    business_partner: str | None = None
    object: FsmObjectRef | None = None
    service_call_id: str | None = None
    service_call_number: str | None = None
    equipment: str | None = None


class CustomerBooking(CamelModel):
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    preferred_time_slots: list[TimeSlot] = PydanticField(default_factory=list)
    customer_message: str | None = None
    special_requirements: str | None = None
    requested_date_time: datetime | None = None
    status: CustomerBookingStatus
    submitted_at: datetime
    last_modified_at: datetime


class FsmResponse(CamelModel):
    response: Literal["approve", "reject"]
    selected_time_slot: TimeSlot | None = None
    fsm_message: str | None = None
    technician_notes: str | None = None
    responded_at: datetime
    responded_by: str


# ── Request schemas ──────────────────────────────────────────

class ActivityInput(CamelModel):
    """Activity as sent by the dispatcher view (FSM Data API field names)."""
    id: str = PydanticField(min_length=1)
    code: str | None = None
    subject: str | None = None
    status: str | None = None
    business_partner: str | None = None
    object: FsmObjectRef | None = None
    service_call_id: str | None = None
    service_call_number: str | None = None
    equipment: str | None = None


class InstanceCreateRequest(CamelModel):
    activity_ids: list[str] = PydanticField(default_factory=list)
    activities: list[ActivityInput]


class CustomerBookingUpdate(CamelModel):
    customer_name: str = PydanticField(min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: str | None = PydanticField(default=None, max_length=50)
    preferred_time_slots: list[TimeSlot] = PydanticField(default_factory=list)
    customer_message: str | None = PydanticField(default=None, max_length=4000)
    special_requirements: str | None = PydanticField(default=None, max_length=4000)
    requested_date_time: datetime | None = None


class DispatcherResponseCreate(CamelModel):
    response: Literal["approve", "reject"]
    selected_time_slot: TimeSlot | None = None
    fsm_message: str | None = PydanticField(default=None, max_length=4000)
    technician_notes: str | None = PydanticField(default=None, max_length=4000)
    responded_by: str = PydanticField(min_length=1, max_length=255)
    responded_at: datetime | None = None


# ── Read schema ──────────────────────────────────────────────

class InstanceRead(CamelModel):
    tenant_id: str
    instance_id: str
    customer_access_token: str
    customer_url: str
    valid_from: datetime
    valid_until: datetime
    ttl: int
    status: InstanceStatus
    is_expired: bool
    created_at: datetime
    updated_at: datetime
    fsm_activity: FsmActivitySnapshot
    customer_booking: CustomerBooking | None = None
    fsm_response: FsmResponse | None = None


def dump_document(model: CamelModel) -> dict[str, Any]:
    """Serialize an embedded value object for a JSON column."""
    return model.model_dump(mode="json", by_alias=True)
