"""Import all models so SQLModel.metadata picks them up."""

from fsm_booking.models.appointment import (
    ActivityInput,
    AppointmentInstance,
    CustomerBooking,
    CustomerBookingStatus,
    CustomerBookingUpdate,
    DispatcherResponseCreate,
    FsmActivitySnapshot,
    FsmObjectRef,
    FsmResponse,
    InstanceCreateRequest,
    InstanceRead,
    InstanceStatus,
    TimeSlot,
)
from fsm_booking.models.tenant import Tenant, TenantCreate, TenantRead, TenantUpdate

__all__ = [
    "ActivityInput",
    "AppointmentInstance",
    "CustomerBooking",
    "CustomerBookingStatus",
    "CustomerBookingUpdate",
    "DispatcherResponseCreate",
    "FsmActivitySnapshot",
    "FsmObjectRef",
    "FsmResponse",
    "InstanceCreateRequest",
    "InstanceRead",
    "InstanceStatus",
    "Tenant",
    "TenantCreate",
    "TenantRead",
    "TenantUpdate",
    "TimeSlot",
]
