"""Tenant model — one customer organization, keyed by account + company."""

from datetime import datetime

from pydantic import EmailStr
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel

from fsm_booking.models.base import CamelModel, TimestampMixin


def make_tenant_id(account_id: str, company_id: str) -> str:
    return f"{account_id}_{company_id}"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    # Derived from account_id + company_id, never changes after insert
    tenant_id: str = Field(primary_key=True, max_length=255)

    # Identity supplied by the host shell
    account_id: str = Field(max_length=100, nullable=False, index=True)
    account_name: str = Field(max_length=255, nullable=False)
    company_id: str = Field(max_length=100, nullable=False)
    company_name: str = Field(max_length=255, nullable=False)
    cluster: str = Field(max_length=255, nullable=False)

    # Onboarding contact
    contact_company_name: str = Field(max_length=255, nullable=False)
    contact_full_name: str = Field(max_length=255, nullable=False)
    contact_phone: str | None = Field(default=None, max_length=50)
    contact_email_address: str = Field(max_length=320, nullable=False)

    # OAuth client credentials for the FSM API.
    # The secret is Fernet ciphertext; the plaintext never leaves the service.
    client_id: str = Field(max_length=255, nullable=False)
    encrypted_client_secret: str = Field(nullable=False)

    # License window
    valid_from: datetime = Field(nullable=False)
    valid_to: datetime = Field(nullable=False)
    is_active: bool = Field(default=True)


# ── Pydantic schemas ─────────────────────────────────────────

class TenantCreate(CamelModel):
    account_id: str = PydanticField(min_length=1, max_length=100)
    company_id: str = PydanticField(min_length=1, max_length=100)
    account_name: str = PydanticField(min_length=1, max_length=255)
    company_name: str = PydanticField(min_length=1, max_length=255)
    cluster: str = PydanticField(min_length=1, max_length=255)
    contact_company_name: str = PydanticField(min_length=1, max_length=255)
    contact_full_name: str = PydanticField(min_length=1, max_length=255)
    contact_phone: str | None = PydanticField(default=None, max_length=50)
    contact_email_address: EmailStr
    client_id: str = PydanticField(min_length=1, max_length=255)
    client_secret: str = PydanticField(min_length=1, repr=False)


class TenantUpdate(CamelModel):
    """Partial update. ``clientSecret`` and ``tenantId`` are not accepted."""

    account_name: str | None = PydanticField(default=None, min_length=1, max_length=255)
    company_name: str | None = PydanticField(default=None, min_length=1, max_length=255)
    cluster: str | None = PydanticField(default=None, min_length=1, max_length=255)
    contact_company_name: str | None = PydanticField(default=None, min_length=1, max_length=255)
    contact_full_name: str | None = PydanticField(default=None, min_length=1, max_length=255)
    contact_phone: str | None = PydanticField(default=None, max_length=50)
    contact_email_address: EmailStr | None = None
    client_id: str | None = PydanticField(default=None, min_length=1, max_length=255)
    valid_to: datetime | None = None
    is_active: bool | None = None


class TenantRead(CamelModel):
    """Returned on every read path. Never includes the client secret."""
    tenant_id: str
    account_id: str
    account_name: str
    company_id: str
    company_name: str
    cluster: str
    contact_company_name: str
    contact_full_name: str
    contact_phone: str | None
    contact_email_address: str
    client_id: str
    has_client_secret: bool
    valid_from: datetime
    valid_to: datetime
    is_active: bool
    created_at: datetime
    updated_at: datetime
