"""Tenant onboarding and license validation.

Decision order for ``validate_tenant`` (first match wins):
  1. no record          -> NOT_FOUND  (caller routes to the setup flow)
  2. is_active is False -> INACTIVE
  3. now > valid_to     -> EXPIRED    (sanitized tenant attached for renewal info)
  4. otherwise          -> VALID
A storage failure yields ERROR, which is never reported as NOT_FOUND.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import StrEnum

from cryptography.fernet import InvalidToken
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fsm_booking.core.config import get_settings
from fsm_booking.core.errors import (
    AlreadyExists,
    Expired,
    Inactive,
    NotFound,
    StorageError,
    ValidationError,
)
from fsm_booking.core.security import decrypt_value, encrypt_value
from fsm_booking.models.base import CamelModel, as_naive_utc, utcnow
from fsm_booking.models.tenant import (
    Tenant,
    TenantCreate,
    TenantRead,
    TenantUpdate,
    make_tenant_id,
)

logger = logging.getLogger(__name__)


class ValidationStatus(StrEnum):
    VALID = "VALID"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    ERROR = "ERROR"


class ValidationResult(CamelModel):
    is_valid: bool
    status: ValidationStatus
    tenant: TenantRead | None = None
    error: str | None = None
    message: str


def to_read(tenant: Tenant) -> TenantRead:
    """Sanitize a tenant record for any caller. Drops the client secret."""
    return TenantRead(
        tenant_id=tenant.tenant_id,
        account_id=tenant.account_id,
        account_name=tenant.account_name,
        company_id=tenant.company_id,
        company_name=tenant.company_name,
        cluster=tenant.cluster,
        contact_company_name=tenant.contact_company_name,
        contact_full_name=tenant.contact_full_name,
        contact_phone=tenant.contact_phone,
        contact_email_address=tenant.contact_email_address,
        client_id=tenant.client_id,
        has_client_secret=bool(tenant.encrypted_client_secret),
        valid_from=tenant.valid_from,
        valid_to=tenant.valid_to,
        is_active=tenant.is_active,
        created_at=tenant.created_at,
        updated_at=tenant.updated_at,
    )


def evaluate_tenant(tenant: Tenant | None, now: datetime) -> ValidationResult:
    """Pure license decision for an already-loaded tenant record."""
    if tenant is None:
        return ValidationResult(
            is_valid=False,
            status=ValidationStatus.NOT_FOUND,
            error=ValidationStatus.NOT_FOUND,
            message="Tenant not found. Setup required.",
        )
    if not tenant.is_active:
        return ValidationResult(
            is_valid=False,
            status=ValidationStatus.INACTIVE,
            error=ValidationStatus.INACTIVE,
            message="Tenant is inactive",
        )
    if now > tenant.valid_to:
        return ValidationResult(
            is_valid=False,
            status=ValidationStatus.EXPIRED,
            error=ValidationStatus.EXPIRED,
            tenant=to_read(tenant),
            message="Tenant license has expired",
        )
    return ValidationResult(
        is_valid=True,
        status=ValidationStatus.VALID,
        tenant=to_read(tenant),
        message="Tenant is valid",
    )


async def validate_tenant(
    session: AsyncSession,
    account_id: str,
    company_id: str,
    now: datetime | None = None,
) -> ValidationResult:
    """Read-only license check for an account/company pair."""
    tenant_id = make_tenant_id(account_id, company_id)
    try:
        tenant = await session.get(Tenant, tenant_id)
    except SQLAlchemyError:
        logger.exception("Tenant lookup failed for %s", tenant_id)
        return ValidationResult(
            is_valid=False,
            status=ValidationStatus.ERROR,
            error=ValidationStatus.ERROR,
            message="Error validating tenant",
        )
    return evaluate_tenant(tenant, now or utcnow())


async def create_tenant(
    session: AsyncSession,
    body: TenantCreate,
    now: datetime | None = None,
) -> TenantRead:
    """Register a tenant with a fixed-length trial license.

    Insert-if-absent: a second call for the same account/company pair
    raises ``AlreadyExists`` instead of overwriting the record.
    """
    settings = get_settings()
    now = now or utcnow()
    tenant_id = make_tenant_id(body.account_id, body.company_id)

    if await _load(session, tenant_id) is not None:
        raise AlreadyExists(
            "A tenant with this account and company ID already exists",
            tenant_id=tenant_id,
        )

    tenant = Tenant(
        tenant_id=tenant_id,
        account_id=body.account_id,
        account_name=body.account_name,
        company_id=body.company_id,
        company_name=body.company_name,
        cluster=body.cluster,
        contact_company_name=body.contact_company_name,
        contact_full_name=body.contact_full_name,
        contact_phone=body.contact_phone,
        contact_email_address=str(body.contact_email_address),
        client_id=body.client_id,
        encrypted_client_secret=encrypt_value(body.client_secret),
        valid_from=now,
        valid_to=now + timedelta(days=settings.tenant_trial_days),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    session.add(tenant)
    try:
        await session.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration
        await session.rollback()
        raise AlreadyExists(
            "A tenant with this account and company ID already exists",
            tenant_id=tenant_id,
        ) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Failed to create tenant %s", tenant_id)
        raise StorageError("Failed to create tenant") from exc

    await session.refresh(tenant)
    logger.info("Created tenant %s (trial until %s)", tenant_id, tenant.valid_to.isoformat())
    return to_read(tenant)


async def get_tenant(session: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await _load(session, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", tenant_id=tenant_id)
    return tenant


async def update_tenant(
    session: AsyncSession,
    tenant_id: str,
    body: TenantUpdate,
    now: datetime | None = None,
) -> TenantRead:
    """Apply a partial update. Also the license-renewal path (valid_to, is_active)."""
    tenant = await get_tenant(session, tenant_id)

    update_data = body.model_dump(exclude_unset=True)
    if "valid_to" in update_data:
        if update_data["valid_to"] is None:
            raise ValidationError("validTo cannot be cleared")
        update_data["valid_to"] = as_naive_utc(update_data["valid_to"])
        if update_data["valid_to"] < tenant.valid_from:
            raise ValidationError("validTo must not be earlier than validFrom")
    for field in ("account_name", "company_name", "cluster", "contact_company_name",
                  "contact_full_name", "contact_email_address", "client_id", "is_active"):
        if field in update_data and update_data[field] is None:
            raise ValidationError(f"{field} cannot be cleared")
    if "contact_email_address" in update_data:
        update_data["contact_email_address"] = str(update_data["contact_email_address"])

    for field, value in update_data.items():
        setattr(tenant, field, value)

    tenant.updated_at = now or utcnow()
    session.add(tenant)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Failed to update tenant %s", tenant_id)
        raise StorageError("Failed to update tenant") from exc
    await session.refresh(tenant)
    return to_read(tenant)


async def require_valid_tenant(
    session: AsyncSession,
    tenant_id: str,
    now: datetime | None = None,
) -> Tenant:
    """Load a tenant that may act right now, or raise the matching error."""
    tenant = await get_tenant(session, tenant_id)
    if not tenant.is_active:
        raise Inactive("Tenant is inactive", tenant_id=tenant_id)
    if (now or utcnow()) > tenant.valid_to:
        raise Expired("Tenant license has expired", tenant_id=tenant_id)
    return tenant


def client_secret_for(tenant: Tenant) -> str:
    """Plaintext OAuth secret, for outbound FSM calls only."""
    try:
        return decrypt_value(tenant.encrypted_client_secret)
    except InvalidToken as exc:
        # Stored ciphertext does not match the configured ENCRYPTION_KEY
        logger.error("Client secret for tenant %s cannot be decrypted", tenant.tenant_id)
        raise StorageError("Stored client credentials are unreadable") from exc


# ── Internal helper ───────────────────────────────────────────

async def _load(session: AsyncSession, tenant_id: str) -> Tenant | None:
    try:
        return await session.get(Tenant, tenant_id)
    except SQLAlchemyError as exc:
        logger.exception("Tenant lookup failed for %s", tenant_id)
        raise StorageError() from exc
