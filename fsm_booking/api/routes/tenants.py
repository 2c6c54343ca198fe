"""Tenant onboarding and license validation endpoints."""

from fastapi import APIRouter, Query, Response, status

from fsm_booking.api.deps import Session
from fsm_booking.models.base import CamelModel
from fsm_booking.models.tenant import TenantCreate, TenantRead, TenantUpdate
from fsm_booking.services import tenants as tenant_service
from fsm_booking.services.tenants import ValidationResult, ValidationStatus

router = APIRouter(tags=["tenants"])


class TenantEnvelope(CamelModel):
    tenant: TenantRead


class TenantMutationResponse(CamelModel):
    success: bool = True
    tenant: TenantRead
    message: str


@router.get(
    "/validate",
    response_model=ValidationResult,
    response_model_exclude_none=True,
    summary="Validate tenant existence and license",
)
async def validate_tenant(
    session: Session,
    response: Response,
    account_id: str = Query(alias="accountId", min_length=1),
    company_id: str = Query(alias="companyId", min_length=1),
) -> ValidationResult:
    """Setup-required and license-expired are answered with 200; the UI
    routes on ``error``. Only a storage failure is reported as 500."""
    result = await tenant_service.validate_tenant(session, account_id, company_id)
    if result.status == ValidationStatus.ERROR:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return result


@router.post(
    "/tenant",
    response_model=TenantMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new tenant (trial license)",
)
async def create_tenant(
    body: TenantCreate,
    session: Session,
) -> TenantMutationResponse:
    tenant = await tenant_service.create_tenant(session, body)
    return TenantMutationResponse(tenant=tenant, message="Tenant created successfully")


@router.get(
    "/tenant/{tenant_id}",
    response_model=TenantEnvelope,
    summary="Get tenant by id",
)
async def get_tenant(
    tenant_id: str,
    session: Session,
) -> TenantEnvelope:
    tenant = await tenant_service.get_tenant(session, tenant_id)
    return TenantEnvelope(tenant=tenant_service.to_read(tenant))


@router.put(
    "/tenant/{tenant_id}",
    response_model=TenantMutationResponse,
    summary="Update tenant (partial; client secret is never updated here)",
)
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    session: Session,
) -> TenantMutationResponse:
    tenant = await tenant_service.update_tenant(session, tenant_id, body)
    return TenantMutationResponse(tenant=tenant, message="Tenant updated successfully")
