"""API router aggregation."""

from fastapi import APIRouter

from fsm_booking.api.routes.activities import router as activities_router
from fsm_booking.api.routes.appointments import router as appointments_router
from fsm_booking.api.routes.tenants import router as tenants_router

api_router = APIRouter()
api_router.include_router(tenants_router)
api_router.include_router(appointments_router)
api_router.include_router(activities_router)
