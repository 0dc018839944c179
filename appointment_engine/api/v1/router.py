"""API v1 router configuration."""

from fastapi import APIRouter

from appointment_engine.api.v1.endpoints import appointments, health, leaves, schedule, slots

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(slots.router, prefix="/doctors", tags=["Slots"])
api_router.include_router(schedule.router, prefix="/doctors", tags=["Schedule"])
api_router.include_router(leaves.router, prefix="/doctors", tags=["Leaves"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
