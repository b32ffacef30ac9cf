# seminar_registration/api/v1/api.py

from fastapi import APIRouter
from seminar_registration.api.v1.endpoints import (
    email_queue,
    health,
    registrations,
    waiting_list,
)

# This is the main router for the v1 API.
api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(registrations.router)
api_router.include_router(waiting_list.router)
api_router.include_router(email_queue.router)
