from fastapi import APIRouter
from app.routers import admin, leave, leave_types, notifications

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave.router)
api_router.include_router(leave_types.router)
api_router.include_router(notifications.router)
api_router.include_router(admin.router)
