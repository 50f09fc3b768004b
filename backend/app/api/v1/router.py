from fastapi import APIRouter

from app.api.v1.endpoints import admin, attempts, health


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(attempts.router)
api_router.include_router(admin.router)
