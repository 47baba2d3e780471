"""VerseNest API Router - aggregates all API routes."""

from fastapi import APIRouter

from versenest.api import admin, auth, health

api_router = APIRouter()

# Include routers
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(admin.router)
