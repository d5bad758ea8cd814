"""API v1 router."""
from fastapi import APIRouter

from app.api.v1 import progress, modules, analytics, reports

api_router = APIRouter()

api_router.include_router(progress.router, prefix="/progress", tags=["Progress"])
api_router.include_router(modules.router, prefix="/modules", tags=["Curriculum"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
