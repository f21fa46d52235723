from fastapi import APIRouter
from app.api import health, loop_timeline

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health.router)
api_router.include_router(loop_timeline.router)
