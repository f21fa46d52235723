# API module exports
from app.api import health, loop_timeline
from app.api.base import api_router

__all__ = ["health", "loop_timeline", "api_router"]
