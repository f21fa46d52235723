"""Health check endpoints"""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/")
async def health_check(request: Request):
    """Basic health check with the number of loops the notifier is tracking"""
    registry = getattr(request.app.state, "loop_engines", None)
    return {
        "status": "healthy",
        "service": "loop-timeline-backend",
        "tracked_loops": len(registry) if registry is not None else 0,
    }
