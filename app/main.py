import logging

# Log configuration (before other imports)
# ruff: noqa: E402
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    force=True
)

from contextlib import asynccontextmanager  # noqa: E402

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from app import config  # noqa: E402
from app.api.base import api_router  # noqa: E402
from app.infra.supabase.client import get_supabase_client  # noqa: E402
from app.services.loop_timeline import (  # noqa: E402
    LoopEngineRegistry,
    LoopNotificationPoller,
    PushNotificationDispatcher,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the loop notification poller for the lifetime of the app"""
    poller = None
    if config.LOOP_NOTIFIER_ENABLED:
        supabase_client = get_supabase_client()
        poller = LoopNotificationPoller(
            supabase_client,
            PushNotificationDispatcher(supabase_client),
            registry=app.state.loop_engines,
        )
        poller.start()
    else:
        logger.info("Loop notification poller disabled (LOOP_NOTIFIER_ENABLED=false)")

    yield

    if poller is not None:
        await poller.stop()


app = FastAPI(
    title="Loop Timeline Backend API",
    description="Backend API for the loop timer: cycle tracking and marker notifications",
    version="1.0.0",
    lifespan=lifespan,
)

# Shared by the poller and the API so transitions reset the right ledger
app.state.loop_engines = LoopEngineRegistry(config.LOOP_ZERO_OFFSET_GRACE_MS)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Specify your frontend URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all API routes
app.include_router(api_router)


@app.get("/")
def read_root():
    return {
        "message": "Loop Timeline Backend API",
        "docs": "/docs",
        "version": "1.0.0"
    }
