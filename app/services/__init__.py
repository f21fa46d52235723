"""Services module"""

from app.services.loop_timeline import (
    LoopCycleEngine,
    LoopEngineRegistry,
    LoopNotificationPoller,
    LoopTimelineService,
    PushNotificationDispatcher,
)

__all__ = [
    "LoopCycleEngine",
    "LoopEngineRegistry",
    "LoopNotificationPoller",
    "LoopTimelineService",
    "PushNotificationDispatcher",
]
