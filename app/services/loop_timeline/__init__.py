"""Loop timeline: cycle engine, transitions, notification poller"""

from app.services.loop_timeline.cycle_engine import LoopCycleEngine, NotificationLedger, effective_markers
from app.services.loop_timeline.loop_timeline_service import (
    LoopTimelineService,
    LoopTimelineView,
    MarkerNotFoundError,
)
from app.services.loop_timeline.models import (
    EffectiveMarker,
    EngineObservation,
    LoopConfig,
    LoopRunState,
    Marker,
)
from app.services.loop_timeline.notification_dispatcher import NotificationDelivery, PushNotificationDispatcher
from app.services.loop_timeline.notification_poller import LoopEngineRegistry, LoopNotificationPoller

__all__ = [
    "LoopCycleEngine",
    "NotificationLedger",
    "effective_markers",
    "LoopTimelineService",
    "LoopTimelineView",
    "MarkerNotFoundError",
    "EffectiveMarker",
    "EngineObservation",
    "LoopConfig",
    "LoopRunState",
    "Marker",
    "NotificationDelivery",
    "PushNotificationDispatcher",
    "LoopEngineRegistry",
    "LoopNotificationPoller",
]
