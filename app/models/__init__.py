"""Domain models for the application"""
from .loop_timeline import (
    LoopStatus,
    LoopTimelineState,
    LoopTimelineStateUpdate,
    LoopMarker,
    LoopMarkerCreate,
    LoopMarkerUpdate,
    encode_paused_status,
    parse_paused_elapsed_ms,
)
from .push_notification import PushNotificationCreate, PushNotificationStatus

__all__ = [
    'LoopStatus', 'LoopTimelineState', 'LoopTimelineStateUpdate',
    'LoopMarker', 'LoopMarkerCreate', 'LoopMarkerUpdate',
    'encode_paused_status', 'parse_paused_elapsed_ms',
    'PushNotificationCreate', 'PushNotificationStatus',
]
