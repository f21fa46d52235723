"""
Loop Notification Dispatcher

Queues a push notification row for each fired marker. The push_notifications
insert webhook takes care of the device push itself.
"""

import logging
from abc import ABC, abstractmethod

from supabase import Client

from app import config
from app.models.push_notification import PushNotificationCreate

from .models.cycle_state import EffectiveMarker

logger = logging.getLogger(__name__)

PUSH_NOTIFICATIONS_TABLE = "push_notifications"


class NotificationDelivery(ABC):
    """Receives every marker the engine decided to fire. Called once per marker."""

    @abstractmethod
    async def deliver(self, user_id: str, marker: EffectiveMarker) -> None:
        """Hand the marker over for display; raise on failure (the caller never retries)"""


class PushNotificationDispatcher(NotificationDelivery):
    """Delivers fired markers through the push_notifications table"""

    def __init__(self, supabase_client: Client, title: str = config.LOOP_NOTIFICATION_TITLE):
        self.supabase = supabase_client
        self.title = title

    def build_notification(self, user_id: str, marker: EffectiveMarker) -> PushNotificationCreate:
        return PushNotificationCreate(
            user_id=user_id,
            title=self.title,
            body=marker.text,
            data={
                "type": "loop_marker",
                "marker_key": marker.key,
                "offset_minutes": marker.offset_minutes,
            },
        )

    async def deliver(self, user_id: str, marker: EffectiveMarker) -> None:
        notification = self.build_notification(user_id, marker)
        response = (
            self.supabase.table(PUSH_NOTIFICATIONS_TABLE)
            .insert(notification.model_dump(mode="json"))
            .execute()
        )

        if not response.data:
            raise ValueError(f"Failed to queue push notification for marker {marker.key}")

        logger.info(
            f"Queued loop notification {response.data[0].get('id')} "
            f"for user {user_id}: '{marker.text}' at {marker.offset_minutes}min"
        )
