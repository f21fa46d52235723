from pydantic import BaseModel
from typing import Optional, Dict, Any


class PushNotificationStatus(str):
    """Push notification status constants"""
    PENDING = "pending"


class PushNotificationBase(BaseModel):
    """Base push notification fields"""
    user_id: str  # UUID as string
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None


class PushNotificationCreate(PushNotificationBase):
    """Push notification row queued for the device push webhook"""
    status: str = PushNotificationStatus.PENDING
