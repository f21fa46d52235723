"""Loop timeline domain models"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from app.utils.loop_time import as_utc

PAUSED_STATUS_PREFIX = "paused:"


class LoopStatus(str, Enum):
    """Persisted loop status. The paused elapsed snapshot rides in the status string."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


def encode_paused_status(elapsed_ms: int) -> str:
    """Encode a pause snapshot, e.g. 754000 -> "paused:754000" """
    return f"{PAUSED_STATUS_PREFIX}{max(0, int(elapsed_ms))}"


def parse_paused_elapsed_ms(status: Optional[str]) -> Optional[int]:
    """
    Read the paused elapsed snapshot out of a status string.

    Returns:
        None when the status is not a paused status, 0 for a bare "paused"
        or an unparsable tail, otherwise the stored milliseconds
    """
    raw = str(status or "").strip().lower()
    if not raw:
        return None
    if raw == LoopStatus.PAUSED.value:
        return 0
    if not raw.startswith(PAUSED_STATUS_PREFIX):
        return None

    tail = raw[len(PAUSED_STATUS_PREFIX):]
    try:
        return max(0, int(tail))
    except ValueError:
        return 0


class LoopTimelineStateBase(BaseModel):
    """Base loop state fields"""
    duration_minutes: int = 60
    start_at: Optional[datetime] = None
    status: str = LoopStatus.IDLE.value
    start_delay_minutes: int = 0  # wall-clock minute (0-59) a deferred start waits for


class LoopTimelineStateUpdate(BaseModel):
    """Loop state patch - all fields optional, only set fields are written"""
    duration_minutes: Optional[int] = None
    start_at: Optional[datetime] = None
    status: Optional[str] = None
    start_delay_minutes: Optional[int] = None


class LoopTimelineState(LoopTimelineStateBase):
    """
    Complete loop state row from database (one per user).

    NULL columns are accepted; readers clamp them to their defaults.
    """
    user_id: str
    duration_minutes: Optional[int] = 60
    status: Optional[str] = LoopStatus.IDLE.value
    start_delay_minutes: Optional[int] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("start_at")
    @classmethod
    def _start_at_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # "timestamp without time zone" columns come back naive and are stored as UTC
        return as_utc(value)

    @property
    def is_running(self) -> bool:
        return str(self.status or "").strip().lower() == LoopStatus.RUNNING.value

    @property
    def paused_elapsed_ms(self) -> Optional[int]:
        return parse_paused_elapsed_ms(self.status)


class LoopMarkerBase(BaseModel):
    """Base marker fields"""
    text: str
    offset_minutes: int = 0


class LoopMarkerCreate(LoopMarkerBase):
    """Marker creation model"""
    user_id: str


class LoopMarkerUpdate(BaseModel):
    """Marker update model - all fields optional"""
    text: Optional[str] = None
    offset_minutes: Optional[int] = None


class LoopMarker(LoopMarkerBase):
    """Complete marker row from database (NULL text or offset is tolerated)"""
    id: int
    user_id: str
    text: Optional[str] = ""
    offset_minutes: Optional[int] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
