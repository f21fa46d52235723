"""Cycle engine input and observation models"""
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

MarkerKey = Union[int, str]


class LoopRunState(str, Enum):
    """Run state derived from a LoopConfig at a given instant"""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    PAUSED = "paused"


class LoopConfig(BaseModel):
    """What the engine reads on every poll"""
    duration_minutes: int
    start_instant: Optional[datetime] = None
    paused_elapsed_ms: Optional[int] = None

    def run_state(self, now: datetime) -> LoopRunState:
        """SCHEDULED turns into RUNNING purely by the clock reaching start_instant"""
        if self.paused_elapsed_ms is not None:
            return LoopRunState.PAUSED
        if self.start_instant is None:
            return LoopRunState.IDLE
        if self.start_instant > now:
            return LoopRunState.SCHEDULED
        return LoopRunState.RUNNING


class Marker(BaseModel):
    """A text pinned at a minute offset of the cycle"""
    id: Optional[MarkerKey] = None
    text: Optional[str] = ""
    offset_minutes: Union[int, float, str, None] = 0


class EffectiveMarker(BaseModel):
    """Marker after clamping, with its ledger key"""
    key: MarkerKey
    text: str
    offset_minutes: int


class EngineObservation(BaseModel):
    """Recomputed on every poll, never persisted"""
    run_state: LoopRunState
    cycle_index: int = 0
    position_minutes: float = 0.0
    countdown_ms: Optional[int] = None
