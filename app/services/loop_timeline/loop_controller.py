"""
Loop state transitions and view helpers.

Stored rows go in, engine inputs or state patches come out. Nothing here
touches the store; LoopTimelineService persists the patches.
"""

from datetime import datetime, timedelta, tzinfo
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel

from app.models.loop_timeline import (
    LoopMarker,
    LoopStatus,
    LoopTimelineState,
    LoopTimelineStateUpdate,
    encode_paused_status,
)
from app.utils.loop_time import clamp_int, elapsed_ms, next_start_at

from .cycle_engine import effective_markers
from .models.cycle_state import EngineObservation, LoopConfig, LoopRunState, Marker, MarkerKey

DEFAULT_DURATION_MINUTES = 60
MAX_DURATION_MINUTES = 24 * 60
DEFAULT_START_MINUTE = 0
# A marker this close ahead of the cursor already counts as reached
ALERTED_EPSILON_MINUTES = 0.01


def clamp_duration(value: Any, fallback: int = DEFAULT_DURATION_MINUTES) -> int:
    return clamp_int(value, 1, MAX_DURATION_MINUTES, fallback)


def clamp_start_minute(value: Any, fallback: int = DEFAULT_START_MINUTE) -> int:
    return clamp_int(value, 0, 59, fallback)


def config_from_state(state: Optional[LoopTimelineState]) -> LoopConfig:
    """Engine view of a stored loop state (a missing row is an idle default loop)"""
    if state is None:
        return LoopConfig(duration_minutes=DEFAULT_DURATION_MINUTES)

    paused_elapsed_ms = state.paused_elapsed_ms
    return LoopConfig(
        duration_minutes=clamp_duration(state.duration_minutes),
        start_instant=state.start_at if state.is_running else None,
        paused_elapsed_ms=paused_elapsed_ms,
    )


def marker_from_row(row: LoopMarker) -> Marker:
    return Marker(id=row.id, text=row.text, offset_minutes=row.offset_minutes)


def start_patch(
    state: Optional[LoopTimelineState],
    now: datetime,
    immediate: bool = False,
    tz: Optional[tzinfo] = None,
) -> LoopTimelineStateUpdate:
    """
    Patch that (re)starts the loop.

    A paused loop resumes where it stopped, whatever immediate says.
    Otherwise the loop starts now when immediate, or at the next occurrence
    of the configured start minute on the wall clock of tz.
    """
    duration = clamp_duration(state.duration_minutes if state else None)
    start_minute = clamp_start_minute(state.start_delay_minutes if state else None)
    paused_elapsed_ms = state.paused_elapsed_ms if state else None

    if paused_elapsed_ms is not None:
        start_at = now - timedelta(milliseconds=paused_elapsed_ms)
    elif immediate:
        start_at = now
    else:
        start_at = next_start_at(now, start_minute, tz)

    return LoopTimelineStateUpdate(
        duration_minutes=duration,
        start_delay_minutes=start_minute,
        start_at=start_at,
        status=LoopStatus.RUNNING.value,
    )


def pause_patch(state: Optional[LoopTimelineState], now: datetime) -> LoopTimelineStateUpdate:
    """Patch that freezes the elapsed time into the status. A scheduled loop pauses at 0."""
    if state is None or not state.is_running:
        raise ValueError("Loop is not running")

    progressed_ms = 0 if state.start_at is None else max(0, elapsed_ms(now, state.start_at))
    return LoopTimelineStateUpdate(status=encode_paused_status(progressed_ms))


def resume_patch(state: Optional[LoopTimelineState], now: datetime) -> LoopTimelineStateUpdate:
    if state is None or state.paused_elapsed_ms is None:
        raise ValueError("Loop is not paused")
    return start_patch(state, now)


def stop_patch() -> LoopTimelineStateUpdate:
    return LoopTimelineStateUpdate(status=LoopStatus.IDLE.value, start_at=None)


def settings_patch(
    state: Optional[LoopTimelineState],
    duration_minutes: Any = None,
    start_minute: Any = None,
) -> LoopTimelineStateUpdate:
    """Clamp new settings; values left as None keep the stored ones"""
    current_duration = clamp_duration(state.duration_minutes if state else None)
    current_start_minute = clamp_start_minute(state.start_delay_minutes if state else None)
    return LoopTimelineStateUpdate(
        duration_minutes=clamp_duration(duration_minutes, current_duration),
        start_delay_minutes=clamp_start_minute(start_minute, current_start_minute),
    )


class MarkerView(BaseModel):
    """Marker as placed on the loop at one instant"""
    key: MarkerKey
    text: str
    offset_minutes: int
    alerted: bool = False
    is_next: bool = False


def describe_markers(
    observation: EngineObservation,
    markers: Sequence[Marker],
    duration_minutes: int,
) -> List[MarkerView]:
    """
    Place markers on the loop: which were already passed in the current
    cycle, and which one comes next (wrapping around the end of the cycle).
    Only a running loop has passed or upcoming markers.
    """
    items = sorted(effective_markers(markers, duration_minutes), key=lambda m: m.offset_minutes)
    running = observation.run_state == LoopRunState.RUNNING and duration_minutes > 0
    position = observation.position_minutes

    next_key: Optional[MarkerKey] = None
    if running:
        best_delta = float("inf")
        for marker in items:
            delta = marker.offset_minutes - position
            if delta <= 0:
                delta += duration_minutes
            if 0 < delta < best_delta:
                best_delta = delta
                next_key = marker.key

    return [
        MarkerView(
            key=marker.key,
            text=marker.text,
            offset_minutes=marker.offset_minutes,
            alerted=running and marker.offset_minutes <= position + ALERTED_EPSILON_MINUTES,
            is_next=next_key is not None and marker.key == next_key,
        )
        for marker in items
    ]
