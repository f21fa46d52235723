"""
Loop Cycle Engine

Computes where a repeating loop currently is and decides which markers must
notify as the clock advances. The host polls it at a fixed cadence; the
engine keeps just enough memory (the ledger) to fire each marker at most once
per cycle, including across cycle wrap-around.

Policies:
- the first poll after entering RUNNING only fires offset-0 markers
- a wrap seen between two polls fires the tail of the old cycle, then the
  head of the new one
- a jump of more than one cycle (suspended host) fires nothing and resyncs
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from app.utils.loop_time import MS_PER_MINUTE, clamp_int, elapsed_ms

from .models.cycle_state import (
    EffectiveMarker,
    EngineObservation,
    LoopConfig,
    LoopRunState,
    Marker,
    MarkerKey,
)

logger = logging.getLogger(__name__)


def effective_markers(markers: Sequence[Marker], duration_minutes: int) -> List[EffectiveMarker]:
    """
    Clamp offsets into [0, duration_minutes] and resolve ledger keys.

    Markers with blank text are dropped. Markers without an id are keyed by
    "text:offset" so unsaved markers still de-duplicate.
    """
    upper = max(0, duration_minutes)
    items: List[EffectiveMarker] = []
    for marker in markers:
        text = str(marker.text or "").strip()
        if not text:
            continue
        offset = clamp_int(marker.offset_minutes, 0, upper, 0)
        key = marker.id if marker.id is not None else f"{text}:{offset}"
        items.append(EffectiveMarker(key=key, text=text, offset_minutes=offset))
    return items


class NotificationLedger:
    """In-memory firing memory of one engine. Never persisted."""

    def __init__(self):
        self.last_fired_cycle_by_marker_key: Dict[MarkerKey, int] = {}
        self.previous_observation: Optional[Tuple[int, float]] = None
        # The loop the ledger was filled under; a change of either invalidates it
        self.duration_minutes: Optional[int] = None
        self.start_instant: Optional[datetime] = None

    def clear(self):
        self.last_fired_cycle_by_marker_key.clear()
        self.previous_observation = None
        self.duration_minutes = None
        self.start_instant = None

    def record(self, key: MarkerKey, cycle: int) -> bool:
        """Record a firing. False when the marker already fired for that cycle."""
        if self.last_fired_cycle_by_marker_key.get(key) == cycle:
            return False
        self.last_fired_cycle_by_marker_key[key] = cycle
        return True


class LoopCycleEngine:
    """One engine per loop (per user); not thread-safe, the host serializes polls"""

    def __init__(self, zero_offset_grace_ms: Optional[int] = None):
        """
        Args:
            zero_offset_grace_ms: When set, offset-0 markers fire on the first
                poll only if the loop started at most this long ago. Hosts that
                restart mid-loop use it to avoid re-announcing the start.
        """
        self.ledger = NotificationLedger()
        self.zero_offset_grace_ms = zero_offset_grace_ms

    def reset(self):
        """Forget everything observed so far (stop, pause, re-schedule, duration change)"""
        self.ledger.clear()

    def observe(self, now: datetime, config: LoopConfig) -> EngineObservation:
        """Current cycle position of the loop. Pure: the ledger is not touched."""
        run_state = config.run_state(now)

        if run_state == LoopRunState.IDLE:
            return EngineObservation(run_state=run_state)

        if run_state == LoopRunState.SCHEDULED:
            return EngineObservation(
                run_state=run_state,
                countdown_ms=elapsed_ms(config.start_instant, now),
            )

        if run_state == LoopRunState.PAUSED:
            progressed_ms = max(0, config.paused_elapsed_ms)
        else:
            progressed_ms = max(0, elapsed_ms(now, config.start_instant))

        if config.duration_minutes <= 0:
            return EngineObservation(run_state=run_state)

        duration_ms = config.duration_minutes * MS_PER_MINUTE
        return EngineObservation(
            run_state=run_state,
            cycle_index=progressed_ms // duration_ms,
            position_minutes=(progressed_ms % duration_ms) / MS_PER_MINUTE,
        )

    def poll(self, now: datetime, config: LoopConfig, markers: Sequence[Marker]) -> List[EffectiveMarker]:
        """
        Advance the ledger to now and return the markers that must notify.

        Args:
            now: Current instant (timezone-aware)
            config: Loop configuration as currently stored
            markers: All markers of the loop

        Returns:
            Fired markers in input order (old-cycle tail before new-cycle head)
        """
        ledger = self.ledger

        if (
            config.run_state(now) != LoopRunState.RUNNING
            or config.duration_minutes <= 0
            or config.start_instant is None
        ):
            self.reset()
            return []

        if ledger.duration_minutes != config.duration_minutes or ledger.start_instant != config.start_instant:
            ledger.clear()
            ledger.duration_minutes = config.duration_minutes
            ledger.start_instant = config.start_instant

        progressed_ms = max(0, elapsed_ms(now, config.start_instant))
        duration_ms = config.duration_minutes * MS_PER_MINUTE
        cycle = progressed_ms // duration_ms
        position = (progressed_ms % duration_ms) / MS_PER_MINUTE
        items = effective_markers(markers, config.duration_minutes)

        fired: List[EffectiveMarker] = []

        def fire(marker: EffectiveMarker, target_cycle: int):
            if ledger.record(marker.key, target_cycle):
                fired.append(marker)

        previous = ledger.previous_observation
        if previous is None:
            within_grace = self.zero_offset_grace_ms is None or progressed_ms <= self.zero_offset_grace_ms
            if within_grace:
                for marker in items:
                    if marker.offset_minutes == 0:
                        fire(marker, cycle)
        else:
            prev_cycle, prev_position = previous
            if cycle == prev_cycle:
                # A backward clock step inside the cycle fires nothing
                if position >= prev_position:
                    for marker in items:
                        if prev_position < marker.offset_minutes <= position:
                            fire(marker, cycle)
            elif cycle == prev_cycle + 1:
                for marker in items:
                    if prev_position < marker.offset_minutes <= config.duration_minutes:
                        fire(marker, prev_cycle)
                for marker in items:
                    if 0 <= marker.offset_minutes <= position:
                        fire(marker, cycle)
            else:
                logger.debug(
                    f"Loop jumped from cycle {prev_cycle} to {cycle}; resyncing without notifications"
                )

        ledger.previous_observation = (cycle, position)
        return fired

    def poll_notifications(self, now: datetime, config: LoopConfig, markers: Sequence[Marker]) -> List[MarkerKey]:
        """Keys of the markers that must notify on this poll"""
        return [marker.key for marker in self.poll(now, config, markers)]
