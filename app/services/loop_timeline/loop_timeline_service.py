"""
Loop Timeline Service

User-scoped operations on a loop timeline:
- reading the loop with its live position
- settings, start / pause / resume / stop
- marker CRUD
Transitions reset the user's cycle engine so no stale firing memory survives.
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import List, Optional

from pydantic import BaseModel
from supabase import Client

from app.infra.supabase.repositories import RepositoryFactory
from app.models.loop_timeline import (
    LoopMarker,
    LoopMarkerCreate,
    LoopMarkerUpdate,
    LoopTimelineState,
    LoopTimelineStateUpdate,
)
from app.utils.loop_time import clamp_int, format_countdown

from .cycle_engine import LoopCycleEngine
from .loop_controller import (
    MarkerView,
    clamp_duration,
    config_from_state,
    describe_markers,
    marker_from_row,
    pause_patch,
    resume_patch,
    settings_patch,
    start_patch,
    stop_patch,
)
from .models.cycle_state import EngineObservation
from .notification_poller import LoopEngineRegistry

logger = logging.getLogger(__name__)


class MarkerNotFoundError(ValueError):
    """The user has no marker with the requested id"""


class LoopTimelineView(BaseModel):
    """Loop state, markers and where the loop is right now"""
    state: Optional[LoopTimelineState] = None
    markers: List[LoopMarker]
    duration_minutes: int
    observation: EngineObservation
    progress_ratio: float
    countdown_label: Optional[str] = None
    marker_views: List[MarkerView]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LoopTimelineService:
    """Service for managing a user's loop timeline"""

    def __init__(self, supabase_client: Client, registry: Optional[LoopEngineRegistry] = None):
        repositories = RepositoryFactory(supabase_client)
        self.state_repo = repositories.loop_states
        self.marker_repo = repositories.loop_markers
        self.registry = registry
        # Only observe() is used here; it never touches the ledger
        self._observer = LoopCycleEngine()

    def _reset_engine(self, user_id: str):
        if self.registry is not None:
            self.registry.reset(user_id)

    async def get_view(self, user_id: str, now: Optional[datetime] = None) -> LoopTimelineView:
        """
        Get the loop of a user with its current position.

        Args:
            user_id: The user ID
            now: Instant to observe at (defaults to the current time)

        Returns:
            LoopTimelineView; a user without a stored state gets an idle default loop
        """
        now = now or _utc_now()
        state = await self.state_repo.find_by_user(user_id)
        markers = await self.marker_repo.find_by_user(user_id)

        loop_config = config_from_state(state)
        observation = self._observer.observe(now, loop_config)
        engine_markers = [marker_from_row(m) for m in markers]

        countdown_label = None
        if observation.countdown_ms is not None:
            countdown_label = format_countdown(observation.countdown_ms)

        return LoopTimelineView(
            state=state,
            markers=markers,
            duration_minutes=loop_config.duration_minutes,
            observation=observation,
            progress_ratio=observation.position_minutes / loop_config.duration_minutes,
            countdown_label=countdown_label,
            marker_views=describe_markers(observation, engine_markers, loop_config.duration_minutes),
        )

    async def _save(self, user_id: str, patch: LoopTimelineStateUpdate, action: str) -> LoopTimelineState:
        saved = await self.state_repo.save(user_id, patch)
        logger.info(f"Loop {action} for user {user_id}: status={saved.status}, start_at={saved.start_at}")
        return saved

    async def update_settings(
        self,
        user_id: str,
        duration_minutes: Optional[int] = None,
        start_minute: Optional[int] = None,
    ) -> LoopTimelineState:
        """Change the cycle length and/or the deferred start minute"""
        state = await self.state_repo.find_by_user(user_id)
        patch = settings_patch(state, duration_minutes, start_minute)
        saved = await self._save(user_id, patch, "settings updated")

        previous_duration = clamp_duration(state.duration_minutes) if state else None
        if saved.duration_minutes != previous_duration:
            self._reset_engine(user_id)
        return saved

    async def start(
        self,
        user_id: str,
        immediate: bool = False,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
    ) -> LoopTimelineState:
        """Start the loop (resumes a paused loop); a deferred start waits for the start minute in tz"""
        state = await self.state_repo.find_by_user(user_id)
        saved = await self._save(user_id, start_patch(state, now or _utc_now(), immediate, tz), "started")
        self._reset_engine(user_id)
        return saved

    async def pause(self, user_id: str, now: Optional[datetime] = None) -> LoopTimelineState:
        """
        Pause a running loop.

        Raises:
            ValueError: If the loop is not running
        """
        state = await self.state_repo.find_by_user(user_id)
        saved = await self._save(user_id, pause_patch(state, now or _utc_now()), "paused")
        self._reset_engine(user_id)
        return saved

    async def resume(self, user_id: str, now: Optional[datetime] = None) -> LoopTimelineState:
        """
        Resume a paused loop where it stopped.

        Raises:
            ValueError: If the loop is not paused
        """
        state = await self.state_repo.find_by_user(user_id)
        saved = await self._save(user_id, resume_patch(state, now or _utc_now()), "resumed")
        self._reset_engine(user_id)
        return saved

    async def stop(self, user_id: str) -> LoopTimelineState:
        """Stop the loop and forget its start instant"""
        saved = await self._save(user_id, stop_patch(), "stopped")
        self._reset_engine(user_id)
        return saved

    async def list_markers(self, user_id: str) -> List[LoopMarker]:
        return await self.marker_repo.find_by_user(user_id)

    async def _current_duration(self, user_id: str) -> int:
        state = await self.state_repo.find_by_user(user_id)
        return clamp_duration(state.duration_minutes if state else None)

    @staticmethod
    def _clean_text(text: Optional[str]) -> str:
        cleaned = str(text or "").strip()
        if not cleaned:
            raise ValueError("Marker text must not be empty")
        return cleaned

    async def add_marker(self, user_id: str, text: str, offset_minutes: int = 0) -> LoopMarker:
        """
        Pin a marker on the loop.

        Args:
            user_id: The user ID
            text: Marker text (stripped, must not be empty)
            offset_minutes: Minute offset, clamped to [0, duration]

        Returns:
            The created marker
        """
        cleaned = self._clean_text(text)
        duration = await self._current_duration(user_id)
        marker = await self.marker_repo.create(
            LoopMarkerCreate(
                user_id=user_id,
                text=cleaned,
                offset_minutes=clamp_int(offset_minutes, 0, duration, 0),
            )
        )
        logger.info(f"Created loop marker {marker.id} at {marker.offset_minutes}min for user {user_id}")
        if self.registry is not None:
            self.registry.request_refresh()
        return marker

    async def update_marker(
        self,
        user_id: str,
        marker_id: int,
        text: Optional[str] = None,
        offset_minutes: Optional[int] = None,
    ) -> LoopMarker:
        """
        Edit a marker's text and/or offset.

        Raises:
            MarkerNotFoundError: If the user has no such marker
            ValueError: If the new text is empty
        """
        fields = {}
        if text is not None:
            fields["text"] = self._clean_text(text)
        if offset_minutes is not None:
            duration = await self._current_duration(user_id)
            fields["offset_minutes"] = clamp_int(offset_minutes, 0, duration, 0)

        marker = await self.marker_repo.update(user_id, marker_id, LoopMarkerUpdate(**fields))
        if marker is None:
            raise MarkerNotFoundError(f"Marker {marker_id} not found")

        logger.info(f"Updated loop marker {marker_id} for user {user_id}")
        if self.registry is not None:
            self.registry.request_refresh()
        return marker

    async def delete_marker(self, user_id: str, marker_id: int) -> None:
        """
        Remove a marker.

        Raises:
            MarkerNotFoundError: If the user has no such marker
        """
        deleted = await self.marker_repo.delete(user_id, marker_id)
        if not deleted:
            raise MarkerNotFoundError(f"Marker {marker_id} not found")

        logger.info(f"Deleted loop marker {marker_id} for user {user_id}")
        if self.registry is not None:
            self.registry.request_refresh()
