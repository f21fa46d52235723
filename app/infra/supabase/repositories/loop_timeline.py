"""Loop timeline repositories"""
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from supabase import Client  # type: ignore

from app.models.loop_timeline import (
    LoopMarker,
    LoopMarkerCreate,
    LoopMarkerUpdate,
    LoopStatus,
    LoopTimelineState,
    LoopTimelineStateUpdate,
)

from .base import RepositoryError, UserScopedRepository

STATE_TABLE = "loop_timeline_state"
MARKERS_TABLE = "loop_timeline_markers"

STATE_COLUMNS = "user_id, duration_minutes, start_at, status, start_delay_minutes, created_at, updated_at"
MARKER_COLUMNS = "id, user_id, text, offset_minutes, created_at, updated_at"


class LoopTimelineStoreError(RepositoryError):
    """Loop timeline state or markers could not be read or written"""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LoopTimelineStateRepository(UserScopedRepository[LoopTimelineState]):
    """Repository for the one-row-per-user loop state"""

    error_class = LoopTimelineStoreError

    def __init__(self, client: Client):
        super().__init__(client, STATE_TABLE, LoopTimelineState, STATE_COLUMNS)

    async def find_by_user(self, user_id: str) -> Optional[LoopTimelineState]:
        """Find the loop state of a user, None if the user never saved one"""
        self._require_user_id(user_id)
        query = self._table().select(self._columns).eq("user_id", user_id).limit(1)
        rows = self._execute("fetchState", query, user_id=user_id)
        return self._to_model(rows[0]) if rows else None

    async def find_active(self) -> List[LoopTimelineState]:
        """Find every loop that is not idle (running, scheduled or paused). Unreadable rows are skipped."""
        query = self._table().select(self._columns).neq("status", LoopStatus.IDLE.value)
        return self._to_valid_models("fetchActive", self._execute("fetchActive", query))

    async def save(self, user_id: str, patch: LoopTimelineStateUpdate) -> LoopTimelineState:
        """
        Upsert the user's loop state with the fields set on the patch.

        Args:
            user_id: Owner of the loop
            patch: Fields to write; unset fields keep their stored value

        Returns:
            The stored state after the write
        """
        self._require_user_id(user_id)
        payload = {
            "user_id": user_id,
            **patch.model_dump(exclude_unset=True, mode="json"),
            "updated_at": _utc_now_iso(),
        }
        query = self._table().upsert(payload, on_conflict="user_id")
        rows = self._execute("saveState", query, user_id=user_id, keys=sorted(payload))

        if not rows:
            raise self.error_class("loop_timeline_state saveState returned no row")

        return self._to_model(rows[0])


class LoopTimelineMarkerRepository(UserScopedRepository[LoopMarker]):
    """Repository for markers pinned on a user's loop"""

    error_class = LoopTimelineStoreError

    def __init__(self, client: Client):
        super().__init__(client, MARKERS_TABLE, LoopMarker, MARKER_COLUMNS)

    async def find_by_user(self, user_id: str) -> List[LoopMarker]:
        """Find a user's markers ordered along the loop (offset, then id)"""
        self._require_user_id(user_id)
        query = (
            self._table()
            .select(self._columns)
            .eq("user_id", user_id)
            .order("offset_minutes")
            .order("id")
        )
        return self._to_models(self._execute("fetchMarkers", query, user_id=user_id))

    async def find_by_users(self, user_ids: Sequence[str]) -> List[LoopMarker]:
        """Find the markers of several users in one round trip"""
        if not user_ids:
            return []
        query = (
            self._table()
            .select(self._columns)
            .in_("user_id", list(user_ids))
            .order("offset_minutes")
            .order("id")
        )
        rows = self._execute("fetchMarkersBatch", query, users=len(user_ids))
        return self._to_valid_models("fetchMarkersBatch", rows)

    async def create(self, data: LoopMarkerCreate) -> LoopMarker:
        """Create a marker"""
        self._require_user_id(data.user_id)
        payload = {**data.model_dump(mode="json"), "updated_at": _utc_now_iso()}
        query = self._table().insert(payload)
        rows = self._execute(
            "createMarker",
            query,
            user_id=data.user_id,
            text_length=len(data.text),
            offset_minutes=data.offset_minutes,
        )

        if not rows:
            raise self.error_class("loop_timeline_markers createMarker returned no row")

        return self._to_model(rows[0])

    async def update(self, user_id: str, marker_id: int, data: LoopMarkerUpdate) -> Optional[LoopMarker]:
        """Update a marker of the user. None if the user has no such marker."""
        self._require_user_id(user_id)
        if marker_id is None:
            raise ValueError("marker_id is required")

        payload = {**data.model_dump(exclude_unset=True, mode="json"), "updated_at": _utc_now_iso()}
        query = self._table().update(payload).eq("user_id", user_id).eq("id", marker_id)
        rows = self._execute("updateMarker", query, user_id=user_id, id=marker_id)
        return self._to_model(rows[0]) if rows else None

    async def delete(self, user_id: str, marker_id: int) -> bool:
        """Delete a marker of the user. False if nothing was deleted."""
        self._require_user_id(user_id)
        if marker_id is None:
            raise ValueError("marker_id is required")

        query = self._table().delete().eq("user_id", user_id).eq("id", marker_id)
        rows = self._execute("deleteMarker", query, user_id=user_id, id=marker_id)
        return len(rows) > 0
