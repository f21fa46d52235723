"""
Loop Notification Poller

Host loop of the cycle engines: ticks on the event loop, keeps a cached
snapshot of every active loop and its markers, polls one engine per user and
hands fired markers to the delivery collaborator.
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from supabase import Client

from app import config
from app.infra.supabase.repositories import RepositoryFactory
from app.models.loop_timeline import LoopMarker

from .cycle_engine import LoopCycleEngine
from .loop_controller import config_from_state, marker_from_row
from .models.cycle_state import EffectiveMarker, LoopConfig, Marker
from .notification_dispatcher import NotificationDelivery

logger = logging.getLogger(__name__)


class LoopEngineRegistry:
    """One cycle engine per user, shared by the poller and the API"""

    def __init__(self, zero_offset_grace_ms: Optional[int] = None):
        self.zero_offset_grace_ms = zero_offset_grace_ms
        self._engines: Dict[str, LoopCycleEngine] = {}
        self.refresh_requested = False

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    def user_ids(self) -> List[str]:
        return list(self._engines)

    def get(self, user_id: str) -> LoopCycleEngine:
        engine = self._engines.get(user_id)
        if engine is None:
            engine = LoopCycleEngine(zero_offset_grace_ms=self.zero_offset_grace_ms)
            self._engines[user_id] = engine
        return engine

    def reset(self, user_id: str):
        """Clear the user's ledger after a transition and ask for a fresh snapshot"""
        engine = self._engines.get(user_id)
        if engine is not None:
            engine.reset()
        self.refresh_requested = True

    def request_refresh(self):
        self.refresh_requested = True

    def discard(self, user_id: str):
        self._engines.pop(user_id, None)


class LoopNotificationPoller:
    """Polls every active loop at a fixed cadence"""

    def __init__(
        self,
        supabase_client: Client,
        dispatcher: NotificationDelivery,
        registry: Optional[LoopEngineRegistry] = None,
        interval_ms: int = config.LOOP_POLL_INTERVAL_MS,
        refresh_seconds: float = config.LOOP_STORE_REFRESH_SECONDS,
    ):
        repositories = RepositoryFactory(supabase_client)
        self.state_repo = repositories.loop_states
        self.marker_repo = repositories.loop_markers
        self.dispatcher = dispatcher
        self.registry = registry or LoopEngineRegistry(config.LOOP_ZERO_OFFSET_GRACE_MS)
        self.interval_ms = interval_ms
        self.refresh_seconds = refresh_seconds

        self._snapshot: Dict[str, Tuple[LoopConfig, List[Marker]]] = {}
        self._last_refresh: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active_user_ids(self) -> List[str]:
        return list(self._snapshot)

    def _refresh_due(self) -> bool:
        if self._last_refresh is None or self.registry.refresh_requested:
            return True
        return time.monotonic() - self._last_refresh >= self.refresh_seconds

    async def refresh(self):
        """Reload every active loop and its markers from the store"""
        self.registry.refresh_requested = False
        states = await self.state_repo.find_active()
        rows = await self.marker_repo.find_by_users([state.user_id for state in states])

        rows_by_user: Dict[str, List[LoopMarker]] = defaultdict(list)
        for row in rows:
            rows_by_user[row.user_id].append(row)

        # One unreadable loop only drops that user from the snapshot
        snapshot: Dict[str, Tuple[LoopConfig, List[Marker]]] = {}
        for state in states:
            try:
                markers = [marker_from_row(row) for row in rows_by_user.get(state.user_id, [])]
                snapshot[state.user_id] = (config_from_state(state), markers)
            except Exception as e:
                logger.error(f"Skipping loop of user {state.user_id}: {e}")

        for user_id in self.registry.user_ids():
            if user_id not in snapshot:
                self.registry.discard(user_id)

        self._snapshot = snapshot
        self._last_refresh = time.monotonic()

    async def poll_once(self, now: Optional[datetime] = None) -> Dict[str, List[EffectiveMarker]]:
        """
        One tick: refresh the snapshot when due, poll every engine, deliver.

        Returns:
            Fired markers per user (users with nothing to fire are omitted)
        """
        if self._refresh_due():
            try:
                await self.refresh()
            except Exception as e:
                # Keep ticking on the previous snapshot; retry after the refresh interval
                self._last_refresh = time.monotonic()
                logger.error(f"Error refreshing loop timeline snapshot: {e}")

        now = now or datetime.now(timezone.utc)
        fired_by_user: Dict[str, List[EffectiveMarker]] = {}

        for user_id, (loop_config, markers) in self._snapshot.items():
            try:
                fired = self.registry.get(user_id).poll(now, loop_config, markers)
            except Exception as e:
                logger.error(f"Error polling loop of user {user_id}: {e}")
                continue
            if not fired:
                continue
            fired_by_user[user_id] = fired
            for marker in fired:
                await self._deliver(user_id, marker)

        return fired_by_user

    async def _deliver(self, user_id: str, marker: EffectiveMarker):
        # The ledger already holds the marker; a failed delivery is not retried
        try:
            await self.dispatcher.deliver(user_id, marker)
            logger.info(f"Loop marker {marker.key} fired for user {user_id}")
        except Exception as e:
            logger.error(f"Error delivering loop marker {marker.key} for user {user_id}: {e}")

    async def run(self):
        """Tick until cancelled"""
        logger.info(f"Loop notification poller started (interval={self.interval_ms}ms)")
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error in loop notification tick: {e}")
            await asyncio.sleep(self.interval_ms / 1000)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Loop notification poller stopped")
