"""Repository factory and exports"""
from supabase import Client
from .base import RepositoryError, UserScopedRepository
from .loop_timeline import (
    LoopTimelineMarkerRepository,
    LoopTimelineStateRepository,
    LoopTimelineStoreError,
)


class RepositoryFactory:
    """Factory for creating repository instances"""

    def __init__(self, client: Client):
        self._client = client
        self._loop_states: LoopTimelineStateRepository = None
        self._loop_markers: LoopTimelineMarkerRepository = None

    @property
    def loop_states(self) -> LoopTimelineStateRepository:
        """Get loop state repository"""
        if self._loop_states is None:
            self._loop_states = LoopTimelineStateRepository(self._client)
        return self._loop_states

    @property
    def loop_markers(self) -> LoopTimelineMarkerRepository:
        """Get loop marker repository"""
        if self._loop_markers is None:
            self._loop_markers = LoopTimelineMarkerRepository(self._client)
        return self._loop_markers


__all__ = [
    'RepositoryFactory',
    'RepositoryError',
    'UserScopedRepository',
    'LoopTimelineStateRepository',
    'LoopTimelineMarkerRepository',
    'LoopTimelineStoreError',
]
