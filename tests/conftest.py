import pytest

from app.services.loop_timeline.notification_poller import LoopEngineRegistry

from .fixtures import FakeSupabaseClient


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def registry() -> LoopEngineRegistry:
    return LoopEngineRegistry(zero_offset_grace_ms=1500)
