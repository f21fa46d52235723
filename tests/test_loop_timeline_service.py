"""
Loop Timeline Service Tests

Service flows against the in-memory Supabase fake: the live view,
transitions resetting the user's engine and marker validation.
"""

import asyncio
from datetime import timedelta

import pytest

from app.services.loop_timeline import LoopTimelineService, MarkerNotFoundError
from app.services.loop_timeline.models import LoopRunState

from .fixtures import T0, at_minutes


@pytest.fixture
def service(supabase_client, registry) -> LoopTimelineService:
    return LoopTimelineService(supabase_client, registry=registry)


class TestView:

    def test_unknown_user_gets_idle_default(self, service):
        view = asyncio.run(service.get_view("user-1", now=T0))

        assert view.state is None
        assert view.markers == []
        assert view.duration_minutes == 60
        assert view.observation.run_state == LoopRunState.IDLE
        assert view.progress_ratio == 0.0
        assert view.countdown_label is None

    def test_running_loop_position_and_markers(self, service):
        asyncio.run(service.start("user-1", immediate=True, now=T0))
        asyncio.run(service.add_marker("user-1", "stand up", 10))
        asyncio.run(service.add_marker("user-1", "water", 30))

        view = asyncio.run(service.get_view("user-1", now=at_minutes(75)))

        assert view.observation.run_state == LoopRunState.RUNNING
        assert view.observation.cycle_index == 1
        assert view.observation.position_minutes == pytest.approx(15.0)
        assert view.progress_ratio == pytest.approx(0.25)
        assert [(v.text, v.alerted, v.is_next) for v in view.marker_views] == [
            ("stand up", True, False),
            ("water", False, True),
        ]

    def test_scheduled_loop_has_countdown(self, service):
        asyncio.run(service.update_settings("user-1", start_minute=30))
        asyncio.run(service.start("user-1", now=T0))

        view = asyncio.run(service.get_view("user-1", now=T0 + timedelta(minutes=17, seconds=26)))

        assert view.observation.run_state == LoopRunState.SCHEDULED
        assert view.countdown_label == "12:34"


class TestTransitions:

    def test_start_resets_engine_and_requests_refresh(self, service, registry):
        engine = registry.get("user-1")
        engine.ledger.record(1, 0)
        registry.refresh_requested = False

        asyncio.run(service.start("user-1", immediate=True, now=T0))

        assert engine.ledger.last_fired_cycle_by_marker_key == {}
        assert registry.refresh_requested is True

    def test_pause_and_resume(self, service):
        asyncio.run(service.start("user-1", immediate=True, now=T0))

        paused = asyncio.run(service.pause("user-1", now=at_minutes(12)))
        assert paused.status == "paused:720000"

        resumed = asyncio.run(service.resume("user-1", now=at_minutes(100)))
        assert resumed.status == "running"
        assert resumed.start_at == at_minutes(88)

    def test_pause_when_idle_is_rejected(self, service):
        with pytest.raises(ValueError):
            asyncio.run(service.pause("user-1", now=T0))

    def test_resume_when_running_is_rejected(self, service):
        asyncio.run(service.start("user-1", immediate=True, now=T0))
        with pytest.raises(ValueError):
            asyncio.run(service.resume("user-1", now=T0))

    def test_stop_clears_start(self, service):
        asyncio.run(service.start("user-1", immediate=True, now=T0))

        stopped = asyncio.run(service.stop("user-1"))

        assert stopped.status == "idle"
        assert stopped.start_at is None

    def test_duration_change_resets_engine(self, service, registry):
        asyncio.run(service.update_settings("user-1", duration_minutes=30))
        engine = registry.get("user-1")
        engine.ledger.record(1, 4)

        asyncio.run(service.update_settings("user-1", start_minute=10))
        assert engine.ledger.last_fired_cycle_by_marker_key == {1: 4}

        asyncio.run(service.update_settings("user-1", duration_minutes=45))
        assert engine.ledger.last_fired_cycle_by_marker_key == {}


class TestMarkers:

    def test_add_marker_strips_text_and_clamps_offset(self, service):
        asyncio.run(service.update_settings("user-1", duration_minutes=30))

        marker = asyncio.run(service.add_marker("user-1", "  stretch  ", 90))

        assert marker.text == "stretch"
        assert marker.offset_minutes == 30

    def test_add_marker_requests_refresh(self, service, registry):
        registry.refresh_requested = False
        asyncio.run(service.add_marker("user-1", "stretch", 5))
        assert registry.refresh_requested is True

    def test_empty_text_is_rejected(self, service):
        with pytest.raises(ValueError):
            asyncio.run(service.add_marker("user-1", "   ", 5))

    def test_update_marker(self, service):
        marker = asyncio.run(service.add_marker("user-1", "stretch", 5))

        updated = asyncio.run(service.update_marker("user-1", marker.id, offset_minutes=-4))

        assert updated.offset_minutes == 0
        assert updated.text == "stretch"

    def test_update_unknown_marker(self, service):
        with pytest.raises(MarkerNotFoundError):
            asyncio.run(service.update_marker("user-1", 999, text="nothing"))

    def test_delete_marker(self, service):
        marker = asyncio.run(service.add_marker("user-1", "stretch", 5))

        asyncio.run(service.delete_marker("user-1", marker.id))

        assert asyncio.run(service.list_markers("user-1")) == []
        with pytest.raises(MarkerNotFoundError):
            asyncio.run(service.delete_marker("user-1", marker.id))
