"""Tests for the annotation session: gestures, mode switching, save and submit."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from src.course.models import ObjectType
from src.session import CONFIRMATION_REQUIRED, RESULT_TIMER, AnnotationSession
from src.editing.viewport import HIGHLIGHT_TIMER
from tests.conftest import T0, FakeCourseService, make_testing_course


def add_points(session, n):
    for i in range(n):
        assert session.click_map(32.0 + i * 0.01, 34.0 + i * 0.01).ok


class BlockingService(FakeCourseService):
    """create_course waits until `release` is set."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def create_course(self, request):
        await self.release.wait()
        return await super().create_course(request)


class TestClickMap:
    def test_point_at_cursor_then_auto_advance(self, session):
        """Each click stamps the cursor instant, then the cursor moves on."""
        first = session.click_map(32.0, 34.0)
        second = session.click_map(32.01, 34.01)

        assert first.ok and second.ok
        stamps = [p.timestamp for p in session.store.ordered_view()]
        assert stamps == [T0, T0 + timedelta(seconds=1)]
        assert session.cursor.current == T0 + timedelta(seconds=2)

    def test_rejected_click_keeps_cursor(self, session):
        """A cursor at or before the latest point is refused and not advanced."""
        session.click_map(32.0, 34.0)
        session.set_time(T0 - timedelta(seconds=5))

        outcome = session.click_map(32.1, 34.1)

        assert not outcome.ok
        assert outcome.kind == "timestamp_order_violation"
        assert len(session.store) == 1
        assert session.cursor.current == T0 - timedelta(seconds=5)

    def test_snapshot_flags_invalid_cursor(self, session):
        session.click_map(32.0, 34.0)
        session.set_time(T0)
        assert session.snapshot()["cursor"]["valid"] is False

    def test_out_of_range_coordinates(self, session):
        outcome = session.click_map(123.0, 34.0)
        assert outcome.kind == "invalid_value"
        assert len(session.store) == 0

    def test_auto_zoom_follows_points(self, session):
        session.click_map(32.0, 34.0)
        session.click_map(32.2, 34.2)
        lat, lon = session.viewport.state.center
        assert lat == pytest.approx(32.1)
        assert lon == pytest.approx(34.1)


class TestEditing:
    def test_edit_conflicting_timestamp(self, session):
        add_points(session, 2)
        first, second = session.store.ordered_view()
        outcome = session.edit_point(first.point_id, timestamp=second.timestamp.isoformat())
        assert outcome.kind == "timestamp_conflict"
        assert session.store.get(first.point_id).timestamp == T0

    def test_edit_altitude(self, session):
        add_points(session, 1)
        point = session.store.ordered_view()[0]
        outcome = session.edit_point(point.point_id, altitude=320)
        assert outcome.ok
        assert session.store.get(point.point_id).altitude == 320.0

    def test_edit_without_changes(self, session):
        add_points(session, 1)
        point = session.store.ordered_view()[0]
        assert session.edit_point(point.point_id).kind == "invalid_value"

    def test_delete_needs_confirmation(self, session):
        """Delete asks first; cancel keeps the point, confirm removes it."""
        add_points(session, 2)
        target = session.store.ordered_view()[0].point_id

        asked = session.request_delete(target)
        assert asked.kind == CONFIRMATION_REQUIRED
        assert session.snapshot()["pending_delete"] == target

        session.cancel_delete()
        assert target in session.store

        session.request_delete(target)
        assert session.confirm_delete().ok
        assert target not in session.store
        assert session.snapshot()["pending_delete"] is None

    def test_confirm_without_request(self, session):
        assert session.confirm_delete().kind == "invalid_value"

    def test_delete_unknown_point(self, session):
        assert session.request_delete("p77").kind == "not_found"

    def test_snapshot_roles_and_path(self, session):
        """Earliest point is the start, latest the end."""
        add_points(session, 3)
        rows = session.snapshot()["points"]
        assert [r["role"] for r in rows] == ["start", None, "end"]
        assert len(session.snapshot()["path"]) == 3

    def test_jump_highlight_clears(self, session, scheduler):
        add_points(session, 1)
        point_id = session.store.ordered_view()[0].point_id
        assert session.jump_to_point(point_id).data == {"jumped": True}
        assert session.snapshot()["view"]["highlighted_point_id"] == point_id
        scheduler.advance(3.0)
        assert session.snapshot()["view"]["highlighted_point_id"] is None

    def test_noise_level_bounds(self, session):
        assert session.set_noise_level(45).ok
        assert session.set_noise_level(101).kind == "invalid_value"
        assert session.mode.selection.noise_level == 45


class TestTestingMode:
    def test_mutations_rejected(self, session):
        """In testing mode no gesture changes the loaded course."""
        asyncio.run(session.set_mode("testing"))
        before = session.store.points
        point_id = next(iter(before))

        outcomes = [
            session.click_map(32.5, 34.5),
            session.drag_point(point_id, 32.5, 34.5),
            session.edit_point(point_id, altitude=5),
            session.request_delete(point_id),
            session.set_noise_level(10),
        ]

        assert all(o.kind == "mode_capability_denied" for o in outcomes)
        assert session.store.points == before

    def test_answer_hidden_until_scored(self, session):
        asyncio.run(session.set_mode("testing"))
        course = session.snapshot()["course"]
        assert course["object_type"] is None
        assert "correct_object_type" not in course

    def test_failed_switch_stays_in_training(self, session, service):
        add_points(session, 2)
        service.failing.add("get_random_testing_course")

        outcome = asyncio.run(session.set_mode("testing"))

        assert outcome.kind == "remote_failure"
        assert session.mode.state.value == "training"
        assert len(session.store) == 2

    def test_unknown_mode(self, session):
        assert asyncio.run(session.set_mode("racing")).kind == "invalid_value"

    def test_submit_scores_and_loads_next(self, session, service, scheduler):
        """Correct answer reported, then the next course loads after the delay."""
        service.testing_courses.extend([
            make_testing_course("t1", answer=ObjectType.BIRD),
            make_testing_course("t2", answer=ObjectType.PLANE, n_points=5),
        ])

        async def run():
            await session.set_mode("testing")
            session.set_object_type("bird")
            outcome = await session.submit()
            assert scheduler.is_pending(RESULT_TIMER)
            scheduler.advance(2.0)
            await session.drain()
            return outcome

        outcome = asyncio.run(run())

        assert outcome.ok
        assert outcome.message == "Correct! Well done!"
        assert service.submissions == [("t1", "bird", "bird")]
        assert session.mode.active_course.id == "t2"
        assert len(session.store) == 5
        assert session.last_result is None

    def test_wrong_answer_message(self, session, service):
        service.testing_courses.append(make_testing_course("t1", answer=ObjectType.STORM))

        async def run():
            await session.set_mode("testing")
            session.set_object_type("drone")
            return await session.submit()

        outcome = asyncio.run(run())
        assert outcome.message == "Incorrect. The correct answer was: storm"
        assert outcome.data["is_correct"] is False

    def test_second_submit_before_next_course(self, session):
        async def run():
            await session.set_mode("testing")
            await session.submit()
            return await session.submit()

        assert asyncio.run(run()).kind == "no_active_course"

    def test_submit_in_training(self, session):
        assert asyncio.run(session.submit()).kind == "mode_capability_denied"

    def test_back_to_training_cancels_timers(self, session, scheduler, service):
        """Leaving testing drops the pending next-course load and resets state."""
        async def run():
            await session.set_mode("testing")
            session.set_object_type("plane")
            await session.submit()
            await session.set_mode("training")
            scheduler.advance(5.0)
            await session.drain()

        asyncio.run(run())

        assert session.mode.state.value == "training"
        assert len(session.store) == 0
        assert session.mode.selection.object_type == ObjectType.DRONE
        assert not scheduler.is_pending(RESULT_TIMER)
        assert not scheduler.is_pending(HIGHLIGHT_TIMER)
        assert service.calls.count("get_random_testing_course") == 1


class TestSave:
    def test_single_point_never_reaches_service(self, session, service):
        add_points(session, 1)
        outcome = asyncio.run(session.save())
        assert outcome.kind == "insufficient_points"
        assert service.calls == []

    def test_payload_is_ordered_without_ids(self, session, service):
        """Saved points go out in timestamp order and without client ids."""
        add_points(session, 3)
        last = session.store.ordered_view()[-1]
        session.edit_point(last.point_id, timestamp=(T0 - timedelta(seconds=30)).isoformat())
        session.set_object_type("plane")
        session.set_noise_level(20)

        outcome = asyncio.run(session.save())

        assert outcome.ok
        payload = service.created[0].to_dict()
        assert payload["object_type"] == "plane"
        assert payload["mode"] == "training"
        assert payload["noise_level"] == 20
        assert all("point_id" not in p for p in payload["points"])
        stamps = [p["timestamp"] for p in payload["points"]]
        assert stamps == sorted(stamps)
        assert session.mode.active_course.id == "c1"

    def test_failed_save_keeps_draft(self, session, service):
        add_points(session, 2)
        before = session.store.points
        service.failing.add("create_course")

        outcome = asyncio.run(session.save())

        assert outcome.kind == "remote_failure"
        assert session.store.points == before
        assert not session.busy

    def test_primary_action_saves_in_training(self, session, service):
        add_points(session, 2)
        assert asyncio.run(session.primary_action()).ok
        assert service.calls == ["create_course"]


class TestBusy:
    def test_overlapping_remote_calls_rejected(self, app_config, scheduler):
        """While a save is in flight, other remote operations are refused."""
        service = BlockingService()
        session = AnnotationSession(app_config, service, scheduler=scheduler, start_time=T0)
        add_points(session, 2)

        async def run():
            saving = asyncio.ensure_future(session.save())
            await asyncio.sleep(0)
            assert session.busy
            rejected = [await session.save(), await session.set_mode("testing")]
            service.release.set()
            return rejected, await saving

        rejected, saved = asyncio.run(run())

        assert [o.kind for o in rejected] == ["session_busy", "session_busy"]
        assert saved.ok
        assert not session.busy
        assert session.mode.state.value == "training"


class TestExport:
    def test_export_reports_counts(self, session, service):
        outcome = asyncio.run(session.export_data())
        assert outcome.message == "Exported 4 courses and 37 points"
        assert outcome.data["downloaded"] == []
        assert "download" not in service.calls

    def test_export_downloads_when_configured(self, session, service, tmp_path):
        session.config.api.export_dir = str(tmp_path)
        outcome = asyncio.run(session.export_data())
        assert outcome.data["downloaded"] == [f"{tmp_path}/courses.csv"]

    def test_export_failure(self, session, service):
        service.failing.add("export_csv")
        assert asyncio.run(session.export_data()).kind == "remote_failure"


class TestEvents:
    def test_callbacks_receive_snapshots(self, session):
        events = []
        session.add_event_callback(events.append)
        session.click_map(32.0, 34.0)
        assert events[-1]["type"] == "session"
        assert len(events[-1]["session"]["points"]) == 1


class TestModeReset:
    def test_switch_resets_cursor_and_view(self, session):
        """Each mode switch restores the starting cursor and the default view."""
        add_points(session, 2)
        session.configure_time(unit="minutes", amount=10, auto_advance=False)
        session.jump_time()
        assert session.viewport.state.center != (32.0853, 34.7818)

        asyncio.run(session.set_mode("testing"))
        assert session.cursor.current == T0
        assert session.cursor.amount == 1
        assert session.cursor.auto_advance is True

        session.step_time(1)
        asyncio.run(session.set_mode("training"))
        assert session.cursor.current == T0
        view = session.viewport.state
        assert view.center == (32.0853, 34.7818)
        assert view.zoom == 10

    def test_failed_switch_keeps_cursor(self, session, service):
        session.jump_time()
        service.failing.add("get_random_testing_course")
        asyncio.run(session.set_mode("testing"))
        assert session.cursor.current == T0 + timedelta(seconds=1)


class TestBadInput:
    def test_non_string_timestamp(self, session):
        """A numeric timestamp is an invalid value, not a crash."""
        add_points(session, 1)
        point_id = session.store.ordered_view()[0].point_id
        assert session.edit_point(point_id, timestamp=12345).kind == "invalid_value"
        assert session.set_time(12345).kind == "invalid_value"

    def test_infinite_noise_level(self, session):
        assert session.set_noise_level(float("inf")).kind == "invalid_value"
        assert session.mode.selection.noise_level == 0

    def test_infinite_altitude_keeps_snapshot_renderable(self, session):
        add_points(session, 1)
        point_id = session.store.ordered_view()[0].point_id
        assert session.edit_point(point_id, altitude=float("inf")).kind == "invalid_value"
        assert session.snapshot()["points"][0]["altitude"] == 100.0
