"""Annotation session: gestures in, outcomes and snapshots out."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Coroutine, Iterator, Optional

from src.config import AppConfig, save_config_values
from src.course.client import CourseClient
from src.course.models import (
    AppMode,
    CreateCourseRequest,
    ObjectType,
    TestingResult,
    parse_timestamp,
)
from src.editing.errors import (
    AnnotationError,
    InsufficientPoints,
    InvalidValue,
    ModeCapabilityDenied,
    NoActiveCourse,
    SessionBusy,
    TimestampOrderViolation,
)
from src.editing.mode import ModeController
from src.editing.point_store import TemporalPointStore
from src.editing.scheduler import AsyncioScheduler, Scheduler
from src.editing.time_cursor import TimeCursor
from src.editing.viewport import ViewportSynchronizer

logger = logging.getLogger(__name__)

RESULT_TIMER = "testing_result"

OK = "ok"
CONFIRMATION_REQUIRED = "confirmation_required"


@dataclass
class Outcome:
    """User-facing result of one session operation."""
    ok: bool
    kind: str
    message: str = ""
    data: Any = None

    @classmethod
    def success(cls, message: str = "", data: Any = None, kind: str = OK) -> Outcome:
        return cls(ok=True, kind=kind, message=message, data=data)

    @classmethod
    def from_error(cls, exc: AnnotationError) -> Outcome:
        return cls(ok=False, kind=exc.kind.value, message=exc.message)

    def to_dict(self) -> dict:
        return {
            "status": "ok" if self.ok else "error",
            "kind": self.kind,
            "message": self.message,
            "data": self.data,
        }


class AnnotationSession:
    """Binds the point store, time cursor, mode controller and viewport.

    Gesture methods are synchronous and never raise for editing errors; they
    return an Outcome. Methods that talk to the course service are coroutines
    and mark the session busy while the request is outstanding, so at most
    one save/submit/mode switch/export is in flight.
    """

    def __init__(self, config: AppConfig, client: CourseClient,
                 scheduler: Scheduler | None = None,
                 start_time: datetime | None = None,
                 config_path: str | None = None):
        self._config = config
        self._config_path = config_path
        self._client = client
        self._scheduler = scheduler or AsyncioScheduler()

        # Components
        self._store = TemporalPointStore(config.session.default_altitude)
        self._cursor = TimeCursor(config.time, start=start_time)
        self._mode = ModeController(
            self._store, client, ObjectType(config.session.default_object_type)
        )
        self._viewport = ViewportSynchronizer(config.view, self._store, self._scheduler)
        self._viewport.add_change_callback(self._notify)

        self._busy = False
        self._pending_delete: Optional[str] = None
        self._last_result: Optional[TestingResult] = None
        self._event_callbacks: list[Callable[[dict], None]] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def store(self) -> TemporalPointStore:
        return self._store

    @property
    def cursor(self) -> TimeCursor:
        return self._cursor

    @property
    def mode(self) -> ModeController:
        return self._mode

    @property
    def viewport(self) -> ViewportSynchronizer:
        return self._viewport

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def last_result(self) -> Optional[TestingResult]:
        return self._last_result

    def add_event_callback(self, callback: Callable[[dict], None]) -> None:
        """Register a callback receiving the session snapshot after every change."""
        self._event_callbacks.append(callback)

    def persist_config_values(self, data: dict) -> None:
        """Write arbitrary key/value pairs to the config file on disk."""
        if self._config_path is None:
            return
        save_config_values(data, self._config_path)

    # --- Map and list gestures ---

    def click_map(self, lat: float, lon: float) -> Outcome:
        """Place a point at the cursor instant."""
        try:
            self._mode.require_training("add points")
            _check_coordinates(lat, lon)
            if not self._cursor.is_consumable(self._store.max_timestamp):
                raise TimestampOrderViolation()
            point = self._store.add(lat, lon, self._cursor.current)
        except AnnotationError as exc:
            return self._fail("add point", exc)

        self._cursor.consume_for_new_point()
        logger.info("Point %s added (%d total)", point.point_id, len(self._store))
        self._points_changed()
        return Outcome.success("Point added", data=point.to_dict())

    def drag_point(self, point_id: str, lat: float, lon: float) -> Outcome:
        try:
            self._mode.require_training("move points")
            _check_coordinates(lat, lon)
            point = self._store.update(point_id, lat=lat, lon=lon)
        except AnnotationError as exc:
            return self._fail("move point", exc)

        self._points_changed()
        return Outcome.success("Point moved", data=point.to_dict())

    def edit_point(self, point_id: str, altitude: float | None = None,
                   timestamp: str | datetime | None = None) -> Outcome:
        """Inline edit. Timestamps only need to be unique, not ordered."""
        changes: dict[str, Any] = {}
        try:
            self._mode.require_training("modify points")
            if altitude is not None:
                changes["altitude"] = altitude
            if timestamp is not None:
                changes["timestamp"] = _parse_instant(timestamp)
            if not changes:
                raise InvalidValue("Nothing to update")
            point = self._store.update(point_id, **changes)
        except AnnotationError as exc:
            return self._fail("edit point", exc)

        self._points_changed()
        return Outcome.success("Point updated", data=point.to_dict())

    def request_delete(self, point_id: str) -> Outcome:
        """First half of a delete: remember the point and ask for confirmation."""
        try:
            self._mode.require_training("delete points")
            self._store.get(point_id)
        except AnnotationError as exc:
            return self._fail("delete point", exc)

        self._pending_delete = point_id
        self._notify()
        return Outcome.success("Delete this point?", data={"point_id": point_id},
                               kind=CONFIRMATION_REQUIRED)

    def confirm_delete(self) -> Outcome:
        point_id = self._pending_delete
        try:
            if point_id is None:
                raise InvalidValue("No deletion awaiting confirmation")
            self._mode.require_training("delete points")
            self._store.remove(point_id)
        except AnnotationError as exc:
            self._pending_delete = None
            return self._fail("delete point", exc)

        self._pending_delete = None
        self._viewport.forget(point_id)
        logger.info("Point %s deleted (%d left)", point_id, len(self._store))
        self._points_changed()
        return Outcome.success("Point deleted", data={"point_id": point_id})

    def cancel_delete(self) -> Outcome:
        self._pending_delete = None
        self._notify()
        return Outcome.success("Deletion cancelled")

    def hover_point(self, point_id: Optional[str]) -> Outcome:
        self._viewport.hover(point_id)
        self._notify()
        return Outcome.success()

    def jump_to_point(self, point_id: str) -> Outcome:
        jumped = self._viewport.jump_to(point_id)
        if jumped:
            self._notify()
        return Outcome.success(data={"jumped": jumped})

    # --- Side panel ---

    def set_object_type(self, value: str) -> Outcome:
        try:
            object_type = _parse_object_type(value)
        except AnnotationError as exc:
            return self._fail("select object type", exc)
        self._mode.selection.object_type = object_type
        self._notify()
        return Outcome.success(data={"object_type": object_type.value})

    def set_noise_level(self, value: int) -> Outcome:
        try:
            self._mode.require_training("change the noise level")
            level = _check_noise(value)
        except AnnotationError as exc:
            return self._fail("set noise level", exc)
        self._mode.selection.noise_level = level
        self._notify()
        return Outcome.success(data={"noise_level": level})

    def set_auto_zoom(self, enabled: bool) -> Outcome:
        self._viewport.set_auto_zoom(enabled)
        self._notify()
        return Outcome.success(data={"auto_zoom": self._viewport.auto_zoom_enabled})

    def set_jump_to_point(self, enabled: bool) -> Outcome:
        self._viewport.set_jump_enabled(enabled)
        self._notify()
        return Outcome.success(data={"jump_to_point": self._viewport.jump_enabled})

    # --- Time control ---

    def set_time(self, value: str | datetime) -> Outcome:
        try:
            self._cursor.set_manually(_parse_instant(value))
        except AnnotationError as exc:
            return self._fail("set time", exc)
        return self._time_changed()

    def set_time_of_day(self, hour: int, minute: int, second: int,
                        millisecond: int = 0) -> Outcome:
        try:
            self._cursor.set_time_of_day(hour, minute, second, millisecond)
        except AnnotationError as exc:
            return self._fail("set time", exc)
        return self._time_changed()

    def step_time(self, direction: int) -> Outcome:
        self._cursor.step(direction)
        return self._time_changed()

    def jump_time(self) -> Outcome:
        self._cursor.jump()
        return self._time_changed()

    def configure_time(self, unit: str | None = None, amount: int | None = None,
                       auto_advance: bool | None = None) -> Outcome:
        try:
            self._cursor.configure(unit=unit, amount=amount, auto_advance=auto_advance)
        except AnnotationError as exc:
            return self._fail("configure time", exc)
        return self._time_changed()

    # --- Remote operations ---

    async def set_mode(self, mode: str | AppMode) -> Outcome:
        try:
            target = AppMode(mode)
        except ValueError:
            return self._fail("switch mode", InvalidValue(f"Unknown mode: {mode!r}"))
        if target == self._mode.state:
            return Outcome.success(f"Already in {target.value} mode")

        try:
            with self._in_flight():
                if target == AppMode.TESTING:
                    await self._mode.enter_testing()
                    message = "Testing course loaded. Identify the object type!"
                else:
                    self._scheduler.cancel(RESULT_TIMER)
                    self._mode.enter_training()
                    message = "Training mode: create new labeled courses"
        except AnnotationError as exc:
            return self._fail("switch mode", exc)

        self._pending_delete = None
        self._last_result = None
        self._cursor.reset()
        self._viewport.reset()
        self._points_changed()
        return Outcome.success(message, data={"mode": target.value})

    async def save(self) -> Outcome:
        """Persist the draft course. The draft is kept unchanged on failure."""
        try:
            self._mode.require_training("save a course")
            if len(self._store) < 2:
                raise InsufficientPoints()
            selection = self._mode.selection
            request = CreateCourseRequest(
                object_type=selection.object_type,
                mode=AppMode.TRAINING,
                noise_level=selection.noise_level,
                points=self._store.ordered_view(),
                created_by=self._config.session.created_by,
            )
            with self._in_flight():
                course = await self._client.create_course(request)
        except AnnotationError as exc:
            return self._fail("save course", exc)

        self._mode.set_saved_course(course)
        self._notify()
        return Outcome.success("Course saved successfully!", data=course.to_dict())

    async def submit(self) -> Outcome:
        """Score the selected object type against the fetched course."""
        try:
            if self._mode.is_training:
                raise ModeCapabilityDenied("Answers can only be submitted in testing mode")
            if not self._mode.awaiting_answer:
                raise NoActiveCourse()
            course = self._mode.active_course
            selected = self._mode.selection.object_type.value
            correct = course.correct_object_type.value
            with self._in_flight():
                result = await self._client.submit_testing_result(course.id, selected, correct)
        except AnnotationError as exc:
            return self._fail("submit answer", exc)

        self._mode.mark_answered()
        self._last_result = result
        if result.is_correct:
            message = "Correct! Well done!"
        else:
            message = f"Incorrect. The correct answer was: {result.correct_object_type or correct}"
        logger.info("Course %s answered %s (correct: %s)", course.id, selected, result.is_correct)

        self._scheduler.schedule(RESULT_TIMER, self._config.session.result_display_delay,
                                 self._on_result_shown)
        self._notify()
        return Outcome.success(message, data=result.to_dict())

    async def primary_action(self) -> Outcome:
        """Save in training, submit in testing."""
        if self._mode.is_training:
            return await self.save()
        return await self.submit()

    async def load_next_course(self) -> Outcome:
        """Fetch the next testing course without leaving testing mode."""
        try:
            if self._mode.is_training:
                raise ModeCapabilityDenied("Testing courses are only loaded in testing mode")
            with self._in_flight():
                await self._mode.load_next_testing_course()
        except AnnotationError as exc:
            return self._fail("load testing course", exc)

        self._last_result = None
        self._viewport.clear_highlight()
        self._points_changed()
        return Outcome.success("Testing course loaded. Identify the object type!")

    async def export_data(self) -> Outcome:
        export_dir = self._config.api.export_dir
        try:
            with self._in_flight():
                result = await self._client.export_csv()
                downloaded = []
                if export_dir:
                    for f in result.files:
                        path = await self._client.download(f.download_url, export_dir, f.name)
                        downloaded.append(str(path))
        except AnnotationError as exc:
            return self._fail("export data", exc)

        message = f"Exported {result.total_courses} courses and {result.total_points} points"
        logger.info(message)
        self._notify()
        return Outcome.success(message, data=result.to_dict() | {"downloaded": downloaded})

    async def testing_stats(self) -> Outcome:
        try:
            stats = await self._client.get_testing_stats()
        except AnnotationError as exc:
            return self._fail("load testing statistics", exc)
        return Outcome.success(data=stats)

    async def drain(self) -> None:
        """Wait for background work started by timers."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)

    def close(self) -> None:
        self._scheduler.cancel_all()
        for task in self._tasks:
            task.cancel()

    # --- Views ---

    def snapshot(self) -> dict:
        """Everything a front end needs to render the session."""
        ordered = self._store.ordered_view()
        last_index = len(ordered) - 1
        rows = []
        for index, point in enumerate(ordered):
            row = point.to_dict()
            if index == 0:
                row["role"] = "start"
            elif index == last_index:
                row["role"] = "end"
            else:
                row["role"] = None
            rows.append(row)

        course = self._mode.active_course
        course_data = None
        if course is not None:
            hidden = self._mode.awaiting_answer
            course_data = course.to_dict(reveal_answer=not hidden)
            if hidden:
                course_data["object_type"] = None

        selection = self._mode.selection
        view = self._viewport.state.to_dict()
        view["auto_zoom"] = self._viewport.auto_zoom_enabled
        view["jump_to_point"] = self._viewport.jump_enabled
        return {
            "mode": self._mode.state.value,
            "busy": self._busy,
            "selection": {
                "object_type": selection.object_type.value,
                "noise_level": selection.noise_level,
            },
            "points": rows,
            "path": [[p.lat, p.lon] for p in ordered] if len(ordered) > 1 else [],
            "cursor": self._cursor.to_dict(self._store.max_timestamp),
            "view": view,
            "course": course_data,
            "pending_delete": self._pending_delete,
            "last_result": self._last_result.to_dict() if self._last_result else None,
        }

    # --- Internals ---

    @contextmanager
    def _in_flight(self) -> Iterator[None]:
        if self._busy:
            raise SessionBusy()
        self._busy = True
        self._notify()
        try:
            yield
        finally:
            self._busy = False

    def _on_result_shown(self) -> None:
        if self._mode.state != AppMode.TESTING:
            return
        self._spawn(self.load_next_course())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _time_changed(self) -> Outcome:
        self._notify()
        return Outcome.success(data=self._cursor.to_dict(self._store.max_timestamp))

    def _points_changed(self) -> None:
        self._viewport.fit_to_points(self._store.ordered_view())
        self._notify()

    def _fail(self, action: str, exc: AnnotationError) -> Outcome:
        logger.warning("Cannot %s: %s", action, exc)
        outcome = Outcome.from_error(exc)
        self._notify()
        return outcome

    def _notify(self) -> None:
        if not self._event_callbacks:
            return
        data = {"type": "session", "session": self.snapshot()}
        for callback in self._event_callbacks:
            try:
                callback(data)
            except Exception:
                logger.exception("Error in event callback")


def _parse_instant(value: str | datetime) -> datetime:
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        raise InvalidValue(f"Invalid timestamp: {value!r}") from None


def _parse_object_type(value: str | ObjectType) -> ObjectType:
    try:
        return ObjectType(value)
    except ValueError:
        raise InvalidValue(f"Unknown object type: {value!r}") from None


def _check_noise(value: int) -> int:
    try:
        level = int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidValue(f"Noise level must be an integer, got {value!r}") from None
    if not 0 <= level <= 100:
        raise InvalidValue("Noise level must be between 0 and 100")
    return level


def _check_coordinates(lat: float, lon: float) -> None:
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        raise InvalidValue("Coordinates must be numbers") from None
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidValue(f"Coordinates out of range: ({lat}, {lon})")
