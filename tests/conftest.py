"""Shared test fixtures: configs, a fake course service and a wired session."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.config import AppConfig, TimeConfig, ViewConfig
from src.course.models import (
    AppMode,
    Course,
    CreateCourseRequest,
    ExportFile,
    ExportResult,
    ObjectType,
    Point,
    TestingResult,
)
from src.editing.errors import RemoteFailure
from src.editing.point_store import TemporalPointStore
from src.editing.scheduler import ManualScheduler
from src.session import AnnotationSession

T0 = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def time_config() -> TimeConfig:
    return TimeConfig(increment_unit="seconds", increment_amount=1, auto_advance=True)


@pytest.fixture
def view_config() -> ViewConfig:
    return ViewConfig(auto_zoom=True, jump_to_point=True, highlight_clear_delay=3.0)


@pytest.fixture
def app_config() -> AppConfig:
    config = AppConfig()
    config.view.auto_zoom = True
    return config


@pytest.fixture
def store() -> TemporalPointStore:
    return TemporalPointStore(default_altitude=100.0)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def service() -> FakeCourseService:
    return FakeCourseService()


@pytest.fixture
def session(app_config, service, scheduler) -> AnnotationSession:
    return AnnotationSession(app_config, service, scheduler=scheduler, start_time=T0)


def make_point(point_id: str, lat: float, lon: float, seconds: int = 0) -> Point:
    return Point(point_id=point_id, lat=lat, lon=lon, altitude=100.0,
                 timestamp=T0 + timedelta(seconds=seconds))


def make_testing_course(course_id: str = "t1",
                        answer: ObjectType = ObjectType.BIRD,
                        n_points: int = 3) -> Course:
    """A fetched testing course with a hidden answer."""
    points = [make_point(f"p{i + 1}", 32.0 + i * 0.01, 34.0 + i * 0.01, seconds=i * 5)
              for i in range(n_points)]
    return Course(
        id=course_id,
        object_type=answer,
        mode=AppMode.TESTING,
        points=points,
        correct_object_type=answer,
        stats={"total_distance": 2.8, "avg_speed": 0.4},
    )


class FakeCourseService:
    """In-process stand-in for the course backend.

    Put a method name in `failing` to make that call raise RemoteFailure.
    """

    def __init__(self):
        self.testing_courses: list[Course] = []
        self.created: list[CreateCourseRequest] = []
        self.submissions: list[tuple[str, str, str]] = []
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RemoteFailure(f"{name} failed")

    async def get_random_testing_course(self) -> Course:
        self._enter("get_random_testing_course")
        if self.testing_courses:
            return self.testing_courses.pop(0)
        return make_testing_course(course_id=f"t{len(self.calls)}")

    async def create_course(self, request: CreateCourseRequest) -> Course:
        self._enter("create_course")
        self.created.append(request)
        return Course(
            id=f"c{len(self.created)}",
            object_type=request.object_type,
            mode=request.mode,
            noise_level=request.noise_level,
            points=list(request.points),
            created_by=request.created_by,
        )

    async def submit_testing_result(self, course_id: str, selected_object_type: str,
                                    correct_object_type: str) -> TestingResult:
        self._enter("submit_testing_result")
        self.submissions.append((course_id, selected_object_type, correct_object_type))
        return TestingResult(
            course_id=course_id,
            selected_object_type=selected_object_type,
            correct_object_type=correct_object_type,
            is_correct=selected_object_type == correct_object_type,
        )

    async def export_csv(self, fmt: str = "both") -> ExportResult:
        self._enter("export_csv")
        return ExportResult(
            message="Export completed",
            files=[ExportFile("courses.csv", "/exports/courses.csv")],
            total_courses=4,
            total_points=37,
        )

    async def download(self, download_url: str, dest_dir, name: str):
        self._enter("download")
        return f"{dest_dir}/{name}"

    async def get_testing_stats(self) -> dict:
        self._enter("get_testing_stats")
        return {"total": 10, "correct": 7}
