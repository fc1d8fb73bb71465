"""Shared data models for courses, points and backend responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ObjectType(str, Enum):
    DRONE = "drone"
    PLANE = "plane"
    BIRD = "bird"
    STORM = "storm"


class AppMode(str, Enum):
    TRAINING = "training"
    TESTING = "testing"


class IncrementUnit(str, Enum):
    MINUTES = "minutes"
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"


def to_millis(instant: datetime) -> datetime:
    """Truncate an instant to millisecond resolution. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.replace(microsecond=(instant.microsecond // 1000) * 1000)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant (as sent by browsers and the backend)."""
    if isinstance(value, datetime):
        return to_millis(value)
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_millis(datetime.fromisoformat(text))


def format_timestamp(instant: datetime) -> str:
    """Format an instant the way the backend stores it (UTC, millis, Z suffix)."""
    utc = to_millis(instant).astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Point:
    """A single timestamped 3D sample of a course."""
    point_id: str
    lat: float
    lon: float
    altitude: float           # meters
    timestamp: datetime       # millisecond resolution, timezone-aware

    def to_dict(self, include_id: bool = True) -> dict:
        data = {
            "lat": self.lat,
            "lon": self.lon,
            "altitude": self.altitude,
            "timestamp": format_timestamp(self.timestamp),
        }
        if include_id:
            data["point_id"] = self.point_id
        return data

    @classmethod
    def from_dict(cls, data: dict, point_id: str | None = None) -> Point:
        return cls(
            point_id=str(data.get("point_id") or data.get("id") or point_id),
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            altitude=float(data.get("altitude", 0.0)),
            timestamp=parse_timestamp(data["timestamp"]),
        )


# Keys the client understands; everything else a course record carries
# (distance, speed and change counts, start/end points, audit dates) is
# computed server-side and passed through untouched.
_COURSE_KEYS = {
    "id", "object_type", "mode", "noise_level", "points",
    "created_by", "correct_object_type",
}


@dataclass
class Course:
    """A labeled (training) or to-be-guessed (testing) trajectory."""
    object_type: ObjectType
    mode: AppMode
    noise_level: int = 0
    points: list[Point] = field(default_factory=list)
    id: Optional[str] = None
    created_by: Optional[str] = None
    correct_object_type: Optional[ObjectType] = None
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, reveal_answer: bool = False) -> dict:
        data = dict(self.stats)
        data.update({
            "id": self.id,
            "object_type": self.object_type.value,
            "mode": self.mode.value,
            "noise_level": self.noise_level,
            "created_by": self.created_by,
            "points": [p.to_dict() for p in self.points],
        })
        if reveal_answer and self.correct_object_type is not None:
            data["correct_object_type"] = self.correct_object_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Course:
        points = [
            Point.from_dict(raw, point_id=f"p{i + 1}")
            for i, raw in enumerate(data.get("points") or [])
        ]
        correct = data.get("correct_object_type")
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            object_type=ObjectType(data["object_type"]),
            mode=AppMode(data.get("mode", AppMode.TRAINING.value)),
            noise_level=int(data.get("noise_level", 0)),
            points=points,
            created_by=data.get("created_by"),
            correct_object_type=ObjectType(correct) if correct else None,
            stats={k: v for k, v in data.items() if k not in _COURSE_KEYS},
        )


@dataclass
class CreateCourseRequest:
    """Payload for persisting a freshly authored course."""
    object_type: ObjectType
    mode: AppMode
    noise_level: int
    points: list[Point]
    created_by: Optional[str] = None

    def to_dict(self) -> dict:
        # The backend assigns persistent identity, so client ids are dropped.
        return {
            "object_type": self.object_type.value,
            "mode": self.mode.value,
            "created_by": self.created_by,
            "noise_level": self.noise_level,
            "points": [p.to_dict(include_id=False) for p in self.points],
        }


@dataclass
class TestingResult:
    """Scoring of one testing-mode guess."""
    __test__ = False

    course_id: str
    selected_object_type: str
    correct_object_type: str
    is_correct: bool
    message: str = ""
    answered_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "selected_object_type": self.selected_object_type,
            "correct_object_type": self.correct_object_type,
            "is_correct": self.is_correct,
            "message": self.message,
            "answered_at": format_timestamp(self.answered_at) if self.answered_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TestingResult:
        answered = data.get("answered_at")
        return cls(
            course_id=str(data.get("course_id", "")),
            selected_object_type=data.get("selected_object_type", ""),
            correct_object_type=data.get("correct_object_type", ""),
            is_correct=bool(data.get("is_correct", False)),
            message=data.get("message", ""),
            answered_at=parse_timestamp(answered) if answered else None,
        )


@dataclass
class ExportFile:
    name: str
    download_url: str


@dataclass
class ExportResult:
    """Files produced by a CSV export plus aggregate counts."""
    message: str
    files: list[ExportFile] = field(default_factory=list)
    total_courses: int = 0
    total_points: int = 0

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "files": [{"name": f.name, "download_url": f.download_url} for f in self.files],
            "stats": {
                "total_courses": self.total_courses,
                "total_points": self.total_points,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExportResult:
        stats = data.get("stats") or {}
        return cls(
            message=data.get("message", ""),
            files=[
                ExportFile(name=f["name"], download_url=f["download_url"])
                for f in data.get("files") or []
            ],
            total_courses=int(stats.get("total_courses", 0)),
            total_points=int(stats.get("total_points", 0)),
        )
