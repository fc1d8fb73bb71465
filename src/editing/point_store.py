"""Temporal point store: the points of the course being edited."""

from __future__ import annotations

import dataclasses
import logging
import math
from collections import OrderedDict
from datetime import datetime
from typing import Iterable, Optional

from src.course.models import Point, to_millis
from src.editing.errors import (
    InvalidValue,
    ModeCapabilityDenied,
    NotFound,
    TimestampConflict,
    TimestampOrderViolation,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"lat", "lon", "altitude", "timestamp"}


class TemporalPointStore:
    """Holds points keyed by id and enforces timestamp uniqueness.

    Storage order is insertion order and carries no meaning. Every consumer
    that needs a trajectory goes through ordered_view(), which sorts by
    timestamp.
    """

    def __init__(self, default_altitude: float = 100.0):
        self._default_altitude = default_altitude
        self._next_id = 1
        self._points: OrderedDict[str, Point] = OrderedDict()
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    @property
    def points(self) -> dict[str, Point]:
        """Return the current points keyed by id."""
        return dict(self._points)

    @property
    def max_timestamp(self) -> Optional[datetime]:
        if not self._points:
            return None
        return max(p.timestamp for p in self._points.values())

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, point_id: object) -> bool:
        return point_id in self._points

    def get(self, point_id: str) -> Point:
        try:
            return self._points[point_id]
        except KeyError:
            raise NotFound(f"Point {point_id!r} not found") from None

    def ordered_view(self) -> list[Point]:
        """Points sorted ascending by timestamp."""
        return sorted(self._points.values(), key=lambda p: p.timestamp)

    def add(self, lat: float, lon: float, timestamp: datetime,
            altitude: float | None = None) -> Point:
        """Append a point whose timestamp is later than every existing one."""
        self._check_writable()
        timestamp = to_millis(timestamp)
        latest = self.max_timestamp
        if latest is not None and timestamp <= latest:
            raise TimestampOrderViolation()

        if altitude is None:
            altitude = self._default_altitude
        lat = _check_coordinate("lat", lat)
        lon = _check_coordinate("lon", lon)
        altitude = _check_altitude(altitude)

        point = Point(
            point_id=self._allocate_id(),
            lat=lat,
            lon=lon,
            altitude=altitude,
            timestamp=timestamp,
        )
        self._points[point.point_id] = point
        logger.debug("Added point %s at %s", point.point_id, timestamp.isoformat())
        return point

    def update(self, point_id: str, **changes) -> Point:
        """Apply a partial update.

        A new timestamp only has to differ from every other point's; it may
        move the point before or after its neighbours.
        """
        self._check_writable()
        current = self.get(point_id)

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise InvalidValue(f"Cannot edit field(s): {', '.join(sorted(unknown))}")

        if "altitude" in changes:
            changes["altitude"] = _check_altitude(changes["altitude"])
        for key in ("lat", "lon"):
            if key in changes:
                changes[key] = _check_coordinate(key, changes[key])

        if "timestamp" in changes:
            timestamp = to_millis(changes["timestamp"])
            for other in self._points.values():
                if other.point_id != point_id and other.timestamp == timestamp:
                    raise TimestampConflict()
            changes["timestamp"] = timestamp

        updated = dataclasses.replace(current, **changes)
        self._points[point_id] = updated
        logger.debug("Updated point %s: %s", point_id, sorted(changes))
        return updated

    def remove(self, point_id: str) -> Point:
        self._check_writable()
        if point_id not in self._points:
            raise NotFound(f"Point {point_id!r} not found")
        point = self._points.pop(point_id)
        logger.debug("Removed point %s", point_id)
        return point

    def replace(self, points: Iterable[Point]) -> None:
        """Load a fetched course wholesale, bypassing the edit rules."""
        self._points = OrderedDict((p.point_id, p) for p in points)
        self._next_id = len(self._points) + 1
        while f"p{self._next_id}" in self._points:
            self._next_id += 1

    def clear(self) -> None:
        self._points.clear()
        self._next_id = 1

    def _check_writable(self) -> None:
        if self._locked:
            raise ModeCapabilityDenied()

    def _allocate_id(self) -> str:
        point_id = f"p{self._next_id}"
        self._next_id += 1
        while point_id in self._points:
            point_id = f"p{self._next_id}"
            self._next_id += 1
        return point_id


def _finite(value: float) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _check_coordinate(name: str, value: float) -> float:
    number = _finite(value)
    if number is None:
        raise InvalidValue(f"{name} must be a finite number, got {value!r}")
    return number


def _check_altitude(value: float) -> float:
    number = _finite(value)
    if number is None or number < 0:
        raise InvalidValue("Altitude must be a non-negative number of meters")
    return number
