"""Training/testing mode state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from src.course.models import AppMode, Course, ObjectType
from src.editing.errors import ModeCapabilityDenied
from src.editing.point_store import TemporalPointStore

logger = logging.getLogger(__name__)


class CourseSource(Protocol):
    async def get_random_testing_course(self) -> Course: ...


@dataclass
class Selection:
    """What the user has picked in the side panel."""
    object_type: ObjectType = ObjectType.DRONE
    noise_level: int = 0


class ModeController:
    """Two states, TRAINING (initial) and TESTING, toggled indefinitely.

    TESTING holds a fetched course whose points are loaded into the store and
    locked. The answer to the fetched course stays on the controller and is
    only revealed by scoring.
    """

    def __init__(self, store: TemporalPointStore, source: CourseSource,
                 default_object_type: ObjectType = ObjectType.DRONE):
        self._store = store
        self._source = source
        self._default_object_type = default_object_type
        self._state = AppMode.TRAINING
        self._active_course: Optional[Course] = None
        self._answered = False
        self.selection = Selection(object_type=default_object_type)

    @property
    def state(self) -> AppMode:
        return self._state

    @property
    def is_training(self) -> bool:
        return self._state == AppMode.TRAINING

    @property
    def active_course(self) -> Optional[Course]:
        return self._active_course

    @property
    def awaiting_answer(self) -> bool:
        """True while a fetched testing course has not been scored yet."""
        return (self._state == AppMode.TESTING
                and self._active_course is not None
                and not self._answered)

    def require_training(self, action: str) -> None:
        if self._state != AppMode.TRAINING:
            raise ModeCapabilityDenied(f"Cannot {action} in testing mode")

    async def enter_testing(self) -> Optional[Course]:
        """TRAINING -> TESTING. The state only changes once a course arrived."""
        if self._state == AppMode.TESTING:
            return None
        course = await self.load_next_testing_course()
        self._state = AppMode.TESTING
        logger.info("Entered testing mode")
        return course

    async def load_next_testing_course(self) -> Course:
        """Fetch a fresh unlabeled course. RemoteFailure leaves everything as it was."""
        course = await self._source.get_random_testing_course()
        self._store.replace(course.points)
        self._store.lock()
        self._active_course = course
        self._answered = False
        logger.info("Loaded testing course %s (%d points)", course.id, len(course.points))
        return course

    def enter_training(self) -> None:
        """TESTING -> TRAINING. Discards the testing course and resets the selection."""
        if self._state == AppMode.TRAINING:
            return
        self._state = AppMode.TRAINING
        self._store.unlock()
        self._store.clear()
        self._active_course = None
        self._answered = False
        self.selection = Selection(object_type=self._default_object_type)
        logger.info("Entered training mode")

    def mark_answered(self) -> None:
        self._answered = True

    def set_saved_course(self, course: Course) -> None:
        """A persisted training course becomes the active one."""
        self._active_course = course
