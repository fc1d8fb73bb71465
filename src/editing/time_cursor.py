"""Simulated clock that supplies timestamps for newly placed points."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.config import TimeConfig
from src.course.models import IncrementUnit, to_millis
from src.editing.errors import InvalidValue

logger = logging.getLogger(__name__)

MAX_INCREMENT = 999

_UNIT_DELTAS = {
    IncrementUnit.MINUTES: timedelta(minutes=1),
    IncrementUnit.SECONDS: timedelta(seconds=1),
    IncrementUnit.MILLISECONDS: timedelta(milliseconds=1),
}


def parse_unit(value: str | IncrementUnit) -> IncrementUnit:
    try:
        return IncrementUnit(value)
    except ValueError:
        raise InvalidValue(f"Unknown time unit: {value!r}") from None


class TimeCursor:
    """Wall-clock independent cursor.

    The cursor itself may move anywhere, including backwards; ordering is
    only enforced when a point store consumes the value.
    """

    def __init__(self, config: TimeConfig, start: datetime | None = None):
        self._unit = parse_unit(config.increment_unit)
        self._amount = _check_amount(config.increment_amount)
        self._auto_advance = bool(config.auto_advance)
        if start is None:
            start = datetime.now(timezone.utc)
        self._current = to_millis(start)
        self._initial = (self._current, self._unit, self._amount, self._auto_advance)

    @property
    def current(self) -> datetime:
        return self._current

    @property
    def unit(self) -> IncrementUnit:
        return self._unit

    @property
    def amount(self) -> int:
        return self._amount

    @property
    def auto_advance(self) -> bool:
        return self._auto_advance

    def configure(self, unit: str | IncrementUnit | None = None,
                  amount: int | None = None,
                  auto_advance: bool | None = None) -> None:
        """Change increment settings. Validates everything before applying."""
        new_unit = parse_unit(unit) if unit is not None else self._unit
        new_amount = _check_amount(amount) if amount is not None else self._amount
        self._unit = new_unit
        self._amount = new_amount
        if auto_advance is not None:
            self._auto_advance = bool(auto_advance)
        logger.debug("Time cursor: %d %s, auto_advance=%s",
                     self._amount, self._unit.value, self._auto_advance)

    def advance(self, amount: int, unit: str | IncrementUnit) -> datetime:
        """Move by amount * unit using timedelta arithmetic. Amount may be negative."""
        self._current = self._current + _UNIT_DELTAS[parse_unit(unit)] * int(amount)
        return self._current

    def step(self, direction: int) -> datetime:
        """The +/- buttons: one of the configured unit."""
        return self.advance(1 if direction >= 0 else -1, self._unit)

    def jump(self) -> datetime:
        """Advance by the configured amount."""
        return self.advance(self._amount, self._unit)

    def reset(self) -> None:
        """Return to the starting instant and increment settings."""
        self._current, self._unit, self._amount, self._auto_advance = self._initial

    def set_manually(self, instant: datetime) -> None:
        self._current = to_millis(instant)

    def set_time_of_day(self, hour: int, minute: int, second: int,
                        millisecond: int = 0) -> datetime:
        """Replace the clock fields and keep the date."""
        try:
            self._current = self._current.replace(
                hour=hour, minute=minute, second=second,
                microsecond=millisecond * 1000,
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidValue(f"Invalid time of day: {exc}") from exc
        return self._current

    def is_consumable(self, store_max: Optional[datetime]) -> bool:
        """True if a point stamped now would be accepted by the store."""
        return store_max is None or self._current > store_max

    def consume_for_new_point(self) -> datetime:
        """Return the current instant, then auto-advance for the next point."""
        instant = self._current
        if self._auto_advance:
            self.advance(self._amount, self._unit)
        return instant

    def format(self) -> str:
        return self._current.strftime("%H:%M:%S.") + f"{self._current.microsecond // 1000:03d}"

    def to_dict(self, store_max: Optional[datetime] = None) -> dict:
        return {
            "current": self._current.isoformat(timespec="milliseconds"),
            "display": self.format(),
            "unit": self._unit.value,
            "amount": self._amount,
            "auto_advance": self._auto_advance,
            "valid": self.is_consumable(store_max),
        }


def _check_amount(amount: int) -> int:
    try:
        value = int(amount)
    except (TypeError, ValueError, OverflowError):
        raise InvalidValue(f"Increment must be an integer, got {amount!r}") from None
    if not 1 <= value <= MAX_INCREMENT:
        raise InvalidValue(f"Increment must be between 1 and {MAX_INCREMENT}")
    return value
