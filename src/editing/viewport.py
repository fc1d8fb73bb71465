"""Map viewport state derived from the point store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from src.config import ViewConfig
from src.course.models import Point
from src.editing.point_store import TemporalPointStore
from src.editing.scheduler import Scheduler

logger = logging.getLogger(__name__)

HIGHLIGHT_TIMER = "highlight_clear"


@dataclass
class ViewState:
    center: tuple[float, float]
    zoom: int
    highlighted_point_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "center": list(self.center),
            "zoom": self.zoom,
            "highlighted_point_id": self.highlighted_point_id,
        }


class ViewportSynchronizer:
    """Keeps the map center/zoom in step with the course being edited."""

    def __init__(self, config: ViewConfig, store: TemporalPointStore,
                 scheduler: Scheduler):
        self._cfg = config
        self._store = store
        self._scheduler = scheduler
        self.auto_zoom_enabled = bool(config.auto_zoom)
        self.jump_enabled = bool(config.jump_to_point)
        self._change_callbacks: list[Callable[[], None]] = []
        self._state = self._default_state()

    @property
    def state(self) -> ViewState:
        return ViewState(self._state.center, self._state.zoom,
                         self._state.highlighted_point_id)

    def zoom_for_spread(self, spread: float) -> int:
        """Three-level approximation of a bounding-box fit."""
        if spread > self._cfg.coarse_spread:
            return self._cfg.coarse_zoom
        if spread > self._cfg.medium_spread:
            return self._cfg.medium_zoom
        return self._cfg.fine_zoom

    def fit_to_points(self, points: Sequence[Point]) -> bool:
        """Center on the bounding box of points. Returns True if the view moved."""
        if not self.auto_zoom_enabled or len(points) == 0:
            return False

        coords = np.array([(p.lat, p.lon) for p in points], dtype=np.float64)
        lo = coords.min(axis=0)
        hi = coords.max(axis=0)
        center = (hi + lo) / 2.0
        spread = float(np.max(hi - lo))

        self._state.center = (float(center[0]), float(center[1]))
        self._state.zoom = self.zoom_for_spread(spread)
        logger.debug("Auto-zoom: center=%s zoom=%d spread=%.5f",
                     self._state.center, self._state.zoom, spread)
        return True

    def set_auto_zoom(self, enabled: bool) -> None:
        self.auto_zoom_enabled = bool(enabled)
        if self.auto_zoom_enabled:
            self.fit_to_points(self._store.ordered_view())

    def set_jump_enabled(self, enabled: bool) -> None:
        self.jump_enabled = bool(enabled)

    def jump_to(self, point_id: str) -> bool:
        """Center on a point and highlight it until the clear timer fires."""
        if not self.jump_enabled or point_id not in self._store:
            return False

        point = self._store.get(point_id)
        self._state.center = (point.lat, point.lon)
        self._state.zoom = self._cfg.jump_zoom
        self._state.highlighted_point_id = point_id
        self._scheduler.schedule(HIGHLIGHT_TIMER, self._cfg.highlight_clear_delay,
                                 self._clear_highlight)
        return True

    def hover(self, point_id: Optional[str]) -> None:
        """Hover highlight. Never auto-clears; cancels a pending jump clear."""
        self._scheduler.cancel(HIGHLIGHT_TIMER)
        if point_id is not None and point_id not in self._store:
            point_id = None
        self._state.highlighted_point_id = point_id

    def forget(self, point_id: str) -> None:
        """Drop the highlight of a point that no longer exists."""
        if self._state.highlighted_point_id == point_id:
            self._scheduler.cancel(HIGHLIGHT_TIMER)
            self._state.highlighted_point_id = None

    def reset(self) -> None:
        """Back to the default center and zoom with nothing highlighted."""
        self._scheduler.cancel(HIGHLIGHT_TIMER)
        self._state = self._default_state()

    def clear_highlight(self) -> None:
        self._scheduler.cancel(HIGHLIGHT_TIMER)
        self._state.highlighted_point_id = None

    def add_change_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback for view changes made by timers."""
        self._change_callbacks.append(callback)

    def _clear_highlight(self) -> None:
        self._state.highlighted_point_id = None
        for callback in self._change_callbacks:
            callback()

    def _default_state(self) -> ViewState:
        return ViewState(
            center=(self._cfg.default_lat, self._cfg.default_lon),
            zoom=self._cfg.default_zoom,
        )
