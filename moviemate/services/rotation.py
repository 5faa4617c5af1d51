"""Timed rotation of the background image for a title view."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Sequence

from ..models import MediaRecord

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 5_000


class RotationPhase(str, Enum):
    EMPTY = "empty"
    ROTATING = "rotating"
    PAUSED = "paused"
    DISPOSED = "disposed"


class BackgroundRotationController:
    """Cycle a pointer through an ordered list of image URLs.

    ``EMPTY -> ROTATING <-> PAUSED -> DISPOSED``. While rotating, the timer is
    the only writer of ``current_index``. Disposal cancels the timer on the
    spot, and a disposed controller ignores every later tick.
    """

    def __init__(
        self,
        *,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        loop: asyncio.AbstractEventLoop | None = None,
        on_change: Callable[[int], None] | None = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._interval = interval_ms / 1000
        self._loop = loop
        self._on_change = on_change
        self._phase = RotationPhase.EMPTY
        self._images: tuple[str, ...] = ()
        self._current_index = 0
        self._handle: asyncio.TimerHandle | None = None

    @property
    def phase(self) -> RotationPhase:
        return self._phase

    @property
    def images(self) -> tuple[str, ...]:
        return self._images

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_image(self) -> str | None:
        if not self._images:
            return None
        return self._images[self._current_index]

    @property
    def timer_active(self) -> bool:
        return self._handle is not None

    def load(self, record: MediaRecord | Sequence[str]) -> None:
        """Start rotating over the images of ``record``.

        Any previous rotation state is discarded rather than merged.
        """

        self._ensure_alive("load")
        images = record.images if isinstance(record, MediaRecord) else tuple(record)
        self._cancel_timer()
        self._images = tuple(images)
        self._current_index = 0
        if not self._images:
            self._phase = RotationPhase.EMPTY
            return
        self._phase = RotationPhase.ROTATING
        self._schedule()
        self._notify()

    def tick(self) -> None:
        """Advance one step; ignored unless rotating."""

        if self._phase is not RotationPhase.ROTATING:
            return
        self._current_index = (self._current_index + 1) % len(self._images)
        self._notify()

    def select(self, index: int) -> None:
        """Pin the rotation to ``index`` and stop the timer."""

        self._ensure_alive("select")
        if not self._images:
            raise IndexError("No images loaded")
        if not 0 <= index < len(self._images):
            raise IndexError(f"Image index {index} out of range")
        self._cancel_timer()
        self._phase = RotationPhase.PAUSED
        self._current_index = index
        self._notify()

    def resume(self) -> None:
        """Return to rotating from a paused state with a fresh tick phase."""

        if self._phase is not RotationPhase.PAUSED:
            return
        self._phase = RotationPhase.ROTATING
        self._schedule()

    def dispose(self) -> None:
        if self._phase is RotationPhase.DISPOSED:
            return
        self._cancel_timer()
        self._phase = RotationPhase.DISPOSED
        self._on_change = None

    def _ensure_alive(self, action: str) -> None:
        if self._phase is RotationPhase.DISPOSED:
            raise RuntimeError(f"Cannot {action} a disposed rotation controller")

    def _schedule(self) -> None:
        self._cancel_timer()
        if len(self._images) < 2:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        if self._phase is not RotationPhase.ROTATING:
            return
        self.tick()
        self._schedule()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self._current_index)
        except Exception:  # pragma: no cover
            logger.exception("Rotation listener failed")
