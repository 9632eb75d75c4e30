"""Observable location state for the presentation layer.

``LocationState`` supervises a ``PositionTracker``: it performs the initial
read, starts the watch session shortly afterwards, turns tracker failures
into an ``error`` message, and forwards every new position to subscribers.
Its public methods never raise location errors.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from . import config
from .errors import LocationError
from .models import Position
from .tracker import PositionTracker

logger = logging.getLogger(__name__)

Subscriber = Callable[[Position], None]


@dataclass(frozen=True)
class LocationSnapshot:
    position: Optional[Position]
    loading: bool
    error: Optional[str]
    last_update: Optional[datetime]
    is_watching: bool


class LocationState:
    def __init__(
        self,
        tracker: PositionTracker,
        watch_delay_seconds: Optional[float] = None,
    ) -> None:
        self.tracker = tracker
        self.watch_delay_seconds = (
            config.WATCH_START_DELAY_SECONDS
            if watch_delay_seconds is None
            else float(watch_delay_seconds)
        )
        self._lock = threading.RLock()
        self._position: Optional[Position] = None
        self._loading = False
        self._error: Optional[str] = None
        self._last_update: Optional[datetime] = None
        self._subscribers: List[Subscriber] = []
        self._timer: Optional[threading.Timer] = None
        self._started = False
        self._closed = False

    @property
    def position(self) -> Optional[Position]:
        with self._lock:
            return self._position

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def last_update(self) -> Optional[datetime]:
        with self._lock:
            return self._last_update

    @property
    def is_watching(self) -> bool:
        return self.tracker.watching

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def snapshot(self) -> LocationSnapshot:
        # Read outside the state lock; the two locks are never nested.
        is_watching = self.tracker.watching
        with self._lock:
            return LocationSnapshot(
                position=self._position,
                loading=self._loading,
                error=self._error,
                last_update=self._last_update,
                is_watching=is_watching,
            )

    def start(self) -> "LocationState":
        """Read the position once, then start watching after the settle delay."""
        with self._lock:
            if self._started or self._closed:
                return self
            self._started = True

        self.refresh()

        with self._lock:
            if self._closed:
                return self
            if self.watch_delay_seconds <= 0:
                start_now = True
            else:
                start_now = False
                self._timer = threading.Timer(self.watch_delay_seconds, self._deferred_start)
                self._timer.daemon = True
                self._timer.start()
        if start_now:
            self.start_watching()
        return self

    def refresh(self) -> Optional[Position]:
        """Re-read the current position. Leaves an active watch session untouched."""
        with self._lock:
            if self._closed:
                return None
            self._loading = True
            self._error = None
        try:
            position = self.tracker.get_current_position()
        except LocationError as exc:
            with self._lock:
                self._error = str(exc) or exc.__class__.__name__
            return None
        finally:
            with self._lock:
                self._loading = False
        self._apply_position(position)
        return position

    def start_watching(self) -> bool:
        with self._lock:
            if self._closed:
                return False
        started = self.tracker.start_watching(self._apply_position, self._on_watch_error)
        if started and self.closed:
            # close() ran while the session was opening.
            self.tracker.stop_watching()
            return False
        return started

    def stop_watching(self) -> bool:
        return self.tracker.stop_watching()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def close(self) -> None:
        """Tear down. Stops the tracker's watch exactly once, however often called."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            timer, self._timer = self._timer, None
            self._subscribers.clear()
        if timer is not None:
            timer.cancel()
        self.tracker.stop_watching()

    def __enter__(self) -> "LocationState":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _deferred_start(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._timer = None
        self.start_watching()

    def _apply_position(self, position: Position) -> None:
        with self._lock:
            if self._closed:
                return
            self._position = position
            self._last_update = position.timestamp
            self._error = None
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(position)
            except Exception:
                logger.exception("Location subscriber failed")

    def _on_watch_error(self, error: LocationError) -> None:
        with self._lock:
            if self._closed:
                return
            self._error = str(error) or error.__class__.__name__
