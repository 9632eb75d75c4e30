"""Position acquisition and continuous tracking."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from . import config
from .errors import LocationError, PermissionDenied, PositionTimeout, PositionUnavailable, WatchError
from .geo import distance_km
from .models import Position
from .sources import PositionSource, WatchOptions

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Position], None]
ErrorCallback = Callable[[LocationError], None]


class TrackerState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    READY = "ready"
    PERMISSION_DENIED = "permission_denied"
    POSITION_ERROR = "position_error"


class WatchSession:
    """Owns one provider subscription handle. ``close()`` cancels it exactly once."""

    def __init__(self, source: PositionSource) -> None:
        self.source = source
        self.handle: Any = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, handle: Any) -> None:
        self.handle = handle
        if self._closed:
            # Closed while the provider was still opening the subscription.
            self._cancel(handle)
            self.handle = None

    def close(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        handle, self.handle = self.handle, None
        if handle is not None:
            self._cancel(handle)
        return True

    def _cancel(self, handle: Any) -> None:
        try:
            self.source.cancel(handle)
        except Exception as exc:
            logger.warning("Cancelling position watch failed: %s", exc)


def _call_with_timeout(fn: Callable[[], Position], timeout_seconds: float) -> Position:
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = fn()
        except BaseException as exc:  # relayed to the caller below
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="position-request", daemon=True)
    worker.start()
    worker.join(timeout_seconds)
    if worker.is_alive():
        raise PositionTimeout(timeout_seconds)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


class PositionTracker:
    def __init__(
        self,
        source: PositionSource,
        timeout_seconds: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
        watch_options: Optional[WatchOptions] = None,
    ) -> None:
        self.source = source
        self.timeout_seconds = (
            config.POSITION_TIMEOUT_SECONDS if timeout_seconds is None else float(timeout_seconds)
        )
        self.max_age_seconds = (
            config.POSITION_MAX_AGE_SECONDS if max_age_seconds is None else float(max_age_seconds)
        )
        self.watch_options = watch_options or WatchOptions.from_config()
        self._lock = threading.RLock()
        self._state = TrackerState.IDLE
        self._last_position: Optional[Position] = None
        self._last_error: Optional[LocationError] = None
        self._session: Optional[WatchSession] = None

    @property
    def state(self) -> TrackerState:
        with self._lock:
            return self._state

    @property
    def last_position(self) -> Optional[Position]:
        with self._lock:
            return self._last_position

    @property
    def last_error(self) -> Optional[LocationError]:
        with self._lock:
            return self._last_error

    @property
    def watching(self) -> bool:
        with self._lock:
            return self._session is not None

    def request_permission(self) -> bool:
        try:
            return bool(self.source.request_permission())
        except Exception as exc:
            logger.warning("Location permission request failed: %s", exc)
            return False

    def get_current_position(self) -> Position:
        """Read the current position once.

        Raises PermissionDenied, PositionTimeout or PositionUnavailable; raw
        provider exceptions are converted, never propagated.
        """
        with self._lock:
            self._state = TrackerState.ACQUIRING

        if not self.request_permission():
            error = PermissionDenied()
            self._record_failure(error)
            raise error

        try:
            position = _call_with_timeout(
                lambda: self.source.get_current_position(self.timeout_seconds, self.max_age_seconds),
                self.timeout_seconds,
            )
        except Exception as exc:
            error = _classify(exc, self.timeout_seconds)
            self._record_failure(error)
            if error is exc:
                raise
            raise error from exc

        with self._lock:
            self._last_position = position
            self._last_error = None
            self._state = TrackerState.READY
        logger.debug(
            "Position acquired from %s source: %.5f, %.5f",
            self.source.name,
            position.latitude,
            position.longitude,
        )
        return position

    def start_watching(
        self,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        """Open a watch session. Returns False when one is already active or opening failed."""
        failure: Optional[WatchError] = None
        with self._lock:
            if self._session is not None:
                logger.debug("Position watch already active; ignoring start request")
                return False
            session = WatchSession(self.source)
            self._session = session
            try:
                handle = self.source.watch(
                    self.watch_options,
                    lambda position: self._deliver(session, position, on_update),
                    lambda exc: self._deliver_error(session, exc, on_error),
                )
            except Exception as exc:
                if self._session is session:
                    self._session = None
                session.close()
                failure = WatchError(f"Could not start position watch: {exc}")
                self._last_error = failure
                logger.warning("%s", failure)
            else:
                session.attach(handle)
                logger.info("Started position watch on %s source", self.source.name)
                return True

        if on_error is not None:
            try:
                on_error(failure)
            except Exception:
                logger.exception("Position error callback failed")
        return False

    def stop_watching(self) -> bool:
        with self._lock:
            session, self._session = self._session, None
            if session is None:
                return False
            session.close()
        logger.info("Stopped position watch")
        return True

    def close(self) -> None:
        self.stop_watching()

    def __enter__(self) -> "PositionTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _record_failure(self, error: LocationError) -> None:
        with self._lock:
            self._last_error = error
            if isinstance(error, PermissionDenied):
                self._state = TrackerState.PERMISSION_DENIED
            else:
                self._state = TrackerState.POSITION_ERROR
        logger.warning("Position request failed: %s", error)

    def _accepts(self, position: Position) -> bool:
        last = self._last_position
        if last is None:
            return True
        moved_m = distance_km(last.coordinate, position.coordinate) * 1000.0
        if moved_m >= self.watch_options.min_displacement_m:
            return True
        elapsed = (position.timestamp - last.timestamp).total_seconds()
        return elapsed >= self.watch_options.max_interval_seconds

    def _deliver(
        self,
        session: WatchSession,
        position: Position,
        on_update: Optional[UpdateCallback],
    ) -> None:
        # The accept decision and state change are atomic with stop_watching;
        # the callback runs after the lock is released.
        with self._lock:
            if self._session is not session:
                return
            if not self._accepts(position):
                logger.debug("Dropping position update below displacement threshold")
                return
            self._last_position = position
            self._last_error = None
            self._state = TrackerState.READY
        if on_update is not None:
            try:
                on_update(position)
            except Exception:
                logger.exception("Position update callback failed")

    def _deliver_error(
        self,
        session: WatchSession,
        exc: BaseException,
        on_error: Optional[ErrorCallback],
    ) -> None:
        with self._lock:
            if self._session is not session:
                return
            error = exc if isinstance(exc, WatchError) else WatchError(f"Position watch error: {exc}")
            self._last_error = error
        logger.warning("%s", error)
        if on_error is not None:
            try:
                on_error(error)
            except Exception:
                logger.exception("Position error callback failed")


def _classify(exc: BaseException, timeout_seconds: float) -> LocationError:
    if isinstance(exc, LocationError):
        return exc
    if isinstance(exc, TimeoutError):
        return PositionTimeout(timeout_seconds)
    return PositionUnavailable(f"Position unavailable: {exc}")
