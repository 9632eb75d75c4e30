"""Position sources: the positioning provider boundary and its strategies.

The tracker talks to a ``PositionSource``. ``LivePositionSource`` adapts a
real positioning provider; ``FixedPositionSource`` stands in for it in
development mode; ``ReplayPositionSource`` replays a scripted route.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from . import config
from .models import Coordinate, Position, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
UpdateCallback = Callable[[Position], None]
ErrorCallback = Callable[[BaseException], None]


class PositionProvider(Protocol):
    def request_permission(self) -> bool:
        ...

    def get_current_position(self, timeout_ms: int, max_age_ms: int) -> Any:
        ...

    def watch_position(
        self,
        min_displacement_m: float,
        min_interval_ms: int,
        max_interval_ms: int,
        on_update: Callable[[Any], None],
        on_error: ErrorCallback,
    ) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


@dataclass(frozen=True)
class WatchOptions:
    min_displacement_m: float = 100.0
    fastest_interval_seconds: float = 10.0
    max_interval_seconds: float = 30.0

    @classmethod
    def from_config(cls) -> "WatchOptions":
        return cls(
            min_displacement_m=config.WATCH_MIN_DISPLACEMENT_M,
            fastest_interval_seconds=config.WATCH_FASTEST_INTERVAL_SECONDS,
            max_interval_seconds=config.WATCH_MAX_INTERVAL_SECONDS,
        )


class PositionSource(Protocol):
    name: str

    def request_permission(self) -> bool:
        ...

    def get_current_position(self, timeout_seconds: float, max_age_seconds: float) -> Position:
        ...

    def watch(self, options: WatchOptions, on_update: UpdateCallback, on_error: ErrorCallback) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


def to_position(reading: Any, clock: Clock = utc_now) -> Position:
    """Normalize a provider reading into a Position.

    Accepts a Position, or a mapping shaped like a browser/React Native fix:
    ``{"coords": {"latitude", "longitude", "accuracy"}, "timestamp": epoch_ms}``
    or the same keys flattened.
    """
    if isinstance(reading, Position):
        return reading
    if not isinstance(reading, Mapping):
        raise ValueError(f"Unsupported position reading: {type(reading).__name__}")

    coords = reading.get("coords")
    if not isinstance(coords, Mapping):
        coords = reading
    coordinate = Coordinate.from_dict(coords)
    accuracy = coords.get("accuracy")
    return Position(
        coordinate=coordinate,
        timestamp=_parse_timestamp(reading.get("timestamp"), clock),
        accuracy=float(accuracy) if accuracy is not None else None,
    )


def _parse_timestamp(value: Any, clock: Clock) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Providers report epoch milliseconds.
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return clock()


class LivePositionSource:
    name = "live"

    def __init__(self, provider: PositionProvider, clock: Clock = utc_now) -> None:
        self.provider = provider
        self.clock = clock

    def request_permission(self) -> bool:
        return bool(self.provider.request_permission())

    def get_current_position(self, timeout_seconds: float, max_age_seconds: float) -> Position:
        reading = self.provider.get_current_position(
            int(timeout_seconds * 1000), int(max_age_seconds * 1000)
        )
        return to_position(reading, self.clock)

    def watch(self, options: WatchOptions, on_update: UpdateCallback, on_error: ErrorCallback) -> Any:
        def handle_reading(reading: Any) -> None:
            try:
                position = to_position(reading, self.clock)
            except (TypeError, ValueError) as exc:
                on_error(exc)
                return
            on_update(position)

        return self.provider.watch_position(
            options.min_displacement_m,
            int(options.fastest_interval_seconds * 1000),
            int(options.max_interval_seconds * 1000),
            handle_reading,
            on_error,
        )

    def cancel(self, handle: Any) -> None:
        self.provider.cancel(handle)


class FixedPositionSource:
    """Always reports the same coordinate; watch sessions never emit."""

    name = "fixed"

    def __init__(
        self,
        coordinate: Optional[Coordinate] = None,
        clock: Clock = utc_now,
        delay_seconds: float = 0.0,
    ) -> None:
        if coordinate is None:
            ref = config.REFERENCE_POSITION
            coordinate = Coordinate(ref["lat"], ref["lon"])
        self.coordinate = coordinate
        self.clock = clock
        self.delay_seconds = delay_seconds
        self._handles = itertools.count(1)

    def request_permission(self) -> bool:
        return True

    def get_current_position(self, timeout_seconds: float, max_age_seconds: float) -> Position:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)
        return Position(coordinate=self.coordinate, timestamp=self.clock())

    def watch(self, options: WatchOptions, on_update: UpdateCallback, on_error: ErrorCallback) -> Any:
        return f"fixed-{next(self._handles)}"

    def cancel(self, handle: Any) -> None:
        return None


class ReplayPositionSource:
    """Replays a scripted sequence of coordinates, one per ``advance()`` call."""

    name = "replay"

    def __init__(
        self,
        coordinates: Sequence[Coordinate],
        clock: Clock = utc_now,
        permission_granted: bool = True,
    ) -> None:
        if not coordinates:
            raise ValueError("ReplayPositionSource needs at least one coordinate")
        self.coordinates: List[Coordinate] = list(coordinates)
        self.clock = clock
        self.permission_granted = permission_granted
        self._index = 0
        self._lock = threading.Lock()
        self._handles = itertools.count(1)
        self._subscribers: Dict[int, Tuple[UpdateCallback, ErrorCallback]] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def request_permission(self) -> bool:
        return self.permission_granted

    def get_current_position(self, timeout_seconds: float, max_age_seconds: float) -> Position:
        with self._lock:
            coordinate = self.coordinates[self._index]
        return Position(coordinate=coordinate, timestamp=self.clock())

    def watch(self, options: WatchOptions, on_update: UpdateCallback, on_error: ErrorCallback) -> Any:
        with self._lock:
            handle = next(self._handles)
            self._subscribers[handle] = (on_update, on_error)
        return handle

    def cancel(self, handle: Any) -> None:
        with self._lock:
            self._subscribers.pop(handle, None)

    def advance(self) -> Optional[Position]:
        """Move to the next coordinate and emit it. Returns None once exhausted."""
        with self._lock:
            if self._index + 1 >= len(self.coordinates):
                return None
            self._index += 1
            coordinate = self.coordinates[self._index]
            subscribers = list(self._subscribers.values())
        position = Position(coordinate=coordinate, timestamp=self.clock())
        for on_update, _ in subscribers:
            on_update(position)
        return position

    def fail(self, error: BaseException) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())
        for _, on_error in subscribers:
            on_error(error)


def select_position_source(
    provider: Optional[PositionProvider] = None,
    development: Optional[bool] = None,
    clock: Clock = utc_now,
) -> PositionSource:
    """Pick the fixed source in development mode, otherwise wrap the live provider."""
    if development is None:
        development = config.is_development_mode()
    if development:
        logger.info("Development mode: using fixed reference position %s", config.REFERENCE_POSITION)
        return FixedPositionSource(clock=clock)
    if provider is None:
        raise ValueError("A positioning provider is required outside development mode")
    return LivePositionSource(provider, clock=clock)
