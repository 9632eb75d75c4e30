"""Error taxonomy for position acquisition and catalog access."""
from __future__ import annotations


class LocationError(RuntimeError):
    pass


class PermissionDenied(LocationError):
    """The user declined location access. Persists until re-granted outside the app."""

    def __init__(self, message: str = "Location permission denied") -> None:
        super().__init__(message)


class PositionTimeout(LocationError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Position request timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class PositionUnavailable(LocationError):
    pass


class WatchError(LocationError):
    pass


class CatalogUnavailable(RuntimeError):
    pass
