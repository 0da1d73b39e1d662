from __future__ import annotations


class SafeHarborError(Exception):
    """Base class for errors raised by the legality engine."""


class InvalidCoordinate(SafeHarborError, ValueError):
    pass


class InvalidGeometry(SafeHarborError, ValueError):
    pass


class SnapshotUnavailable(SafeHarborError):
    """Zone/alert/service data has not been loaded."""
