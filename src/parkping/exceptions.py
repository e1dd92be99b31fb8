"""Custom exception hierarchy for parkping."""

from __future__ import annotations

from typing import Any


class ParkPingError(Exception):
    """Base exception for all parkping errors."""


class ParkPingConfigError(ParkPingError, ValueError):
    """Invalid detection policy or configuration value."""


class SampleValidationError(ParkPingError, ValueError):
    """A motion sample was malformed or out of order.

    The sample is dropped and the state machine is left untouched.
    """

    def __init__(self, message: str, *, sample: Any = None, reason: str = "") -> None:
        self.sample = sample
        self.reason = reason
        super().__init__(message)


class InvalidTransitionError(ParkPingError):
    """Operation is not allowed in the machine's current state.

    Raised e.g. by ``start()`` while a session is already running.
    The existing session is not altered.
    """

    def __init__(self, message: str, *, state: str = "", operation: str = "") -> None:
        self.state = state
        self.operation = operation
        super().__init__(message)


class ParkPingPermissionError(ParkPingError):
    """Location permission was denied by the platform."""
