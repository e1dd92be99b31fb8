"""Parking-detection state machine.

Turns a stream of (speed, vibration) samples into state transitions and
raises a single :class:`~parkping.models.ParkedEvent` once a stop has
lasted for the policy's confirmation delay.

The machine is synchronous and not thread-safe.  Callers serialize
``on_sample`` / ``on_timer_fired`` / ``start`` / ``stop`` onto a single
execution context.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from parkping.config import DetectionPolicy
from parkping.exceptions import InvalidTransitionError, SampleValidationError
from parkping.models.sample import MotionSample
from parkping.models.state import Notification, ParkedEvent, ParkingState
from parkping.state.timers import TimerKind, TimerScheduler, TimerToken

_logger = logging.getLogger(__name__)

StepResult = tuple[ParkingState, ParkedEvent | None]

_MONITORING_TITLE = "ParkPing is active"
_MONITORING_BODY = "Monitoring for parking..."


def _speed_body(speed: float) -> str:
    return f"Speed: {speed:.1f} km/h"


@dataclass(frozen=True, slots=True)
class MachineSnapshot:
    """Read-only view of a machine's session data."""

    state: ParkingState
    speed_kmh: float
    vibration_magnitude: float
    last_observed_at: datetime | None
    pending_timer: TimerToken | None


class ParkingStateMachine:
    """Detects a parked vehicle from derived motion samples.

    Usage::

        machine = ParkingStateMachine(DEFAULT_POLICY, scheduler=scheduler)
        machine.start()
        state, event = machine.on_sample(sample)
        ...
        state, event = machine.on_timer_fired(token)

    Parameters
    ----------
    policy : DetectionPolicy
        Thresholds and durations; shared by reference, never mutated.
    scheduler : TimerScheduler or None
        Receives schedule/cancel requests for confirmation and hold
        timers.  Without one, callers poll :attr:`pending_timer`.
    on_notification : callable or None
        Receives a :class:`Notification` for every status change.
    """

    def __init__(
        self,
        policy: DetectionPolicy,
        *,
        scheduler: TimerScheduler | None = None,
        on_notification: Callable[[Notification], None] | None = None,
    ) -> None:
        self._policy = policy
        self._scheduler = scheduler
        self._on_notification = on_notification
        self._state = ParkingState.IDLE
        self._speed_kmh = 0.0
        self._vibration = 0.0
        self._last_observed_at: datetime | None = None
        self._pending: TimerToken | None = None
        self._generation = 0

    @property
    def state(self) -> ParkingState:
        return self._state

    @property
    def policy(self) -> DetectionPolicy:
        return self._policy

    @property
    def pending_timer(self) -> TimerToken | None:
        """The one timer the machine is currently waiting for, if any."""
        return self._pending

    def snapshot(self) -> MachineSnapshot:
        return MachineSnapshot(
            state=self._state,
            speed_kmh=self._speed_kmh,
            vibration_magnitude=self._vibration,
            last_observed_at=self._last_observed_at,
            pending_timer=self._pending,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self) -> ParkingState:
        """Begin a monitoring session. Only allowed from ``IDLE``."""
        if self._state is not ParkingState.IDLE:
            raise InvalidTransitionError(
                f"Cannot start monitoring while {self._state}",
                state=self._state.value,
                operation="start",
            )
        _logger.info("Parking detection started")
        self._transition(ParkingState.MONITORING, _MONITORING_TITLE, _MONITORING_BODY)
        return self._state

    def stop(self) -> ParkingState:
        """End the session, invalidating any pending timer. Idempotent."""
        self._disarm()
        self._speed_kmh = 0.0
        self._vibration = 0.0
        self._last_observed_at = None
        if self._state is not ParkingState.IDLE:
            _logger.info("Parking detection stopped in state %s", self._state)
            self._state = ParkingState.IDLE
        return self._state

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def on_sample(self, sample: MotionSample) -> StepResult:
        """Apply one derived motion sample.

        Raises
        ------
        SampleValidationError
            If the sample has a negative or non-finite signal, or is older
            than the previously accepted sample.  State is left unchanged.
        """
        if self._state is ParkingState.IDLE:
            _logger.debug("Dropping sample outside an active session")
            return self._state, None

        self._validate(sample)
        self._speed_kmh = sample.speed_kmh
        self._vibration = sample.vibration_magnitude
        self._last_observed_at = sample.observed_at

        policy = self._policy
        speed = sample.speed_kmh

        if self._state is ParkingState.MONITORING:
            if speed > policy.driving_speed_threshold_kmh and sample.vibration_magnitude > policy.vibration_threshold:
                self._transition(ParkingState.DRIVING, "Driving detected", _speed_body(speed))

        elif self._state is ParkingState.DRIVING:
            if speed < policy.parked_speed_threshold_kmh:
                self._arm(TimerKind.CONFIRMATION, policy.confirmation_delay_ms, sample.observed_at)
                self._transition(ParkingState.POSSIBLY_PARKED, "Possibly parked", "Waiting for confirmation...")
            else:
                self._notify("Driving", _speed_body(speed))

        elif self._state is ParkingState.POSSIBLY_PARKED:
            if speed > policy.parked_speed_threshold_kmh:
                self._disarm()
                self._transition(ParkingState.DRIVING, "Driving again", _speed_body(speed))

        elif self._state is ParkingState.PARKED:
            if speed > policy.driving_speed_threshold_kmh:
                self._disarm()
                self._transition(ParkingState.MONITORING, _MONITORING_TITLE, _MONITORING_BODY)

        return self._state, None

    def on_timer_fired(self, token: TimerToken) -> StepResult:
        """React to an elapsed timer.

        Tokens other than the currently pending one are stale and ignored.
        """
        pending = self._pending
        if pending is None or token != pending:
            _logger.debug("Ignoring stale %s timer gen=%d", token.kind, token.generation)
            return self._state, None
        self._pending = None

        if token.kind is TimerKind.CONFIRMATION and self._state is ParkingState.POSSIBLY_PARKED:
            event = ParkedEvent(observed_at=token.fires_at, confirmed_after_ms=token.delay_ms)
            _logger.info("Parking confirmed after %d ms standing still", token.delay_ms)
            self._transition(ParkingState.PARKED, "Parked!", "Notification sent")
            self._arm(TimerKind.PARKED_HOLD, self._policy.parked_hold_ms, token.fires_at)
            return self._state, event

        if token.kind is TimerKind.PARKED_HOLD and self._state is ParkingState.PARKED:
            self._transition(ParkingState.MONITORING, _MONITORING_TITLE, _MONITORING_BODY)
            return self._state, None

        _logger.debug("Timer %s fired in unexpected state %s", token.kind, self._state)
        return self._state, None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate(self, sample: MotionSample) -> None:
        for name in ("speed_kmh", "vibration_magnitude"):
            value = getattr(sample, name)
            if math.isnan(value) or math.isinf(value) or value < 0:
                raise SampleValidationError(
                    f"{name} must be a finite non-negative number, got {value!r}",
                    sample=sample,
                    reason=name,
                )
        if self._last_observed_at is not None and sample.observed_at < self._last_observed_at:
            raise SampleValidationError(
                f"Sample observed at {sample.observed_at.isoformat()} is older than "
                f"the previous sample at {self._last_observed_at.isoformat()}",
                sample=sample,
                reason="observed_at",
            )

    def _arm(self, kind: TimerKind, delay_ms: int, base: datetime) -> TimerToken:
        self._disarm()
        self._generation += 1
        token = TimerToken(
            kind=kind,
            generation=self._generation,
            fires_at=base + timedelta(milliseconds=delay_ms),
            delay_ms=delay_ms,
        )
        self._pending = token
        if self._scheduler is not None:
            self._scheduler.schedule(token)
        return token

    def _disarm(self) -> None:
        # Bumping the generation invalidates anything still in flight.
        self._generation += 1
        token = self._pending
        self._pending = None
        if token is not None and self._scheduler is not None:
            self._scheduler.cancel(token)

    def _transition(self, new_state: ParkingState, title: str, body: str) -> None:
        _logger.debug("Parking state %s -> %s", self._state, new_state)
        self._state = new_state
        self._notify(title, body)

    def _notify(self, title: str, body: str) -> None:
        if self._on_notification is None:
            return
        try:
            self._on_notification(Notification(title=title, body=body, state=self._state))
        except Exception:
            _logger.debug("on_notification callback failed", exc_info=True)
