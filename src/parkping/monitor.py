"""Async driver loop that wires providers, timers and sinks to the state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from parkping.config import DEFAULT_POLICY, DetectionPolicy
from parkping.exceptions import InvalidTransitionError, ParkPingPermissionError, SampleValidationError
from parkping.models.sample import AccelerometerReading, LocationFix, MotionSample
from parkping.models.state import ParkedEvent, ParkingState
from parkping.sinks import LoggingNotificationSink, NotificationSink
from parkping.state.machine import MachineSnapshot, ParkingStateMachine
from parkping.state.timers import LoopTimerScheduler, TimerToken

_logger = logging.getLogger(__name__)


class MotionProvider(Protocol):
    def start(self, on_reading: Callable[[AccelerometerReading], None], interval_ms: int) -> None:
        """Begin delivering accelerometer readings every *interval_ms*."""

    def stop(self) -> None: ...


class LocationProvider(Protocol):
    async def request_permissions(self) -> bool:
        """Ask the platform for (background) location access."""

    def start(
        self,
        on_fix: Callable[[LocationFix], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Begin delivering location fixes at the provider's own cadence."""

    def stop(self) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ParkingMonitor:
    """Runs one parking-detection session on an asyncio loop.

    Providers may call back from any thread; every reading, fix, error
    and timer is marshalled onto the loop so the state machine only ever
    sees serialized calls.

    Usage::

        async with ParkingMonitor(motion, location, sink=sink) as monitor:
            await monitor.start()
            ...
    """

    def __init__(
        self,
        motion: MotionProvider,
        location: LocationProvider,
        *,
        policy: DetectionPolicy = DEFAULT_POLICY,
        sink: NotificationSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._motion = motion
        self._location = location
        self._policy = policy
        self._sink: NotificationSink = sink or LoggingNotificationSink()
        self._clock = clock
        self._loop: asyncio.AbstractEventLoop | None = None
        self._scheduler: LoopTimerScheduler | None = None
        self._machine = ParkingStateMachine(policy)
        self._monitoring = False
        self._speed_kmh = 0.0
        self._vibration = 0.0
        self._last_error: str | None = None
        # Decided by the first fix of a session: provider timestamps or the clock.
        self._provider_time: bool | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ParkingMonitor:
        self._loop = asyncio.get_running_loop()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        self._loop = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def state(self) -> ParkingState:
        return self._machine.state

    @property
    def current_speed_kmh(self) -> float:
        return self._speed_kmh

    @property
    def vibration_level(self) -> float:
        return self._vibration

    @property
    def last_error(self) -> str | None:
        """Last user-facing error message, cleared on each start."""
        return self._last_error

    def snapshot(self) -> MachineSnapshot:
        return self._machine.snapshot()

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Request permissions, start providers and begin monitoring.

        Raises
        ------
        InvalidTransitionError
            If a session is already running.
        ParkPingPermissionError
            If location permission was denied.
        """
        if self._monitoring:
            raise InvalidTransitionError(
                "Monitoring is already running",
                state=self._machine.state.value,
                operation="start",
            )
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._last_error = None
        self._provider_time = None

        try:
            granted = await self._location.request_permissions()
        except Exception as exc:
            self._last_error = str(exc) or type(exc).__name__
            _logger.error("Location permission request failed: %s", exc)
            raise
        if not granted:
            self._last_error = "Location permission denied"
            _logger.warning("Cannot start parking detection: location permission denied")
            raise ParkPingPermissionError(self._last_error)

        self._scheduler = LoopTimerScheduler(loop, self._handle_timer)
        self._machine = ParkingStateMachine(
            self._policy,
            scheduler=self._scheduler,
            on_notification=self._sink.update_status,
        )
        try:
            self._motion.start(self._on_reading, self._policy.sample_interval_ms)
            self._location.start(self._on_fix, self._on_error)
        except Exception as exc:
            self._last_error = str(exc) or type(exc).__name__
            _logger.error("Failed to start providers: %s", exc)
            self._stop_providers()
            raise

        self._machine.start()
        self._monitoring = True

    async def stop(self) -> None:
        """Stop providers and cancel pending timers. Idempotent."""
        if self._monitoring:
            self._stop_providers()
        self._machine.stop()
        if self._scheduler is not None:
            self._scheduler.cancel_all()
            self._scheduler = None
        if self._monitoring:
            self._sink.clear()
        self._monitoring = False
        self._speed_kmh = 0.0
        self._vibration = 0.0

    async def toggle(self) -> None:
        if self._monitoring:
            await self.stop()
        else:
            await self.start()

    def _stop_providers(self) -> None:
        for provider in (self._motion, self._location):
            try:
                provider.stop()
            except Exception:
                _logger.exception("Failed to stop provider %r", provider)

    # ------------------------------------------------------------------
    # Provider callbacks (any thread)
    # ------------------------------------------------------------------

    def _on_reading(self, reading: AccelerometerReading) -> None:
        self._dispatch(self._handle_reading, reading)

    def _on_fix(self, fix: LocationFix) -> None:
        self._dispatch(self._handle_fix, fix)

    def _on_error(self, error: Exception) -> None:
        self._dispatch(self._handle_error, error)

    def _dispatch(self, handler: Callable[[Any], None], arg: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            _logger.debug("Dropping provider callback: no running loop")
            return
        loop.call_soon_threadsafe(handler, arg)

    # ------------------------------------------------------------------
    # Handlers (loop thread)
    # ------------------------------------------------------------------

    def _handle_reading(self, reading: AccelerometerReading) -> None:
        if not self._monitoring:
            return
        self._vibration = reading.vibration_magnitude()

    def _handle_fix(self, fix: LocationFix) -> None:
        if not self._monitoring:
            return
        self._speed_kmh = fix.speed_kmh()
        sample = MotionSample(
            speed_kmh=self._speed_kmh,
            vibration_magnitude=self._vibration,
            observed_at=self._observed_at(fix),
        )
        try:
            _state, event = self._machine.on_sample(sample)
        except SampleValidationError as exc:
            _logger.warning("Dropping motion sample: %s", exc)
            return
        self._emit(event)

    def _handle_error(self, error: Exception) -> None:
        if not self._monitoring:
            return
        self._last_error = f"Location error: {error}"
        _logger.warning("Location provider error: %s", error)

    def _observed_at(self, fix: LocationFix) -> datetime:
        """Timestamp *fix* from one time source for the whole session.

        Once a session runs on provider timestamps, a fix without one is
        pinned to the last accepted sample time instead of the wall clock.
        """
        if self._provider_time is None:
            self._provider_time = fix.timestamp is not None
        if not self._provider_time:
            return self._clock()
        if fix.timestamp is not None:
            return fix.timestamp
        last = self._machine.snapshot().last_observed_at
        return last if last is not None else self._clock()

    def _handle_timer(self, token: TimerToken) -> None:
        _state, event = self._machine.on_timer_fired(token)
        self._emit(event)

    def _emit(self, event: ParkedEvent | None) -> None:
        if event is not None:
            self._sink.send_parked(event)
