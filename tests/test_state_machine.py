"""Tests for the parking-detection state machine."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from parkping.config import DEFAULT_POLICY, DetectionPolicy
from parkping.exceptions import InvalidTransitionError, SampleValidationError
from parkping.models import MotionSample, Notification, ParkedEvent, ParkingState
from parkping.state.machine import ParkingStateMachine
from parkping.state.timers import TimerKind, TimerToken

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _sample(speed: float, vibration: float, at_ms: int = 0) -> MotionSample:
    return MotionSample(speed_kmh=speed, vibration_magnitude=vibration, observed_at=_T0 + timedelta(milliseconds=at_ms))


class _FakeScheduler:
    def __init__(self) -> None:
        self.scheduled: list[TimerToken] = []
        self.cancelled: list[TimerToken] = []

    def schedule(self, token: TimerToken) -> None:
        self.scheduled.append(token)

    def cancel(self, token: TimerToken) -> None:
        self.cancelled.append(token)


def _machine(policy: DetectionPolicy = DEFAULT_POLICY) -> tuple[ParkingStateMachine, _FakeScheduler, list[Notification]]:
    scheduler = _FakeScheduler()
    notes: list[Notification] = []
    machine = ParkingStateMachine(policy, scheduler=scheduler, on_notification=notes.append)
    return machine, scheduler, notes


def _drive_to_possibly_parked(machine: ParkingStateMachine) -> TimerToken:
    machine.start()
    machine.on_sample(_sample(15, 2.0, 0))
    machine.on_sample(_sample(3, 0.2, 1000))
    token = machine.pending_timer
    assert token is not None
    return token


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


def test_starts_idle() -> None:
    machine, _, _ = _machine()
    assert machine.state is ParkingState.IDLE
    assert machine.pending_timer is None


def test_start_enters_monitoring_without_timers() -> None:
    machine, scheduler, notes = _machine()
    assert machine.start() is ParkingState.MONITORING
    assert machine.pending_timer is None
    assert scheduler.scheduled == []
    assert notes[-1].state is ParkingState.MONITORING


def test_start_twice_is_rejected_and_keeps_session() -> None:
    machine, _, _ = _machine()
    machine.start()
    machine.on_sample(_sample(15, 2.0))
    with pytest.raises(InvalidTransitionError) as exc_info:
        machine.start()
    assert exc_info.value.operation == "start"
    assert exc_info.value.state == "driving"
    assert machine.state is ParkingState.DRIVING


def test_stop_is_idempotent_and_resets_signals() -> None:
    machine, _, _ = _machine()
    machine.start()
    machine.on_sample(_sample(15, 2.0))
    assert machine.stop() is ParkingState.IDLE
    assert machine.stop() is ParkingState.IDLE
    snap = machine.snapshot()
    assert snap.speed_kmh == 0.0
    assert snap.vibration_magnitude == 0.0
    assert snap.last_observed_at is None


def test_restart_after_stop() -> None:
    machine, _, _ = _machine()
    machine.start()
    machine.stop()
    assert machine.start() is ParkingState.MONITORING


# ------------------------------------------------------------------
# Idle and validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("speed,vibration", [(0, 0), (15, 2.0), (3, 0.2), (100, 10)])
def test_idle_ignores_samples(speed: float, vibration: float) -> None:
    machine, scheduler, notes = _machine()
    assert machine.on_sample(_sample(speed, vibration)) == (ParkingState.IDLE, None)
    assert machine.state is ParkingState.IDLE
    assert scheduler.scheduled == []
    assert notes == []


def test_decreasing_timestamp_rejected_without_state_change() -> None:
    machine, _, _ = _machine()
    machine.start()
    machine.on_sample(_sample(15, 2.0, 5000))
    before = machine.snapshot()

    with pytest.raises(SampleValidationError) as exc_info:
        machine.on_sample(_sample(3, 0.2, 4000))

    assert exc_info.value.reason == "observed_at"
    assert machine.snapshot() == before
    assert machine.state is ParkingState.DRIVING


def test_equal_timestamps_accepted() -> None:
    machine, _, _ = _machine()
    machine.start()
    machine.on_sample(_sample(15, 2.0, 1000))
    state, _ = machine.on_sample(_sample(3, 0.2, 1000))
    assert state is ParkingState.POSSIBLY_PARKED


@pytest.mark.parametrize(
    "speed,vibration,reason",
    [
        (10, -0.1, "vibration_magnitude"),
        (-1, 1.0, "speed_kmh"),
        (float("nan"), 1.0, "speed_kmh"),
        (10, float("inf"), "vibration_magnitude"),
    ],
)
def test_malformed_sample_rejected(speed: float, vibration: float, reason: str) -> None:
    machine, _, notes = _machine()
    machine.start()
    before = machine.snapshot()
    notes.clear()

    with pytest.raises(SampleValidationError) as exc_info:
        machine.on_sample(_sample(speed, vibration))

    assert exc_info.value.reason == reason
    assert machine.snapshot() == before
    assert notes == []


def test_validation_error_is_value_error() -> None:
    machine, _, _ = _machine()
    machine.start()
    with pytest.raises(ValueError):
        machine.on_sample(_sample(10, -1))


# ------------------------------------------------------------------
# Transitions
# ------------------------------------------------------------------


class TestMonitoring:
    def test_speed_and_vibration_required(self) -> None:
        machine, _, _ = _machine()
        machine.start()
        assert machine.on_sample(_sample(15, 1.0))[0] is ParkingState.MONITORING
        assert machine.on_sample(_sample(8, 2.0))[0] is ParkingState.MONITORING
        assert machine.on_sample(_sample(15, 2.0))[0] is ParkingState.DRIVING

    def test_thresholds_are_strict(self) -> None:
        machine, _, _ = _machine()
        machine.start()
        assert machine.on_sample(_sample(10, 2.0))[0] is ParkingState.MONITORING
        assert machine.on_sample(_sample(15, 1.5))[0] is ParkingState.MONITORING

    def test_driving_detected_notification(self) -> None:
        machine, _, notes = _machine()
        machine.start()
        machine.on_sample(_sample(15, 2.0))
        assert notes[-1].title == "Driving detected"
        assert notes[-1].body == "Speed: 15.0 km/h"


class TestDriving:
    def test_refresh_notifies_speed(self) -> None:
        machine, scheduler, notes = _machine()
        machine.start()
        machine.on_sample(_sample(15, 2.0))
        machine.on_sample(_sample(42.0, 0.1, 1000))
        assert machine.state is ParkingState.DRIVING
        assert notes[-1].title == "Driving"
        assert notes[-1].body == "Speed: 42.0 km/h"
        assert scheduler.scheduled == []

    def test_speed_equal_to_parked_threshold_keeps_driving(self) -> None:
        machine, _, _ = _machine()
        machine.start()
        machine.on_sample(_sample(15, 2.0))
        assert machine.on_sample(_sample(5, 0.2, 1000))[0] is ParkingState.DRIVING
        assert machine.pending_timer is None

    def test_stop_arms_confirmation(self) -> None:
        machine, scheduler, notes = _machine()
        token = _drive_to_possibly_parked(machine)
        assert machine.state is ParkingState.POSSIBLY_PARKED
        assert token.kind is TimerKind.CONFIRMATION
        assert token.delay_ms == 60_000
        assert token.fires_at == _T0 + timedelta(milliseconds=61_000)
        assert scheduler.scheduled == [token]
        assert notes[-1].title == "Possibly parked"


class TestPossiblyParked:
    def test_speed_rise_cancels_confirmation(self) -> None:
        machine, scheduler, notes = _machine()
        token = _drive_to_possibly_parked(machine)

        state, event = machine.on_sample(_sample(6, 0.5, 2000))

        assert state is ParkingState.DRIVING
        assert event is None
        assert machine.pending_timer is None
        assert scheduler.cancelled == [token]
        assert notes[-1].title == "Driving again"

        # The old confirmation deadline arriving late is a no-op.
        assert machine.on_timer_fired(token) == (ParkingState.DRIVING, None)

    def test_speed_at_parked_threshold_keeps_waiting(self) -> None:
        machine, _, _ = _machine()
        token = _drive_to_possibly_parked(machine)
        assert machine.on_sample(_sample(5, 0.5, 2000))[0] is ParkingState.POSSIBLY_PARKED
        assert machine.pending_timer == token

    def test_stop_again_rearms_with_new_generation(self) -> None:
        machine, _, _ = _machine()
        first = _drive_to_possibly_parked(machine)
        machine.on_sample(_sample(20, 2.0, 2000))
        machine.on_sample(_sample(1, 0.1, 3000))
        second = machine.pending_timer
        assert second is not None
        assert second.generation > first.generation
        assert machine.on_timer_fired(first)[1] is None
        assert machine.state is ParkingState.POSSIBLY_PARKED
        state, event = machine.on_timer_fired(second)
        assert state is ParkingState.PARKED
        assert event is not None


class TestParked:
    def test_confirmation_emits_single_event_and_arms_hold(self) -> None:
        machine, scheduler, notes = _machine()
        token = _drive_to_possibly_parked(machine)

        state, event = machine.on_timer_fired(token)

        assert state is ParkingState.PARKED
        assert isinstance(event, ParkedEvent)
        assert event.observed_at == token.fires_at
        assert event.confirmed_after_ms == 60_000
        assert notes[-1].title == "Parked!"
        hold = machine.pending_timer
        assert hold is not None
        assert hold.kind is TimerKind.PARKED_HOLD
        assert hold.delay_ms == 5000
        assert scheduler.scheduled[-1] == hold

        # Refiring the consumed confirmation does nothing.
        assert machine.on_timer_fired(token) == (ParkingState.PARKED, None)

    def test_hold_timer_returns_to_monitoring(self) -> None:
        machine, _, notes = _machine()
        machine.on_timer_fired(_drive_to_possibly_parked(machine))
        hold = machine.pending_timer
        assert hold is not None

        assert machine.on_timer_fired(hold) == (ParkingState.MONITORING, None)
        assert machine.pending_timer is None
        assert notes[-1].state is ParkingState.MONITORING

    def test_driving_away_cancels_hold(self) -> None:
        machine, scheduler, _ = _machine()
        machine.on_timer_fired(_drive_to_possibly_parked(machine))
        hold = machine.pending_timer
        assert hold is not None

        assert machine.on_sample(_sample(10, 2.0, 70_000))[0] is ParkingState.PARKED
        assert machine.on_sample(_sample(11, 0.0, 70_500))[0] is ParkingState.MONITORING
        assert scheduler.cancelled[-1] == hold
        assert machine.on_timer_fired(hold) == (ParkingState.MONITORING, None)


# ------------------------------------------------------------------
# Stop and stale timers
# ------------------------------------------------------------------


@pytest.mark.parametrize("fire_confirmation", [False, True])
def test_stop_invalidates_pending_timer(fire_confirmation: bool) -> None:
    machine, scheduler, notes = _machine()
    token = _drive_to_possibly_parked(machine)
    if fire_confirmation:
        machine.on_timer_fired(token)
        pending = machine.pending_timer
        assert pending is not None
        token = pending

    machine.stop()
    assert machine.pending_timer is None
    assert scheduler.cancelled[-1] == token
    notes.clear()

    assert machine.on_timer_fired(token) == (ParkingState.IDLE, None)
    assert notes == []


def test_foreign_token_ignored() -> None:
    machine, _, _ = _machine()
    real = _drive_to_possibly_parked(machine)
    forged = TimerToken(kind=real.kind, generation=real.generation + 100, fires_at=real.fires_at, delay_ms=real.delay_ms)
    assert machine.on_timer_fired(forged) == (ParkingState.POSSIBLY_PARKED, None)
    assert machine.pending_timer == real


def test_works_without_scheduler_or_callback() -> None:
    machine = ParkingStateMachine(DEFAULT_POLICY)
    token = _drive_to_possibly_parked(machine)
    state, event = machine.on_timer_fired(token)
    assert state is ParkingState.PARKED
    assert event is not None


def test_failing_notification_callback_does_not_lose_event() -> None:
    def _broken(_notification: Notification) -> None:
        raise RuntimeError("notification service down")

    scheduler = _FakeScheduler()
    machine = ParkingStateMachine(DEFAULT_POLICY, scheduler=scheduler, on_notification=_broken)
    token = _drive_to_possibly_parked(machine)

    state, event = machine.on_timer_fired(token)

    assert state is ParkingState.PARKED
    assert isinstance(event, ParkedEvent)
    hold = machine.pending_timer
    assert hold is not None
    assert hold.kind is TimerKind.PARKED_HOLD
    assert scheduler.scheduled[-1] == hold


# ------------------------------------------------------------------
# End-to-end scenarios
# ------------------------------------------------------------------


def test_scenario_parking_confirmed_then_monitoring_resumes() -> None:
    policy = DetectionPolicy(
        driving_speed_threshold_kmh=10,
        parked_speed_threshold_kmh=5,
        vibration_threshold=1.5,
        confirmation_delay_ms=60_000,
    )
    machine, scheduler, _ = _machine(policy)
    events: list[ParkedEvent] = []

    assert machine.start() is ParkingState.MONITORING
    assert machine.on_sample(_sample(15, 2.0, 0)) == (ParkingState.DRIVING, None)
    assert machine.on_sample(_sample(3, 0.2, 1000)) == (ParkingState.POSSIBLY_PARKED, None)
    confirmation = scheduler.scheduled[-1]
    assert confirmation.delay_ms == 60_000

    state, event = machine.on_timer_fired(confirmation)
    assert state is ParkingState.PARKED
    assert event is not None
    events.append(event)

    hold = scheduler.scheduled[-1]
    assert hold.fires_at - confirmation.fires_at == timedelta(milliseconds=5000)
    assert machine.on_timer_fired(hold) == (ParkingState.MONITORING, None)
    assert len(events) == 1


def test_scenario_false_stop_never_parks() -> None:
    machine, scheduler, _ = _machine()
    machine.start()
    machine.on_sample(_sample(15, 2.0, 0))
    machine.on_sample(_sample(3, 0.2, 1000))
    confirmation = scheduler.scheduled[-1]

    assert machine.on_sample(_sample(8, 1.0, 30_000)) == (ParkingState.DRIVING, None)

    events = [machine.on_timer_fired(t)[1] for t in scheduler.scheduled]
    assert events == [None]
    assert machine.state is ParkingState.DRIVING
    assert confirmation in scheduler.cancelled
