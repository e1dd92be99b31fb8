"""Offline replay of recorded motion traces through the state machine.

Traces are JSON-lines records carrying a relative time ``t_ms`` and
either already-derived signals (``speed_kmh`` / ``vibration``) or raw
provider values (``speed_mps`` and ``x``/``y``/``z``).  Timers are fired
from a simulated clock as soon as the trace passes their deadline.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import Field, ValidationError

from parkping.config import DetectionPolicy
from parkping.exceptions import SampleValidationError
from parkping.models._base import ParkPingModel
from parkping.models.sample import MotionSample
from parkping.models.state import ParkingState
from parkping.signals import speed_kmh, vibration_magnitude
from parkping.state.machine import ParkingStateMachine

_logger = logging.getLogger(__name__)

#: Wall-clock origin the relative trace times are anchored to.
TRACE_EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


class TraceRecord(ParkPingModel):
    """One line of a recorded trace."""

    t_ms: int = Field(..., ge=0)
    speed_kmh: float | None = None
    vibration: float | None = None
    speed_mps: float | None = None
    x: float | None = None
    y: float | None = None
    z: float | None = None

    def to_sample(self) -> MotionSample:
        speed = self.speed_kmh if self.speed_kmh is not None else speed_kmh(self.speed_mps)
        if self.vibration is not None:
            vibration = self.vibration
        elif self.x is None and self.y is None and self.z is None:
            vibration = 0.0
        else:
            vibration = vibration_magnitude(self.x, self.y, self.z)
        return MotionSample(
            speed_kmh=speed,
            vibration_magnitude=vibration,
            observed_at=TRACE_EPOCH + timedelta(milliseconds=self.t_ms),
        )


@dataclass(frozen=True, slots=True)
class ReplayStep:
    """A state change (or parked event) observed during replay."""

    t_ms: int
    trigger: str
    previous: ParkingState
    state: ParkingState
    parked: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "t_ms": self.t_ms,
            "trigger": self.trigger,
            "from": self.previous.value,
            "to": self.state.value,
            "parked": self.parked,
        }


def _offset_ms(at: datetime) -> int:
    return int((at - TRACE_EPOCH) / timedelta(milliseconds=1))


def parse_trace(lines: Iterable[str]) -> Iterator[TraceRecord]:
    """Parse JSON-lines, skipping blanks and ``#`` comments."""
    for lineno, line in enumerate(lines, start=1):
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        try:
            yield TraceRecord.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise SampleValidationError(f"Invalid trace record on line {lineno}: {exc}", reason="trace") from exc


def replay_trace(
    records: Iterable[TraceRecord],
    policy: DetectionPolicy,
    *,
    drain: bool = False,
) -> list[ReplayStep]:
    """Feed *records* through a fresh machine and return its transitions.

    With *drain*, timers still pending after the last record are fired
    in order until none remain or the machine settles.
    """
    machine = ParkingStateMachine(policy)
    machine.start()
    steps: list[ReplayStep] = []

    def fire_due(until: datetime | None) -> None:
        while True:
            token = machine.pending_timer
            if token is None or (until is not None and token.fires_at > until):
                return
            previous = machine.state
            state, event = machine.on_timer_fired(token)
            steps.append(ReplayStep(_offset_ms(token.fires_at), token.kind.value, previous, state, event is not None))

    for record in records:
        sample = record.to_sample()
        fire_due(sample.observed_at)
        previous = machine.state
        try:
            state, _event = machine.on_sample(sample)
        except SampleValidationError as exc:
            _logger.warning("Skipping trace record at t=%d ms: %s", record.t_ms, exc)
            continue
        if state is not previous:
            steps.append(ReplayStep(record.t_ms, "sample", previous, state))

    if drain:
        fire_due(None)
    return steps
