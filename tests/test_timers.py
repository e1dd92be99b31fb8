"""Tests for the asyncio-backed timer scheduler."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from parkping.state.timers import LoopTimerScheduler, TimerKind, TimerToken

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _token(kind: TimerKind, generation: int, delay_ms: int) -> TimerToken:
    return TimerToken(kind=kind, generation=generation, fires_at=_T0 + timedelta(milliseconds=delay_ms), delay_ms=delay_ms)


@pytest.mark.asyncio
async def test_pending_tracks_schedule_cancel_and_fire() -> None:
    fired: list[TimerToken] = []
    scheduler = LoopTimerScheduler(asyncio.get_running_loop(), fired.append)
    quick = _token(TimerKind.CONFIRMATION, 1, 10)
    slow = _token(TimerKind.PARKED_HOLD, 2, 10_000)

    scheduler.schedule(quick)
    scheduler.schedule(slow)
    assert scheduler.pending == [quick, slow]

    scheduler.cancel(slow)
    assert scheduler.pending == [quick]

    await asyncio.sleep(0.05)
    assert fired == [quick]
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_cancel_all_prevents_fire() -> None:
    fired: list[TimerToken] = []
    scheduler = LoopTimerScheduler(asyncio.get_running_loop(), fired.append)
    scheduler.schedule(_token(TimerKind.CONFIRMATION, 1, 10))

    scheduler.cancel_all()
    await asyncio.sleep(0.05)

    assert scheduler.pending == []
    assert fired == []
