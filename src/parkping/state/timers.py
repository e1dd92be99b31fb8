"""Timer identities issued by the state machine.

The machine never sleeps.  It records "armed with deadline D, generation
G" as a :class:`TimerToken` and asks an external :class:`TimerScheduler`
to call back.  Only the token that is currently pending is honoured when
it comes back; anything else is stale.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

_logger = logging.getLogger(__name__)


class TimerKind(StrEnum):
    CONFIRMATION = "confirmation"
    PARKED_HOLD = "parked_hold"


@dataclass(frozen=True, slots=True)
class TimerToken:
    """Identity of one scheduled deadline.

    Two tokens are equal only if kind, generation and deadline all match,
    so a cancelled-then-refired timer can never be mistaken for the live one.
    """

    kind: TimerKind
    generation: int
    fires_at: datetime
    delay_ms: int


class TimerScheduler(Protocol):
    """Owner of real-clock scheduling for a state machine."""

    def schedule(self, token: TimerToken) -> None:
        """Call back after ``token.delay_ms`` with *token*."""

    def cancel(self, token: TimerToken) -> None:
        """Best-effort cancel; stale fires are ignored by the machine anyway."""


class LoopTimerScheduler:
    """:class:`TimerScheduler` backed by ``loop.call_later``.

    *on_fire* is invoked on the loop thread with the token that elapsed.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_fire: Callable[[TimerToken], None],
    ) -> None:
        self._loop = loop
        self._on_fire = on_fire
        self._handles: dict[TimerToken, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> list[TimerToken]:
        return list(self._handles)

    def schedule(self, token: TimerToken) -> None:
        _logger.debug("Scheduling %s timer gen=%d in %d ms", token.kind, token.generation, token.delay_ms)
        self._handles[token] = self._loop.call_later(token.delay_ms / 1000.0, self._fire, token)

    def cancel(self, token: TimerToken) -> None:
        handle = self._handles.pop(token, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _fire(self, token: TimerToken) -> None:
        self._handles.pop(token, None)
        self._on_fire(token)
