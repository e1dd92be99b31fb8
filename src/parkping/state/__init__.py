"""State machine layer.

This package is the only place that decides parking-state transitions.
Everything around it (providers, sinks, real-clock timers) feeds it
samples and timer callbacks and dispatches what it emits.
"""

from parkping.state.machine import MachineSnapshot, ParkingStateMachine, StepResult
from parkping.state.timers import LoopTimerScheduler, TimerKind, TimerScheduler, TimerToken

__all__ = [
    "LoopTimerScheduler",
    "MachineSnapshot",
    "ParkingStateMachine",
    "StepResult",
    "TimerKind",
    "TimerScheduler",
    "TimerToken",
]
