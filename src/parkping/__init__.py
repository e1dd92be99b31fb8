"""parkping - detect a parked vehicle from noisy motion and location samples."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("parkping")
except PackageNotFoundError:
    __version__ = "0+local"
from parkping.config import DEFAULT_POLICY, FAST_POLICY, DetectionPolicy
from parkping.exceptions import (
    InvalidTransitionError,
    ParkPingConfigError,
    ParkPingError,
    ParkPingPermissionError,
    SampleValidationError,
)
from parkping.models import (
    AccelerometerReading,
    LocationFix,
    MotionSample,
    Notification,
    ParkedEvent,
    ParkingState,
)
from parkping.monitor import LocationProvider, MotionProvider, ParkingMonitor
from parkping.signals import speed_kmh, vibration_magnitude
from parkping.sinks import LoggingNotificationSink, NotificationSink, RecordingNotificationSink
from parkping.state import (
    LoopTimerScheduler,
    MachineSnapshot,
    ParkingStateMachine,
    TimerKind,
    TimerScheduler,
    TimerToken,
)

__all__ = [
    "__version__",
    "AccelerometerReading",
    "DEFAULT_POLICY",
    "DetectionPolicy",
    "FAST_POLICY",
    "InvalidTransitionError",
    "LocationFix",
    "LocationProvider",
    "LoggingNotificationSink",
    "LoopTimerScheduler",
    "MachineSnapshot",
    "MotionProvider",
    "MotionSample",
    "Notification",
    "NotificationSink",
    "ParkedEvent",
    "ParkingMonitor",
    "ParkingState",
    "ParkingStateMachine",
    "ParkPingConfigError",
    "ParkPingError",
    "ParkPingPermissionError",
    "RecordingNotificationSink",
    "SampleValidationError",
    "TimerKind",
    "TimerScheduler",
    "TimerToken",
    "speed_kmh",
    "vibration_magnitude",
]
