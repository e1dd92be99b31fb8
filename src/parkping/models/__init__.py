"""Typed models for parkping inputs and outputs."""

from parkping.models.sample import AccelerometerReading, LocationFix, MotionSample
from parkping.models.state import Notification, ParkedEvent, ParkingState

__all__ = [
    "AccelerometerReading",
    "LocationFix",
    "MotionSample",
    "Notification",
    "ParkedEvent",
    "ParkingState",
]
