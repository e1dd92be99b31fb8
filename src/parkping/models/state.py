"""Parking state enum and the outputs the state machine emits."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import Field

from parkping.models._base import ParkPingModel, Timestamp


class ParkingState(StrEnum):
    """Detector state. Exactly one is current per machine."""

    IDLE = "idle"  # monitoring is off
    MONITORING = "monitoring"  # waiting for driving to start
    DRIVING = "driving"  # speed and vibration above thresholds
    POSSIBLY_PARKED = "possibly_parked"  # stopped, waiting for confirmation
    PARKED = "parked"  # parking confirmed, event emitted


class Notification(ParkPingModel):
    """Human-readable status update for the notification sink.

    Parameters
    ----------
    title : str
        Short headline, e.g. ``"Driving detected"``.
    body : str
        Detail line, e.g. the current speed.
    state : ParkingState
        State the machine is in after the update.
    """

    title: str
    body: str = ""
    state: ParkingState


class ParkedEvent(ParkPingModel):
    """The single terminal event raised once parking is confirmed."""

    observed_at: Timestamp
    confirmed_after_ms: int = Field(..., ge=0)
    title: str = "Parking detected!"
    body: str = "Looks like you parked the car. Remember where you left it!"

    @property
    def stopped_at(self) -> datetime:
        """When the vehicle was first seen standing still."""
        return self.observed_at - timedelta(milliseconds=self.confirmed_after_ms)
