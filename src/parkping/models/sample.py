"""Sensor inputs: raw provider readings and the derived motion sample."""

from __future__ import annotations

import math
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from parkping.models._base import OptionalTimestamp, ParkPingModel, Timestamp
from parkping.signals import speed_kmh, vibration_magnitude


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


class MotionSample(ParkPingModel):
    """Derived input consumed once per state machine update.

    Range checks are left to the state machine so that malformed
    samples surface as :class:`~parkping.exceptions.SampleValidationError`.
    """

    speed_kmh: float
    vibration_magnitude: float
    observed_at: Timestamp


class AccelerometerReading(ParkPingModel):
    """Raw 3-axis acceleration sample in m/s^2.

    Axes the provider did not report coerce to ``0``.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    timestamp: OptionalTimestamp = None

    @field_validator("x", "y", "z", mode="before")
    @classmethod
    def _coerce_axis(cls, value: Any) -> float:
        parsed = _safe_float(value)
        return 0.0 if parsed is None else parsed

    def vibration_magnitude(self) -> float:
        return vibration_magnitude(self.x, self.y, self.z)


class LocationFix(ParkPingModel):
    """Raw location fix.

    Accepts both flat payloads and the ``{"coords": {...}, "timestamp": ...}``
    shape geolocation providers emit.

    Parameters
    ----------
    latitude : float or None
        Latitude in degrees.
    longitude : float or None
        Longitude in degrees.
    speed : float or None
        Speed over ground in m/s; ``None`` when the provider does not know.
    accuracy : float or None
        Horizontal accuracy in meters.
    timestamp : datetime or None
        Fix time (epoch seconds/milliseconds are accepted).
    """

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    speed: float | None = Field(default=None, validation_alias=AliasChoices("speed", "speed_mps"))
    accuracy: float | None = None
    timestamp: OptionalTimestamp = None

    @model_validator(mode="before")
    @classmethod
    def _merge_coords(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        coords = values.get("coords")
        if not isinstance(coords, dict):
            return values
        merged = dict(values)
        merged.pop("coords")
        for key, value in coords.items():
            merged.setdefault(key, value)
        return merged

    @field_validator("latitude", "longitude", "speed", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return _safe_float(value)

    def speed_kmh(self) -> float:
        return speed_kmh(self.speed)
