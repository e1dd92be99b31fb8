"""Derivation of the two scalar signals the detector works on.

Raw provider samples are reduced to:

* a vibration magnitude: how far the measured acceleration norm is
  from standard gravity, used as a proxy for net motion;
* a speed in km/h from a nullable speed-over-ground in m/s.
"""

from __future__ import annotations

import math

#: Standard gravity in m/s^2 as reported by phone accelerometers at rest.
STANDARD_GRAVITY = 9.8

#: Conversion factor from m/s to km/h.
MPS_TO_KMH = 3.6


def vibration_magnitude(x: float | None, y: float | None, z: float | None) -> float:
    """Return ``|sqrt(x² + y² + z²) - g|`` for a 3-axis acceleration sample.

    Missing axes (``None``) count as ``0``.
    """
    ax = x or 0.0
    ay = y or 0.0
    az = z or 0.0
    return abs(math.sqrt(ax * ax + ay * ay + az * az) - STANDARD_GRAVITY)


def speed_kmh(speed_m_per_s: float | None) -> float:
    """Convert a speed-over-ground sample to km/h.

    Providers report "unknown" as ``None`` and occasionally emit negative
    artifacts; both map to ``0``.
    """
    if speed_m_per_s is None:
        return 0.0
    value = float(speed_m_per_s)
    if math.isnan(value) or math.isinf(value) or value < 0:
        return 0.0
    return value * MPS_TO_KMH
