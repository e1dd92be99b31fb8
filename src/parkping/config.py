"""Detection policy for parkping."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from parkping.exceptions import ParkPingConfigError

#: Grace period after a confirmed parking before monitoring resumes.
DEFAULT_PARKED_HOLD_MS = 5000


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ParkPingConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class DetectionPolicy:
    """Thresholds and durations that parameterize the state machine.

    Parameters
    ----------
    driving_speed_threshold_kmh : float
        Speed above which the vehicle is considered driving.
    parked_speed_threshold_kmh : float
        Speed below which the vehicle is considered stopped. Must be
        strictly lower than ``driving_speed_threshold_kmh``.
    vibration_threshold : float
        Vibration magnitude (m/s^2 deviation from gravity) above which
        the vehicle is considered to be moving under its own power.
    confirmation_delay_ms : int
        Time a stop must last before parking is confirmed.
    sample_interval_ms : int
        Cadence at which the motion provider is sampled.
    parked_hold_ms : int
        Grace period spent in ``PARKED`` before monitoring resumes.
    """

    driving_speed_threshold_kmh: float = 10.0
    parked_speed_threshold_kmh: float = 5.0
    vibration_threshold: float = 1.5
    confirmation_delay_ms: int = 60_000
    sample_interval_ms: int = 1000
    parked_hold_ms: int = DEFAULT_PARKED_HOLD_MS

    def __post_init__(self) -> None:
        if self.parked_speed_threshold_kmh < 0 or self.driving_speed_threshold_kmh < 0:
            raise ParkPingConfigError("speed thresholds must be non-negative")
        if self.parked_speed_threshold_kmh >= self.driving_speed_threshold_kmh:
            raise ParkPingConfigError(
                "parked_speed_threshold_kmh must be lower than driving_speed_threshold_kmh "
                f"({self.parked_speed_threshold_kmh} >= {self.driving_speed_threshold_kmh})"
            )
        if self.vibration_threshold < 0:
            raise ParkPingConfigError("vibration_threshold must be non-negative")
        if self.confirmation_delay_ms < 0:
            raise ParkPingConfigError("confirmation_delay_ms must be non-negative")
        if self.parked_hold_ms < 0:
            raise ParkPingConfigError("parked_hold_ms must be non-negative")
        if self.sample_interval_ms <= 0:
            raise ParkPingConfigError("sample_interval_ms must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> DetectionPolicy:
        """Create a policy from ``PARKPING_*`` environment variables.

        ``PARKPING_FAST_MODE`` starts from :data:`FAST_POLICY` instead of
        :data:`DEFAULT_POLICY`. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DetectionPolicy
            Validated policy.
        """
        env = os.environ

        base = FAST_POLICY if _env_bool(env.get("PARKPING_FAST_MODE"), False) else DEFAULT_POLICY
        policy_kwargs: dict[str, Any] = dataclasses.asdict(base)

        _ENV_FLOAT_MAP = {
            "PARKPING_DRIVING_SPEED_KMH": "driving_speed_threshold_kmh",
            "PARKPING_PARKED_SPEED_KMH": "parked_speed_threshold_kmh",
            "PARKPING_VIBRATION_THRESHOLD": "vibration_threshold",
        }
        _ENV_INT_MAP = {
            "PARKPING_CONFIRMATION_DELAY_MS": "confirmation_delay_ms",
            "PARKPING_SAMPLE_INTERVAL_MS": "sample_interval_ms",
            "PARKPING_PARKED_HOLD_MS": "parked_hold_ms",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                policy_kwargs[field_name] = _env_number(env_key, val, float)
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                policy_kwargs[field_name] = _env_number(env_key, val, int)

        policy_kwargs.update(overrides)
        try:
            return cls(**policy_kwargs)
        except TypeError as exc:
            raise ParkPingConfigError(str(exc)) from exc


DEFAULT_POLICY = DetectionPolicy()
"""Production policy: parking is confirmed after one minute standing still."""

FAST_POLICY = DetectionPolicy(confirmation_delay_ms=10_000)
"""Testing/development policy with a 10 second confirmation delay."""
