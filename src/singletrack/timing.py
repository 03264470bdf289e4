"""Sub-step scheduling for arbitrary requested timesteps."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

MIN_STABLE_DT = 0.001


@dataclass(frozen=True)
class TimingInfo:
    """Nominal and maximum integration step for one model [s]."""

    nominal_dt: float
    max_dt: float

    def __post_init__(self) -> None:
        if not (self.max_dt > 0):
            raise ValueError(f"TimingInfo.max_dt must be positive; got {self.max_dt}")
        if not (self.nominal_dt > 0):
            raise ValueError(f"TimingInfo.nominal_dt must be positive; got {self.nominal_dt}")


@dataclass(frozen=True)
class StepSchedule:
    """Ordered sub-step durations covering one requested step."""

    requested_dt: float
    clamped_dt: float
    substeps: Tuple[float, ...]
    clamped_to_min: bool
    used_substeps: bool


def plan_steps(requested_dt: float, timing: TimingInfo) -> StepSchedule:
    """Split ``requested_dt`` into sub-steps no longer than ``timing.max_dt``.

    The sub-steps sum to ``max(requested_dt, MIN_STABLE_DT)`` exactly: all but
    the last are equal and the last one absorbs the rounding remainder. The
    count is the smallest one honouring ``max_dt``, reduced while that would
    produce sub-steps shorter than ``MIN_STABLE_DT``.
    """
    if not math.isfinite(requested_dt):
        raise ValueError("Requested dt must be finite")
    if requested_dt <= 0:
        raise ValueError(f"Requested dt must be positive; got {requested_dt}")
    if not (timing.max_dt > 0):
        raise ValueError("Step scheduling requires a positive max_dt")

    total_dt = max(requested_dt, MIN_STABLE_DT)
    steps = max(1, math.ceil(total_dt / timing.max_dt))
    while steps > 1 and total_dt / steps < MIN_STABLE_DT:
        steps -= 1

    base_dt = total_dt / steps
    substeps = []
    accumulated = 0.0
    for index in range(steps):
        dt = total_dt - accumulated if index == steps - 1 else base_dt
        accumulated += dt
        substeps.append(dt)

    return StepSchedule(
        requested_dt=requested_dt,
        clamped_dt=total_dt,
        substeps=tuple(substeps),
        clamped_to_min=total_dt > requested_dt,
        used_substeps=len(substeps) > 1,
    )


__all__ = ["MIN_STABLE_DT", "TimingInfo", "StepSchedule", "plan_steps"]
