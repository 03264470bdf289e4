"""Low-speed safety latch that keeps yaw, slip and wheel states sane near standstill."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import MutableSequence, Sequence, Tuple

from .models import ModelType
from .params import VehicleParameters
from .state import SLIP_ANGLE, STEERING_ANGLE, WHEEL_SPEEDS, YAW_RATE


class SafetyStage(str, Enum):
    NORMAL = "normal"
    TRANSITION = "transition"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class SafetyProfile:
    """Latch speeds [m/s] and the yaw-rate [rad/s] / slip-angle [rad] limits."""

    engage_speed: float
    release_speed: float
    yaw_rate_limit: float
    slip_angle_limit: float

    def validate(self, name: str) -> None:
        if not (self.engage_speed > 0) or self.release_speed < self.engage_speed:
            raise ValueError(f"Low-speed safety profile {name!r} has invalid engage/release speeds")
        if not (self.yaw_rate_limit > 0) or not (self.slip_angle_limit > 0):
            raise ValueError(f"Low-speed safety profile {name!r} requires positive limits")


@dataclass(frozen=True)
class LowSpeedSafetyConfig:
    normal: SafetyProfile = field(default_factory=lambda: SafetyProfile(0.4, 0.8, 0.5, 0.35))
    drift: SafetyProfile = field(default_factory=lambda: SafetyProfile(0.3, 1.0, 0.8, 0.6))
    stop_speed_epsilon: float = 0.05

    def __post_init__(self) -> None:
        self.normal.validate("normal")
        self.drift.validate("drift")
        if not (self.stop_speed_epsilon >= 0):
            raise ValueError("stop_speed_epsilon must be non-negative")


@dataclass(frozen=True)
class SafetyLayout:
    """Which state entries the safety layer monitors and clamps."""

    steering_index: int | None = STEERING_ANGLE
    yaw_rate_index: int | None = None
    slip_index: int | None = None
    wheel_speed_indices: Tuple[int, ...] = ()
    wheelbase: float | None = None
    rear_length: float | None = None

    @staticmethod
    def for_model(model_type: ModelType, params: VehicleParameters) -> "SafetyLayout":
        # kinematic yaw rate and slip follow from the steering angle, only speed is monitored
        if model_type is ModelType.ST:
            return SafetyLayout(wheelbase=params.wheelbase, rear_length=params.l_r)
        return SafetyLayout(
            yaw_rate_index=YAW_RATE,
            slip_index=SLIP_ANGLE,
            wheel_speed_indices=WHEEL_SPEEDS,
            wheelbase=params.wheelbase,
            rear_length=params.l_r,
        )


@dataclass(frozen=True)
class SafetyStatus:
    severity: float
    transition_blend: float
    drift_mode: bool
    detector_forced: bool
    latch_active: bool
    stage: SafetyStage


@dataclass(frozen=True)
class _Metrics:
    speed: float
    severity: float
    transition_blend: float
    near_stop: bool
    yaw_target: float | None
    velocity_heading: float | None


class LowSpeedSafety:
    """Hysteresis latch with Normal, Transition and Emergency clamping stages.

    The latch engages below ``engage_speed`` or when the yaw-rate/slip severity
    exceeds 1 and only releases above ``release_speed`` with severity back
    under 1. Between those speeds a latched vehicle is in Transition; once
    released it is Normal, although states are still softly blended toward
    kinematic targets across the pre-latch band above ``release_speed``.
    """

    def __init__(
        self,
        config: LowSpeedSafetyConfig | None = None,
        layout: SafetyLayout | None = None,
        *,
        drift_enabled: bool = False,
    ) -> None:
        self.config = config or LowSpeedSafetyConfig()
        self.layout = layout or SafetyLayout()
        self._drift_enabled = drift_enabled
        self._engaged = False

    @property
    def drift_enabled(self) -> bool:
        return self._drift_enabled

    @property
    def engaged(self) -> bool:
        return self._engaged

    def set_drift_enabled(self, enabled: bool) -> None:
        self._drift_enabled = bool(enabled)

    def reset(self) -> None:
        self._engaged = False

    def active_profile(self) -> SafetyProfile:
        return self.config.drift if self._drift_enabled else self.config.normal

    def status(self, state: Sequence[float], speed: float) -> SafetyStatus:
        """Report the current decision without touching the latch."""
        profile = self.active_profile()
        metrics = self._monitor(state, speed, profile)
        latch_active, stage = self._decide(metrics, profile, update_latch=False)
        return SafetyStatus(
            severity=metrics.severity,
            transition_blend=metrics.transition_blend,
            drift_mode=self._drift_enabled,
            detector_forced=metrics.severity > 1,
            latch_active=latch_active,
            stage=stage,
        )

    def apply(self, state: MutableSequence[float], speed: float, update_latch: bool = True) -> None:
        """Clamp ``state`` in place, updating the latch first when requested."""
        profile = self.active_profile()
        metrics = self._monitor(state, speed, profile)
        latch_active, stage = self._decide(metrics, profile, update_latch=update_latch)
        self._clamp_state(state, metrics, latch_active, stage, profile)

    def _monitor(self, state: Sequence[float], speed: float, profile: SafetyProfile) -> _Metrics:
        yaw_limit = max(profile.yaw_rate_limit, 1e-6)
        slip_limit = max(profile.slip_angle_limit, 1e-6)
        yaw_state = self._value(state, self.layout.yaw_rate_index)
        slip_state = self._value(state, self.layout.slip_index)
        yaw_ratio = abs(yaw_state) / yaw_limit if yaw_state is not None else 0.0
        slip_ratio = abs(slip_state) / slip_limit if slip_state is not None else 0.0
        return _Metrics(
            speed=speed,
            severity=max(yaw_ratio, slip_ratio),
            transition_blend=self._pre_latch_blend(speed, profile),
            near_stop=abs(speed) <= self.config.stop_speed_epsilon,
            yaw_target=self._kinematic_yaw_rate(state, speed),
            velocity_heading=slip_state,
        )

    def _decide(self, metrics: _Metrics, profile: SafetyProfile, *, update_latch: bool):
        severity_trip = metrics.severity > 1
        if update_latch:
            if self._engaged:
                if metrics.speed > profile.release_speed and not severity_trip:
                    self._engaged = False
            elif metrics.speed < profile.engage_speed or severity_trip:
                self._engaged = True

        latch_active = self._engaged or severity_trip
        # Emergency snaps yaw to zero and slip to the velocity heading. Transition
        # (latched between the engage and release speeds) only clamps and blends
        # them toward the kinematic targets. A released latch is Normal even
        # while the pre-latch band above release_speed still blends.
        if not latch_active:
            stage = SafetyStage.NORMAL
        elif metrics.speed < profile.engage_speed or severity_trip:
            stage = SafetyStage.EMERGENCY
        else:
            stage = SafetyStage.TRANSITION
        return latch_active, stage

    def _clamp_state(
        self,
        state: MutableSequence[float],
        metrics: _Metrics,
        latch_active: bool,
        stage: SafetyStage,
        profile: SafetyProfile,
    ) -> None:
        blend = metrics.transition_blend
        unclamped = self._drift_enabled and stage is SafetyStage.NORMAL and blend <= 0
        wheel_latch = latch_active or metrics.speed < profile.engage_speed or blend > 0
        emergency = stage is SafetyStage.EMERGENCY

        yaw_index = self.layout.yaw_rate_index
        if self._in_bounds(yaw_index, state):
            if emergency:
                limit = profile.yaw_rate_limit
                state[yaw_index] = _clamp(0.0, -limit, limit)
            elif not unclamped:
                limit = self._scaled_limit(profile.yaw_rate_limit, metrics.speed, profile)
                value = _clamp(state[yaw_index], -limit, limit)
                if blend > 0 and metrics.yaw_target is not None:
                    target = _clamp(metrics.yaw_target, -limit, limit)
                    value = (1 - blend) * value + blend * target
                state[yaw_index] = value

        slip_index = self.layout.slip_index
        heading = metrics.velocity_heading
        if self._in_bounds(slip_index, state):
            if emergency:
                limit = profile.slip_angle_limit
                target = heading if heading is not None and not metrics.near_stop else 0.0
                state[slip_index] = _clamp(target, -limit, limit)
            elif not unclamped:
                limit = self._scaled_limit(profile.slip_angle_limit, metrics.speed, profile)
                value = _clamp(state[slip_index], -limit, limit)
                target = 0.0
                if heading is not None and not metrics.near_stop:
                    target = _clamp(heading, -limit, limit)
                if blend > 0:
                    value = (1 - blend) * value + blend * target
                state[slip_index] = value

        for index in self.layout.wheel_speed_indices:
            if not self._in_bounds(index, state):
                continue
            value = state[index]
            if value <= 0 or (wheel_latch and value <= self.config.stop_speed_epsilon):
                state[index] = 0.0

    def _pre_latch_blend(self, speed: float, profile: SafetyProfile) -> float:
        band = max(profile.release_speed - profile.engage_speed, 0.0)
        lower = profile.release_speed
        upper = lower + band
        if upper <= lower or speed >= upper:
            return 0.0
        if speed <= lower:
            return 1.0
        return _clamp((upper - speed) / (upper - lower), 0.0, 1.0)

    def _scaled_limit(self, limit: float, speed: float, profile: SafetyProfile) -> float:
        if speed >= profile.release_speed:
            return limit
        ratio = _clamp(speed / max(profile.release_speed, 1e-6), 0.0, 1.0)
        floor = max(self.config.stop_speed_epsilon, 1e-6)
        return _clamp(limit * ratio, min(floor, limit), limit)

    def _kinematic_yaw_rate(self, state: Sequence[float], speed: float) -> float | None:
        layout = self.layout
        if (
            not self._in_bounds(layout.steering_index, state)
            or not layout.wheelbase
            or layout.wheelbase <= 0
            or layout.rear_length is None
        ):
            return None
        if abs(speed) <= 1e-9:
            return 0.0
        delta = state[layout.steering_index]
        beta = math.atan(math.tan(delta) * layout.rear_length / layout.wheelbase)
        return speed * math.cos(beta) * math.tan(delta) / layout.wheelbase

    @staticmethod
    def _in_bounds(index: int | None, state: Sequence[float]) -> bool:
        return index is not None and 0 <= index < len(state)

    def _value(self, state: Sequence[float], index: int | None) -> float | None:
        return float(state[index]) if self._in_bounds(index, state) else None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


__all__ = [
    "SafetyStage",
    "SafetyProfile",
    "LowSpeedSafetyConfig",
    "SafetyLayout",
    "SafetyStatus",
    "LowSpeedSafety",
]
