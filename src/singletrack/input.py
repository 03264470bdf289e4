"""Driver input records and their validation/clamping limits."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Sequence, Tuple

from .params import VehicleParameters


class ControlMode(str, Enum):
    """How raw driver input is turned into actuator commands."""

    KEYBOARD = "Keyboard"
    DIRECT = "Direct"


class InputValidationError(ValueError):
    """Raised when a UserInput is malformed or outside its configured limits."""


@dataclass(frozen=True)
class DriverIntent:
    """Pedal positions in [0, 1]."""

    throttle: float = 0.0
    brake: float = 0.0


@dataclass(frozen=True)
class UserInput:
    """One tick of raw driver input."""

    dt: float
    timestamp: float = 0.0
    control_mode: ControlMode = ControlMode.KEYBOARD
    longitudinal: DriverIntent = field(default_factory=DriverIntent)
    steering_nudge: float | None = None
    steering_angle: float | None = None
    steering_rate: float | None = None
    acceleration: float | None = None
    axle_torques: Tuple[float, ...] | None = None
    drift_toggle: float | None = None


@dataclass(frozen=True)
class UserInputLimits:
    """Per-field bounds used to validate and clamp a UserInput."""

    min_throttle: float = 0.0
    max_throttle: float = 1.0
    min_brake: float = 0.0
    max_brake: float = 1.0
    min_steering_nudge: float = -1.0
    max_steering_nudge: float = 1.0
    min_steering_rate: float = -4.0
    max_steering_rate: float = 4.0
    min_accel: float = -8.0
    max_accel: float = 8.0
    min_drift_toggle: float = 0.0
    max_drift_toggle: float = 1.0
    min_steering_angle: float = 0.0
    max_steering_angle: float = 0.0
    min_axle_torque: Tuple[float, ...] = ()
    max_axle_torque: Tuple[float, ...] = ()

    @staticmethod
    def for_vehicle(params: VehicleParameters, driven_axles: int = 2) -> "UserInputLimits":
        """Derive steering and per-axle torque bounds from a vehicle."""
        drive_torque = params.m * max(params.accel.max, 0.0) * params.R_w / driven_axles
        brake_torque = params.m * abs(min(params.accel.min, 0.0)) * params.R_w / driven_axles
        return UserInputLimits(
            min_steering_rate=params.steering.rate_min,
            max_steering_rate=params.steering.rate_max,
            min_accel=params.accel.min,
            max_accel=params.accel.max,
            min_steering_angle=params.steering.min,
            max_steering_angle=params.steering.max,
            min_axle_torque=(-brake_torque,) * driven_axles,
            max_axle_torque=(drive_torque,) * driven_axles,
        )

    def clamp(self, user_input: UserInput) -> UserInput:
        """Validate ``user_input`` and return a copy clamped into range."""
        self.validate(user_input)
        mode = user_input.control_mode
        changes = {}
        if mode is ControlMode.KEYBOARD:
            changes["longitudinal"] = DriverIntent(
                throttle=_clamp(user_input.longitudinal.throttle, self.min_throttle, self.max_throttle),
                brake=_clamp(user_input.longitudinal.brake, self.min_brake, self.max_brake),
            )
            changes["steering_nudge"] = _clamp(
                _or_zero(user_input.steering_nudge), self.min_steering_nudge, self.max_steering_nudge
            )
        else:
            changes["steering_angle"] = _clamp(
                _or_zero(user_input.steering_angle), self.min_steering_angle, self.max_steering_angle
            )
            if user_input.steering_rate is not None:
                changes["steering_rate"] = _clamp(
                    user_input.steering_rate, self.min_steering_rate, self.max_steering_rate
                )
            if user_input.axle_torques is not None:
                changes["axle_torques"] = tuple(
                    _clamp(torque, low, high)
                    for torque, low, high in zip(
                        user_input.axle_torques, self.min_axle_torque, self.max_axle_torque
                    )
                )
        if user_input.acceleration is not None:
            changes["acceleration"] = _clamp(user_input.acceleration, self.min_accel, self.max_accel)
        if user_input.drift_toggle is not None:
            changes["drift_toggle"] = _clamp(
                user_input.drift_toggle, self.min_drift_toggle, self.max_drift_toggle
            )
        return replace(user_input, **changes)

    def validate(self, user_input: UserInput) -> None:
        """Raise InputValidationError naming the first offending field."""
        _require_finite(user_input.timestamp, "timestamp")
        if user_input.timestamp < 0:
            raise InputValidationError(
                f"UserInput.timestamp must be non-negative; got {user_input.timestamp}"
            )
        _require_finite(user_input.dt, "dt")
        if user_input.dt <= 0:
            raise InputValidationError(f"UserInput.dt must be positive; got {user_input.dt}")

        mode = user_input.control_mode
        if mode is ControlMode.KEYBOARD:
            self._check("longitudinal.throttle", user_input.longitudinal.throttle,
                        self.min_throttle, self.max_throttle)
            self._check("longitudinal.brake", user_input.longitudinal.brake,
                        self.min_brake, self.max_brake)
            self._check("steering_nudge", _or_zero(user_input.steering_nudge),
                        self.min_steering_nudge, self.max_steering_nudge)
        elif mode is ControlMode.DIRECT:
            self._check("steering_angle", _or_zero(user_input.steering_angle),
                        self.min_steering_angle, self.max_steering_angle)
            if user_input.steering_rate is not None:
                self._check("steering_rate", user_input.steering_rate,
                            self.min_steering_rate, self.max_steering_rate)
            self._validate_torques(user_input.axle_torques)
        else:
            raise InputValidationError(f"Unknown UserInput control mode {mode!r}")

        if user_input.acceleration is not None:
            self._check("acceleration", user_input.acceleration, self.min_accel, self.max_accel)
        if user_input.drift_toggle is not None:
            self._check("drift_toggle", user_input.drift_toggle,
                        self.min_drift_toggle, self.max_drift_toggle)

    def _validate_torques(self, torques: Sequence[float] | None) -> None:
        count = len(torques) if torques is not None else 0
        if not (self.min_axle_torque or self.max_axle_torque or count):
            return
        if len(self.min_axle_torque) != len(self.max_axle_torque):
            raise InputValidationError("UserInputLimits torque bounds must be sized consistently")
        if count != len(self.min_axle_torque):
            raise InputValidationError(
                f"UserInput.axle_torques length {count} does not match "
                f"driven axle count {len(self.min_axle_torque)}"
            )
        for index, torque in enumerate(torques or ()):
            self._check(f"axle_torques[{index}]", torque,
                        self.min_axle_torque[index], self.max_axle_torque[index])

    @staticmethod
    def _check(name: str, value: float, low: float, high: float) -> None:
        _require_finite(value, name)
        if value < low or value > high:
            raise InputValidationError(f"UserInput.{name} of {value} outside [{low}, {high}]")


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _or_zero(value: float | None) -> float:
    return 0.0 if value is None else value


def _require_finite(value: float, name: str) -> None:
    if not math.isfinite(value):
        raise InputValidationError(f"UserInput.{name} must be finite; got {value}")


__all__ = [
    "ControlMode",
    "DriverIntent",
    "InputValidationError",
    "UserInput",
    "UserInputLimits",
]
