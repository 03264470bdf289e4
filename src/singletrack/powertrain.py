"""Electric powertrain and blended brake bookkeeping reported in telemetry."""

from __future__ import annotations

import math
from dataclasses import dataclass


def _require_non_negative(value: float, name: str) -> None:
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be non-negative and finite; got {value}")


@dataclass(frozen=True)
class PowertrainConfig:
    max_drive_torque: float = 5000.0  # Nm at the wheels
    max_regen_torque: float = 2000.0
    max_power: float = 150_000.0  # W
    drive_efficiency: float = 0.92
    regen_efficiency: float = 0.7
    min_soc: float = 0.05
    max_soc: float = 0.95
    initial_soc: float = 0.8
    battery_capacity_kwh: float = 60.0

    def __post_init__(self) -> None:
        for name in ("max_drive_torque", "max_regen_torque", "max_power", "regen_efficiency"):
            _require_non_negative(getattr(self, name), f"powertrain.{name}")
        if not (0 < self.drive_efficiency <= 1):
            raise ValueError("powertrain.drive_efficiency must be in (0, 1]")
        if self.regen_efficiency > 1:
            raise ValueError("powertrain.regen_efficiency must be in [0, 1]")
        if not (0 <= self.min_soc <= self.initial_soc <= self.max_soc <= 1):
            raise ValueError("SOC bounds must satisfy 0 <= min <= initial <= max <= 1")
        if not (self.battery_capacity_kwh > 0) or not math.isfinite(self.battery_capacity_kwh):
            raise ValueError("battery_capacity_kwh must be positive")


@dataclass(frozen=True)
class PowertrainOutput:
    total_torque: float
    drive_torque: float
    regen_torque: float
    mechanical_power: float
    battery_power: float


class Powertrain:
    """Torque/power limited motor with a battery state of charge."""

    def __init__(self, config: PowertrainConfig, wheel_radius: float) -> None:
        if not (wheel_radius > 0) or not math.isfinite(wheel_radius):
            raise ValueError("wheel_radius must be positive and finite")
        self.config = config
        self.wheel_radius = wheel_radius
        self._capacity_joules = config.battery_capacity_kwh * 3.6e6
        self._soc = config.initial_soc

    @property
    def soc(self) -> float:
        return self._soc

    def reset(self) -> None:
        self._soc = self.config.initial_soc

    def available_drive_torque(self, speed: float) -> float:
        if self._soc <= self.config.min_soc:
            return 0.0
        return min(max(self._power_limited_torque(speed), 0.0), self.config.max_drive_torque)

    def available_regen_torque(self, speed: float) -> float:
        if self._soc >= self.config.max_soc or abs(speed) < 1e-3:
            return 0.0
        return min(max(self._power_limited_torque(speed), 0.0), self.config.max_regen_torque)

    def step(self, throttle: float, regen_torque_request: float, speed: float, dt: float) -> PowertrainOutput:
        cfg = self.config
        throttle = min(max(throttle, 0.0), 1.0)
        drive_torque = min(throttle * cfg.max_drive_torque, self.available_drive_torque(speed))
        regen_torque = min(max(regen_torque_request, 0.0), self.available_regen_torque(speed))

        wheel_speed = speed / self.wheel_radius
        drive_power = max(drive_torque * wheel_speed, 0.0)
        regen_power = min(-regen_torque * wheel_speed, 0.0)
        battery_power = drive_power / max(cfg.drive_efficiency, 1e-6) + regen_power * cfg.regen_efficiency

        if dt > 0:
            soc = self._soc - battery_power * dt / self._capacity_joules
            self._soc = min(max(soc, cfg.min_soc), cfg.max_soc)

        return PowertrainOutput(
            total_torque=drive_torque - regen_torque,
            drive_torque=drive_torque,
            regen_torque=regen_torque,
            mechanical_power=drive_power + regen_power,
            battery_power=battery_power,
        )

    def _power_limited_torque(self, speed: float) -> float:
        cfg = self.config
        wheel_speed = abs(speed) / self.wheel_radius
        if cfg.max_power <= 0 or wheel_speed < 1e-6:
            return cfg.max_drive_torque
        return cfg.max_power / wheel_speed


@dataclass(frozen=True)
class BrakeConfig:
    max_force: float = 15_000.0  # N
    max_regen_force: float = 5_000.0
    min_regen_speed: float = 2.0  # m/s

    def __post_init__(self) -> None:
        _require_non_negative(self.max_force, "brake.max_force")
        _require_non_negative(self.max_regen_force, "brake.max_regen_force")
        _require_non_negative(self.min_regen_speed, "brake.min_regen_speed")


@dataclass(frozen=True)
class BrakeBlend:
    regen_force: float
    hydraulic_force: float
    total_force: float


class BrakeController:
    """Splits a brake pedal request between regenerative and hydraulic braking."""

    def __init__(self, config: BrakeConfig | None = None) -> None:
        self.config = config or BrakeConfig()

    def blend(self, pedal: float, speed: float, available_regen_force: float) -> BrakeBlend:
        cfg = self.config
        pedal = min(max(pedal, 0.0), 1.0)
        total_force = min(cfg.max_force, pedal * cfg.max_force)
        regen_capacity = min(total_force, pedal * cfg.max_regen_force, max(available_regen_force, 0.0))
        regen_capacity = max(regen_capacity, 0.0)

        # regen fades out towards standstill
        weight = 1.0
        if cfg.min_regen_speed > 0:
            weight = min(max(abs(speed) / cfg.min_regen_speed, 0.0), 1.0)

        regen_force = regen_capacity * weight
        return BrakeBlend(
            regen_force=regen_force,
            hydraulic_force=max(0.0, total_force - regen_force),
            total_force=total_force,
        )


__all__ = [
    "PowertrainConfig",
    "PowertrainOutput",
    "Powertrain",
    "BrakeConfig",
    "BrakeBlend",
    "BrakeController",
]
