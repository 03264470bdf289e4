"""Immutable telemetry records published by the simulation every tick.

Field names and units form a fixed layout shared with external tooling:
lengths in m, speeds in m/s, angles in rad, rates in rad/s, accelerations in
m/s^2, forces in N, torques in Nm, power in W, energy in J and time in s.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping

from .safety import SafetyStage


@dataclass(frozen=True)
class PoseTelemetry:
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class VelocityTelemetry:
    speed: float = 0.0
    longitudinal: float = 0.0  # body frame
    lateral: float = 0.0  # body frame
    yaw_rate: float = 0.0
    global_x: float = 0.0
    global_y: float = 0.0


@dataclass(frozen=True)
class AccelerationTelemetry:
    longitudinal: float = 0.0
    lateral: float = 0.0


@dataclass(frozen=True)
class TractionTelemetry:
    slip_angle: float = 0.0
    front_slip_angle: float = 0.0
    rear_slip_angle: float = 0.0
    lateral_force_saturation: float = 0.0  # fraction of available friction
    drift_mode: bool = False


@dataclass(frozen=True)
class SteeringTelemetry:
    desired_angle: float = 0.0
    desired_rate: float = 0.0
    actual_angle: float = 0.0
    actual_rate: float = 0.0


@dataclass(frozen=True)
class ControllerTelemetry:
    acceleration: float = 0.0
    throttle: float = 0.0
    brake: float = 0.0
    drive_force: float = 0.0
    brake_force: float = 0.0
    regen_force: float = 0.0
    hydraulic_force: float = 0.0
    drag_force: float = 0.0
    rolling_force: float = 0.0


@dataclass(frozen=True)
class PowertrainTelemetry:
    total_torque: float = 0.0
    drive_torque: float = 0.0
    regen_torque: float = 0.0
    mechanical_power: float = 0.0
    battery_power: float = 0.0  # positive while discharging
    soc: float = 0.0


@dataclass(frozen=True)
class WheelTelemetry:
    speed: float = 0.0  # along the rolling direction
    slip_ratio: float = 0.0
    friction_utilization: float = 0.0


@dataclass(frozen=True)
class AxleTelemetry:
    drive_torque: float = 0.0
    brake_torque: float = 0.0
    regen_torque: float = 0.0
    normal_force: float = 0.0
    left: WheelTelemetry = field(default_factory=WheelTelemetry)
    right: WheelTelemetry = field(default_factory=WheelTelemetry)


@dataclass(frozen=True)
class TotalsTelemetry:
    distance_traveled_m: float = 0.0
    energy_consumed_joules: float = 0.0
    simulation_time_s: float = 0.0


@dataclass(frozen=True)
class SimulationTelemetry:
    pose: PoseTelemetry = field(default_factory=PoseTelemetry)
    velocity: VelocityTelemetry = field(default_factory=VelocityTelemetry)
    acceleration: AccelerationTelemetry = field(default_factory=AccelerationTelemetry)
    traction: TractionTelemetry = field(default_factory=TractionTelemetry)
    steering: SteeringTelemetry = field(default_factory=SteeringTelemetry)
    controller: ControllerTelemetry = field(default_factory=ControllerTelemetry)
    powertrain: PowertrainTelemetry = field(default_factory=PowertrainTelemetry)
    front_axle: AxleTelemetry = field(default_factory=AxleTelemetry)
    rear_axle: AxleTelemetry = field(default_factory=AxleTelemetry)
    totals: TotalsTelemetry = field(default_factory=TotalsTelemetry)
    detector_severity: float = 0.0
    safety_stage: SafetyStage = SafetyStage.NORMAL
    detector_forced: bool = False
    low_speed_engaged: bool = False


_STAGE_CODES = {
    SafetyStage.NORMAL: 0.0,
    SafetyStage.TRANSITION: 1.0,
    SafetyStage.EMERGENCY: 2.0,
}


def default_telemetry() -> SimulationTelemetry:
    return SimulationTelemetry()


def merge_telemetry(base: Any, update: Any) -> Any:
    """Return ``base`` with every field present in ``update`` overlaid.

    ``update`` may be another telemetry record of the same type or a nested
    mapping such as the output of :func:`telemetry_to_dict`; keys it does not
    mention keep their value from ``base``.
    """
    if is_dataclass(update):
        update = {f.name: getattr(update, f.name) for f in fields(update)}
    if not isinstance(update, Mapping):
        raise TypeError(f"Cannot merge {type(update).__name__} into {type(base).__name__}")

    known = {f.name: f for f in fields(base)}
    changes: Dict[str, Any] = {}
    for key, value in update.items():
        if key not in known:
            raise KeyError(f"{type(base).__name__} has no telemetry field {key!r}")
        current = getattr(base, key)
        if is_dataclass(current):
            changes[key] = merge_telemetry(current, value)
        elif isinstance(current, SafetyStage):
            changes[key] = SafetyStage(value)
        elif isinstance(current, bool):
            changes[key] = bool(value)
        else:
            changes[key] = float(value)
    return replace(base, **changes)


def telemetry_from_dict(data: Mapping[str, Any]) -> SimulationTelemetry:
    return merge_telemetry(default_telemetry(), data)


def telemetry_to_dict(telemetry: Any) -> Dict[str, Any]:
    """Nested plain-dict form, with the safety stage as its string value."""
    result: Dict[str, Any] = {}
    for f in fields(telemetry):
        value = getattr(telemetry, f.name)
        if is_dataclass(value):
            result[f.name] = telemetry_to_dict(value)
        elif isinstance(value, Enum):
            result[f.name] = value.value
        else:
            result[f.name] = value
    return result


def flatten_telemetry(telemetry: Any, prefix: str = "") -> Dict[str, float]:
    """Flatten to dotted keys with numeric values (booleans 0/1, safety stage 0/1/2)."""
    flat: Dict[str, float] = {}
    for f in fields(telemetry):
        key = f"{prefix}{f.name}"
        value = getattr(telemetry, f.name)
        if is_dataclass(value):
            flat.update(flatten_telemetry(value, prefix=f"{key}."))
        elif isinstance(value, SafetyStage):
            flat[key] = _STAGE_CODES[value]
        elif isinstance(value, bool):
            flat[key] = 1.0 if value else 0.0
        else:
            flat[key] = float(value)
    return flat


__all__ = [
    "SafetyStage",
    "PoseTelemetry",
    "VelocityTelemetry",
    "AccelerationTelemetry",
    "TractionTelemetry",
    "SteeringTelemetry",
    "ControllerTelemetry",
    "PowertrainTelemetry",
    "WheelTelemetry",
    "AxleTelemetry",
    "TotalsTelemetry",
    "SimulationTelemetry",
    "default_telemetry",
    "merge_telemetry",
    "telemetry_from_dict",
    "telemetry_to_dict",
    "flatten_telemetry",
]
