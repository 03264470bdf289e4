"""State-vector layout and lightweight snapshots of simulation state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence, Tuple

if TYPE_CHECKING:
    from .telemetry import SimulationTelemetry

# Shared by the kinematic (ST) and extended dynamic (STD) single-track layouts.
X = 0  # global x position [m]
Y = 1  # global y position [m]
STEERING_ANGLE = 2  # front wheel angle delta [rad]
SPEED = 3  # speed along the velocity vector [m/s]
YAW = 4  # heading psi [rad]
YAW_RATE = 5  # psi_dot [rad/s]
SLIP_ANGLE = 6  # body slip angle beta [rad]

# STD only.
FRONT_WHEEL_SPEED = 7  # front wheel angular speed [rad/s]
REAR_WHEEL_SPEED = 8  # rear wheel angular speed [rad/s]

WHEEL_SPEEDS: Tuple[int, ...] = (FRONT_WHEEL_SPEED, REAR_WHEEL_SPEED)

ST_DIMENSION = 7
STD_DIMENSION = 9


@dataclass(frozen=True)
class SimulationSnapshot:
    """Point-in-time view of the daemon: state, telemetry and clock."""

    state: Sequence[float]
    telemetry: "SimulationTelemetry"
    dt: float
    simulation_time_s: float


__all__ = [
    "X",
    "Y",
    "STEERING_ANGLE",
    "SPEED",
    "YAW",
    "YAW_RATE",
    "SLIP_ANGLE",
    "FRONT_WHEEL_SPEED",
    "REAR_WHEEL_SPEED",
    "WHEEL_SPEEDS",
    "ST_DIMENSION",
    "STD_DIMENSION",
    "SimulationSnapshot",
]
