"""Vehicle parameter sets consumed by the single-track models."""

from __future__ import annotations

from dataclasses import dataclass, field

GRAVITY = 9.81


@dataclass(frozen=True)
class TireParameters:
    """Pacejka magic-formula coefficients (pure and combined slip)."""

    # longitudinal, pure slip
    p_cx1: float = 1.6411
    p_dx1: float = 1.1739
    p_dx3: float = 0.0
    p_ex1: float = 0.46403
    p_kx1: float = 22.303
    p_hx1: float = 1.2297e-3
    p_vx1: float = -8.8098e-6
    # longitudinal, combined slip
    r_bx1: float = 13.276
    r_bx2: float = -13.778
    r_cx1: float = 1.2568
    r_ex1: float = 0.65225
    r_hx1: float = 5.0722e-3
    # lateral, pure slip
    p_cy1: float = 1.3507
    p_dy1: float = 1.0489
    p_dy3: float = -2.8821
    p_ey1: float = -7.4722e-3
    p_ky1: float = -21.92
    p_hy1: float = 2.6747e-3
    p_hy3: float = 3.1415e-2
    p_vy1: float = 3.7318e-2
    p_vy3: float = -0.3293
    # lateral, combined slip
    r_by1: float = 7.1433
    r_by2: float = 9.1916
    r_by3: float = -2.7856e-2
    r_cy1: float = 1.0719
    r_ey1: float = -0.27572
    r_hy1: float = 5.7448e-6
    r_vy1: float = -2.7825e-2
    r_vy3: float = -0.27568
    r_vy4: float = 12.12
    r_vy5: float = 1.9
    r_vy6: float = -10.704


@dataclass(frozen=True)
class SteeringLimits:
    """Steering angle [rad] and steering rate [rad/s] bounds."""

    min: float = -1.066
    max: float = 1.066
    rate_min: float = -0.4
    rate_max: float = 0.4


@dataclass(frozen=True)
class AccelerationLimits:
    """Longitudinal acceleration [m/s^2] and speed [m/s] bounds."""

    min: float = -11.5
    max: float = 11.5
    jerk_max: float | None = None
    v_switch: float = 4.755
    v_min: float = -13.9
    v_max: float = 45.8


@dataclass(frozen=True)
class VehicleParameters:
    """Geometry, inertia, actuator limits and tire data for one vehicle."""

    l_f: float = 1.156
    l_r: float = 1.422
    m: float = 1093.3
    I_z: float = 1791.6
    lat_accel_max: float = 8.829
    mu: float | None = 0.9
    steering: SteeringLimits = field(default_factory=SteeringLimits)
    accel: AccelerationLimits = field(default_factory=AccelerationLimits)
    h_s: float = 0.574
    R_w: float = 0.344
    I_y_w: float = 1.7
    T_sb: float = 0.76
    T_se: float = 1.0
    tire: TireParameters = field(default_factory=TireParameters)

    def __post_init__(self) -> None:
        if self.l_f <= 0 or self.l_r <= 0:
            raise ValueError("l_f and l_r must be positive")
        if self.m <= 0 or self.I_z <= 0:
            raise ValueError("Mass and yaw inertia must be positive")
        if self.R_w <= 0:
            raise ValueError("Wheel radius R_w must be positive")
        if self.steering.max < self.steering.min:
            raise ValueError("Steering limits are inverted")
        if self.accel.max < self.accel.min:
            raise ValueError("Acceleration limits are inverted")

    @property
    def wheelbase(self) -> float:
        return max(self.l_f + self.l_r, 1e-6)

    @property
    def friction_coefficient(self) -> float:
        """Friction coefficient, derived from ``lat_accel_max`` when ``mu`` is unset."""
        if self.mu is not None and self.mu > 0:
            return self.mu
        if self.lat_accel_max > 0:
            return self.lat_accel_max / GRAVITY
        return 0.8

    @property
    def friction_budget(self) -> float:
        """Maximum combined planar acceleration [m/s^2]."""
        return max(self.friction_coefficient * GRAVITY, 0.0)


def ford_escort() -> VehicleParameters:
    return VehicleParameters(
        l_f=0.88392,
        l_r=1.50876,
        m=1225.887,
        I_z=1538.853,
        steering=SteeringLimits(min=-0.910, max=0.910, rate_min=-0.4, rate_max=0.4),
        accel=AccelerationLimits(min=-11.5, max=11.5, v_switch=7.319, v_min=-13.6, v_max=50.8),
        h_s=0.557784,
        R_w=0.3,
    )


def bmw_320i() -> VehicleParameters:
    return VehicleParameters()


VEHICLE_CATALOGUE = {
    1: ford_escort,
    2: bmw_320i,
}

DEFAULT_VEHICLE_ID = 2


def vehicle_parameters(vehicle_id: int) -> VehicleParameters:
    """Return the built-in parameter set for ``vehicle_id``."""
    try:
        factory = VEHICLE_CATALOGUE[vehicle_id]
    except KeyError:
        raise KeyError(f"No built-in parameters for vehicle id {vehicle_id}") from None
    return factory()


__all__ = [
    "GRAVITY",
    "TireParameters",
    "SteeringLimits",
    "AccelerationLimits",
    "VehicleParameters",
    "VEHICLE_CATALOGUE",
    "DEFAULT_VEHICLE_ID",
    "vehicle_parameters",
]
