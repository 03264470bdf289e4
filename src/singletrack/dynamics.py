"""Actuator constraints and single-track derivative functions."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from .params import GRAVITY, AccelerationLimits, SteeringLimits, VehicleParameters
from .state import (
    FRONT_WHEEL_SPEED,
    REAR_WHEEL_SPEED,
    SLIP_ANGLE,
    SPEED,
    STEERING_ANGLE,
    YAW,
    YAW_RATE,
)
from .tire import (
    formula_lateral,
    formula_lateral_combined,
    formula_longitudinal,
    formula_longitudinal_combined,
)

# blending between the dynamic and kinematic derivative around standstill
BLEND_SPEED = 0.2
BLEND_WIDTH = 0.05
MIN_SLIP_SPEED = BLEND_SPEED / 2


def steering_rate_constraint(angle: float, rate: float, limits: SteeringLimits) -> float:
    """Zero the steering rate at an angle limit, otherwise clamp it to the rate limits."""
    if (angle <= limits.min and rate <= 0) or (angle >= limits.max and rate >= 0):
        return 0.0
    if rate <= limits.rate_min:
        return limits.rate_min
    if rate >= limits.rate_max:
        return limits.rate_max
    return rate


def acceleration_constraint(speed: float, accel: float, limits: AccelerationLimits) -> float:
    """Clamp longitudinal acceleration, de-rating the positive limit above ``v_switch``."""
    if speed > limits.v_switch > 0:
        positive_limit = limits.max * limits.v_switch / speed
    else:
        positive_limit = limits.max

    if (speed <= limits.v_min and accel <= 0) or (speed >= limits.v_max and accel >= 0):
        return 0.0
    if accel <= limits.min:
        return limits.min
    if accel >= positive_limit:
        return positive_limit
    return accel


def kinematic_slip_angle(delta: float, params: VehicleParameters) -> float:
    return math.atan(math.tan(delta) * params.l_r / params.wheelbase)


def kinematic_yaw_rate(speed: float, delta: float, params: VehicleParameters) -> float:
    beta = kinematic_slip_angle(delta, params)
    return speed * math.cos(beta) * math.tan(delta) / params.wheelbase


def max_steering_for_friction(speed: float, params: VehicleParameters) -> float | None:
    """Largest steering angle whose steady-state lateral acceleration fits ``mu * g``."""
    budget = params.friction_budget
    if budget <= 0 or abs(speed) <= 1e-6:
        return None
    return math.atan(budget * params.wheelbase / (speed * speed))


def _constrained_control(state: Sequence[float], control: Sequence[float], params: VehicleParameters):
    return (
        steering_rate_constraint(state[STEERING_ANGLE], control[0], params.steering),
        acceleration_constraint(state[SPEED], control[1], params.accel),
    )


def _kinematic_rates(delta: float, speed: float, beta: float, u0: float, u1: float, params: VehicleParameters):
    """Kinematic slip-angle rate and yaw acceleration for steering rate ``u0`` and accel ``u1``."""
    wheelbase = params.wheelbase
    tan_delta = math.tan(delta)
    cos_delta_sq = math.cos(delta) ** 2
    d_beta = (params.l_r * u0) / (
        wheelbase * cos_delta_sq * (1 + (tan_delta**2 * params.l_r / wheelbase) ** 2)
    )
    dd_psi = (
        u1 * math.cos(beta) * tan_delta
        - speed * math.sin(beta) * d_beta * tan_delta
        + speed * math.cos(beta) * u0 / cos_delta_sq
    ) / wheelbase
    return d_beta, dd_psi


def vehicle_dynamics_st(state: Sequence[float], control: Sequence[float], params: VehicleParameters) -> np.ndarray:
    """Kinematic single-track derivative over the 7-state layout."""
    steer_rate, accel = _constrained_control(state, control, params)
    delta = state[STEERING_ANGLE]
    speed = state[SPEED]
    psi = state[YAW]

    beta = kinematic_slip_angle(delta, params)
    d_beta, dd_psi = _kinematic_rates(delta, speed, beta, steer_rate, accel, params)

    return np.array(
        [
            speed * math.cos(psi + beta),
            speed * math.sin(psi + beta),
            steer_rate,
            accel,
            kinematic_yaw_rate(speed, delta, params),
            dd_psi,
            d_beta,
        ],
        dtype=float,
    )


def wheel_rolling_speeds(state: Sequence[float], params: VehicleParameters):
    """Ground speed of the front and rear wheel centres along the wheel heading."""
    speed = state[SPEED]
    beta = state[SLIP_ANGLE]
    delta = state[STEERING_ANGLE]
    u_wf = max(
        0.0,
        speed * math.cos(beta) * math.cos(delta)
        + (speed * math.sin(beta) + params.l_f * state[YAW_RATE]) * math.sin(delta),
    )
    u_wr = max(0.0, speed * math.cos(beta))
    return u_wf, u_wr


def axle_slip_angles(state: Sequence[float], params: VehicleParameters):
    speed = state[SPEED]
    if speed <= MIN_SLIP_SPEED:
        return 0.0, 0.0
    beta = state[SLIP_ANGLE]
    yaw_rate = state[YAW_RATE]
    alpha_f = math.atan(
        (speed * math.sin(beta) + yaw_rate * params.l_f) / (speed * math.cos(beta))
    ) - state[STEERING_ANGLE]
    alpha_r = math.atan((speed * math.sin(beta) - yaw_rate * params.l_r) / (speed * math.cos(beta)))
    return alpha_f, alpha_r


def axle_normal_forces(accel: float, params: VehicleParameters):
    """Front and rear normal loads including longitudinal load transfer."""
    wheelbase = params.wheelbase
    f_zf = params.m * (-accel * params.h_s + GRAVITY * params.l_r) / wheelbase
    f_zr = params.m * (accel * params.h_s + GRAVITY * params.l_f) / wheelbase
    return f_zf, f_zr


def wheel_slip_ratios(state: Sequence[float], params: VehicleParameters):
    u_wf, u_wr = wheel_rolling_speeds(state, params)
    s_f = 1 - params.R_w * state[FRONT_WHEEL_SPEED] / max(u_wf, MIN_SLIP_SPEED)
    s_r = 1 - params.R_w * state[REAR_WHEEL_SPEED] / max(u_wr, MIN_SLIP_SPEED)
    return s_f, s_r


def vehicle_dynamics_std(
    state: Sequence[float],
    control: Sequence[float],
    params: VehicleParameters,
    dt: float,
) -> np.ndarray:
    """Extended dynamic single-track derivative over the 9-state layout.

    Tire forces come from the combined-slip magic formula; the result is
    blended with the kinematic derivative by ``w = 0.5 * (tanh((v - 0.2) / 0.05) + 1)``
    so the model stays well defined through standstill.
    """
    steer_rate, accel = _constrained_control(state, control, params)
    delta = state[STEERING_ANGLE]
    speed = state[SPEED]
    psi = state[YAW]
    yaw_rate = state[YAW_RATE]
    beta = state[SLIP_ANGLE]
    omega_f = state[FRONT_WHEEL_SPEED]
    omega_r = state[REAR_WHEEL_SPEED]
    m = params.m
    tire = params.tire

    alpha_f, alpha_r = axle_slip_angles(state, params)
    f_zf, f_zr = axle_normal_forces(accel, params)
    u_wf, u_wr = wheel_rolling_speeds(state, params)
    s_f, s_r = wheel_slip_ratios(state, params)

    f0_xf = formula_longitudinal(s_f, 0.0, f_zf, tire)
    f0_xr = formula_longitudinal(s_r, 0.0, f_zr, tire)
    f0_yf, mu_yf = formula_lateral(alpha_f, 0.0, f_zf, tire)
    f0_yr, mu_yr = formula_lateral(alpha_r, 0.0, f_zr, tire)
    f_xf = formula_longitudinal_combined(s_f, alpha_f, f0_xf, tire)
    f_xr = formula_longitudinal_combined(s_r, alpha_r, f0_xr, tire)
    f_yf = formula_lateral_combined(s_f, alpha_f, 0.0, mu_yf, f_zf, f0_yf, tire)
    f_yr = formula_lateral_combined(s_r, alpha_r, 0.0, mu_yr, f_zr, f0_yr, tire)

    if accel > 0:
        brake_torque, engine_torque = 0.0, m * params.R_w * accel
    else:
        brake_torque, engine_torque = m * params.R_w * accel, 0.0

    d_v = (
        -f_yf * math.sin(delta - beta)
        + f_yr * math.sin(beta)
        + f_xr * math.cos(beta)
        + f_xf * math.cos(delta - beta)
    ) / m
    dd_psi = (f_yf * math.cos(delta) * params.l_f - f_yr * params.l_r + f_xf * math.sin(delta) * params.l_f) / params.I_z
    if speed > MIN_SLIP_SPEED:
        d_beta = -yaw_rate + (
            f_yf * math.cos(delta - beta)
            + f_yr * math.cos(beta)
            - f_xr * math.sin(beta)
            + f_xf * math.sin(delta - beta)
        ) / (m * speed)
    else:
        d_beta = 0.0

    # negative wheel spin is forbidden
    if omega_f >= 0:
        d_omega_f = (-params.R_w * f_xf + params.T_sb * brake_torque + params.T_se * engine_torque) / params.I_y_w
    else:
        d_omega_f = 0.0
    if omega_r >= 0:
        d_omega_r = (
            -params.R_w * f_xr + (1 - params.T_sb) * brake_torque + (1 - params.T_se) * engine_torque
        ) / params.I_y_w
    else:
        d_omega_r = 0.0

    beta_ks = kinematic_slip_angle(delta, params)
    d_beta_ks, dd_psi_ks = _kinematic_rates(delta, speed, beta, steer_rate, accel, params)
    psi_dot_ks = speed * math.cos(beta_ks) * math.tan(delta) / params.wheelbase
    d_omega_f_ks = (u_wf / params.R_w - max(omega_f, 0.0)) / dt
    d_omega_r_ks = (u_wr / params.R_w - max(omega_r, 0.0)) / dt

    w_std = 0.5 * (math.tanh((speed - BLEND_SPEED) / BLEND_WIDTH) + 1)
    w_ks = 1 - w_std

    return np.array(
        [
            speed * math.cos(beta + psi),
            speed * math.sin(beta + psi),
            steer_rate,
            w_std * d_v + w_ks * accel,
            w_std * yaw_rate + w_ks * psi_dot_ks,
            w_std * dd_psi + w_ks * dd_psi_ks,
            w_std * d_beta + w_ks * d_beta_ks,
            w_std * d_omega_f + w_ks * d_omega_f_ks,
            w_std * d_omega_r + w_ks * d_omega_r_ks,
        ],
        dtype=float,
    )


__all__ = [
    "BLEND_SPEED",
    "BLEND_WIDTH",
    "MIN_SLIP_SPEED",
    "steering_rate_constraint",
    "acceleration_constraint",
    "kinematic_slip_angle",
    "kinematic_yaw_rate",
    "max_steering_for_friction",
    "vehicle_dynamics_st",
    "vehicle_dynamics_std",
    "wheel_rolling_speeds",
    "axle_slip_angles",
    "axle_normal_forces",
    "wheel_slip_ratios",
]
