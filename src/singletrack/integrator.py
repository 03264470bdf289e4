"""Fixed-step integration of a vehicle model with the low-speed safety layer."""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from .dynamics import (
    acceleration_constraint,
    kinematic_yaw_rate,
    max_steering_for_friction,
    steering_rate_constraint,
)
from .models import ModelType, VehicleModel
from .params import VehicleParameters
from .safety import LowSpeedSafety
from .state import SPEED, STEERING_ANGLE


class DimensionError(RuntimeError):
    """A derivative or state vector does not match the model's dimension."""


class VehicleSimulator:
    """Owns one state vector and advances it with Euler (ST) or RK4 (STD)."""

    def __init__(
        self,
        model: VehicleModel,
        params: VehicleParameters,
        dt: float,
        safety: LowSpeedSafety,
    ) -> None:
        self.model = model
        self.params = params
        self.safety = safety
        self._dt = 0.0
        self.set_dt(dt)
        self._state: np.ndarray | None = None
        self._last_control: Tuple[float, float] = (0.0, 0.0)
        self.safety.reset()

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def state(self) -> np.ndarray:
        return self._require_state().copy()

    @property
    def last_control(self) -> Tuple[float, float]:
        """Steering rate and acceleration actually applied by the last step."""
        return self._last_control

    @property
    def kinematic(self) -> bool:
        return self.model.model_type is ModelType.ST

    def set_dt(self, dt: float) -> None:
        if not (dt > 0) or not math.isfinite(dt):
            raise ValueError(f"Integration timestep must be positive; got {dt}")
        self._dt = float(dt)

    def reset(self, initial: Sequence[float]) -> np.ndarray:
        self.safety.reset()
        state = self.model.init(initial, self.params)
        self._check_dimension(state, "initial state")
        self._apply_safety(state, update_latch=True)
        self._state = state
        self._last_control = (0.0, 0.0)
        return state.copy()

    def speed(self) -> float:
        return self.model.speed(self._require_state(), self.params)

    def step(self, control: Sequence[float], dt: float | None = None) -> np.ndarray:
        """Advance one step of ``dt`` (default: the configured dt) and return a copy of the state."""
        previous = self._require_state()
        if len(control) != 2:
            raise ValueError("Control must contain steering rate and acceleration")
        if dt is not None:
            self.set_dt(dt)
        dt = self._dt

        if self.kinematic:
            state = self._step_kinematic(previous, control, dt)
        else:
            state = self._step_rk4(previous, control, dt)

        # never oscillate through zero speed
        if previous[SPEED] >= 0 and state[SPEED] < 0:
            state[SPEED] = 0.0

        self._apply_safety(state, update_latch=True)
        self._state = state
        return state.copy()

    def _step_kinematic(self, previous: np.ndarray, control: Sequence[float], dt: float) -> np.ndarray:
        state = previous.copy()
        self._apply_safety(state, update_latch=True)
        limited = self._clamp_kinematic_control(state, control, dt)
        derivative = self._derivative(state, limited, dt)
        self._last_control = limited
        return state + dt * derivative

    def _clamp_kinematic_control(
        self, state: np.ndarray, control: Sequence[float], dt: float
    ) -> Tuple[float, float]:
        params = self.params
        speed = state[SPEED]
        delta = min(max(state[STEERING_ANGLE], params.steering.min), params.steering.max)
        rate = steering_rate_constraint(delta, float(control[0]), params.steering)
        accel = acceleration_constraint(speed, float(control[1]), params.accel)

        jerk_max = params.accel.jerk_max
        if jerk_max is not None and jerk_max > 0:
            previous_accel = self._last_control[1]
            accel = min(max(accel, previous_accel - jerk_max * dt), previous_accel + jerk_max * dt)

        bound = max_steering_for_friction(speed, params)
        if bound is not None:
            delta = min(max(delta, -bound), bound)
            if (delta >= bound and rate > 0) or (delta <= -bound and rate < 0):
                rate = 0.0
        state[STEERING_ANGLE] = delta

        budget = params.friction_budget
        lateral_accel = speed * kinematic_yaw_rate(speed, delta, params)
        accel_limit = math.sqrt(max(0.0, budget * budget - lateral_accel * lateral_accel))
        accel = min(max(accel, -accel_limit), accel_limit)
        return rate, accel

    def _step_rk4(self, previous: np.ndarray, control: Sequence[float], dt: float) -> np.ndarray:
        base = previous.copy()
        self._apply_safety(base, update_latch=True)
        self._last_control = (
            steering_rate_constraint(base[STEERING_ANGLE], float(control[0]), self.params.steering),
            acceleration_constraint(base[SPEED], float(control[1]), self.params.accel),
        )
        forward = base[SPEED] >= 0
        k1 = self._derivative(base, control, dt)
        k2 = self._stage_derivative(base + 0.5 * dt * k1, control, dt, forward)
        k3 = self._stage_derivative(base + 0.5 * dt * k2, control, dt, forward)
        k4 = self._stage_derivative(base + dt * k3, control, dt, forward)
        return base + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)

    def _stage_derivative(
        self, stage: np.ndarray, control: Sequence[float], dt: float, forward: bool
    ) -> np.ndarray:
        # a stage may not reverse a car that started the step at or above zero speed
        if forward and stage[SPEED] < 0:
            stage[SPEED] = 0.0
        self._apply_safety(stage, update_latch=False)
        return self._derivative(stage, control, dt)

    def _derivative(self, state: np.ndarray, control: Sequence[float], dt: float) -> np.ndarray:
        derivative = np.asarray(self.model.dynamics(state, control, self.params, dt), dtype=float)
        self._check_dimension(derivative, "derivative")
        return derivative

    def _apply_safety(self, state: np.ndarray, *, update_latch: bool) -> None:
        speed = self.model.speed(state, self.params)
        self.safety.apply(state, speed, update_latch)
        if self.kinematic:
            params = self.params
            delta = min(max(state[STEERING_ANGLE], params.steering.min), params.steering.max)
            bound = max_steering_for_friction(speed, params)
            if bound is not None:
                delta = min(max(delta, -bound), bound)
            state[STEERING_ANGLE] = delta

    def _check_dimension(self, vector: np.ndarray, what: str) -> None:
        if vector.shape != (self.model.DIMENSION,):
            raise DimensionError(
                f"{type(self.model).__name__} {what} has length {vector.size}, "
                f"expected {self.model.DIMENSION}"
            )

    def _require_state(self) -> np.ndarray:
        if self._state is None:
            raise RuntimeError("VehicleSimulator has not been initialised; call reset() first")
        return self._state


__all__ = ["DimensionError", "VehicleSimulator"]
