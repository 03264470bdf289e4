"""Uniform model interface over the kinematic and extended single-track variants."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Sequence

import numpy as np

from .dynamics import vehicle_dynamics_st, vehicle_dynamics_std
from .params import VehicleParameters
from .state import (
    FRONT_WHEEL_SPEED,
    REAR_WHEEL_SPEED,
    SLIP_ANGLE,
    SPEED,
    STD_DIMENSION,
    STEERING_ANGLE,
    ST_DIMENSION,
    YAW_RATE,
)


class ModelType(str, Enum):
    ST = "st"
    STD = "std"

    @classmethod
    def parse(cls, value: "ModelType | str") -> "ModelType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unsupported model type {value!r}") from None


class VehicleModel(ABC):
    """State initialisation, derivative and speed for one state layout."""

    DIMENSION: int = 0
    model_type: ModelType

    def init(self, raw: Sequence[float], params: VehicleParameters) -> np.ndarray:
        """Build a full-length state from ``raw``, zero-filling missing entries."""
        state = np.zeros(self.DIMENSION, dtype=float)
        count = min(len(raw), self.DIMENSION)
        state[:count] = np.asarray(raw[:count], dtype=float)
        state[STEERING_ANGLE] = min(max(state[STEERING_ANGLE], params.steering.min), params.steering.max)
        return state

    @abstractmethod
    def dynamics(
        self,
        state: Sequence[float],
        control: Sequence[float],
        params: VehicleParameters,
        dt: float,
    ) -> np.ndarray:
        raise NotImplementedError

    def speed(self, state: Sequence[float], params: VehicleParameters) -> float:
        return abs(state[SPEED]) if len(state) > SPEED else 0.0


class KinematicSingleTrack(VehicleModel):
    DIMENSION = ST_DIMENSION
    model_type = ModelType.ST

    def dynamics(self, state, control, params, dt):
        return vehicle_dynamics_st(state, control, params)


class ExtendedDynamicSingleTrack(VehicleModel):
    DIMENSION = STD_DIMENSION
    model_type = ModelType.STD

    def init(self, raw: Sequence[float], params: VehicleParameters) -> np.ndarray:
        state = super().init(raw, params)
        if len(raw) <= FRONT_WHEEL_SPEED:
            # wheels start free rolling
            speed = state[SPEED]
            beta = state[SLIP_ANGLE]
            delta = state[STEERING_ANGLE]
            state[FRONT_WHEEL_SPEED] = (
                speed * math.cos(beta) * math.cos(delta)
                + (speed * math.sin(beta) + params.l_f * state[YAW_RATE]) * math.sin(delta)
            ) / params.R_w
            state[REAR_WHEEL_SPEED] = speed * math.cos(beta) / params.R_w
        state[FRONT_WHEEL_SPEED] = max(state[FRONT_WHEEL_SPEED], 0.0)
        state[REAR_WHEEL_SPEED] = max(state[REAR_WHEEL_SPEED], 0.0)
        return state

    def dynamics(self, state, control, params, dt):
        return vehicle_dynamics_std(state, control, params, dt)


_MODELS = {
    ModelType.ST: KinematicSingleTrack,
    ModelType.STD: ExtendedDynamicSingleTrack,
}


def build_model(model_type: ModelType | str) -> VehicleModel:
    """Instantiate the model class registered for ``model_type``."""
    return _MODELS[ModelType.parse(model_type)]()


__all__ = [
    "ModelType",
    "VehicleModel",
    "KinematicSingleTrack",
    "ExtendedDynamicSingleTrack",
    "build_model",
]
