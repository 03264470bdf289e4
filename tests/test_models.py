import math

import numpy as np
import pytest

from singletrack.dynamics import (
    acceleration_constraint,
    kinematic_yaw_rate,
    max_steering_for_friction,
    steering_rate_constraint,
    vehicle_dynamics_st,
    vehicle_dynamics_std,
)
from singletrack.models import ExtendedDynamicSingleTrack, KinematicSingleTrack, ModelType, build_model
from singletrack.params import AccelerationLimits, SteeringLimits, bmw_320i, vehicle_parameters
from singletrack.state import (
    FRONT_WHEEL_SPEED,
    REAR_WHEEL_SPEED,
    SPEED,
    STEERING_ANGLE,
    ST_DIMENSION,
    STD_DIMENSION,
)

PARAMS = bmw_320i()


def test_model_type_parse_accepts_strings_case_insensitively() -> None:
    assert ModelType.parse("ST") is ModelType.ST
    assert ModelType.parse(ModelType.STD) is ModelType.STD
    with pytest.raises(ValueError, match="Unsupported model type"):
        ModelType.parse("mb")


def test_build_model_returns_matching_dimension() -> None:
    assert isinstance(build_model("st"), KinematicSingleTrack)
    assert build_model("st").DIMENSION == ST_DIMENSION
    assert isinstance(build_model(ModelType.STD), ExtendedDynamicSingleTrack)
    assert build_model(ModelType.STD).DIMENSION == STD_DIMENSION


def test_unknown_vehicle_id_raises_key_error() -> None:
    with pytest.raises(KeyError):
        vehicle_parameters(99)


def test_init_zero_fills_and_clamps_steering() -> None:
    state = KinematicSingleTrack().init([1.0, 2.0, 5.0], PARAMS)

    assert state.shape == (ST_DIMENSION,)
    assert state[STEERING_ANGLE] == PARAMS.steering.max
    assert np.all(state[3:] == 0.0)


def test_extended_init_derives_free_rolling_wheel_speeds() -> None:
    state = ExtendedDynamicSingleTrack().init([0.0, 0.0, 0.0, 10.0, 0.0, 0.0, 0.0], PARAMS)

    assert state[FRONT_WHEEL_SPEED] == pytest.approx(10.0 / PARAMS.R_w)
    assert state[REAR_WHEEL_SPEED] == pytest.approx(10.0 / PARAMS.R_w)


def test_extended_init_keeps_explicit_wheel_speeds_but_forbids_negative() -> None:
    state = ExtendedDynamicSingleTrack().init([0, 0, 0, 5.0, 0, 0, 0, 12.0, -3.0], PARAMS)

    assert state[FRONT_WHEEL_SPEED] == 12.0
    assert state[REAR_WHEEL_SPEED] == 0.0


def test_steering_rate_is_zeroed_at_the_angle_limit() -> None:
    limits = SteeringLimits(min=-0.5, max=0.5, rate_min=-0.4, rate_max=0.4)

    assert steering_rate_constraint(0.5, 0.3, limits) == 0.0
    assert steering_rate_constraint(0.5, -0.3, limits) == -0.3
    assert steering_rate_constraint(0.0, 2.0, limits) == 0.4
    assert steering_rate_constraint(0.0, -2.0, limits) == -0.4


def test_acceleration_is_derated_above_switching_speed() -> None:
    limits = AccelerationLimits(min=-10.0, max=10.0, v_switch=5.0, v_min=-10.0, v_max=40.0)

    assert acceleration_constraint(2.0, 20.0, limits) == 10.0
    assert acceleration_constraint(20.0, 20.0, limits) == pytest.approx(2.5)
    assert acceleration_constraint(40.0, 1.0, limits) == 0.0
    assert acceleration_constraint(2.0, -20.0, limits) == -10.0


def test_friction_bound_matches_lateral_budget() -> None:
    speed = 15.0
    bound = max_steering_for_friction(speed, PARAMS)

    assert bound is not None
    assert speed * kinematic_yaw_rate(speed, bound, PARAMS) <= PARAMS.friction_budget + 1e-9
    assert max_steering_for_friction(0.0, PARAMS) is None


def test_kinematic_derivative_moves_along_heading() -> None:
    state = np.array([0.0, 0.0, 0.0, 10.0, math.pi / 2, 0.0, 0.0])

    derivative = vehicle_dynamics_st(state, (0.0, 1.0), PARAMS)

    assert derivative.shape == (ST_DIMENSION,)
    assert derivative[0] == pytest.approx(0.0, abs=1e-12)
    assert derivative[1] == pytest.approx(10.0)
    assert derivative[SPEED] == pytest.approx(1.0)
    assert derivative[4] == pytest.approx(0.0)


def test_extended_derivative_is_finite_at_standstill() -> None:
    state = ExtendedDynamicSingleTrack().init([], PARAMS)

    derivative = vehicle_dynamics_std(state, (0.0, 0.0), PARAMS, 0.01)

    assert derivative.shape == (STD_DIMENSION,)
    assert np.all(np.isfinite(derivative))


def test_extended_derivative_follows_kinematic_model_below_blend_speed() -> None:
    state = ExtendedDynamicSingleTrack().init([0.0, 0.0, 0.1, 0.02], PARAMS)

    derivative = vehicle_dynamics_std(state, (0.0, 2.0), PARAMS, 0.01)

    assert derivative[SPEED] == pytest.approx(2.0, rel=1e-2)
    assert derivative[4] == pytest.approx(kinematic_yaw_rate(0.02, 0.1, PARAMS), rel=1e-2)
