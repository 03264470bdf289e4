import pytest

from singletrack.input import (
    ControlMode,
    DriverIntent,
    InputValidationError,
    UserInput,
    UserInputLimits,
)
from singletrack.params import bmw_320i


def test_keyboard_input_within_limits_passes_through() -> None:
    limits = UserInputLimits()
    user_input = UserInput(dt=0.02, longitudinal=DriverIntent(throttle=0.5, brake=0.0), steering_nudge=-0.25)

    clamped = limits.clamp(user_input)

    assert clamped.longitudinal == DriverIntent(throttle=0.5, brake=0.0)
    assert clamped.steering_nudge == -0.25


def test_missing_nudge_is_treated_as_zero() -> None:
    clamped = UserInputLimits().clamp(UserInput(dt=0.02))

    assert clamped.steering_nudge == 0.0


@pytest.mark.parametrize(
    "user_input, field",
    [
        (UserInput(dt=0.02, longitudinal=DriverIntent(throttle=1.5)), "longitudinal.throttle"),
        (UserInput(dt=0.02, longitudinal=DriverIntent(brake=-0.1)), "longitudinal.brake"),
        (UserInput(dt=0.02, steering_nudge=2.0), "steering_nudge"),
        (UserInput(dt=0.02, acceleration=20.0), "acceleration"),
        (UserInput(dt=0.02, drift_toggle=3.0), "drift_toggle"),
        (UserInput(dt=0.0), "dt"),
        (UserInput(dt=0.02, timestamp=-1.0), "timestamp"),
    ],
)
def test_out_of_range_fields_are_named(user_input: UserInput, field: str) -> None:
    with pytest.raises(InputValidationError, match=field):
        UserInputLimits().validate(user_input)


def test_non_finite_values_are_rejected() -> None:
    with pytest.raises(InputValidationError, match="finite"):
        UserInputLimits().validate(UserInput(dt=0.02, steering_nudge=float("nan")))


def test_limits_for_vehicle_use_steering_and_torque_bounds() -> None:
    params = bmw_320i()
    limits = UserInputLimits.for_vehicle(params)

    assert limits.min_steering_angle == params.steering.min
    assert limits.max_steering_angle == params.steering.max
    assert limits.max_steering_rate == params.steering.rate_max
    assert len(limits.max_axle_torque) == 2
    assert limits.max_axle_torque[0] == pytest.approx(params.m * params.accel.max * params.R_w / 2)
    assert limits.min_axle_torque[0] < 0


def test_direct_mode_requires_torque_per_driven_axle() -> None:
    limits = UserInputLimits.for_vehicle(bmw_320i())
    user_input = UserInput(
        dt=0.02,
        control_mode=ControlMode.DIRECT,
        steering_angle=0.1,
        axle_torques=(100.0,),
    )

    with pytest.raises(InputValidationError, match="driven axle count 2"):
        limits.validate(user_input)


def test_direct_mode_rejects_excess_torque() -> None:
    limits = UserInputLimits.for_vehicle(bmw_320i())
    user_input = UserInput(
        dt=0.02,
        control_mode=ControlMode.DIRECT,
        axle_torques=(1e6, 0.0),
    )

    with pytest.raises(InputValidationError, match=r"axle_torques\[0\]"):
        limits.validate(user_input)


def test_direct_mode_clamp_keeps_valid_command() -> None:
    limits = UserInputLimits.for_vehicle(bmw_320i())
    user_input = UserInput(
        dt=0.02,
        control_mode=ControlMode.DIRECT,
        steering_angle=0.2,
        steering_rate=0.1,
        axle_torques=(200.0, 300.0),
    )

    clamped = limits.clamp(user_input)

    assert clamped.steering_angle == 0.2
    assert clamped.steering_rate == 0.1
    assert clamped.axle_torques == (200.0, 300.0)
