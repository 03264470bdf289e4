import asyncio
from dataclasses import replace

import pytest

from singletrack.config_loader import default_bundle
from singletrack.input import ControlMode, DriverIntent, InputValidationError, UserInput
from singletrack.models import ModelType
from singletrack.params import GRAVITY
from singletrack.runtime import SimulationDaemon
from singletrack.state import STD_DIMENSION, ST_DIMENSION
from singletrack.telemetry import SafetyStage

DT = 0.02


def _bundle(model: ModelType = ModelType.ST):
    bundle = default_bundle(model)
    vehicle = replace(bundle.vehicle, l_f=1.156, l_r=1.422, m=1225.0, mu=0.9)
    return replace(bundle, vehicle=vehicle)


def _throttle(value: float = 1.0, **kwargs) -> UserInput:
    return UserInput(dt=DT, longitudinal=DriverIntent(throttle=value), **kwargs)


def test_full_throttle_accelerates_straight_ahead() -> None:
    bundle = _bundle()
    daemon = SimulationDaemon(bundle)
    max_step = bundle.vehicle.accel.max * DT + 1e-9

    previous = daemon.telemetry
    for _ in range(100):
        telemetry = daemon.step(_throttle())
        assert telemetry.velocity.speed >= previous.velocity.speed
        assert telemetry.velocity.speed - previous.velocity.speed <= max_step
        previous = telemetry

    assert telemetry.velocity.speed > 5.0
    assert telemetry.pose.x > 0.0
    assert telemetry.pose.y == pytest.approx(0.0, abs=1e-9)
    assert telemetry.pose.yaw == pytest.approx(0.0, abs=1e-9)
    assert telemetry.totals.simulation_time_s == pytest.approx(100 * DT)
    assert telemetry.totals.distance_traveled_m == pytest.approx(telemetry.pose.x, rel=0.05)


def test_steering_at_speed_turns_left_within_friction_budget() -> None:
    bundle = _bundle()
    daemon = SimulationDaemon(bundle, initial_state=(0.0, 0.0, 0.0, 10.0, 0.0))
    budget = 0.9 * GRAVITY

    for _ in range(100):
        telemetry = daemon.step(UserInput(dt=DT, steering_nudge=1.0))
        assert abs(telemetry.acceleration.lateral) <= budget + 1e-3

    assert telemetry.velocity.yaw_rate > 0
    assert telemetry.pose.y > 0
    assert telemetry.steering.actual_angle > 0


def test_braking_from_speed_comes_to_rest() -> None:
    daemon = SimulationDaemon(_bundle(), initial_state=(0.0, 0.0, 0.0, 3.0, 0.0))

    for _ in range(100):
        telemetry = daemon.step(UserInput(dt=DT, longitudinal=DriverIntent(brake=1.0)))

    assert telemetry.velocity.speed == 0.0
    assert telemetry.safety_stage is SafetyStage.EMERGENCY
    assert telemetry.low_speed_engaged


def test_extended_model_held_on_the_brake_stays_put() -> None:
    daemon = SimulationDaemon(default_bundle(ModelType.STD))

    for _ in range(50):
        telemetry = daemon.step(UserInput(dt=DT, longitudinal=DriverIntent(brake=1.0)))

    assert telemetry.velocity.speed == 0.0
    assert telemetry.pose.x == 0.0
    assert telemetry.pose.y == 0.0
    assert telemetry.totals.distance_traveled_m == 0.0


def test_long_request_is_split_into_substeps() -> None:
    daemon = SimulationDaemon(_bundle())

    telemetry = daemon.step(UserInput(dt=0.05, longitudinal=DriverIntent(throttle=0.5)))

    assert telemetry.totals.simulation_time_s == pytest.approx(0.05)
    assert daemon.snapshot().dt == pytest.approx(0.05)


def test_tiny_request_is_clamped_to_minimum_step() -> None:
    daemon = SimulationDaemon(_bundle())

    telemetry = daemon.step(UserInput(dt=1e-5))

    assert telemetry.totals.simulation_time_s == pytest.approx(0.001)


def test_invalid_input_leaves_state_untouched() -> None:
    daemon = SimulationDaemon(_bundle(), initial_state=(0.0, 0.0, 0.0, 5.0, 0.0))
    daemon.step(_throttle(0.5))
    before = daemon.snapshot()

    with pytest.raises(InputValidationError):
        daemon.step(_throttle(2.0))

    after = daemon.snapshot()
    assert after.state == before.state
    assert after.telemetry == before.telemetry
    assert after.simulation_time_s == before.simulation_time_s


def test_direct_mode_tracks_steering_target_and_torque() -> None:
    bundle = _bundle()
    daemon = SimulationDaemon(bundle, control_mode=ControlMode.DIRECT)
    params = bundle.vehicle

    telemetry = daemon.step(
        UserInput(dt=DT, steering_angle=0.1, axle_torques=(500.0, 500.0))
    )

    assert telemetry.steering.desired_angle == pytest.approx(0.1)
    assert telemetry.steering.actual_angle == pytest.approx(params.steering.rate_max * DT)
    assert telemetry.controller.acceleration == pytest.approx(1000.0 / (params.m * params.R_w))
    assert telemetry.velocity.speed > 0


def test_direct_mode_requires_axle_torques() -> None:
    daemon = SimulationDaemon(_bundle(), control_mode=ControlMode.DIRECT)

    with pytest.raises(InputValidationError, match="axle_torques"):
        daemon.step(UserInput(dt=DT, steering_angle=0.1))


def test_daemon_control_mode_overrides_input_mode() -> None:
    daemon = SimulationDaemon(_bundle())

    telemetry = daemon.step(
        UserInput(dt=DT, control_mode=ControlMode.DIRECT, longitudinal=DriverIntent(throttle=1.0))
    )

    assert telemetry.controller.throttle == 1.0
    assert telemetry.velocity.speed > 0


def test_drift_toggle_switches_drift_mode() -> None:
    daemon = SimulationDaemon(_bundle())

    telemetry = daemon.step(UserInput(dt=DT, drift_toggle=1.0))
    assert daemon.drift_enabled
    assert telemetry.traction.drift_mode

    telemetry = daemon.step(UserInput(dt=DT, drift_toggle=0.0))
    assert not daemon.drift_enabled
    assert not telemetry.traction.drift_mode


def test_acceleration_override_replaces_pedal_command() -> None:
    daemon = SimulationDaemon(_bundle())

    telemetry = daemon.step(_throttle(1.0, acceleration=1.5))

    assert telemetry.controller.acceleration == pytest.approx(1.5)


def test_async_reset_switches_model_and_zeroes_totals() -> None:
    daemon = SimulationDaemon(_bundle())
    daemon.step(_throttle())

    telemetry = asyncio.run(daemon.reset(model="std", initial_state=(0.0, 0.0, 0.0, 2.0)))

    assert daemon.model is ModelType.STD
    assert len(daemon.state()) == STD_DIMENSION
    assert telemetry.totals.simulation_time_s == 0.0
    assert telemetry.velocity.speed == pytest.approx(2.0)


def test_reset_with_keeps_model_dimension() -> None:
    daemon = SimulationDaemon(_bundle(ModelType.STD))

    daemon.reset_with(_bundle())

    assert daemon.model is ModelType.ST
    assert len(daemon.snapshot().state) == ST_DIMENSION


def test_step_batch_returns_one_record_per_input() -> None:
    daemon = SimulationDaemon(_bundle())

    records = daemon.step_batch([_throttle() for _ in range(5)])

    assert len(records) == 5
    assert records[-1] is daemon.telemetry
    assert records[-1].totals.simulation_time_s == pytest.approx(5 * DT)
