"""Simulation backend: one integrator/safety pair plus the telemetry it produces."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from .detector import LossOfControlConfig, LossOfControlDetector
from .dynamics import (
    axle_normal_forces,
    axle_slip_angles,
    kinematic_slip_angle,
    kinematic_yaw_rate,
    wheel_slip_ratios,
)
from .input import DriverIntent
from .integrator import VehicleSimulator
from .models import ModelType, build_model
from .params import GRAVITY, VehicleParameters
from .powertrain import BrakeConfig, BrakeController, Powertrain, PowertrainConfig
from .safety import LowSpeedSafety, LowSpeedSafetyConfig, SafetyLayout
from .state import (
    FRONT_WHEEL_SPEED,
    REAR_WHEEL_SPEED,
    SLIP_ANGLE,
    SPEED,
    STEERING_ANGLE,
    X,
    Y,
    YAW,
    YAW_RATE,
)
from .telemetry import (
    AccelerationTelemetry,
    AxleTelemetry,
    ControllerTelemetry,
    PoseTelemetry,
    PowertrainTelemetry,
    SimulationTelemetry,
    SteeringTelemetry,
    TotalsTelemetry,
    TractionTelemetry,
    VelocityTelemetry,
    WheelTelemetry,
)


@dataclass(frozen=True)
class _StepRecord:
    """Commands and derived quantities of the most recent step."""

    desired_rate: float = 0.0
    desired_angle: float | None = None
    steer_rate: float = 0.0
    accel: float = 0.0
    throttle: float = 0.0
    brake: float = 0.0
    drive_force: float = 0.0
    brake_force: float = 0.0
    regen_force: float = 0.0
    hydraulic_force: float = 0.0
    total_torque: float = 0.0
    drive_torque: float = 0.0
    regen_torque: float = 0.0
    mechanical_power: float = 0.0
    battery_power: float = 0.0
    detector_severity: float = 0.0


@dataclass(frozen=True)
class _Kinematics:
    yaw_rate: float
    slip_angle: float
    lateral_accel: float
    front_slip: float
    rear_slip: float
    slip_ratios: Tuple[float, float]


class Simulation:
    """Advances one vehicle with a fixed model and assembles its telemetry."""

    def __init__(
        self,
        model_type: ModelType,
        params: VehicleParameters,
        *,
        low_speed: LowSpeedSafetyConfig | None = None,
        loss_of_control: LossOfControlConfig | None = None,
        powertrain: PowertrainConfig | None = None,
        brakes: BrakeConfig | None = None,
        drift_enabled: bool = False,
    ) -> None:
        self.model_type = ModelType.parse(model_type)
        self.params = params
        self.model = build_model(self.model_type)
        self.safety = LowSpeedSafety(
            low_speed,
            SafetyLayout.for_model(self.model_type, params),
            drift_enabled=drift_enabled,
        )
        self.detector = LossOfControlDetector(loss_of_control)
        self.powertrain = Powertrain(powertrain or PowertrainConfig(), params.R_w)
        self.brakes = BrakeController(brakes)
        self._simulator: VehicleSimulator | None = None
        self._record = _StepRecord()

    @property
    def simulator(self) -> VehicleSimulator:
        if self._simulator is None:
            raise RuntimeError("Simulation has not been reset")
        return self._simulator

    @property
    def drift_enabled(self) -> bool:
        return self.safety.drift_enabled

    def set_drift_enabled(self, enabled: bool) -> None:
        self.safety.set_drift_enabled(enabled)

    def reset(self, initial: Sequence[float], dt: float) -> np.ndarray:
        self._simulator = VehicleSimulator(self.model, self.params, dt, self.safety)
        state = self._simulator.reset(initial)
        self.detector.reset()
        self.powertrain.reset()
        self._record = _StepRecord()
        return state

    def state(self) -> np.ndarray:
        return self.simulator.state

    def speed(self) -> float:
        return self.simulator.speed()

    def step(
        self,
        control: Sequence[float],
        dt: float,
        *,
        intent: DriverIntent | None = None,
        desired_angle: float | None = None,
    ) -> np.ndarray:
        """Integrate ``control = (steering_rate, acceleration)`` over ``dt``."""
        simulator = self.simulator
        state = simulator.step(control, dt)
        steer_rate, accel = simulator.last_control
        speed = self.model.speed(state, self.params)
        kinematics = self._kinematics(state, speed)

        severity = self.detector.update(
            dt,
            kinematics.yaw_rate,
            kinematics.slip_angle,
            kinematics.lateral_accel,
            kinematics.slip_ratios,
        )

        if intent is None:
            intent = DriverIntent(
                throttle=max(0.0, accel) / max(abs(self.params.accel.max), 1e-6),
                brake=max(0.0, -accel) / max(abs(self.params.accel.min), 1e-6),
            )
        r_w = self.params.R_w
        available_regen_force = self.powertrain.available_regen_torque(speed) / r_w
        blend = self.brakes.blend(intent.brake, speed, available_regen_force)
        output = self.powertrain.step(intent.throttle, blend.regen_force * r_w, speed, dt)

        brake_force = max(0.0, -accel) * self.params.m
        regen_force = min(output.regen_torque / r_w, blend.regen_force, brake_force)
        self._record = _StepRecord(
            desired_rate=float(control[0]),
            desired_angle=desired_angle,
            steer_rate=steer_rate,
            accel=accel,
            throttle=intent.throttle,
            brake=intent.brake,
            drive_force=max(0.0, accel) * self.params.m,
            brake_force=brake_force,
            regen_force=regen_force,
            hydraulic_force=brake_force - regen_force,
            total_torque=output.total_torque,
            drive_torque=output.drive_torque,
            regen_torque=output.regen_torque,
            mechanical_power=output.mechanical_power,
            battery_power=output.battery_power,
            detector_severity=severity,
        )
        return state

    def telemetry(self, totals: TotalsTelemetry | None = None) -> SimulationTelemetry:
        """Assemble a fresh telemetry record for the current state."""
        params = self.params
        record = self._record
        state = self.simulator.state
        speed = self.model.speed(state, params)
        kinematics = self._kinematics(state, speed)
        yaw = float(state[YAW])
        delta = float(state[STEERING_ANGLE])

        v_long = speed * math.cos(kinematics.slip_angle)
        v_lat = speed * math.sin(kinematics.slip_angle)
        utilization = min(1.0, math.hypot(record.accel, kinematics.lateral_accel) / max(params.friction_budget, 1e-6))

        if self.model_type is ModelType.STD:
            front_normal, rear_normal = axle_normal_forces(record.accel, params)
            front_wheel = float(state[FRONT_WHEEL_SPEED]) * params.R_w
            rear_wheel = float(state[REAR_WHEEL_SPEED]) * params.R_w
        else:
            total_normal = params.m * GRAVITY
            front_normal = total_normal * params.l_r / params.wheelbase
            rear_normal = total_normal - front_normal
            front_wheel = rear_wheel = speed

        half_wheelbase = params.wheelbase * 0.5
        front_slip_ratio, rear_slip_ratio = kinematics.slip_ratios
        front_wheels = WheelTelemetry(front_wheel, front_slip_ratio, utilization)
        rear_wheels = WheelTelemetry(rear_wheel, rear_slip_ratio, utilization)

        status = self.safety.status(state, speed)
        desired_angle = record.desired_angle if record.desired_angle is not None else delta

        return SimulationTelemetry(
            pose=PoseTelemetry(x=float(state[X]), y=float(state[Y]), yaw=yaw),
            velocity=VelocityTelemetry(
                speed=speed,
                longitudinal=v_long,
                lateral=v_lat,
                yaw_rate=kinematics.yaw_rate,
                global_x=v_long * math.cos(yaw) - v_lat * math.sin(yaw),
                global_y=v_long * math.sin(yaw) + v_lat * math.cos(yaw),
            ),
            acceleration=AccelerationTelemetry(
                longitudinal=record.accel,
                lateral=kinematics.lateral_accel,
            ),
            traction=TractionTelemetry(
                slip_angle=kinematics.slip_angle,
                front_slip_angle=kinematics.front_slip,
                rear_slip_angle=kinematics.rear_slip,
                lateral_force_saturation=utilization,
                drift_mode=self.safety.drift_enabled,
            ),
            steering=SteeringTelemetry(
                desired_angle=desired_angle,
                desired_rate=record.desired_rate,
                actual_angle=delta,
                actual_rate=record.steer_rate,
            ),
            controller=ControllerTelemetry(
                acceleration=record.accel,
                throttle=record.throttle,
                brake=record.brake,
                drive_force=record.drive_force,
                brake_force=record.brake_force,
                regen_force=record.regen_force,
                hydraulic_force=record.hydraulic_force,
            ),
            powertrain=PowertrainTelemetry(
                total_torque=record.total_torque,
                drive_torque=record.drive_torque,
                regen_torque=record.regen_torque,
                mechanical_power=record.mechanical_power,
                battery_power=record.battery_power,
                soc=self.powertrain.soc,
            ),
            front_axle=AxleTelemetry(
                drive_torque=record.drive_force * half_wheelbase,
                brake_torque=record.hydraulic_force * half_wheelbase,
                regen_torque=record.regen_force * half_wheelbase,
                normal_force=front_normal,
                left=front_wheels,
                right=front_wheels,
            ),
            rear_axle=AxleTelemetry(
                drive_torque=record.drive_force * half_wheelbase,
                brake_torque=record.hydraulic_force * half_wheelbase,
                regen_torque=record.regen_force * half_wheelbase,
                normal_force=rear_normal,
                left=rear_wheels,
                right=rear_wheels,
            ),
            totals=totals or TotalsTelemetry(),
            detector_severity=max(record.detector_severity, status.severity),
            safety_stage=status.stage,
            detector_forced=status.detector_forced,
            low_speed_engaged=status.latch_active,
        )

    def _kinematics(self, state: np.ndarray, speed: float) -> _Kinematics:
        params = self.params
        delta = float(state[STEERING_ANGLE])
        if self.model_type is ModelType.ST:
            beta = kinematic_slip_angle(delta, params)
            yaw_rate = kinematic_yaw_rate(speed, delta, params)
            v_long = max(abs(speed * math.cos(beta)), 1e-6)
            v_lat = speed * math.sin(beta)
            return _Kinematics(
                yaw_rate=yaw_rate,
                slip_angle=beta,
                lateral_accel=speed * yaw_rate,
                front_slip=math.atan2(v_lat + params.l_f * yaw_rate, v_long) - delta,
                rear_slip=math.atan2(v_lat - params.l_r * yaw_rate, v_long),
                slip_ratios=(0.0, 0.0),
            )

        beta = float(state[SLIP_ANGLE])
        yaw_rate = float(state[YAW_RATE])
        front_slip, rear_slip = axle_slip_angles(state, params)
        slip_ratios = wheel_slip_ratios(state, params) if state[SPEED] > 0 else (0.0, 0.0)
        return _Kinematics(
            yaw_rate=yaw_rate,
            slip_angle=beta,
            lateral_accel=speed * yaw_rate,
            front_slip=front_slip,
            rear_slip=rear_slip,
            slip_ratios=slip_ratios,
        )


__all__ = ["Simulation"]
