"""Simulation daemon turning raw driver input into telemetry, one tick at a time."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .config_loader import ConfigBundle, ConfigProvider, default_bundle
from .input import ControlMode, DriverIntent, UserInput, UserInputLimits
from .models import ModelType
from .params import DEFAULT_VEHICLE_ID
from .simulation import Simulation
from .state import STEERING_ANGLE, SimulationSnapshot
from .telemetry import SimulationTelemetry, TotalsTelemetry, default_telemetry
from .timing import StepSchedule, plan_steps

logger = logging.getLogger(__name__)

DRIFT_TOGGLE_THRESHOLD = 0.5


class SimulationDaemon:
    """Owns the active Simulation and the cumulative distance/energy/time totals.

    Configuration is prepared up front (``ConfigProvider.prepare``) and handed
    over as an immutable :class:`ConfigBundle`; stepping itself is synchronous
    and performs no I/O. Callers must not interleave ``step`` with a pending
    ``reset``.
    """

    def __init__(
        self,
        bundle: ConfigBundle | None = None,
        *,
        provider: ConfigProvider | None = None,
        control_mode: ControlMode = ControlMode.KEYBOARD,
        drift_enabled: bool = False,
        limits: UserInputLimits | None = None,
        initial_state: Sequence[float] = (),
    ) -> None:
        self.provider = provider
        self._custom_limits = limits
        self._bundle = bundle or default_bundle(ModelType.ST, DEFAULT_VEHICLE_ID)
        self._control_mode = ControlMode(control_mode)
        self._drift_enabled = drift_enabled
        self._simulation: Simulation | None = None
        self._telemetry = default_telemetry()
        self._distance = 0.0
        self._energy = 0.0
        self._time = 0.0
        self._last_dt = self._bundle.timing.nominal_dt
        self.reset_with(self._bundle, initial_state=initial_state)

    @classmethod
    async def create(
        cls,
        provider: ConfigProvider,
        model: ModelType | str = ModelType.ST,
        vehicle_id: int = DEFAULT_VEHICLE_ID,
        **kwargs,
    ) -> "SimulationDaemon":
        """Prepare configuration through ``provider`` and build a ready daemon."""
        bundle = await provider.prepare(model, vehicle_id)
        return cls(bundle, provider=provider, **kwargs)

    @property
    def bundle(self) -> ConfigBundle:
        return self._bundle

    @property
    def model(self) -> ModelType:
        return self._bundle.model

    @property
    def vehicle_id(self) -> int:
        return self._bundle.vehicle_id

    @property
    def control_mode(self) -> ControlMode:
        return self._control_mode

    @property
    def drift_enabled(self) -> bool:
        return self._drift_enabled

    @property
    def limits(self) -> UserInputLimits:
        return self._limits

    @property
    def simulation(self) -> Simulation:
        if self._simulation is None:
            raise RuntimeError("SimulationDaemon has not been reset")
        return self._simulation

    @property
    def telemetry(self) -> SimulationTelemetry:
        return self._telemetry

    def set_drift_enabled(self, enabled: bool) -> None:
        self._drift_enabled = bool(enabled)
        self.simulation.set_drift_enabled(self._drift_enabled)

    async def reset(
        self,
        model: ModelType | str | None = None,
        vehicle_id: int | None = None,
        initial_state: Sequence[float] = (),
        dt: float | None = None,
        drift_enabled: bool | None = None,
        control_mode: ControlMode | None = None,
    ) -> SimulationTelemetry:
        """Reset the vehicle, reloading configuration when the model or vehicle changes."""
        target_model = ModelType.parse(model) if model is not None else self.model
        target_vehicle = vehicle_id if vehicle_id is not None else self.vehicle_id
        bundle = self._bundle
        if target_model is not bundle.model or target_vehicle != bundle.vehicle_id:
            if self.provider is not None:
                bundle = await self.provider.prepare(target_model, target_vehicle)
            else:
                bundle = default_bundle(target_model, target_vehicle)
        return self.reset_with(
            bundle,
            initial_state=initial_state,
            dt=dt,
            drift_enabled=drift_enabled,
            control_mode=control_mode,
        )

    def reset_with(
        self,
        bundle: ConfigBundle,
        *,
        initial_state: Sequence[float] = (),
        dt: float | None = None,
        drift_enabled: bool | None = None,
        control_mode: ControlMode | None = None,
    ) -> SimulationTelemetry:
        """Build a brand-new Simulation from ``bundle`` and zero all totals."""
        if drift_enabled is not None:
            self._drift_enabled = bool(drift_enabled)
        if control_mode is not None:
            self._control_mode = ControlMode(control_mode)

        self._bundle = bundle
        self._limits = self._custom_limits or UserInputLimits.for_vehicle(bundle.vehicle)
        reset_dt = dt if dt is not None else bundle.timing.nominal_dt
        simulation = Simulation(
            bundle.model,
            bundle.vehicle,
            low_speed=bundle.low_speed,
            loss_of_control=bundle.loss_of_control,
            powertrain=bundle.powertrain,
            brakes=bundle.brakes,
            drift_enabled=self._drift_enabled,
        )
        simulation.reset(initial_state, reset_dt)
        self._simulation = simulation
        self._distance = 0.0
        self._energy = 0.0
        self._time = 0.0
        self._last_dt = reset_dt
        self._telemetry = simulation.telemetry(self._totals())
        logger.debug(
            "Reset %s model for vehicle %s (dt=%s, drift=%s, mode=%s)",
            bundle.model.value,
            bundle.vehicle_id,
            reset_dt,
            self._drift_enabled,
            self._control_mode.value,
        )
        return self._telemetry

    def step(self, user_input: UserInput) -> SimulationTelemetry:
        """Advance by ``user_input.dt`` in as many sub-steps as the model timing requires."""
        working = replace(user_input, control_mode=self._control_mode)
        sanitized = self._limits.clamp(working)
        schedule = self.plan(sanitized.dt)

        simulation = self.simulation
        if sanitized.drift_toggle is not None:
            self.set_drift_enabled(sanitized.drift_toggle >= DRIFT_TOGGLE_THRESHOLD)

        for dt in schedule.substeps:
            steer_rate, accel, intent, desired_angle = self._control_for(sanitized, dt)
            simulation.step((steer_rate, accel), dt, intent=intent, desired_angle=desired_angle)
            speed = simulation.speed()
            self._distance += abs(speed) * dt
            self._energy += accel * speed * dt
            self._time += dt

        self._last_dt = schedule.clamped_dt
        self._telemetry = simulation.telemetry(self._totals())
        return self._telemetry

    def step_batch(self, inputs: Iterable[UserInput]) -> List[SimulationTelemetry]:
        return [self.step(user_input) for user_input in inputs]

    def plan(self, requested_dt: float) -> StepSchedule:
        schedule = plan_steps(requested_dt, self._bundle.timing)
        if schedule.used_substeps or schedule.clamped_to_min:
            logger.debug(
                "Planned %d sub-steps for dt=%s (clamped to %s)",
                len(schedule.substeps),
                requested_dt,
                schedule.clamped_dt,
            )
        return schedule

    def snapshot(self) -> SimulationSnapshot:
        return SimulationSnapshot(
            state=tuple(float(value) for value in self.simulation.state()),
            telemetry=self._telemetry,
            dt=self._last_dt,
            simulation_time_s=self._time,
        )

    def state(self) -> np.ndarray:
        return self.simulation.state()

    def _control_for(
        self, sanitized: UserInput, dt: float
    ) -> Tuple[float, float, DriverIntent | None, float | None]:
        params = self._bundle.vehicle
        if sanitized.control_mode is ControlMode.DIRECT:
            torques = sanitized.axle_torques or ()
            accel = sum(torques) / (params.m * params.R_w)
            target = sanitized.steering_angle or 0.0
            if sanitized.steering_rate is not None:
                steer_rate = sanitized.steering_rate
            else:
                current = float(self.simulation.state()[STEERING_ANGLE])
                steer_rate = (target - current) / dt
            intent = None
            desired_angle = target
        else:
            intent = sanitized.longitudinal
            accel = intent.throttle * max(params.accel.max, 0.0) - intent.brake * abs(min(params.accel.min, 0.0))
            nudge = sanitized.steering_nudge or 0.0
            if nudge >= 0:
                steer_rate = nudge * params.steering.rate_max
            else:
                steer_rate = nudge * abs(params.steering.rate_min)
            desired_angle = None
        if sanitized.acceleration is not None:
            accel = sanitized.acceleration
        return steer_rate, accel, intent, desired_angle

    def _totals(self) -> TotalsTelemetry:
        return TotalsTelemetry(
            distance_traveled_m=self._distance,
            energy_consumed_joules=self._energy,
            simulation_time_s=self._time,
        )


__all__ = ["DRIFT_TOGGLE_THRESHOLD", "SimulationDaemon"]
