"""Loading vehicle parameters and controller configuration from YAML/JSON files."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

import yaml

from .detector import LossOfControlConfig, MetricThreshold
from .models import ModelType
from .params import (
    DEFAULT_VEHICLE_ID,
    VEHICLE_CATALOGUE,
    AccelerationLimits,
    SteeringLimits,
    TireParameters,
    VehicleParameters,
    vehicle_parameters,
)
from .powertrain import BrakeConfig, PowertrainConfig
from .safety import LowSpeedSafetyConfig, SafetyProfile
from .timing import TimingInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMING = {
    ModelType.ST: TimingInfo(nominal_dt=0.01, max_dt=0.02),
    ModelType.STD: TimingInfo(nominal_dt=0.01, max_dt=0.01),
}


class ConfigLoadError(RuntimeError):
    """Raised when a configuration document cannot be read or parsed."""


@dataclass(frozen=True)
class ConfigBundle:
    """Everything a simulation needs for one model/vehicle pair."""

    model: ModelType
    vehicle_id: int
    vehicle: VehicleParameters
    low_speed: LowSpeedSafetyConfig
    loss_of_control: LossOfControlConfig
    timing: TimingInfo
    powertrain: PowertrainConfig
    brakes: BrakeConfig
    warnings: Tuple[str, ...] = ()


def default_bundle(model: ModelType | str, vehicle_id: int = DEFAULT_VEHICLE_ID) -> ConfigBundle:
    """Built-in configuration used when no files are available."""
    model = ModelType.parse(model)
    if vehicle_id not in VEHICLE_CATALOGUE:
        vehicle_id = DEFAULT_VEHICLE_ID
    return ConfigBundle(
        model=model,
        vehicle_id=vehicle_id,
        vehicle=vehicle_parameters(vehicle_id),
        low_speed=LowSpeedSafetyConfig(),
        loss_of_control=LossOfControlConfig(),
        timing=DEFAULT_TIMING[model],
        powertrain=PowertrainConfig(),
        brakes=BrakeConfig(),
    )


def load_document(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON mapping, trying a ``.json`` sibling when the YAML file is absent."""
    if not path.exists() and path.suffix in (".yaml", ".yml"):
        sibling = path.with_suffix(".json")
        if sibling.exists():
            path = sibling
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigLoadError(f"Failed to read config file {path!s}: {exc}") from exc

    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigLoadError(f"Invalid document in config file {path!s}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigLoadError(f"Config file {path!s} must contain a mapping at the top level")
    return dict(raw)


def _number(raw: Mapping[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{key} must be a number")
    return float(value)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} must be a mapping")
    return value


def parse_tire(raw: Mapping[str, Any]) -> TireParameters:
    source = raw.get("tire") if isinstance(raw.get("tire"), Mapping) else raw
    defaults = TireParameters()
    values = {f.name: _number(source, f.name, getattr(defaults, f.name)) for f in fields(TireParameters)}
    return TireParameters(**values)


def parse_vehicle(
    raw: Mapping[str, Any],
    tire: TireParameters | None = None,
    base: VehicleParameters | None = None,
) -> VehicleParameters:
    """Overlay a vehicle document (``a``/``b`` or ``l_f``/``l_r`` naming) onto ``base``."""
    base = base or VehicleParameters()
    steering_raw = _section(raw, "steering")
    longitudinal_raw = _section(raw, "longitudinal") or _section(raw, "accel")

    steering = SteeringLimits(
        min=_number(steering_raw, "min", base.steering.min),
        max=_number(steering_raw, "max", base.steering.max),
        rate_min=_number(steering_raw, "v_min", _number(steering_raw, "rate_min", base.steering.rate_min)),
        rate_max=_number(steering_raw, "v_max", _number(steering_raw, "rate_max", base.steering.rate_max)),
    )
    a_max = _number(longitudinal_raw, "a_max", _number(longitudinal_raw, "max", base.accel.max))
    jerk = longitudinal_raw.get("j_max", longitudinal_raw.get("jerk_max", base.accel.jerk_max))
    accel = AccelerationLimits(
        min=_number(longitudinal_raw, "a_min", _number(longitudinal_raw, "min", -abs(a_max))),
        max=a_max,
        jerk_max=float(jerk) if jerk is not None and float(jerk) > 0 else None,
        v_switch=_number(longitudinal_raw, "v_switch", base.accel.v_switch),
        v_min=_number(longitudinal_raw, "v_min", base.accel.v_min),
        v_max=_number(longitudinal_raw, "v_max", base.accel.v_max),
    )
    mu = raw.get("mu", base.mu)
    return VehicleParameters(
        l_f=_number(raw, "a", _number(raw, "l_f", base.l_f)),
        l_r=_number(raw, "b", _number(raw, "l_r", base.l_r)),
        m=_number(raw, "m", base.m),
        I_z=_number(raw, "I_z", base.I_z),
        lat_accel_max=_number(raw, "lat_accel_max", base.lat_accel_max),
        mu=float(mu) if mu is not None else None,
        steering=steering,
        accel=accel,
        h_s=_number(raw, "h_s", base.h_s),
        R_w=_number(raw, "R_w", base.R_w),
        I_y_w=_number(raw, "I_y_w", base.I_y_w),
        T_sb=_number(raw, "T_sb", base.T_sb),
        T_se=_number(raw, "T_se", base.T_se),
        tire=tire or base.tire,
    )


def _parse_profile(raw: Mapping[str, Any], default: SafetyProfile) -> SafetyProfile:
    return SafetyProfile(
        engage_speed=_number(raw, "engage_speed", default.engage_speed),
        release_speed=_number(raw, "release_speed", default.release_speed),
        yaw_rate_limit=_number(raw, "yaw_rate_limit", default.yaw_rate_limit),
        slip_angle_limit=_number(raw, "slip_angle_limit", default.slip_angle_limit),
    )


def parse_low_speed_safety(raw: Mapping[str, Any]) -> LowSpeedSafetyConfig:
    defaults = LowSpeedSafetyConfig()
    return LowSpeedSafetyConfig(
        normal=_parse_profile(_section(raw, "normal"), defaults.normal),
        drift=_parse_profile(_section(raw, "drift"), defaults.drift),
        stop_speed_epsilon=_number(raw, "stop_speed_epsilon", defaults.stop_speed_epsilon),
    )


def parse_loss_of_control(raw: Mapping[str, Any]) -> LossOfControlConfig:
    defaults = LossOfControlConfig()
    values = {}
    for f in fields(LossOfControlConfig):
        section = _section(raw, f.name)
        default: MetricThreshold = getattr(defaults, f.name)
        values[f.name] = MetricThreshold(
            threshold=_number(section, "threshold", default.threshold),
            rate=_number(section, "rate", default.rate),
        )
    return LossOfControlConfig(**values)


def parse_timing(raw: Mapping[str, Any], model: ModelType) -> TimingInfo:
    section = raw.get(model.value)
    if not isinstance(section, Mapping):
        raise ValueError(f"No timing section for model '{model.value}'")
    default = DEFAULT_TIMING[model]
    return TimingInfo(
        nominal_dt=_number(section, "nominal_dt", default.nominal_dt),
        max_dt=_number(section, "max_dt", default.max_dt),
    )


def _parse_flat(raw: Mapping[str, Any], default: Any) -> Any:
    values = {f.name: _number(raw, f.name, getattr(default, f.name)) for f in fields(default)}
    return replace(default, **values)


def parse_powertrain(raw: Mapping[str, Any]) -> PowertrainConfig:
    return _parse_flat(_section(raw, "powertrain") or raw, PowertrainConfig())


def parse_brakes(raw: Mapping[str, Any]) -> BrakeConfig:
    return _parse_flat(_section(raw, "brakes") or raw, BrakeConfig())


class ConfigProvider:
    """Reads configuration under ``config_root`` and ``parameter_root``.

    Every section falls back to its built-in default when its file is
    missing or malformed; the problem is logged and recorded in
    :attr:`ConfigBundle.warnings` instead of being raised.
    """

    def __init__(self, config_root: Path | str = "config", parameter_root: Path | str = "parameters") -> None:
        self.config_root = Path(config_root)
        self.parameter_root = Path(parameter_root)

    async def prepare(self, model: ModelType | str, vehicle_id: int = DEFAULT_VEHICLE_ID) -> ConfigBundle:
        """Load a bundle without blocking the event loop."""
        return await asyncio.to_thread(self.load, model, vehicle_id)

    def load(self, model: ModelType | str, vehicle_id: int = DEFAULT_VEHICLE_ID) -> ConfigBundle:
        model = ModelType.parse(model)
        defaults = default_bundle(model, vehicle_id)
        warnings: List[str] = []

        vehicle = self._recover(warnings, "vehicle parameters", None, self.load_vehicle, vehicle_id)
        if vehicle is None:
            vehicle, vehicle_id = defaults.vehicle, defaults.vehicle_id
        low_speed = self._recover(
            warnings, "low-speed safety", defaults.low_speed, self.load_low_speed_safety, model
        )
        loss_of_control = self._recover(
            warnings,
            "loss-of-control detector",
            defaults.loss_of_control,
            lambda: parse_loss_of_control(load_document(self.config_root / "loss_of_control_detector.yaml")),
        )
        timing = self._recover(
            warnings,
            "model timing",
            defaults.timing,
            lambda: parse_timing(load_document(self.config_root / "model_timing.yaml"), model),
        )
        powertrain = self._recover(
            warnings,
            "powertrain",
            defaults.powertrain,
            lambda: parse_powertrain(load_document(self.config_root / "powertrain.yaml")),
        )
        brakes = self._recover(
            warnings,
            "brakes",
            defaults.brakes,
            lambda: parse_brakes(load_document(self.config_root / "brakes.yaml")),
        )
        logger.debug("Loaded configuration for model %s, vehicle %s", model.value, vehicle_id)
        return ConfigBundle(
            model=model,
            vehicle_id=vehicle_id,
            vehicle=vehicle,
            low_speed=low_speed,
            loss_of_control=loss_of_control,
            timing=timing,
            powertrain=powertrain,
            brakes=brakes,
            warnings=tuple(warnings),
        )

    def load_vehicle(self, vehicle_id: int) -> VehicleParameters:
        vehicle_path = self.parameter_root / "vehicle" / f"parameters_vehicle{vehicle_id}.yaml"
        tire_path = self.parameter_root / "tire" / "parameters_tire.yaml"
        raw = load_document(vehicle_path)
        tire = parse_tire(load_document(tire_path)) if _exists(tire_path) else None
        base = vehicle_parameters(vehicle_id) if vehicle_id in VEHICLE_CATALOGUE else None
        try:
            return parse_vehicle(raw, tire, base)
        except (TypeError, ValueError) as exc:
            raise ConfigLoadError(f"Malformed vehicle parameters in {vehicle_path!s}: {exc}") from exc

    def load_low_speed_safety(self, model: ModelType) -> LowSpeedSafetyConfig:
        override = self.config_root / f"low_speed_safety_{model.value}.yaml"
        path = override if _exists(override) else self.config_root / "low_speed_safety.yaml"
        return parse_low_speed_safety(load_document(path))

    @staticmethod
    def _recover(warnings: List[str], what: str, default: Any, loader, *args: Any) -> Any:
        try:
            return loader(*args)
        except (ConfigLoadError, KeyError, TypeError, ValueError) as exc:
            message = f"Using default {what}: {exc}"
            logger.warning(message)
            warnings.append(message)
            return default


def _exists(path: Path) -> bool:
    return path.exists() or path.with_suffix(".json").exists()


__all__ = [
    "ConfigLoadError",
    "ConfigBundle",
    "ConfigProvider",
    "DEFAULT_TIMING",
    "default_bundle",
    "load_document",
    "parse_tire",
    "parse_vehicle",
    "parse_low_speed_safety",
    "parse_loss_of_control",
    "parse_timing",
    "parse_powertrain",
    "parse_brakes",
]
