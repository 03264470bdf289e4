"""Real-time single-track vehicle dynamics with a low-speed safety layer."""

from .config_loader import ConfigBundle, ConfigLoadError, ConfigProvider, default_bundle
from .detector import LossOfControlConfig, LossOfControlDetector, MetricThreshold
from .input import ControlMode, DriverIntent, InputValidationError, UserInput, UserInputLimits
from .integrator import DimensionError, VehicleSimulator
from .models import ExtendedDynamicSingleTrack, KinematicSingleTrack, ModelType, VehicleModel, build_model
from .params import DEFAULT_VEHICLE_ID, VehicleParameters, vehicle_parameters
from .powertrain import BrakeConfig, BrakeController, Powertrain, PowertrainConfig
from .runtime import SimulationDaemon
from .safety import LowSpeedSafety, LowSpeedSafetyConfig, SafetyLayout, SafetyProfile, SafetyStage
from .simulation import Simulation
from .state import SimulationSnapshot
from .telemetry import SimulationTelemetry, default_telemetry, flatten_telemetry, merge_telemetry
from .timing import StepSchedule, TimingInfo, plan_steps

__all__ = [
    "BrakeConfig",
    "BrakeController",
    "ConfigBundle",
    "ConfigLoadError",
    "ConfigProvider",
    "ControlMode",
    "DEFAULT_VEHICLE_ID",
    "DimensionError",
    "DriverIntent",
    "ExtendedDynamicSingleTrack",
    "InputValidationError",
    "KinematicSingleTrack",
    "LossOfControlConfig",
    "LossOfControlDetector",
    "LowSpeedSafety",
    "LowSpeedSafetyConfig",
    "MetricThreshold",
    "ModelType",
    "Powertrain",
    "PowertrainConfig",
    "SafetyLayout",
    "SafetyProfile",
    "SafetyStage",
    "Simulation",
    "SimulationDaemon",
    "SimulationSnapshot",
    "SimulationTelemetry",
    "StepSchedule",
    "TimingInfo",
    "UserInput",
    "UserInputLimits",
    "VehicleModel",
    "VehicleParameters",
    "VehicleSimulator",
    "build_model",
    "default_bundle",
    "default_telemetry",
    "flatten_telemetry",
    "merge_telemetry",
    "plan_steps",
    "vehicle_parameters",
]
