"""Cross-check telemetry from this simulation against a reference backend.

Scenarios are read from a JSON fixture::

    {"scenarios": [{"name": ..., "model": "st", "vehicleId": 2,
                    "initialState": [...], "dt": 0.01, "driftEnabled": false,
                    "trace": [{"steps": 100, "steerRate": 0.0, "accel": 1.0}],
                    "tolerances": {"default": 1e-3, "fields": {"pose.x": 1e-2}}}]}

Both backends replay each trace; their telemetry is flattened to dotted keys
and compared field by field.
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Protocol, Sequence

from .config_loader import ConfigBundle, ConfigProvider
from .models import ModelType
from .simulation import Simulation
from .telemetry import SimulationTelemetry, TotalsTelemetry, flatten_telemetry, telemetry_from_dict

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-3


class TraceBackend(Protocol):
    def reset(self, initial_state: Sequence[float], dt: float) -> None: ...

    def step(self, control: Sequence[float], dt: float) -> None: ...

    def telemetry(self) -> SimulationTelemetry | Mapping[str, Any]: ...


BackendFactory = Callable[[ConfigBundle, bool], TraceBackend]


@dataclass(frozen=True)
class TraceSegment:
    steps: int
    steer_rate: float = 0.0
    accel: float = 0.0
    dt: float | None = None


@dataclass(frozen=True)
class Scenario:
    name: str
    model: ModelType
    vehicle_id: int
    initial_state: tuple
    dt: float
    trace: tuple
    drift_enabled: bool = False
    default_tolerance: float | None = None
    field_tolerances: Dict[str, float] = field(default_factory=dict)

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "Scenario":
        tolerances = raw.get("tolerances") or {}
        default = tolerances.get("default")
        return Scenario(
            name=str(raw["name"]),
            model=ModelType.parse(raw["model"]),
            vehicle_id=int(raw["vehicleId"]),
            initial_state=tuple(float(value) for value in raw.get("initialState", ())),
            dt=float(raw["dt"]),
            trace=tuple(
                TraceSegment(
                    steps=int(segment["steps"]),
                    steer_rate=float(segment.get("steerRate", 0.0)),
                    accel=float(segment.get("accel", 0.0)),
                    dt=float(segment["dt"]) if segment.get("dt") is not None else None,
                )
                for segment in raw.get("trace", ())
            ),
            drift_enabled=bool(raw.get("driftEnabled", False)),
            default_tolerance=float(default) if default is not None else None,
            field_tolerances={key: float(value) for key, value in (tolerances.get("fields") or {}).items()},
        )


@dataclass(frozen=True)
class FieldStats:
    count: int
    rmse: float
    max_abs: float


@dataclass(frozen=True)
class Breach:
    field: str
    max_abs: float
    tolerance: float


@dataclass(frozen=True)
class ComparisonResult:
    scenario: str
    samples: int
    fields: Dict[str, FieldStats]
    overall_rmse: float
    overall_max: float
    breaches: List[Breach]

    @property
    def passed(self) -> bool:
        return not self.breaches


class LocalBackend:
    """Replays raw ``(steering_rate, acceleration)`` controls on a Simulation."""

    def __init__(self, bundle: ConfigBundle, drift_enabled: bool = False) -> None:
        self.bundle = bundle
        self.drift_enabled = drift_enabled
        self._simulation: Simulation | None = None
        self._distance = 0.0
        self._energy = 0.0
        self._time = 0.0

    def reset(self, initial_state: Sequence[float], dt: float) -> None:
        bundle = self.bundle
        self._simulation = Simulation(
            bundle.model,
            bundle.vehicle,
            low_speed=bundle.low_speed,
            loss_of_control=bundle.loss_of_control,
            powertrain=bundle.powertrain,
            brakes=bundle.brakes,
            drift_enabled=self.drift_enabled,
        )
        self._simulation.reset(initial_state, dt)
        self._distance = self._energy = self._time = 0.0

    def step(self, control: Sequence[float], dt: float) -> None:
        simulation = self._require()
        simulation.step(control, dt)
        speed = simulation.speed()
        self._distance += abs(speed) * dt
        self._energy += float(control[1]) * speed * dt
        self._time += dt

    def telemetry(self) -> SimulationTelemetry:
        return self._require().telemetry(
            TotalsTelemetry(
                distance_traveled_m=self._distance,
                energy_consumed_joules=self._energy,
                simulation_time_s=self._time,
            )
        )

    def _require(self) -> Simulation:
        if self._simulation is None:
            raise RuntimeError("LocalBackend has not been reset")
        return self._simulation


def load_scenarios(path: Path) -> List[Scenario]:
    raw = json.loads(Path(path).read_text())
    scenarios = raw.get("scenarios") if isinstance(raw, Mapping) else None
    if not scenarios:
        raise ValueError(f"No scenarios found in {path!s}")
    return [Scenario.from_dict(entry) for entry in scenarios]


def load_factory(target: str) -> BackendFactory:
    """Resolve ``module:attribute`` (attribute defaults to ``create_backend``)."""
    module_name, _, attribute = target.partition(":")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute or "create_backend", None)
    if not callable(factory):
        raise ValueError(f"{target} does not name a backend factory")
    return factory


def run_trace(backend: TraceBackend, scenario: Scenario) -> List[Dict[str, float]]:
    """Replay the scenario trace and return one flattened telemetry sample per step."""
    backend.reset(scenario.initial_state, scenario.dt)
    samples: List[Dict[str, float]] = []
    for segment in scenario.trace:
        step_dt = segment.dt if segment.dt is not None else scenario.dt
        for _ in range(segment.steps):
            backend.step((segment.steer_rate, segment.accel), step_dt)
            telemetry = backend.telemetry()
            if isinstance(telemetry, Mapping):
                telemetry = telemetry_from_dict(telemetry)
            samples.append(flatten_telemetry(telemetry))
    return samples


def compare_streams(
    scenario: Scenario,
    left: Sequence[Mapping[str, float]],
    right: Sequence[Mapping[str, float]],
    tolerance: float | None = None,
) -> ComparisonResult:
    """Per-field RMSE and max absolute difference over the common samples."""
    samples = min(len(left), len(right))
    default_tolerance = tolerance
    if default_tolerance is None:
        default_tolerance = scenario.default_tolerance if scenario.default_tolerance is not None else DEFAULT_TOLERANCE

    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    maxima: Dict[str, float] = {}
    total_sq = 0.0
    total_count = 0
    overall_max = 0.0

    for index in range(samples):
        lhs, rhs = left[index], right[index]
        for key in sorted(set(lhs) | set(rhs)):
            diff = rhs.get(key, 0.0) - lhs.get(key, 0.0)
            sums[key] = sums.get(key, 0.0) + diff * diff
            counts[key] = counts.get(key, 0) + 1
            maxima[key] = max(maxima.get(key, 0.0), abs(diff))
            total_sq += diff * diff
            total_count += 1
            overall_max = max(overall_max, abs(diff))

    stats: Dict[str, FieldStats] = {}
    breaches: List[Breach] = []
    for key in sums:
        stats[key] = FieldStats(
            count=counts[key],
            rmse=math.sqrt(sums[key] / max(counts[key], 1)),
            max_abs=maxima[key],
        )
        limit = scenario.field_tolerances.get(key, default_tolerance)
        if maxima[key] > limit:
            breaches.append(Breach(field=key, max_abs=maxima[key], tolerance=limit))
    breaches.sort(key=lambda breach: breach.max_abs, reverse=True)

    return ComparisonResult(
        scenario=scenario.name,
        samples=samples,
        fields=stats,
        overall_rmse=math.sqrt(total_sq / max(total_count, 1)),
        overall_max=overall_max,
        breaches=breaches,
    )


def format_report(result: ComparisonResult, limit: int = 10) -> str:
    lines = [
        f"Scenario: {result.scenario}",
        f"Samples: {result.samples}",
        f"Overall RMSE: {result.overall_rmse:.6e} | Max abs diff: {result.overall_max:.6e}",
    ]
    if result.passed:
        lines.append("All telemetry signals within tolerance.")
    else:
        lines.append("Signals outside tolerance:")
        for breach in result.breaches[:limit]:
            lines.append(f"  {breach.field}: max diff {breach.max_abs:.6e} (tolerance {breach.tolerance})")
    return "\n".join(lines)


def compare_scenario(
    scenario: Scenario,
    provider: ConfigProvider,
    reference: BackendFactory,
    tolerance: float | None = None,
) -> ComparisonResult:
    bundle = provider.load(scenario.model, scenario.vehicle_id)
    local = run_trace(LocalBackend(bundle, scenario.drift_enabled), scenario)
    other = run_trace(reference(bundle, scenario.drift_enabled), scenario)
    result = compare_streams(scenario, local, other, tolerance)
    if not result.passed:
        logger.warning("Scenario %s breached %d tolerance(s)", scenario.name, len(result.breaches))
    return result


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.WARNING)
    parameter_root = Path(args.parameter_root)
    config_root = Path(args.config_root) if args.config_root else parameter_root.parent / "config"
    provider = ConfigProvider(config_root, parameter_root)
    reference = load_factory(args.reference) if args.reference else LocalBackend

    failed = False
    for scenario in load_scenarios(Path(args.fixture)):
        result = compare_scenario(scenario, provider, reference, args.tolerance)
        print()
        print(format_report(result))
        failed = failed or not result.passed
    return 1 if failed else 0


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare simulation telemetry against a reference backend")
    parser.add_argument("--fixture", required=True, help="JSON file with a 'scenarios' list")
    parser.add_argument(
        "--reference",
        help="Reference backend factory as module:attribute (defaults to this simulation)",
    )
    parser.add_argument("--parameter-root", default="parameters", help="Vehicle/tire parameter directory")
    parser.add_argument("--config-root", help="Configuration directory (defaults to a sibling 'config')")
    parser.add_argument("--tolerance", type=float, help="Override every scenario's default tolerance")
    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(main())
