"""Entry point driving the simulation daemon headlessly and printing telemetry."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from singletrack import ConfigProvider, DriverIntent, ModelType, SimulationDaemon, UserInput
from singletrack.telemetry import SimulationTelemetry


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    provider = ConfigProvider(Path(args.config_root), Path(args.parameter_root))
    daemon = asyncio.run(
        SimulationDaemon.create(
            provider,
            ModelType.parse(args.model),
            args.vehicle,
            drift_enabled=args.drift,
            initial_state=_initial_state(args.speed),
        )
    )
    for warning in daemon.bundle.warnings:
        print(f"Warning: {warning}")

    user_input = UserInput(
        dt=args.dt,
        longitudinal=DriverIntent(throttle=args.throttle, brake=args.brake),
        steering_nudge=args.nudge,
    )
    telemetry = daemon.telemetry
    for index in range(args.steps):
        telemetry = daemon.step(replace(user_input, timestamp=telemetry.totals.simulation_time_s))
        if args.print_every > 0 and index % args.print_every == 0:
            _print_row(telemetry)

    _print_row(telemetry)
    totals = telemetry.totals
    print(
        f"Travelled {totals.distance_traveled_m:.2f} m in {totals.simulation_time_s:.2f} s "
        f"({totals.energy_consumed_joules / 1000.0:.1f} kJ)"
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Headless single-track vehicle drive")
    parser.add_argument("--model", default="st", choices=("st", "std"), help="Vehicle model")
    parser.add_argument("--vehicle", type=int, default=2, help="Vehicle parameter set id")
    parser.add_argument("--steps", type=int, default=500, help="Number of ticks to run")
    parser.add_argument("--dt", type=float, default=0.02, help="Tick length in seconds")
    parser.add_argument("--throttle", type=float, default=1.0, help="Throttle pedal in [0, 1]")
    parser.add_argument("--brake", type=float, default=0.0, help="Brake pedal in [0, 1]")
    parser.add_argument("--nudge", type=float, default=0.0, help="Steering nudge in [-1, 1]")
    parser.add_argument("--speed", type=float, default=0.0, help="Initial speed in m/s")
    parser.add_argument("--drift", action="store_true", help="Start with drift mode enabled")
    parser.add_argument("--print-every", type=int, default=50, help="Print every N ticks (0 disables)")
    parser.add_argument("--config-root", default="config", help="Configuration directory")
    parser.add_argument("--parameter-root", default="parameters", help="Vehicle/tire parameter directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def _initial_state(speed: float):
    if speed <= 0:
        return ()
    return (0.0, 0.0, 0.0, speed, 0.0)


def _print_row(telemetry: SimulationTelemetry) -> None:
    print(
        f"t={telemetry.totals.simulation_time_s:7.2f}s "
        f"x={telemetry.pose.x:8.2f} y={telemetry.pose.y:8.2f} "
        f"v={telemetry.velocity.speed:6.2f} yaw_rate={telemetry.velocity.yaw_rate:6.3f} "
        f"stage={telemetry.safety_stage.value:9s} severity={telemetry.detector_severity:5.2f}"
    )


if __name__ == "__main__":
    main()
