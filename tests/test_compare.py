import json
from pathlib import Path

import pytest

from singletrack.compare import (
    LocalBackend,
    Scenario,
    compare_streams,
    format_report,
    load_factory,
    load_scenarios,
    main,
    run_trace,
)
from singletrack.config_loader import default_bundle
from singletrack.models import ModelType

SCENARIO = {
    "name": "straight-then-turn",
    "model": "st",
    "vehicleId": 2,
    "initialState": [0.0, 0.0, 0.0, 5.0, 0.0],
    "dt": 0.01,
    "trace": [
        {"steps": 20, "steerRate": 0.0, "accel": 1.0},
        {"steps": 10, "steerRate": 0.3, "accel": 0.0, "dt": 0.02},
    ],
    "tolerances": {"default": 1e-6, "fields": {"pose.x": 0.5}},
}


def _fixture(tmp_path: Path) -> Path:
    path = tmp_path / "fixture.json"
    path.write_text(json.dumps({"scenarios": [SCENARIO]}))
    return path


def test_scenario_from_dict_reads_trace_and_tolerances() -> None:
    scenario = Scenario.from_dict(SCENARIO)

    assert scenario.model is ModelType.ST
    assert scenario.initial_state == (0.0, 0.0, 0.0, 5.0, 0.0)
    assert len(scenario.trace) == 2
    assert scenario.trace[1].steer_rate == 0.3
    assert scenario.trace[1].dt == 0.02
    assert scenario.default_tolerance == 1e-6
    assert scenario.field_tolerances == {"pose.x": 0.5}


def test_run_trace_produces_one_sample_per_step() -> None:
    scenario = Scenario.from_dict(SCENARIO)
    backend = LocalBackend(default_bundle(ModelType.ST))

    samples = run_trace(backend, scenario)

    assert len(samples) == 30
    assert samples[-1]["totals.simulation_time_s"] == pytest.approx(20 * 0.01 + 10 * 0.02)
    assert samples[-1]["pose.x"] > samples[0]["pose.x"]


def test_identical_backends_pass() -> None:
    scenario = Scenario.from_dict(SCENARIO)
    bundle = default_bundle(ModelType.ST)

    left = run_trace(LocalBackend(bundle), scenario)
    right = run_trace(LocalBackend(bundle), scenario)
    result = compare_streams(scenario, left, right)

    assert result.passed
    assert result.samples == 30
    assert result.overall_max == 0.0
    assert "within tolerance" in format_report(result)


def test_differences_beyond_tolerance_are_reported() -> None:
    scenario = Scenario.from_dict(SCENARIO)
    left = [{"pose.x": 0.0, "pose.y": 0.0}, {"pose.x": 1.0, "pose.y": 0.0}]
    right = [{"pose.x": 0.2, "pose.y": 0.0}, {"pose.x": 1.0, "pose.y": 0.01}]

    result = compare_streams(scenario, left, right)

    assert not result.passed
    assert [breach.field for breach in result.breaches] == ["pose.y"]
    assert result.fields["pose.x"].max_abs == pytest.approx(0.2)
    assert result.fields["pose.x"].rmse == pytest.approx((0.04 / 2) ** 0.5)
    assert "pose.y" in format_report(result)


def test_explicit_tolerance_overrides_scenario_default() -> None:
    scenario = Scenario.from_dict(SCENARIO)

    result = compare_streams(scenario, [{"pose.y": 0.0}], [{"pose.y": 0.01}], tolerance=0.1)

    assert result.passed


def test_load_factory_resolves_module_attribute() -> None:
    assert load_factory("singletrack.compare:LocalBackend") is LocalBackend
    with pytest.raises(ValueError):
        load_factory("singletrack.compare:DEFAULT_TOLERANCE")


def test_load_scenarios_requires_entries(tmp_path: Path) -> None:
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"scenarios": []}))

    with pytest.raises(ValueError):
        load_scenarios(path)


def test_main_self_check_exits_cleanly(tmp_path: Path, capsys) -> None:
    fixture = _fixture(tmp_path)

    exit_code = main(
        [
            "--fixture",
            str(fixture),
            "--parameter-root",
            str(tmp_path / "parameters"),
            "--config-root",
            str(tmp_path / "config"),
        ]
    )

    assert exit_code == 0
    assert "Scenario: straight-then-turn" in capsys.readouterr().out
