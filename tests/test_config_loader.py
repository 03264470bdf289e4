import asyncio
import json
from pathlib import Path

import pytest

from singletrack.config_loader import (
    DEFAULT_TIMING,
    ConfigLoadError,
    ConfigProvider,
    load_document,
    parse_vehicle,
)
from singletrack.models import ModelType
from singletrack.params import bmw_320i


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _roots(tmp_path: Path):
    return tmp_path / "config", tmp_path / "parameters"


def test_load_document_reads_yaml_mapping(tmp_path: Path) -> None:
    path = _write(tmp_path / "doc.yaml", "a: 1.5\nsteering:\n  max: 0.9\n")

    assert load_document(path) == {"a": 1.5, "steering": {"max": 0.9}}


def test_load_document_falls_back_to_json_sibling(tmp_path: Path) -> None:
    _write(tmp_path / "doc.json", json.dumps({"m": 1500}))

    assert load_document(tmp_path / "doc.yaml") == {"m": 1500}


def test_load_document_rejects_non_mapping(tmp_path: Path) -> None:
    path = _write(tmp_path / "doc.yaml", "- 1\n- 2\n")

    with pytest.raises(ConfigLoadError, match="mapping"):
        load_document(path)


def test_load_document_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_document(tmp_path / "missing.yaml")


def test_parse_vehicle_accepts_axle_distance_aliases() -> None:
    raw = {
        "a": 1.2,
        "b": 1.4,
        "m": 1300.0,
        "steering": {"min": -0.8, "max": 0.8, "v_min": -0.5, "v_max": 0.5},
        "longitudinal": {"a_max": 9.0, "j_max": 0},
    }

    params = parse_vehicle(raw, base=bmw_320i())

    assert params.l_f == 1.2
    assert params.l_r == 1.4
    assert params.m == 1300.0
    assert params.steering.rate_max == 0.5
    assert params.accel.max == 9.0
    assert params.accel.min == -9.0
    assert params.accel.jerk_max is None
    assert params.I_z == bmw_320i().I_z


def test_provider_loads_files_from_both_roots(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)
    _write(parameter_root / "vehicle" / "parameters_vehicle2.yaml", "l_f: 1.0\nl_r: 1.5\nmu: 1.1\n")
    _write(config_root / "model_timing.yaml", "st:\n  nominal_dt: 0.005\n  max_dt: 0.01\n")
    _write(config_root / "low_speed_safety.yaml", "normal:\n  engage_speed: 0.5\n  release_speed: 1.0\n")
    _write(config_root / "loss_of_control_detector.yaml", "yaw_rate:\n  threshold: 1.5\n  rate: 3.0\n")
    _write(config_root / "powertrain.yaml", "powertrain:\n  max_power: 90000\n")
    _write(config_root / "brakes.yaml", "max_force: 12000\n")

    bundle = ConfigProvider(config_root, parameter_root).load("st", 2)

    assert bundle.warnings == ()
    assert bundle.vehicle.wheelbase == pytest.approx(2.5)
    assert bundle.vehicle.friction_coefficient == pytest.approx(1.1)
    assert bundle.timing.max_dt == 0.01
    assert bundle.low_speed.normal.engage_speed == 0.5
    assert bundle.loss_of_control.yaw_rate.threshold == 1.5
    assert bundle.powertrain.max_power == 90000.0
    assert bundle.brakes.max_force == 12000.0


def test_model_specific_safety_file_takes_precedence(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)
    _write(config_root / "low_speed_safety.yaml", "normal:\n  engage_speed: 0.5\n  release_speed: 1.0\n")
    _write(config_root / "low_speed_safety_std.yaml", "normal:\n  engage_speed: 0.2\n  release_speed: 0.6\n")

    provider = ConfigProvider(config_root, parameter_root)

    assert provider.load("std").low_speed.normal.engage_speed == 0.2
    assert provider.load("st").low_speed.normal.engage_speed == 0.5


def test_missing_files_fall_back_to_defaults_with_warnings(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)

    bundle = ConfigProvider(config_root, parameter_root).load(ModelType.STD, 1)

    assert bundle.timing == DEFAULT_TIMING[ModelType.STD]
    assert bundle.vehicle.m == pytest.approx(1225.887)
    assert len(bundle.warnings) == 6
    assert all(warning.startswith("Using default") for warning in bundle.warnings)


def test_unknown_vehicle_falls_back_to_default_id(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)

    bundle = ConfigProvider(config_root, parameter_root).load("st", 3)

    assert bundle.vehicle_id == 2
    assert bundle.vehicle == bmw_320i()
    assert any("vehicle parameters" in warning for warning in bundle.warnings)


def test_malformed_section_only_affects_itself(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)
    _write(config_root / "low_speed_safety.yaml", "normal:\n  engage_speed: 2.0\n  release_speed: 1.0\n")
    _write(config_root / "model_timing.yaml", "st:\n  nominal_dt: 0.005\n  max_dt: 0.01\n")

    bundle = ConfigProvider(config_root, parameter_root).load("st")

    assert bundle.timing.max_dt == 0.01
    assert bundle.low_speed.normal.engage_speed == 0.4
    assert any("low-speed safety" in warning for warning in bundle.warnings)


def test_timing_without_model_section_uses_default(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)
    _write(config_root / "model_timing.yaml", "std:\n  nominal_dt: 0.005\n  max_dt: 0.005\n")

    bundle = ConfigProvider(config_root, parameter_root).load("st")

    assert bundle.timing == DEFAULT_TIMING[ModelType.ST]
    assert any("model timing" in warning for warning in bundle.warnings)


def test_prepare_runs_off_the_event_loop(tmp_path: Path) -> None:
    config_root, parameter_root = _roots(tmp_path)
    _write(config_root / "brakes.yaml", "max_force: 9000\n")

    bundle = asyncio.run(ConfigProvider(config_root, parameter_root).prepare("st"))

    assert bundle.model is ModelType.ST
    assert bundle.brakes.max_force == 9000.0


@pytest.mark.parametrize("model", ["st", "std"])
def test_bundled_configuration_loads_without_warnings(model: str) -> None:
    root = Path(__file__).resolve().parent.parent
    provider = ConfigProvider(root / "config", root / "parameters")

    for vehicle_id in (1, 2):
        bundle = provider.load(model, vehicle_id)
        assert bundle.warnings == ()

    assert bundle.vehicle == bmw_320i()
