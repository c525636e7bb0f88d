"""Tests for the YAML configuration layer."""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointset_registration.utils.config import AppConfig, OptimizerConfig, load_config

REPO_ROOT = Path(__file__).parent.parent


def test_default_config_matches_builtin_defaults():
    """The shipped default.yaml mirrors the model defaults."""
    cfg = load_config(None)  # Load default.yaml

    assert cfg == AppConfig()
    opt = cfg.registration.optimizer
    assert opt.max_iterations == 2000
    assert opt.gradient_tolerance == 1e-5
    assert opt.value_tolerance == 1e-8
    assert opt.epsilon_function == 1e-10
    assert opt.scales is None
    assert opt.use_cost_function_gradient is False
    assert cfg.registration.metric.nn_backend == "brute"
    assert cfg.transform.type == "translation"
    assert cfg.transform.initial_parameters is None


def test_quick_profile_settings():
    """The quick profile loosens tolerances and seeds the translation."""
    cfg = load_config(REPO_ROOT / "config" / "profiles" / "quick.yaml")

    opt = cfg.registration.optimizer
    assert opt.max_iterations == 1000
    assert opt.gradient_tolerance == 0.1
    assert opt.value_tolerance == 0.1
    assert opt.epsilon_function == 1e-9
    assert opt.scales == [1.0, 1.0]
    assert cfg.transform.initial_parameters == [10.0, 10.0]
    assert cfg.logging.level == "WARNING"
    # Sections not in the profile keep their defaults
    assert cfg.registration.metric.chunk_size == 1024


def test_partial_yaml_fills_defaults(tmp_path):
    path = tmp_path / "partial.yaml"
    path.write_text("registration:\n  metric:\n    nn_backend: kd_tree\n", encoding="utf-8")

    cfg = load_config(path)
    assert cfg.registration.metric.nn_backend == "kd_tree"
    assert cfg.registration.optimizer == OptimizerConfig()


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == AppConfig()


def test_invalid_values_raise_value_error(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("registration:\n  optimizer:\n    max_iterations: -5\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)

    path.write_text("transform:\n  type: projective\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_explicit_missing_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_scales_must_be_positive():
    with pytest.raises(ValueError, match="strictly positive"):
        OptimizerConfig(scales=[1.0, 0.0])
