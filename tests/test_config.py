"""
Tests for configuration loading and validation
"""

import json

import pytest

from contactdiff.config import (Config, get_default_config, load_config,
                                save_config, validate_config)


def test_defaults_are_valid():
    config = get_default_config()

    assert validate_config(config) == []
    assert config.pooling["max_diagonal_fraction"] == 0.2
    assert config.modeling["model_kind"] == "robust_nb"
    assert config.significance["combine"] == "min"
    assert config.regions["adjacency_mode"] == 8


def test_partial_sections_merge_with_defaults():
    config = Config(pooling={"pool_min_samples": 50}, regions={"adjacency_mode": 4})

    assert config.pooling["pool_min_samples"] == 50
    assert config.pooling["pool_target_samples"] == 2000
    assert config.regions["adjacency_mode"] == 4
    assert config.regions["p_value_cutoff"] == 0.01


def test_yaml_round_trip(tmp_path):
    config = Config(
        project_name="round_trip",
        worker_count=2,
        modeling={"model_kind": "plain_nb"},
        significance={"combine": "fisher"},
    )
    path = tmp_path / "config.yaml"

    save_config(config, path)
    loaded = load_config(path)

    assert loaded.to_dict() == config.to_dict()


def test_load_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"worker_count": 3, "regions": {"use_adjusted": False}}))

    config = load_config(path)

    assert config.worker_count == 3
    assert config.regions["use_adjusted"] is False


def test_load_rejects_unknown_format(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("worker_count = 1")

    with pytest.raises(ValueError):
        load_config(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"worker_count": 0}, "worker_count"),
        ({"pooling": {"max_diagonal_fraction": 1.5}}, "max_diagonal_fraction"),
        ({"pooling": {"pool_min_samples": 50, "pool_target_samples": 10}}, "pool_target_samples"),
        ({"modeling": {"model_kind": "poisson"}}, "model_kind"),
        ({"modeling": {"outlier_weight_cutoff": 1.0}}, "outlier_weight_cutoff"),
        ({"significance": {"combine": "max"}}, "combine"),
        ({"regions": {"p_value_cutoff": 0}}, "p_value_cutoff"),
        ({"regions": {"adjacency_mode": 6}}, "adjacency_mode"),
    ],
)
def test_validate_reports_issues(overrides, fragment):
    issues = validate_config(Config(**overrides))

    assert len(issues) == 1
    assert fragment in issues[0]
