"""
Tests for the command-line interface
"""

import json

import pandas as pd
from click.testing import CliRunner

from contactdiff.cli import main


def test_info():
    result = CliRunner().invoke(main, ["info"])

    assert result.exit_code == 0
    assert "contactdiff v" in result.output


def test_init_and_validate_config(tmp_path):
    runner = CliRunner()
    path = tmp_path / "config.yaml"

    created = runner.invoke(main, ["init-config", str(path)])
    validated = runner.invoke(main, ["validate-config", str(path)])

    assert created.exit_code == 0
    assert path.exists()
    assert validated.exit_code == 0
    assert "Configuration is valid" in validated.output


def test_init_config_json(tmp_path):
    path = tmp_path / "config.json"

    result = CliRunner().invoke(main, ["init-config", str(path), "--format", "json"])

    assert result.exit_code == 0
    assert json.loads(path.read_text())["significance"] == {"combine": "min"}


def test_validate_config_reports_issues(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"regions": {"adjacency_mode": 6}}))

    result = CliRunner().invoke(main, ["validate-config", str(path)])

    assert result.exit_code == 1
    assert "adjacency_mode" in result.output


def test_simulate_then_run(tmp_path):
    runner = CliRunner()
    data_dir = tmp_path / "data"
    out_dir = tmp_path / "out"
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "worker_count": 1,
                "pooling": {
                    "max_diagonal_fraction": 0.1,
                    "pool_target_samples": 100000,
                    "max_dissimilarity": 1.0,
                },
            }
        )
    )

    simulated = runner.invoke(
        main, ["simulate", str(data_dir), "--n-bins", "60", "--max-diagonal", "6"]
    )
    assert simulated.exit_code == 0
    assert (data_dir / "pixels_a.tsv").exists()
    assert len(pd.read_csv(data_dir / "outliers.tsv", sep="\t")) == 3

    ran = runner.invoke(
        main,
        [
            "-q",
            "-c",
            str(config_path),
            "run",
            str(data_dir / "pixels_a.tsv"),
            str(data_dir / "pixels_b.tsv"),
            "--dimensions",
            str(data_dir / "dimensions.tsv"),
            "--output",
            str(out_dir),
        ],
    )

    assert ran.exit_code == 0, ran.output
    assert "chr1" in ran.output
    summary = pd.read_csv(out_dir / "summary.tsv", sep="\t")
    assert summary["success"].tolist() == [True]


def test_run_requires_dimensions(tmp_path):
    pixels = tmp_path / "p.tsv"
    pixels.write_text("chr1\t0\t1\t3\n")

    result = CliRunner().invoke(main, ["run", str(pixels), str(pixels)])

    assert result.exit_code != 0
