"""
End-to-end tests for the per-chromosome pipeline and the run orchestrator
"""

import pandas as pd
import pytest

from contactdiff import ContactDiffAnalysis
from contactdiff.config import Config
from contactdiff.differential import (ContactMatrix, DifferentialAnalyzer,
                                      Direction, skip_report, summarize)
from contactdiff.exceptions import ConfigurationError
from contactdiff.utils import save_table


def _config(base, **regions):
    return Config(
        worker_count=base.worker_count,
        pooling=base.pooling,
        regions={"adaptive_threshold": False, **regions},
    )


def test_outliers_form_one_region_with_eight_adjacency(
    simulated_pair, single_pool_config, outlier_cells
):
    analyzer = DifferentialAnalyzer(_config(single_pool_config, adjacency_mode=8))

    result = analyzer.analyze_chromosome(*simulated_pair)

    assert result.success
    assert len(result.pooling) == 1
    slope = result.models[(0, Direction.B_GIVEN_A)].slope
    assert slope == pytest.approx(2.0, rel=0.2)

    table = result.significance.table.set_index(["i", "j"])
    for cell in outlier_cells:
        assert table.loc[cell, "p_value"] < 0.01

    assert len(result.regions) == 1
    assert set(result.regions[0].cells) == set(outlier_cells)
    assert result.regions[0].bounding_box == (20, 22, 22, 24)


def test_outliers_are_singletons_with_four_adjacency(
    simulated_pair, single_pool_config, outlier_cells
):
    analyzer = DifferentialAnalyzer(_config(single_pool_config, adjacency_mode=4))

    result = analyzer.analyze_chromosome(*simulated_pair)

    assert sorted(r.n_cells for r in result.regions) == [1, 1, 1]
    assert {r.cells[0] for r in result.regions} == set(outlier_cells)


def test_adaptive_regions_only_contain_outliers(
    simulated_pair, single_pool_config, outlier_cells
):
    analyzer = DifferentialAnalyzer(single_pool_config)

    result = analyzer.analyze_chromosome(*simulated_pair)

    assert result.detection.effective_threshold >= result.detection.fixed_threshold
    assert result.detection.mask
    assert result.detection.mask <= set(outlier_cells)


def test_run_skips_missing_and_mismatched_chromosomes(simulated_pair, single_pool_config):
    a, b = simulated_pair
    other = ContactMatrix(chrom="chr2", dimension=50, pixels=a.pixels)
    resized = ContactMatrix(chrom="chr3", dimension=60, pixels=b.pixels)
    same_size = ContactMatrix(chrom="chr3", dimension=50, pixels=b.pixels)

    analyzer = DifferentialAnalyzer(single_pool_config)
    results = analyzer.run(
        {"chr1": a, "chr2": other, "chr3": same_size},
        {"chr1": b, "chr3": resized},
    )

    assert list(results) == ["chr1", "chr2", "chr3"]
    assert results["chr1"].success
    assert results["chr2"].error_type == "MissingChromosome"
    assert results["chr3"].error_type == "ShapeMismatch"

    report = skip_report(results)
    chromosome_rows = report[report["scope"] == "chromosome"]
    assert chromosome_rows["chrom"].tolist() == ["chr2", "chr3"]
    assert chromosome_rows["pool_id"].isna().all()

    summary = summarize(results)
    assert summary["success"].tolist() == [True, False, False]


def test_degenerate_pooling_fails_only_that_chromosome(single_pool_config):
    tiny = pd.DataFrame({"i": [0, 0, 1], "j": [1, 2, 2], "count": [3, 4, 5]})
    a = ContactMatrix(chrom="chrM", dimension=3, pixels=tiny)
    b = ContactMatrix(chrom="chrM", dimension=3, pixels=tiny)

    result = DifferentialAnalyzer(single_pool_config).analyze_chromosome(a, b)

    assert not result.success
    assert result.error_type == "PoolingDegenerate"


def test_unmodeled_pools_reported(simulated_pair):
    config = Config(
        worker_count=1,
        pooling={
            "max_diagonal_fraction": 0.1,
            "pool_min_samples": 1000,
            "pool_target_samples": 100000,
            "max_dissimilarity": 1.0,
        },
    )

    results = DifferentialAnalyzer(config).run(
        {"chr1": simulated_pair[0]}, {"chr1": simulated_pair[1]}
    )
    report = skip_report(results)

    assert results["chr1"].success
    assert len(results["chr1"].unmodeled) == 2
    assert report["scope"].tolist() == ["pool", "pool"]
    assert set(report["direction"]) == {"A|B", "B|A"}
    assert (report["error_type"] == "InsufficientSamples").all()
    assert results["chr1"].regions == []


def test_invalid_configuration_rejected():
    with pytest.raises(ConfigurationError):
        DifferentialAnalyzer(Config(regions={"adjacency_mode": 6}))


def test_analysis_writes_result_tables(tmp_path, simulated_pair, single_pool_config):
    a, b = simulated_pair
    for name, matrix in (("a", a), ("b", b)):
        pixels = matrix.pixels.copy()
        pixels.insert(0, "chrom", "1")
        save_table(pixels, tmp_path / f"pixels_{name}.tsv")
    save_table(
        pd.DataFrame({"chrom": ["chr1"], "n_bins": [50]}), tmp_path / "dims.tsv"
    )

    analysis = ContactDiffAnalysis(single_pool_config, log_level="WARNING")
    results = analysis.run_files(
        tmp_path / "pixels_a.tsv", tmp_path / "pixels_b.tsv", tmp_path / "dims.tsv"
    )
    output_files = analysis.save_results(tmp_path / "out")

    assert results["chr1"].success
    assert set(output_files) == {"significance", "regions", "skipped", "summary"}
    assert all(path.exists() for path in output_files.values())

    significance = pd.read_csv(output_files["significance"], sep="\t")
    assert len(significance) == len(results["chr1"].cells)
    assert (significance["chrom"] == "chr1").all()


def test_save_results_requires_output_dir(single_pool_config):
    analysis = ContactDiffAnalysis(single_pool_config, log_level="WARNING")

    with pytest.raises(ValueError):
        analysis.save_results()


def test_rejected_chromosome_reported_while_others_run(
    simulated_pair, single_pool_config
):
    a, b = simulated_pair

    results = DifferentialAnalyzer(single_pool_config).run(
        {"chr1": a}, {"chr1": b}, invalid={"chr2": "dataset A: chr2: bad pixels"}
    )

    assert list(results) == ["chr1", "chr2"]
    assert results["chr1"].success
    assert not results["chr2"].success
    assert results["chr2"].error_type == "InvalidContactMatrix"

    report = skip_report(results)
    assert report["chrom"].tolist() == ["chr2"]
    assert report["error_type"].tolist() == ["InvalidContactMatrix"]
    assert report["reason"].tolist() == ["dataset A: chr2: bad pixels"]


def test_malformed_chromosome_does_not_abort_file_run(
    tmp_path, simulated_pair, single_pool_config
):
    a, b = simulated_pair
    for name, matrix in (("a", a), ("b", b)):
        pixels = matrix.pixels.copy()
        pixels.insert(0, "chrom", "chr1")
        broken = pd.DataFrame({"chrom": ["chr2"], "i": [0], "j": [99], "count": [1]})
        save_table(pd.concat([pixels, broken]), tmp_path / f"pixels_{name}.tsv")
    save_table(
        pd.DataFrame({"chrom": ["chr1", "chr2"], "n_bins": [50, 10]}),
        tmp_path / "dims.tsv",
    )

    analysis = ContactDiffAnalysis(single_pool_config, log_level="WARNING")
    results = analysis.run_files(
        tmp_path / "pixels_a.tsv", tmp_path / "pixels_b.tsv", tmp_path / "dims.tsv"
    )

    assert results["chr1"].success
    assert results["chr2"].error_type == "InvalidContactMatrix"
    assert "dataset A" in results["chr2"].error_message
    assert "dataset B" in results["chr2"].error_message


def test_unexpected_error_fails_only_that_chromosome(
    simulated_pair, single_pool_config, monkeypatch
):
    a, b = simulated_pair
    analyzer = DifferentialAnalyzer(single_pool_config)
    score = analyzer.engine.score

    def fails_on_chr2(chrom, *args):
        if chrom == "chr2":
            raise RuntimeError("solver crashed")
        return score(chrom, *args)

    monkeypatch.setattr(analyzer.engine, "score", fails_on_chr2)

    results = analyzer.run(
        {"chr1": a, "chr2": ContactMatrix(chrom="chr2", dimension=50, pixels=a.pixels)},
        {"chr1": b, "chr2": ContactMatrix(chrom="chr2", dimension=50, pixels=b.pixels)},
    )

    assert results["chr1"].success
    assert not results["chr2"].success
    assert results["chr2"].error_type == "RuntimeError"
    assert results["chr2"].error_message == "solver crashed"
