"""
Tests for per-pool model fitting
"""

import numpy as np
import pandas as pd
import pytest

from contactdiff.differential import (DependencyModelFitter, DiagonalPooler,
                                      Direction, ModelStatus)
from contactdiff.differential.fitting import _fit_task
from contactdiff.differential.models import RobustNegativeBinomial


def _two_pool_cells(rng):
    """Diagonal 1 has 200 cells, diagonal 2 only 5"""
    rows = []
    for diagonal, count in ((1, 200), (2, 5)):
        i = np.arange(count)
        a = rng.integers(10, 61, size=count)
        b = rng.negative_binomial(20, 20 / (20 + 2 * a))
        rows.append(
            pd.DataFrame(
                {"i": i, "j": i + diagonal, "diagonal": diagonal, "value_a": a, "value_b": b}
            )
        )
    return pd.concat(rows, ignore_index=True).astype("int64")


def test_every_pool_direction_gets_a_model(aligned_cells):
    pooling = DiagonalPooler(
        max_diagonal_fraction=0.1, pool_target_samples=100000, max_dissimilarity=1.0
    ).pool(aligned_cells, dimension=50)
    fitter = DependencyModelFitter(worker_count=1)

    models = fitter.fit_pools(aligned_cells, pooling)

    assert set(models) == {
        (pool.pool_id, direction) for pool in pooling for direction in Direction
    }
    assert all(model.is_fitted for model in models.values())
    assert models[(0, Direction.B_GIVEN_A)].slope == pytest.approx(2.0, rel=0.2)


def test_small_pool_marked_unmodeled(rng):
    cells = _two_pool_cells(rng)
    pooling = DiagonalPooler(
        max_diagonal_fraction=0.02,
        pool_min_samples=30,
        pool_target_samples=100,
        merge_small_tail=False,
    ).pool(cells, dimension=110)
    fitter = DependencyModelFitter(pool_min_samples=30, worker_count=1)

    models = fitter.fit_pools(cells, pooling)

    for direction in Direction:
        assert models[(0, direction)].is_fitted
        unmodeled = models[(1, direction)]
        assert unmodeled.status is ModelStatus.UNMODELED
        assert unmodeled.error_type == "InsufficientSamples"
        assert unmodeled.n_samples == 5
        assert unmodeled.slope is None


def test_parallel_fit_matches_sequential(rng):
    cells = _two_pool_cells(rng)
    pooling = DiagonalPooler(
        max_diagonal_fraction=0.02, pool_target_samples=100, merge_small_tail=False
    ).pool(cells, dimension=110)

    sequential = DependencyModelFitter(worker_count=1).fit_pools(cells, pooling)
    parallel = DependencyModelFitter(worker_count=2).fit_pools(cells, pooling)

    assert set(sequential) == set(parallel)
    for key, model in sequential.items():
        other = parallel[key]
        assert model.status is other.status
        if model.is_fitted:
            assert model.slope == pytest.approx(other.slope)
            assert model.dispersion == pytest.approx(other.dispersion)


def test_nonconvergent_fit_becomes_unmodeled(rng):
    x = rng.integers(10, 61, size=300).astype(float)
    y = rng.negative_binomial(20, 20 / (20 + 2 * x)).astype(float)

    model = _fit_task(
        RobustNegativeBinomial(max_iter=1), 4, Direction.B_GIVEN_A, x, y
    )

    assert model.status is ModelStatus.UNMODELED
    assert model.error_type == "NumericalNonConvergence"
    assert model.reason
    assert not model.retried
    assert model.n_samples == 300
    assert model.pool_id == 4


def test_nonconvergence_reported_per_pool_direction(aligned_cells):
    pooling = DiagonalPooler(
        max_diagonal_fraction=0.1, pool_target_samples=100000, max_dissimilarity=1.0
    ).pool(aligned_cells, dimension=50)

    models = DependencyModelFitter(worker_count=1, max_iter=1).fit_pools(
        aligned_cells, pooling
    )

    assert len(models) == 2 * len(pooling)
    assert all(m.error_type == "NumericalNonConvergence" for m in models.values())
