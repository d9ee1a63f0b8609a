"""
Shared fixtures for contactdiff tests
"""

import numpy as np
import pytest

from contactdiff.config import Config
from contactdiff.differential import align_matrices, simulate_contact_pair

# Three consecutive cells on diagonal 2, one 8-connected group
OUTLIER_CELLS = [(20, 22), (21, 23), (22, 24)]


@pytest.fixture
def outlier_cells():
    return list(OUTLIER_CELLS)


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def simulated_pair(rng):
    """50-bin pair, diagonals 1-5 filled, B ~ NB(2A) with three outliers"""
    return simulate_contact_pair(
        rng, n_bins=50, max_diagonal=5, slope=2.0, outliers=OUTLIER_CELLS
    )


@pytest.fixture
def aligned_cells(simulated_pair):
    return align_matrices(*simulated_pair)


@pytest.fixture
def single_pool_config():
    """Sequential run where diagonals 1-5 of a 50-bin map form one pool"""
    return Config(
        worker_count=1,
        pooling={
            "max_diagonal_fraction": 0.1,
            "pool_min_samples": 30,
            "pool_target_samples": 100000,
            "max_dissimilarity": 1.0,
        },
    )
