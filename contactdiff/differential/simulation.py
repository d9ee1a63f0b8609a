"""
Synthetic contact-map pairs for diagnostics and tests

All randomness comes from the ``numpy.random.Generator`` passed in.
"""

from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from .alignment import ContactMatrix


def simulate_contact_pair(
    rng: np.random.Generator,
    chrom: str = "chr1",
    n_bins: int = 50,
    max_diagonal: int = 5,
    slope: float = 2.0,
    dispersion: float = 0.05,
    base_range: Tuple[int, int] = (10, 60),
    outliers: Optional[Iterable[Tuple[int, int]]] = None,
    outlier_fold: float = 20.0,
) -> Tuple[ContactMatrix, ContactMatrix]:
    """
    Simulate a pair of contact maps with ``B ~ NB(slope * A, dispersion)``

    Every cell on diagonals 1..max_diagonal is filled. Cells listed in
    ``outliers`` get ``B = outlier_fold * A`` instead.

    Args:
        rng: Random generator
        chrom: Chromosome name
        n_bins: Matrix dimension
        max_diagonal: Largest filled diagonal offset
        slope: Expected B/A ratio
        dispersion: NB2 dispersion of B around ``slope * A``
        base_range: Inclusive range of uniformly drawn A counts
        outliers: (i, j) cells with injected gross deviations
        outlier_fold: B/A ratio at outlier cells

    Returns:
        (matrix_a, matrix_b)
    """
    rows, cols = [], []
    for diagonal in range(1, max_diagonal + 1):
        i = np.arange(0, n_bins - diagonal)
        rows.append(i)
        cols.append(i + diagonal)
    rows = np.concatenate(rows)
    cols = np.concatenate(cols)

    value_a = rng.integers(base_range[0], base_range[1] + 1, size=len(rows))
    mu = slope * value_a
    n = 1.0 / dispersion
    value_b = rng.negative_binomial(n, n / (n + mu))

    pixels = pd.DataFrame({"i": rows, "j": cols, "count_a": value_a, "count_b": value_b})
    if outliers is not None:
        for i, j in outliers:
            hit = (pixels["i"] == i) & (pixels["j"] == j)
            pixels.loc[hit, "count_b"] = np.round(
                outlier_fold * pixels.loc[hit, "count_a"]
            ).astype("int64")

    matrix_a = ContactMatrix(
        chrom=chrom,
        dimension=n_bins,
        pixels=pixels[["i", "j", "count_a"]].rename(columns={"count_a": "count"}),
    )
    matrix_b = ContactMatrix(
        chrom=chrom,
        dimension=n_bins,
        pixels=pixels[["i", "j", "count_b"]].rename(columns={"count_b": "count"}),
    )
    return matrix_a, matrix_b
