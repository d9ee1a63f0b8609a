"""
Per-cell significance against the fitted dependency models
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

import numpy as np
import pandas as pd
from scipy.stats import chi2
from statsmodels.stats.multitest import multipletests

from ..exceptions import InvalidProbability
from ..utils import get_logger
from .fitting import ModelKey
from .models import CountDependencyModel, DependencyModel, Direction
from .pooling import PoolingResult

logger = get_logger(__name__)

MIN_PROBABILITY = np.finfo(float).tiny

PROBABILITY_COLUMNS = [
    "expected_b",
    "expected_a",
    "p_b_given_a",
    "p_a_given_b",
    "p_value",
    "p_adjusted",
    "deviation",
]
OUTPUT_COLUMNS = ["i", "j", "p_value", "p_adjusted", "deviation"]

# Observed response and expectation columns for each direction
_DIRECTION_COLUMNS = {
    Direction.B_GIVEN_A: ("expected_b", "p_b_given_a", 1.0),
    Direction.A_GIVEN_B: ("expected_a", "p_a_given_b", -1.0),
}


class CombineStrategy(str, Enum):
    """How the B|A and A|B tail probabilities merge into one p-value"""

    MIN = "min"
    FISHER = "fisher"
    MEAN = "mean"


class CellStatus(str, Enum):
    TESTED = "tested"
    UNMODELED = "unmodeled"


@dataclass(frozen=True, eq=False)
class SignificanceMatrix:
    """
    Scored aligned cells for one chromosome

    Cells without a fitted model carry ``<NA>`` probabilities and
    ``status == "unmodeled"``.
    """

    chrom: str
    table: pd.DataFrame

    def __len__(self) -> int:
        return len(self.table)

    @property
    def tested(self) -> pd.DataFrame:
        return self.table[self.table["status"] == CellStatus.TESTED.value]

    def to_records(self) -> pd.DataFrame:
        """Coordinate-value records for reporting"""
        records = self.table[OUTPUT_COLUMNS + ["status"]].copy()
        records.insert(0, "chrom", self.chrom)
        return records


def clamp_probabilities(p_values: np.ndarray, label: str = "p-value") -> np.ndarray:
    """
    Clamp numerically invalid probabilities into [tiny, 1]

    Underflow to zero, negative values, values above one and NaN are
    clamped and reported as a warning.
    """
    p_values = np.asarray(p_values, dtype=float)
    invalid = ~np.isfinite(p_values) | (p_values < MIN_PROBABILITY) | (p_values > 1)

    if invalid.any():
        logger.warning(
            f"{InvalidProbability.__name__}: {int(invalid.sum())} {label}s "
            f"outside (0, 1] clamped to range"
        )
        p_values = np.where(np.isnan(p_values), 1.0, p_values)
        p_values = np.clip(p_values, MIN_PROBABILITY, 1.0)

    return p_values


def benjamini_hochberg(p_values: np.ndarray) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values

    ``p[rank] * n / rank`` in ascending order, made monotone by a running
    minimum from the largest rank down, capped at 1.
    """
    p_values = np.asarray(p_values, dtype=float)
    if len(p_values) == 0:
        return p_values.copy()
    return multipletests(p_values, method="fdr_bh")[1]


def combine_directional(
    p_b_given_a: np.ndarray,
    p_a_given_b: np.ndarray,
    strategy: CombineStrategy = CombineStrategy.MIN,
) -> np.ndarray:
    """
    Merge the two directional p-values of each cell

    NaN marks a direction without a fitted model; the other direction is
    used alone. Cells with neither stay NaN.
    """
    strategy = CombineStrategy(strategy)
    stacked = np.column_stack([p_b_given_a, p_a_given_b]).astype(float)
    available = ~np.isnan(stacked)
    n_available = available.sum(axis=1)

    with np.errstate(invalid="ignore", divide="ignore"):
        if strategy is CombineStrategy.MIN:
            combined = np.nanmin(np.where(available, stacked, np.inf), axis=1)
        elif strategy is CombineStrategy.MEAN:
            combined = np.nansum(stacked, axis=1) / np.maximum(n_available, 1)
        else:
            combined = np.nanmin(np.where(available, stacked, np.inf), axis=1)
            both = n_available == 2
            # Fisher: -2 * sum(log p) ~ chi2 with 2k degrees of freedom
            combined[both] = chi2.sf(-2 * np.log(stacked[both]).sum(axis=1), df=4)

    return np.where(n_available > 0, combined, np.nan)


class SignificanceEngine:
    """Score aligned cells against their pool's dependency models"""

    def __init__(self, combine="min"):
        self.combine = CombineStrategy(combine)

    def score(
        self,
        chrom: str,
        cells: pd.DataFrame,
        pooling: PoolingResult,
        models: Dict[ModelKey, DependencyModel],
    ) -> SignificanceMatrix:
        """
        Compute raw and BH-adjusted p-values with signed deviations

        Args:
            chrom: Chromosome name
            cells: Aligned cells
            pooling: Pools the models were fitted on
            models: Mapping of (pool_id, direction) to dependency models

        Returns:
            SignificanceMatrix over every aligned cell
        """
        table = cells.copy()
        table["pool_id"] = pooling.assign(cells)
        n_cells = len(table)

        columns = {name: np.full(n_cells, np.nan) for name in PROBABILITY_COLUMNS}
        residual_sum = np.zeros(n_cells)
        residual_count = np.zeros(n_cells)

        for (pool_id, direction), model in models.items():
            if not model.is_fitted:
                continue

            in_pool = (table["pool_id"] == pool_id).fillna(False)
            rows = np.flatnonzero(in_pool.to_numpy(dtype=bool))
            if len(rows) == 0:
                continue

            x, y = direction.split(table.iloc[rows])
            scored = CountDependencyModel.score(model, x, y)
            expected_col, p_col, sign = _DIRECTION_COLUMNS[direction]

            columns[expected_col][rows] = scored.expected
            columns[p_col][rows] = clamp_probabilities(
                scored.p_value, f"{direction.value} p-value"
            )
            residual_sum[rows] += sign * scored.residual
            residual_count[rows] += 1

        raw = combine_directional(
            columns["p_b_given_a"], columns["p_a_given_b"], self.combine
        )
        tested = ~np.isnan(raw)
        raw[tested] = clamp_probabilities(raw[tested], "combined p-value")

        adjusted = np.full(n_cells, np.nan)
        adjusted[tested] = benjamini_hochberg(raw[tested])

        columns["p_value"] = raw
        columns["p_adjusted"] = adjusted
        with np.errstate(invalid="ignore", divide="ignore"):
            columns["deviation"] = np.where(
                residual_count > 0, residual_sum / residual_count, np.nan
            )

        # NaN becomes <NA> in the nullable float columns
        for name in PROBABILITY_COLUMNS:
            table[name] = pd.array(columns[name], dtype="Float64")

        table["status"] = np.where(
            tested, CellStatus.TESTED.value, CellStatus.UNMODELED.value
        )

        logger.info(
            f"{chrom}: scored {int(tested.sum())}/{n_cells} cells, "
            f"{int((adjusted[tested] <= 0.05).sum())} with adjusted p <= 0.05"
        )
        return SignificanceMatrix(chrom=chrom, table=table)
