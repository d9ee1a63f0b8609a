"""
Grouping of diagonals into pools with similar count distributions
"""

import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd
from scipy.stats import ks_2samp

from ..exceptions import PoolingDegenerate
from ..utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DiagonalPool:
    """Contiguous, inclusive range of diagonal offsets modeled jointly"""

    pool_id: int
    start: int
    end: int
    n_samples: int

    @property
    def diagonals(self) -> range:
        return range(self.start, self.end + 1)

    def __contains__(self, diagonal: int) -> bool:
        return self.start <= diagonal <= self.end


@dataclass(frozen=True)
class PoolingResult:
    """Ordered pools partitioning [1, max_diagonal]"""

    pools: Tuple[DiagonalPool, ...]
    max_diagonal: int

    def __len__(self) -> int:
        return len(self.pools)

    def __iter__(self):
        return iter(self.pools)

    def assign(self, cells: pd.DataFrame) -> pd.Series:
        """
        Pool id for each aligned cell

        Cells on the principal diagonal or beyond max_diagonal get <NA>.
        """
        ends = np.array([pool.end for pool in self.pools], dtype=np.int64)
        diagonals = cells["diagonal"].to_numpy(dtype=np.int64)
        positions = np.searchsorted(ends, diagonals, side="left")

        in_range = (diagonals >= 1) & (diagonals <= self.max_diagonal)
        pool_ids = np.array([pool.pool_id for pool in self.pools], dtype=np.int64)
        assigned = pd.Series(
            pool_ids[np.minimum(positions, len(ends) - 1)],
            index=cells.index,
            name="pool_id",
            dtype="Int64",
        )
        return assigned.mask(~in_range)

    def cells_for(self, cells: pd.DataFrame, pool: DiagonalPool) -> pd.DataFrame:
        mask = (cells["diagonal"] >= pool.start) & (cells["diagonal"] <= pool.end)
        return cells[mask]


class DiagonalPooler:
    """
    Scan diagonals outward from the principal diagonal and pool neighbours

    A pool is closed before the next diagonal when it has reached
    ``pool_target_samples``, or when it already holds ``pool_min_samples``
    and the next diagonal's value distribution differs from the pool's by
    more than ``max_dissimilarity`` (two-sample Kolmogorov-Smirnov statistic).
    """

    def __init__(
        self,
        max_diagonal_fraction: float = 0.2,
        pool_min_samples: int = 30,
        pool_target_samples: int = 2000,
        max_dissimilarity: float = 0.2,
        merge_small_tail: bool = True,
    ):
        self.max_diagonal_fraction = max_diagonal_fraction
        self.pool_min_samples = pool_min_samples
        self.pool_target_samples = pool_target_samples
        self.max_dissimilarity = max_dissimilarity
        self.merge_small_tail = merge_small_tail

    def max_diagonal(self, dimension: int) -> int:
        return int(math.floor(self.max_diagonal_fraction * dimension))

    def pool(self, cells: pd.DataFrame, dimension: int) -> PoolingResult:
        """
        Partition [1, max_diagonal] into contiguous pools

        Args:
            cells: Aligned cells for one chromosome
            dimension: Declared matrix dimension N

        Returns:
            PoolingResult covering every diagonal exactly once

        Raises:
            PoolingDegenerate: if max_diagonal < 1
        """
        max_diagonal = self.max_diagonal(dimension)
        if max_diagonal < 1:
            raise PoolingDegenerate(
                f"max_diagonal is {max_diagonal} for dimension {dimension} "
                f"and fraction {self.max_diagonal_fraction}"
            )

        by_diagonal = {
            int(diagonal): group[["value_a", "value_b"]].to_numpy(dtype=float)
            for diagonal, group in cells.groupby("diagonal")
            if 1 <= diagonal <= max_diagonal
        }
        empty = np.empty((0, 2), dtype=float)

        ranges: List[List[int]] = []
        current_start = 1
        current_values: List[np.ndarray] = []
        current_count = 0

        for diagonal in range(1, max_diagonal + 1):
            values = by_diagonal.get(diagonal, empty)

            if diagonal > current_start and self._should_close(
                current_count, current_values, values
            ):
                ranges.append([current_start, diagonal - 1, current_count])
                current_start = diagonal
                current_values = []
                current_count = 0

            if len(values):
                current_values.append(values)
                current_count += len(values)

        ranges.append([current_start, max_diagonal, current_count])

        if (
            self.merge_small_tail
            and len(ranges) > 1
            and ranges[-1][2] < self.pool_min_samples
        ):
            tail = ranges.pop()
            ranges[-1][1] = tail[1]
            ranges[-1][2] += tail[2]

        pools = tuple(
            DiagonalPool(pool_id=k, start=start, end=end, n_samples=count)
            for k, (start, end, count) in enumerate(ranges)
        )

        logger.debug(
            f"Pooled diagonals 1-{max_diagonal} into {len(pools)} pools "
            f"(sizes: {[pool.n_samples for pool in pools]})"
        )
        return PoolingResult(pools=pools, max_diagonal=max_diagonal)

    def _should_close(
        self,
        current_count: int,
        current_values: List[np.ndarray],
        next_values: np.ndarray,
    ) -> bool:
        if current_count >= self.pool_target_samples:
            return True
        if current_count < self.pool_min_samples or len(next_values) == 0:
            return False
        return self._dissimilarity(np.vstack(current_values), next_values) > (
            self.max_dissimilarity
        )

    @staticmethod
    def _dissimilarity(pool_values: np.ndarray, next_values: np.ndarray) -> float:
        """Largest KS statistic over the A and B value columns"""
        return max(
            ks_2samp(pool_values[:, column], next_values[:, column]).statistic
            for column in range(pool_values.shape[1])
        )
