"""
Contact matrices and cross-dataset cell alignment
"""

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd

from ..exceptions import InvalidContactMatrix, ShapeMismatch
from ..utils import get_logger

logger = get_logger(__name__)

PIXEL_SCHEMA: Dict[str, str] = {"i": "int64", "j": "int64", "count": "int64"}
ALIGNED_SCHEMA: Dict[str, str] = {
    "i": "int64",
    "j": "int64",
    "diagonal": "int64",
    "value_a": "int64",
    "value_b": "int64",
}


@dataclass(frozen=True, eq=False)
class ContactMatrix:
    """
    Sparse upper-triangle contact counts for one chromosome

    Attributes:
        chrom: Chromosome name
        dimension: Number of genomic bins (N)
        pixels: DataFrame with columns i, j, count (i <= j, no duplicates)
    """

    chrom: str
    dimension: int
    pixels: pd.DataFrame

    def __post_init__(self):
        missing = set(PIXEL_SCHEMA) - set(self.pixels.columns)
        if missing:
            raise InvalidContactMatrix(
                f"{self.chrom}: missing pixel columns {sorted(missing)}"
            )

        pixels = self.pixels[list(PIXEL_SCHEMA)].astype(PIXEL_SCHEMA)
        pixels = pixels.sort_values(["i", "j"]).reset_index(drop=True)
        self._validate(pixels)
        object.__setattr__(self, "pixels", pixels)
        object.__setattr__(self, "dimension", int(self.dimension))

    def _validate(self, pixels: pd.DataFrame) -> None:
        if self.dimension < 0:
            raise InvalidContactMatrix(f"{self.chrom}: negative dimension")
        if (pixels["i"] < 0).any():
            raise InvalidContactMatrix(f"{self.chrom}: negative bin index")
        if (pixels["i"] > pixels["j"]).any():
            raise InvalidContactMatrix(
                f"{self.chrom}: pixels must be upper-triangle (i <= j)"
            )
        if (pixels["j"] >= self.dimension).any():
            raise InvalidContactMatrix(
                f"{self.chrom}: bin index beyond declared dimension {self.dimension}"
            )
        if (pixels["count"] < 0).any():
            raise InvalidContactMatrix(f"{self.chrom}: negative count")
        if pixels.duplicated(["i", "j"]).any():
            raise InvalidContactMatrix(f"{self.chrom}: duplicate (i, j) pixels")

    @classmethod
    def from_dense(cls, chrom: str, matrix: np.ndarray) -> "ContactMatrix":
        """Build from a square dense array using its upper triangle"""
        matrix = np.asarray(matrix)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise InvalidContactMatrix(f"{chrom}: dense matrix must be square")

        rows, cols = np.triu_indices(matrix.shape[0])
        counts = matrix[rows, cols]
        keep = counts != 0
        pixels = pd.DataFrame(
            {"i": rows[keep], "j": cols[keep], "count": counts[keep]}
        )
        return cls(chrom=chrom, dimension=matrix.shape[0], pixels=pixels)

    def nonzero(self) -> pd.DataFrame:
        return self.pixels[self.pixels["count"] > 0]

    @property
    def nnz(self) -> int:
        return int((self.pixels["count"] > 0).sum())


def align_matrices(matrix_a: ContactMatrix, matrix_b: ContactMatrix) -> pd.DataFrame:
    """
    Pair cells that are nonzero in both matrices

    Args:
        matrix_a: First dataset
        matrix_b: Second dataset, same chromosome and bin indexing

    Returns:
        Aligned cells with columns i, j, diagonal, value_a, value_b

    Raises:
        ShapeMismatch: if the chromosomes or declared dimensions differ
    """
    if matrix_a.chrom != matrix_b.chrom:
        raise ShapeMismatch(
            f"Cannot align different chromosomes: {matrix_a.chrom} vs {matrix_b.chrom}"
        )
    if matrix_a.dimension != matrix_b.dimension:
        raise ShapeMismatch(
            f"{matrix_a.chrom}: declared dimensions differ "
            f"({matrix_a.dimension} vs {matrix_b.dimension})"
        )

    merged = pd.merge(
        matrix_a.nonzero().rename(columns={"count": "value_a"}),
        matrix_b.nonzero().rename(columns={"count": "value_b"}),
        on=["i", "j"],
        how="inner",
    )
    merged["diagonal"] = merged["j"] - merged["i"]

    cells = (
        merged[list(ALIGNED_SCHEMA)]
        .astype(ALIGNED_SCHEMA)
        .sort_values(["i", "j"])
        .reset_index(drop=True)
    )

    logger.debug(
        f"{matrix_a.chrom}: aligned {len(cells)} cells "
        f"(nnz A={matrix_a.nnz}, nnz B={matrix_b.nnz})"
    )
    return cells
