"""
Spatially coherent differential regions

Detection runs through four stages: RAW (finite scores sorted descending),
THRESHOLDED (binary mask over the aligned-cell grid), LABELED (connected
components by queue-based flood fill) and AGGREGATED (bounding rectangles).
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from ..utils import get_logger
from .significance import SignificanceMatrix

logger = get_logger(__name__)

Coordinate = Tuple[int, int]

REGION_COLUMNS = ["region_id", "i_min", "i_max", "j_min", "j_max", "n_cells"]

_OFFSETS = {
    4: ((-1, 0), (1, 0), (0, -1), (0, 1)),
    8: tuple(
        (di, dj) for di in (-1, 0, 1) for dj in (-1, 0, 1) if (di, dj) != (0, 0)
    ),
}


class Adjacency(IntEnum):
    FOUR = 4
    EIGHT = 8

    @property
    def offsets(self) -> Tuple[Coordinate, ...]:
        return _OFFSETS[int(self)]


class DetectionStage(str, Enum):
    RAW = "raw"
    THRESHOLDED = "thresholded"
    LABELED = "labeled"
    AGGREGATED = "aggregated"


@dataclass(frozen=True)
class Region:
    """Connected component of significant cells"""

    region_id: int
    cells: Tuple[Coordinate, ...]
    i_min: int
    i_max: int
    j_min: int
    j_max: int

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    @property
    def bounding_box(self) -> Tuple[int, int, int, int]:
        return self.i_min, self.i_max, self.j_min, self.j_max

    @classmethod
    def from_cells(cls, region_id: int, cells: List[Coordinate]) -> "Region":
        ordered = tuple(sorted(cells))
        rows = [i for i, _ in ordered]
        cols = [j for _, j in ordered]
        return cls(
            region_id=region_id,
            cells=ordered,
            i_min=min(rows),
            i_max=max(rows),
            j_min=min(cols),
            j_max=max(cols),
        )


@dataclass
class RegionDetection:
    """Outcome of one detection run and the stage it reached"""

    chrom: str
    stage: DetectionStage = DetectionStage.RAW
    n_scored: int = 0
    adaptive_threshold: Optional[float] = None
    fixed_threshold: Optional[float] = None
    effective_threshold: Optional[float] = None
    mask: Set[Coordinate] = field(default_factory=set)
    labels: Dict[Coordinate, int] = field(default_factory=dict)
    regions: List[Region] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        return regions_to_frame(self.regions, self.chrom)


def regions_to_frame(regions: List[Region], chrom: Optional[str] = None) -> pd.DataFrame:
    """Region list as a table of bounding boxes and sizes"""
    frame = pd.DataFrame(
        [
            [r.region_id, r.i_min, r.i_max, r.j_min, r.j_max, r.n_cells]
            for r in regions
        ],
        columns=REGION_COLUMNS,
    ).astype("int64")
    if chrom is not None:
        frame.insert(0, "chrom", chrom)
    return frame


def two_segment_breakpoint(scores: np.ndarray) -> Optional[int]:
    """
    Best split of a sorted curve into two least-squares lines

    For every head size ``k`` (1 <= k < n) the head ``scores[:k]`` and tail
    ``scores[k:]`` each get their own line over their index positions; the
    ``k`` minimizing the summed residual sum of squares is returned.
    Returns None for fewer than three points.
    """
    y = np.asarray(scores, dtype=float)
    n = len(y)
    if n < 3:
        return None

    x = np.arange(n, dtype=float)

    def prefix(values: np.ndarray) -> np.ndarray:
        return np.concatenate([[0.0], np.cumsum(values)])

    sums = {
        "n": prefix(np.ones(n)),
        "x": prefix(x),
        "y": prefix(y),
        "xx": prefix(x * x),
        "xy": prefix(x * y),
        "yy": prefix(y * y),
    }

    def segment_sse(lo: np.ndarray, hi: np.ndarray) -> np.ndarray:
        count = sums["n"][hi] - sums["n"][lo]
        sx = sums["x"][hi] - sums["x"][lo]
        sy = sums["y"][hi] - sums["y"][lo]
        sxx = sums["xx"][hi] - sums["xx"][lo] - sx * sx / count
        sxy = sums["xy"][hi] - sums["xy"][lo] - sx * sy / count
        syy = sums["yy"][hi] - sums["yy"][lo] - sy * sy / count
        with np.errstate(invalid="ignore", divide="ignore"):
            explained = np.where(sxx > 0, sxy * sxy / sxx, 0.0)
        return np.maximum(syy - explained, 0.0)

    k = np.arange(1, n)
    total = segment_sse(np.zeros_like(k), k) + segment_sse(k, np.full_like(k, n))
    return int(k[np.argmin(total)])


class RegionDetector:
    """
    Threshold a significance surface and report connected regions

    A cell is selected when its p-value passes the fixed cutoff and its
    score ``-log10(p)`` also reaches the adaptive two-segment breakpoint.
    Components are canonical: ids follow the lexicographically smallest
    cell of each component, independent of input order.
    """

    def __init__(
        self,
        p_value_cutoff: float = 0.01,
        adjacency=Adjacency.EIGHT,
        use_adjusted: bool = True,
        adaptive: bool = True,
    ):
        self.p_value_cutoff = p_value_cutoff
        self.adjacency = Adjacency(int(adjacency))
        self.use_adjusted = use_adjusted
        self.adaptive = adaptive

    @property
    def p_column(self) -> str:
        return "p_adjusted" if self.use_adjusted else "p_value"

    def detect(
        self,
        significance: SignificanceMatrix,
        cells: Optional[pd.DataFrame] = None,
    ) -> RegionDetection:
        """
        Run RAW -> THRESHOLDED -> LABELED -> AGGREGATED

        Args:
            significance: Scored cells for one chromosome
            cells: Aligned-cell coordinates defining the grid; defaults to
                the coordinates of ``significance``

        Returns:
            RegionDetection with regions ordered by id
        """
        detection = RegionDetection(chrom=significance.chrom)

        # RAW
        table = significance.table
        p_values = table[self.p_column].to_numpy(dtype=float, na_value=np.nan)
        with np.errstate(divide="ignore"):
            scores = -np.log10(p_values)
        finite = np.isfinite(scores)
        sorted_scores = np.sort(scores[finite])[::-1]
        detection.n_scored = int(finite.sum())

        detection.fixed_threshold = float(-np.log10(self.p_value_cutoff))
        detection.effective_threshold = detection.fixed_threshold
        if self.adaptive:
            knee = two_segment_breakpoint(sorted_scores)
            if knee is not None:
                detection.adaptive_threshold = float(sorted_scores[knee - 1])
                detection.effective_threshold = max(
                    detection.adaptive_threshold, detection.fixed_threshold
                )

        # THRESHOLDED
        grid = table if cells is None else cells
        grid_coords = set(
            zip(grid["i"].to_numpy(dtype=np.int64), grid["j"].to_numpy(dtype=np.int64))
        )
        passing = (
            finite
            & (p_values <= self.p_value_cutoff)
            & (scores >= detection.effective_threshold)
        )
        detection.mask = {
            (int(i), int(j))
            for i, j in zip(table["i"].to_numpy()[passing], table["j"].to_numpy()[passing])
            if (i, j) in grid_coords
        }
        detection.stage = DetectionStage.THRESHOLDED

        # LABELED
        detection.labels = label_components(detection.mask, self.adjacency)
        detection.stage = DetectionStage.LABELED

        # AGGREGATED
        members: Dict[int, List[Coordinate]] = {}
        for coord, label in detection.labels.items():
            members.setdefault(label, []).append(coord)
        detection.regions = [
            Region.from_cells(label, members[label]) for label in sorted(members)
        ]
        detection.stage = DetectionStage.AGGREGATED

        logger.info(
            f"{significance.chrom}: {len(detection.mask)} cells pass "
            f"score >= {detection.effective_threshold:.3f}, "
            f"{len(detection.regions)} regions"
        )
        return detection


def label_components(
    mask: Set[Coordinate], adjacency=Adjacency.EIGHT
) -> Dict[Coordinate, int]:
    """
    Connected-component labels for a sparse binary mask

    Breadth-first flood fill with an explicit queue. Seeds are taken in
    lexicographic order, so label 0 holds the smallest coordinate and the
    labelling does not depend on how the mask was built.
    """
    offsets = Adjacency(int(adjacency)).offsets
    labels: Dict[Coordinate, int] = {}
    next_label = 0

    for seed in sorted(mask):
        if seed in labels:
            continue

        labels[seed] = next_label
        queue = deque([seed])
        while queue:
            i, j = queue.popleft()
            for di, dj in offsets:
                neighbour = (i + di, j + dj)
                if neighbour in mask and neighbour not in labels:
                    labels[neighbour] = next_label
                    queue.append(neighbour)

        next_label += 1

    return labels
