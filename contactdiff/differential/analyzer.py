"""
Main differential contact-map analysis coordinator
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from ..config import Config, validate_config
from ..exceptions import (FATAL_PER_CHROMOSOME, ConfigurationError,
                          InvalidContactMatrix)
from ..utils import get_logger, resolve_worker_count, run_parallel
from .alignment import ContactMatrix, align_matrices
from .fitting import DependencyModelFitter, ModelKey
from .models import DependencyModel
from .pooling import DiagonalPooler, PoolingResult
from .regions import Region, RegionDetection, RegionDetector
from .significance import SignificanceEngine, SignificanceMatrix

logger = get_logger(__name__)

SKIP_COLUMNS = ["chrom", "scope", "pool_id", "direction", "error_type", "reason"]


@dataclass
class ChromosomeResult:
    """Result of the differential pipeline for a single chromosome"""

    chrom: str
    success: bool

    # Stage outputs
    cells: Optional[pd.DataFrame] = None
    pooling: Optional[PoolingResult] = None
    models: Dict[ModelKey, DependencyModel] = field(default_factory=dict)
    significance: Optional[SignificanceMatrix] = None
    detection: Optional[RegionDetection] = None

    # Execution info
    execution_time: Optional[float] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def regions(self) -> List[Region]:
        return self.detection.regions if self.detection is not None else []

    @property
    def unmodeled(self) -> List[DependencyModel]:
        return [model for model in self.models.values() if not model.is_fitted]


def _failed(chrom: str, error: Exception, start_time: float) -> ChromosomeResult:
    return ChromosomeResult(
        chrom=chrom,
        success=False,
        error_type=type(error).__name__,
        error_message=str(error),
        execution_time=time.time() - start_time,
    )


def _analyze_in_worker(
    config: Config, matrix_a: ContactMatrix, matrix_b: ContactMatrix
) -> ChromosomeResult:
    """Chromosome-level task; fitting inside runs sequentially"""
    analyzer = DifferentialAnalyzer(config, fit_worker_count=1)
    return analyzer.analyze_chromosome(matrix_a, matrix_b)


class DifferentialAnalyzer:
    """Run align -> pool -> fit -> score -> detect for each chromosome"""

    def __init__(self, config: Config, fit_worker_count: Optional[int] = None):
        issues = validate_config(config)
        if issues:
            raise ConfigurationError("; ".join(issues))

        self.config = config
        self.worker_count = resolve_worker_count(config.worker_count)

        pooling = config.pooling
        modeling = config.modeling
        regions = config.regions

        self.pooler = DiagonalPooler(
            max_diagonal_fraction=pooling["max_diagonal_fraction"],
            pool_min_samples=pooling["pool_min_samples"],
            pool_target_samples=pooling["pool_target_samples"],
            max_dissimilarity=pooling["max_dissimilarity"],
            merge_small_tail=pooling["merge_small_tail"],
        )
        self.fitter = DependencyModelFitter(
            model_kind=modeling["model_kind"],
            pool_min_samples=pooling["pool_min_samples"],
            worker_count=(
                self.worker_count if fit_worker_count is None else fit_worker_count
            ),
            outlier_weight_cutoff=modeling["outlier_weight_cutoff"],
            fit_tolerance=modeling["fit_tolerance"],
            max_iter=modeling["max_iter"],
            retry_tolerance_factor=modeling["retry_tolerance_factor"],
        )
        self.engine = SignificanceEngine(combine=config.significance["combine"])
        self.detector = RegionDetector(
            p_value_cutoff=regions["p_value_cutoff"],
            adjacency=regions["adjacency_mode"],
            use_adjusted=regions["use_adjusted"],
            adaptive=regions["adaptive_threshold"],
        )

    def analyze_chromosome(
        self, matrix_a: ContactMatrix, matrix_b: ContactMatrix
    ) -> ChromosomeResult:
        """
        Run the full pipeline for one chromosome

        Chromosome-fatal errors (shape mismatch, degenerate pooling) and
        unexpected errors are returned as a failed result instead of raised,
        so one chromosome never aborts the others.
        """
        chrom = matrix_a.chrom
        start_time = time.time()
        logger.info(f"Processing chromosome: {chrom}")

        try:
            cells = align_matrices(matrix_a, matrix_b)
            pooling = self.pooler.pool(cells, matrix_a.dimension)
            models = self.fitter.fit_pools(cells, pooling)
            significance = self.engine.score(chrom, cells, pooling, models)
            detection = self.detector.detect(significance, cells)

        except FATAL_PER_CHROMOSOME as e:
            logger.error(f"{chrom} skipped ({type(e).__name__}): {e}")
            return _failed(chrom, e, start_time)

        except Exception as e:
            logger.exception(f"Unexpected error analyzing {chrom}: {e}")
            return _failed(chrom, e, start_time)

        result = ChromosomeResult(
            chrom=chrom,
            success=True,
            cells=cells,
            pooling=pooling,
            models=models,
            significance=significance,
            detection=detection,
            execution_time=time.time() - start_time,
        )
        logger.info(
            f"{chrom}: {len(cells)} aligned cells, {len(pooling)} pools, "
            f"{len(result.unmodeled)} unmodeled pool directions, "
            f"{len(result.regions)} regions in {result.execution_time:.2f}s"
        )
        return result

    def run(
        self,
        matrices_a: Dict[str, ContactMatrix],
        matrices_b: Dict[str, ContactMatrix],
        invalid: Optional[Dict[str, str]] = None,
    ) -> Dict[str, ChromosomeResult]:
        """
        Analyze every chromosome independently

        Args:
            matrices_a: Chromosome -> matrix for dataset A
            matrices_b: Chromosome -> matrix for dataset B
            invalid: Chromosome -> reason for input rejected while building
                the matrices; these are reported as skipped

        Returns:
            Chromosome -> ChromosomeResult, in sorted chromosome order
        """
        invalid = invalid or {}
        chroms = sorted(set(matrices_a) | set(matrices_b) | set(invalid))
        shared = [
            c
            for c in chroms
            if c in matrices_a and c in matrices_b and c not in invalid
        ]
        logger.info(
            f"Starting differential analysis of {len(shared)} chromosomes "
            f"with {self.worker_count} workers"
        )

        results: Dict[str, ChromosomeResult] = {}
        for chrom in chroms:
            if chrom in invalid:
                results[chrom] = ChromosomeResult(
                    chrom=chrom,
                    success=False,
                    error_type=InvalidContactMatrix.__name__,
                    error_message=invalid[chrom],
                )
            elif chrom not in shared:
                present = "A" if chrom in matrices_a else "B"
                logger.warning(f"{chrom} only present in dataset {present}, skipping")
                results[chrom] = ChromosomeResult(
                    chrom=chrom,
                    success=False,
                    error_type="MissingChromosome",
                    error_message=f"only present in dataset {present}",
                )

        if len(shared) > 1 and self.worker_count > 1:
            analyzed = run_parallel(
                _analyze_in_worker,
                [(self.config, matrices_a[c], matrices_b[c]) for c in shared],
                worker_count=self.worker_count,
            )
        else:
            analyzed = [
                self.analyze_chromosome(matrices_a[c], matrices_b[c]) for c in shared
            ]

        results.update({result.chrom: result for result in analyzed})
        results = {chrom: results[chrom] for chrom in chroms}

        n_success = sum(result.success for result in results.values())
        logger.info(
            f"Differential analysis completed: {n_success}/{len(results)} chromosomes"
        )
        return results


def skip_report(results: Dict[str, ChromosomeResult]) -> pd.DataFrame:
    """Every skipped chromosome and unmodeled pool direction, with reasons"""
    rows = []
    for chrom, result in results.items():
        if not result.success:
            rows.append(
                {
                    "chrom": chrom,
                    "scope": "chromosome",
                    "pool_id": pd.NA,
                    "direction": pd.NA,
                    "error_type": result.error_type,
                    "reason": result.error_message,
                }
            )
            continue

        for model in sorted(
            result.unmodeled, key=lambda m: (m.pool_id, m.direction.value)
        ):
            rows.append(
                {
                    "chrom": chrom,
                    "scope": "pool",
                    "pool_id": model.pool_id,
                    "direction": model.direction.value,
                    "error_type": model.error_type,
                    "reason": model.reason,
                }
            )

    report = pd.DataFrame(rows, columns=SKIP_COLUMNS)
    report["pool_id"] = report["pool_id"].astype("Int64")
    return report


def summarize(results: Dict[str, ChromosomeResult]) -> pd.DataFrame:
    """Per-chromosome coverage of the analysis"""
    rows = []
    for chrom, result in results.items():
        row = {
            "chrom": chrom,
            "success": result.success,
            "n_aligned": None,
            "n_pools": None,
            "n_models_fitted": None,
            "n_tested": None,
            "n_selected": None,
            "n_regions": None,
            "execution_time": (
                round(result.execution_time, 3)
                if result.execution_time is not None
                else None
            ),
            "error": result.error_message,
        }
        if result.success:
            row.update(
                n_aligned=len(result.cells),
                n_pools=len(result.pooling),
                n_models_fitted=sum(m.is_fitted for m in result.models.values()),
                n_tested=len(result.significance.tested),
                n_selected=len(result.detection.mask),
                n_regions=len(result.regions),
            )
        rows.append(row)

    return pd.DataFrame(rows)
