"""
Per-pool, per-direction dependency model fitting
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from ..exceptions import InsufficientSamples, NumericalNonConvergence
from ..utils import get_logger, run_parallel
from .models import (CountDependencyModel, DependencyModel, Direction,
                     ModelKind, create_model)
from .pooling import PoolingResult

logger = get_logger(__name__)

ModelKey = Tuple[int, Direction]


def _fit_task(
    estimator: CountDependencyModel,
    pool_id: int,
    direction: Direction,
    x: np.ndarray,
    y: np.ndarray,
) -> DependencyModel:
    """Fit one (pool, direction); failures become unmodeled records"""
    try:
        return estimator.fit(x, y, pool_id, direction)
    except (InsufficientSamples, NumericalNonConvergence) as e:
        reason, error_type = str(e), type(e).__name__
    except (ValueError, np.linalg.LinAlgError, FloatingPointError) as e:
        reason, error_type = f"fit failed: {e}", type(e).__name__

    logger.warning(f"Pool {pool_id} {direction.value} unmodeled: {reason}")
    return DependencyModel.unmodeled(
        pool_id=pool_id,
        direction=direction,
        kind=estimator.kind,
        n_samples=len(y),
        reason=reason,
        error_type=error_type,
    )


class DependencyModelFitter:
    """
    Fit B|A and A|B dependency models for every diagonal pool

    Fitting tasks are independent and run in a bounded worker pool; results
    are merged by (pool_id, direction) once all tasks finish.
    """

    def __init__(
        self,
        model_kind="robust_nb",
        pool_min_samples: int = 30,
        worker_count: Optional[int] = None,
        outlier_weight_cutoff: float = 0.1,
        fit_tolerance: float = 1e-6,
        max_iter: int = 500,
        retry_tolerance_factor: float = 100.0,
    ):
        self.model_kind = ModelKind(model_kind)
        self.worker_count = worker_count
        self.estimator = create_model(
            self.model_kind,
            min_samples=pool_min_samples,
            outlier_weight_cutoff=outlier_weight_cutoff,
            fit_tolerance=fit_tolerance,
            max_iter=max_iter,
            retry_tolerance_factor=retry_tolerance_factor,
        )

    def fit_pools(
        self, cells: pd.DataFrame, pooling: PoolingResult
    ) -> Dict[ModelKey, DependencyModel]:
        """
        Fit both directions for each pool

        Args:
            cells: Aligned cells for one chromosome
            pooling: Diagonal pools for the same chromosome

        Returns:
            Mapping of (pool_id, direction) to the fitted or unmodeled model
        """
        tasks = []
        for pool in pooling:
            pool_cells = pooling.cells_for(cells, pool)
            for direction in Direction:
                x, y = direction.split(pool_cells)
                tasks.append((self.estimator, pool.pool_id, direction, x, y))

        results = run_parallel(_fit_task, tasks, worker_count=self.worker_count)
        models = {(model.pool_id, model.direction): model for model in results}

        n_fitted = sum(model.is_fitted for model in models.values())
        logger.info(
            f"Fitted {n_fitted}/{len(models)} {self.model_kind.value} models "
            f"over {len(pooling)} pools"
        )
        return models
