"""
Negative-binomial dependency models between two contact maps

Each model predicts one dataset's counts from the other's with an NB2 law,
``Y ~ NB(mu, alpha)`` with ``mu = intercept + slope * x`` and
``Var(Y) = mu + alpha * mu**2``. Two variants share the same
fit/predict/score contract:

- ``robust_nb``: a robust linear regression on square-root transformed
  counts supplies per-sample weights; samples with weights below a cutoff
  are excluded and the rest downweight the NB likelihood.
- ``plain_nb``: unweighted NB maximum likelihood.
"""

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Tuple, Type

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.stats import nbinom
from statsmodels.base.model import GenericLikelihoodModel
from statsmodels.tools.sm_exceptions import (ConvergenceWarning,
                                             HessianInversionWarning)

from ..exceptions import InsufficientSamples, NumericalNonConvergence
from ..utils import get_logger

logger = get_logger(__name__)

MIN_MEAN = 1e-8
LOG_ALPHA_BOUNDS = (-20.0, 10.0)
MIN_ALPHA = 1e-3


class Direction(str, Enum):
    """Response direction of a dependency model"""

    B_GIVEN_A = "B|A"
    A_GIVEN_B = "A|B"

    def split(self, cells: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        """Return (covariate, response) arrays for this direction"""
        value_a = cells["value_a"].to_numpy(dtype=float)
        value_b = cells["value_b"].to_numpy(dtype=float)
        if self is Direction.B_GIVEN_A:
            return value_a, value_b
        return value_b, value_a


class ModelKind(str, Enum):
    ROBUST_NB = "robust_nb"
    PLAIN_NB = "plain_nb"


class ModelStatus(str, Enum):
    FITTED = "fitted"
    UNMODELED = "unmodeled"


@dataclass(frozen=True, eq=False)
class DependencyModel:
    """Fitted (or skipped) model for one pool and direction"""

    pool_id: int
    direction: Direction
    kind: ModelKind
    status: ModelStatus
    n_samples: int
    intercept: Optional[float] = None
    slope: Optional[float] = None
    dispersion: Optional[float] = None
    weights: np.ndarray = field(default_factory=lambda: np.empty(0))
    n_outliers: int = 0
    retried: bool = False
    reason: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def is_fitted(self) -> bool:
        return self.status is ModelStatus.FITTED

    @classmethod
    def unmodeled(
        cls,
        pool_id: int,
        direction: Direction,
        kind: ModelKind,
        n_samples: int,
        reason: str,
        error_type: Optional[str] = None,
    ) -> "DependencyModel":
        return cls(
            pool_id=pool_id,
            direction=direction,
            kind=kind,
            status=ModelStatus.UNMODELED,
            n_samples=n_samples,
            reason=reason,
            error_type=error_type,
        )


class DirectionalScore(NamedTuple):
    expected: np.ndarray
    p_value: np.ndarray
    residual: np.ndarray


def _nb2_parameters(mu: np.ndarray, alpha: float) -> Tuple[float, np.ndarray]:
    """Convert (mean, dispersion) to scipy's (n, p)"""
    n = 1.0 / alpha
    return n, 1.0 / (1.0 + alpha * mu)


class WeightedNegativeBinomial(GenericLikelihoodModel):
    """NB2 regression with identity mean and per-sample likelihood weights"""

    def __init__(self, endog, exog, sample_weights=None, **kwds):
        super().__init__(endog, exog, extra_params_names=["log_alpha"], **kwds)
        if sample_weights is None:
            sample_weights = np.ones(len(self.endog))
        self.sample_weights = np.asarray(sample_weights, dtype=float)

    def mean(self, params: np.ndarray) -> np.ndarray:
        return np.maximum(self.exog @ params[:-1], MIN_MEAN)

    def nloglikeobs(self, params):
        alpha = np.exp(np.clip(params[-1], *LOG_ALPHA_BOUNDS))
        n, p = _nb2_parameters(self.mean(params), alpha)
        return -self.sample_weights * nbinom.logpmf(self.endog, n, p)


class CountDependencyModel(ABC):
    """Shared fit/predict/score contract for the NB dependency variants"""

    kind: ModelKind

    def __init__(
        self,
        min_samples: int = 30,
        fit_tolerance: float = 1e-6,
        max_iter: int = 500,
        retry_tolerance_factor: float = 100.0,
    ):
        self.min_samples = min_samples
        self.fit_tolerance = fit_tolerance
        self.max_iter = max_iter
        self.retry_tolerance_factor = retry_tolerance_factor

    @abstractmethod
    def sample_weights(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Per-sample likelihood weights in [0, 1]"""

    def fit(
        self, x: np.ndarray, y: np.ndarray, pool_id: int, direction: Direction
    ) -> DependencyModel:
        """
        Fit ``y`` given ``x`` for one pool and direction

        Raises:
            InsufficientSamples: fewer usable samples than ``min_samples``
            NumericalNonConvergence: both the first attempt and the relaxed
                retry failed to converge
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)

        if len(y) < self.min_samples:
            raise InsufficientSamples(
                f"{len(y)} paired samples, {self.min_samples} required"
            )

        weights = self.sample_weights(x, y)
        n_used = int((weights > 0).sum())
        if n_used < self.min_samples:
            raise InsufficientSamples(
                f"{n_used} samples left after outlier exclusion, "
                f"{self.min_samples} required"
            )

        exog = np.column_stack([np.ones_like(x), x])
        model = WeightedNegativeBinomial(y, exog, sample_weights=weights)
        start_params = self._start_params(exog, y, weights)

        params, retried = self._maximize(model, start_params)

        return DependencyModel(
            pool_id=pool_id,
            direction=direction,
            kind=self.kind,
            status=ModelStatus.FITTED,
            n_samples=len(y),
            intercept=float(params[0]),
            slope=float(params[1]),
            dispersion=float(np.exp(np.clip(params[2], *LOG_ALPHA_BOUNDS))),
            weights=weights,
            n_outliers=len(y) - n_used,
            retried=retried,
        )

    def _maximize(
        self, model: WeightedNegativeBinomial, start_params: np.ndarray
    ) -> Tuple[np.ndarray, bool]:
        attempts = [
            dict(method="bfgs", maxiter=self.max_iter, gtol=self.fit_tolerance),
            dict(
                method="nm",
                maxiter=self.max_iter * 20,
                maxfun=self.max_iter * 20,
                xtol=self.fit_tolerance * self.retry_tolerance_factor,
                ftol=self.fit_tolerance * self.retry_tolerance_factor,
            ),
        ]

        for attempt, options in enumerate(attempts):
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                warnings.simplefilter("ignore", HessianInversionWarning)
                warnings.simplefilter("ignore", RuntimeWarning)
                result = model.fit(start_params=start_params, disp=0, **options)

            params = np.asarray(result.params, dtype=float)
            if result.mle_retvals.get("converged", False) and np.all(
                np.isfinite(params)
            ):
                return params, attempt > 0

            logger.debug(
                f"{options['method']} did not converge, "
                f"{'giving up' if attempt else 'retrying with relaxed tolerance'}"
            )

        raise NumericalNonConvergence(
            "weighted NB likelihood did not converge after relaxed retry"
        )

    @staticmethod
    def _start_params(
        exog: np.ndarray, y: np.ndarray, weights: np.ndarray
    ) -> np.ndarray:
        """Weighted least squares for the mean, moments for the dispersion"""
        beta = sm.WLS(y, exog, weights=weights).fit().params
        mu = np.maximum(exog @ beta, MIN_MEAN)
        excess = np.sum(weights * ((y - mu) ** 2 - mu))
        alpha = max(excess / max(np.sum(weights * mu**2), MIN_MEAN), MIN_ALPHA)
        return np.append(beta, np.log(alpha))

    @staticmethod
    def predict(model: DependencyModel, x: np.ndarray) -> np.ndarray:
        """Expected response for covariate values"""
        if not model.is_fitted:
            raise ValueError(
                f"Pool {model.pool_id} {model.direction.value} is unmodeled"
            )
        x = np.asarray(x, dtype=float)
        return np.maximum(model.intercept + model.slope * x, MIN_MEAN)

    @classmethod
    def score(
        cls, model: DependencyModel, x: np.ndarray, y: np.ndarray
    ) -> DirectionalScore:
        """
        One-sided tail probabilities and Pearson residuals

        The tail follows the side of the observation: ``P(Y >= y)`` when the
        observation is at or above its expectation, ``P(Y <= y)`` otherwise.
        """
        y = np.asarray(y, dtype=float)
        mu = cls.predict(model, x)
        n, p = _nb2_parameters(mu, model.dispersion)

        upper = nbinom.sf(y - 1, n, p)
        lower = nbinom.cdf(y, n, p)
        p_value = np.where(y >= mu, upper, lower)
        residual = (y - mu) / np.sqrt(mu + model.dispersion * mu**2)

        return DirectionalScore(expected=mu, p_value=p_value, residual=residual)


class RobustNegativeBinomial(CountDependencyModel):
    """Two-stage fit: Huber-weighted linear regression, then weighted NB MLE"""

    kind = ModelKind.ROBUST_NB

    def __init__(self, outlier_weight_cutoff: float = 0.1, **kwargs):
        super().__init__(**kwargs)
        self.outlier_weight_cutoff = outlier_weight_cutoff

    def sample_weights(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        exog = np.column_stack([np.ones_like(x), np.sqrt(x)])
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            warnings.simplefilter("ignore", RuntimeWarning)
            rlm = sm.RLM(np.sqrt(y), exog, M=sm.robust.norms.HuberT()).fit()

        # A perfect fit gives a zero scale estimate and undefined weights
        weights = np.nan_to_num(np.asarray(rlm.weights, dtype=float), nan=1.0)
        return np.where(weights < self.outlier_weight_cutoff, 0.0, weights)


class PlainNegativeBinomial(CountDependencyModel):
    """Unweighted NB maximum likelihood"""

    kind = ModelKind.PLAIN_NB

    def sample_weights(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        return np.ones(len(y), dtype=float)


MODEL_REGISTRY = {
    ModelKind.ROBUST_NB: RobustNegativeBinomial,
    ModelKind.PLAIN_NB: PlainNegativeBinomial,
}


def create_model(kind, **params) -> CountDependencyModel:
    """
    Instantiate a dependency model variant by its tag

    ``outlier_weight_cutoff`` is only meaningful for the robust variant and
    is dropped for the others.
    """
    kind = ModelKind(kind)
    model_cls: Type[CountDependencyModel] = MODEL_REGISTRY[kind]
    if model_cls is not RobustNegativeBinomial:
        params.pop("outlier_weight_cutoff", None)
    return model_cls(**params)
