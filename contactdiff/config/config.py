"""
Core configuration management for contactdiff
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

MODEL_KINDS = ("robust_nb", "plain_nb")
COMBINE_STRATEGIES = ("min", "fisher", "mean")
ADJACENCY_MODES = (4, 8)


@dataclass
class Config:
    """Main configuration class for a contactdiff run"""

    # General settings
    project_name: str = "contactdiff_analysis"
    random_seed: int = 42
    worker_count: Optional[int] = None
    log_level: str = "INFO"

    # Input/Output paths
    output_dir: Optional[str] = None

    # Analysis parameters
    pooling: Dict[str, Any] = field(default_factory=dict)
    modeling: Dict[str, Any] = field(default_factory=dict)
    significance: Dict[str, Any] = field(default_factory=dict)
    regions: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Merge user-supplied sections over the defaults"""
        self.pooling = {**self._get_default_pooling(), **(self.pooling or {})}
        self.modeling = {**self._get_default_modeling(), **(self.modeling or {})}
        self.significance = {
            **self._get_default_significance(),
            **(self.significance or {}),
        }
        self.regions = {**self._get_default_regions(), **(self.regions or {})}

    def _get_default_pooling(self) -> Dict[str, Any]:
        """Default diagonal pooling configuration"""
        return {
            "max_diagonal_fraction": 0.2,
            "pool_min_samples": 30,
            "pool_target_samples": 2000,
            "max_dissimilarity": 0.2,
            "merge_small_tail": True,
        }

    def _get_default_modeling(self) -> Dict[str, Any]:
        """Default dependency model configuration"""
        return {
            "model_kind": "robust_nb",
            "outlier_weight_cutoff": 0.1,
            "fit_tolerance": 1e-6,
            "max_iter": 500,
            "retry_tolerance_factor": 100.0,
        }

    def _get_default_significance(self) -> Dict[str, Any]:
        """Default significance scoring configuration"""
        return {"combine": "min"}

    def _get_default_regions(self) -> Dict[str, Any]:
        """Default region detection configuration"""
        return {
            "p_value_cutoff": 0.01,
            "adjacency_mode": 8,
            "use_adjusted": True,
            "adaptive_threshold": True,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(config_file: Union[str, Path]) -> Config:
    """Load configuration from YAML or JSON file"""
    config_path = Path(config_file)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        if config_path.suffix.lower() in [".yaml", ".yml"]:
            config_dict = yaml.safe_load(f) or {}
        elif config_path.suffix.lower() == ".json":
            config_dict = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    return Config(**config_dict)


def save_config(config: Config, output_file: Union[str, Path]) -> None:
    """Save configuration to YAML file"""
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, indent=2)

    logger.info(f"Configuration saved to {output_path}")


def validate_config(config: Config) -> List[str]:
    """Validate configuration and return list of issues"""
    issues = []

    if config.worker_count is not None and config.worker_count < 1:
        issues.append("worker_count must be >= 1")

    fraction = config.pooling.get("max_diagonal_fraction")
    if not isinstance(fraction, (int, float)) or not 0 < fraction <= 1:
        issues.append("pooling.max_diagonal_fraction must be in (0, 1]")

    min_samples = config.pooling.get("pool_min_samples")
    if not isinstance(min_samples, int) or min_samples < 2:
        issues.append("pooling.pool_min_samples must be an integer >= 2")

    target = config.pooling.get("pool_target_samples")
    if not isinstance(target, int) or (
        isinstance(min_samples, int) and target < min_samples
    ):
        issues.append("pooling.pool_target_samples must be >= pool_min_samples")

    if not 0 < config.pooling.get("max_dissimilarity", 0) <= 1:
        issues.append("pooling.max_dissimilarity must be in (0, 1]")

    if config.modeling.get("model_kind") not in MODEL_KINDS:
        issues.append(f"modeling.model_kind must be one of {MODEL_KINDS}")

    if not 0 <= config.modeling.get("outlier_weight_cutoff", -1) < 1:
        issues.append("modeling.outlier_weight_cutoff must be in [0, 1)")

    if config.significance.get("combine") not in COMBINE_STRATEGIES:
        issues.append(f"significance.combine must be one of {COMBINE_STRATEGIES}")

    cutoff = config.regions.get("p_value_cutoff")
    if not isinstance(cutoff, (int, float)) or not 0 < cutoff <= 1:
        issues.append("regions.p_value_cutoff must be in (0, 1]")

    if config.regions.get("adjacency_mode") not in ADJACENCY_MODES:
        issues.append(f"regions.adjacency_mode must be one of {ADJACENCY_MODES}")

    return issues


def get_default_config() -> Config:
    """Get default configuration object"""
    return Config()
