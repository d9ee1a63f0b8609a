"""
contactdiff: differential analysis of two chromatin contact maps

contactdiff compares two genome contact-map datasets chromosome by
chromosome. It models the expected dependency between corresponding cells of
the two maps with robust negative-binomial regressions fitted on pools of
diagonals, scores every cell against those models, corrects for multiple
testing and reports spatially coherent differential regions.

Main Components:
- Cell alignment across datasets
- Diagonal pooling by count distribution
- Robust negative-binomial dependency models (B|A and A|B)
- Per-cell significance with Benjamini-Hochberg correction
- Adaptive thresholding and connected-region detection

Example:
    >>> from contactdiff import ContactDiffAnalysis
    >>> analysis = ContactDiffAnalysis(config="config.yaml")
    >>> results = analysis.run_files("a.tsv", "b.tsv", "dims.tsv")
"""

import logging
import sys
from importlib import metadata
from typing import Any, Dict

try:
    __version__ = metadata.version("contactdiff")
except metadata.PackageNotFoundError:
    __version__ = "0.1.0-dev"

from . import differential, utils
from .config import Config, load_config
from .core import ContactDiffAnalysis
from .differential import ContactMatrix, DifferentialAnalyzer
from .utils import setup_logging, validate_environment

__all__ = [
    "__version__",
    "ContactDiffAnalysis",
    "DifferentialAnalyzer",
    "ContactMatrix",
    "Config",
    "load_config",
    "setup_logging",
    "validate_environment",
    "differential",
    "utils",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def get_info() -> Dict[str, Any]:
    """Get package information."""
    return {
        "name": "contactdiff",
        "version": __version__,
        "description": "Differential analysis of chromatin contact maps",
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        "modules": ["differential", "config", "utils"],
    }


def check_dependencies() -> Dict[str, bool]:
    """Check if key dependencies are available."""
    from .utils import validate_python_packages
    from .utils.validation import CORE_PACKAGES

    return validate_python_packages(CORE_PACKAGES)
