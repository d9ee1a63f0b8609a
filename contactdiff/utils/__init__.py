"""
Utility functions and classes for contactdiff
"""

from .data_utils import (read_dimensions, read_pixel_table, save_table,
                         standardize_chromosomes)
from .logging import get_logger, log_execution_time, setup_logging
from .parallel import resolve_worker_count, run_parallel
from .validation import validate_environment, validate_python_packages

__all__ = [
    "setup_logging",
    "get_logger",
    "log_execution_time",
    "validate_python_packages",
    "validate_environment",
    "resolve_worker_count",
    "run_parallel",
    "read_pixel_table",
    "read_dimensions",
    "save_table",
    "standardize_chromosomes",
]
