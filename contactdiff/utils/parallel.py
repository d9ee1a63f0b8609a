"""
Bounded worker pool helpers built on joblib
"""

import logging
from typing import Any, Callable, Iterable, List, Optional

from joblib import Parallel, cpu_count, delayed

logger = logging.getLogger(__name__)


def resolve_worker_count(worker_count: Optional[int] = None) -> int:
    """
    Resolve the configured worker count

    None means all available cores minus one, never fewer than one.
    """
    if worker_count is None:
        return max(1, cpu_count() - 1)
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")
    return int(worker_count)


def run_parallel(
    func: Callable[..., Any],
    tasks: Iterable[tuple],
    worker_count: Optional[int] = None,
    backend: str = "loky",
) -> List[Any]:
    """
    Run ``func(*task)`` for every task in a bounded worker pool

    Results come back in task order. With a single worker the tasks run in
    the calling process, which keeps tracebacks and logging local.

    Args:
        func: Module-level callable (must be picklable for process backends)
        tasks: Argument tuples, one per call
        worker_count: Pool size; None resolves to cores minus one
        backend: joblib backend name

    Returns:
        List of results in task order
    """
    tasks = list(tasks)
    n_jobs = min(resolve_worker_count(worker_count), max(1, len(tasks)))

    if n_jobs == 1:
        return [func(*task) for task in tasks]

    logger.debug(f"Dispatching {len(tasks)} tasks to {n_jobs} {backend} workers")
    return Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(func)(*task) for task in tasks
    )
