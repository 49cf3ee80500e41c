"""
Environment configuration utilities for amrscope.

Functions for setting up thread counts, worker counts and console logging
for scripts that load simulation data.
"""

import os
import sys
import logging
from typing import Optional


def setup_environment(num_threads: Optional[int] = None) -> None:
    """
    Pin the thread count of numerical libraries.

    Decoding runs one process per worker, so numerical libraries are limited
    to a single thread per process unless told otherwise.

    Args:
        num_threads: Threads per process for NumPy/BLAS operations.
                    If None, defaults to 1
    """
    if num_threads is None:
        num_threads = 1

    os.environ.setdefault('OMP_NUM_THREADS', str(num_threads))
    os.environ.setdefault('OPENBLAS_NUM_THREADS', str(num_threads))
    os.environ.setdefault('MKL_NUM_THREADS', str(num_threads))
    os.environ.setdefault('NUMEXPR_MAX_THREADS', str(num_threads))

    logging.getLogger(__name__).debug(f"Environment configured: {num_threads} threads per process")


def get_optimal_worker_count() -> int:
    """
    Get the number of worker processes to decode rank files with.

    Returns:
        Number of CPUs available to this process
    """
    if hasattr(os, 'sched_getaffinity'):
        return max(1, len(os.sched_getaffinity(0)))
    return os.cpu_count() or 1


def setup_logging(verbose: bool = False) -> None:
    """
    Configure console logging for amrscope.

    Args:
        verbose: Show INFO summaries (DEBUG otherwise suppressed) when True,
                only warnings when False
    """
    level = logging.INFO if verbose else logging.WARNING
    logger = logging.getLogger('amrscope')
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(handler)
