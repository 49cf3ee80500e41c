"""
Utility functions for amrscope.

This module contains helpers for locating outputs, configuring the runtime
environment and writing synthetic per-rank outputs for testing.
"""

from .file_discovery import find_outputs, locate_metadata
from .environment import setup_environment, setup_logging, get_optimal_worker_count
from .synthetic_data import generate_synthetic_output, write_rank_file, make_uniform_cells

__all__ = [
    'find_outputs',
    'locate_metadata',
    'setup_environment',
    'setup_logging',
    'get_optimal_worker_count',
    'generate_synthetic_output',
    'write_rank_file',
    'make_uniform_cells'
]
