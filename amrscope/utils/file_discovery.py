"""
File discovery utilities for amrscope.

Functions for finding simulation outputs and their metadata files.
"""

import re
from pathlib import Path
from typing import List, Tuple

from ..config import DEFAULT_METADATA_FILE


def find_outputs(base_dir) -> List[Tuple[int, Path]]:
    """
    List the output directories of a simulation.

    Args:
        base_dir: Directory holding output_NNNNN subdirectories

    Returns:
        (output number, directory) pairs sorted by output number

    Raises:
        FileNotFoundError: If base_dir does not exist
    """
    base_dir = Path(base_dir)
    if not base_dir.is_dir():
        raise FileNotFoundError(f"Simulation directory not found: {base_dir}")

    outputs = []
    for candidate in base_dir.glob("output_*"):
        match = re.fullmatch(r"output_(\d+)", candidate.name)
        if match and candidate.is_dir():
            outputs.append((int(match.group(1)), candidate))
    return sorted(outputs)


def locate_metadata(output_dir) -> Path:
    """
    Find the metadata file of an output directory.

    A YAML descriptor takes precedence over a RAMSES-style info file.

    Args:
        output_dir: Output directory

    Returns:
        Path to simulation.yml or info_NNNNN.txt

    Raises:
        FileNotFoundError: If neither is present
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        raise FileNotFoundError(f"Output directory not found: {output_dir}")

    descriptor = output_dir / DEFAULT_METADATA_FILE
    if descriptor.exists():
        return descriptor

    info_files = sorted(output_dir.glob("info_[0-9]*.txt"))
    if not info_files:
        raise FileNotFoundError(f"No {DEFAULT_METADATA_FILE} or info_NNNNN.txt found in {output_dir}")
    return info_files[-1]
