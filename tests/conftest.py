#!/usr/bin/env python3
"""
Global pytest configuration for amrscope tests.

Synthetic outputs are written once per session into temporary directories;
tests that damage files build their own small output.
"""

import pytest
import os
import sys
import logging
from pathlib import Path

# Add the package root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from amrscope.config import RunConfig
from amrscope.utils import generate_synthetic_output

from test_config import OUTPUT_CONFIG, SCENARIO_CONFIG, SMALL_CONFIG

# Check debug mode
DEBUG_MODE = os.environ.get('AMRSCOPE_DEBUG_MODE', 'false').lower() == 'true'

logging.getLogger('amrscope').setLevel(logging.DEBUG if DEBUG_MODE else logging.WARNING)


@pytest.fixture(scope="session")
def synthetic_output(tmp_path_factory):
    """Metadata of a four-rank output with all field groups."""
    directory = tmp_path_factory.mktemp("output")
    return generate_synthetic_output(directory, **OUTPUT_CONFIG)


@pytest.fixture(scope="session")
def scenario_output(tmp_path_factory):
    """Metadata of a 48 kpc box holding ten level-8 cells along x."""
    directory = tmp_path_factory.mktemp("scenario")
    return generate_synthetic_output(directory, **SCENARIO_CONFIG)


@pytest.fixture
def small_output(tmp_path):
    """Metadata of a fresh two-rank output that a test may modify."""
    return generate_synthetic_output(tmp_path / "output_00001", **SMALL_CONFIG)


@pytest.fixture(scope="session")
def serial():
    return RunConfig(nproc=1)
