#!/usr/bin/env python3
"""
Tests for the Dataset container.
"""

import pickle
import dataclasses

import pytest
import numpy as np

from amrscope.data import ingest
from amrscope.dataset import Dataset
from amrscope.indexing import cell_centers
from amrscope.ranges import FULL_DOMAIN, resolve
from amrscope.config import RunConfig, VariableSelectionError

from test_config import OUTPUT_CONFIG


@pytest.fixture(scope="module")
def hydro(synthetic_output):
    return ingest(synthetic_output, 'hydro', config=RunConfig(nproc=1))


@pytest.fixture(scope="module")
def particles(synthetic_output):
    return ingest(synthetic_output, 'particles', config=RunConfig(nproc=1))


class TestDataset:
    """Test suite for Dataset."""

    def test_columns_are_read_only(self, hydro):
        with pytest.raises(ValueError):
            hydro['rho'][0] = 1.0
        with pytest.raises(TypeError):
            hydro.columns['temperature'] = np.zeros(len(hydro))
        with pytest.raises(dataclasses.FrozenInstanceError):
            hydro.lmax = 2

    def test_unknown_column(self, hydro):
        with pytest.raises(VariableSelectionError):
            hydro['temperature']
        assert 'rho' in hydro
        assert 'temperature' not in hydro

    def test_positions_of_cells(self, hydro):
        x, y, z = hydro.positions()
        ex, ey, ez = cell_centers(hydro['level'], hydro['cx'], hydro['cy'], hydro['cz'])
        np.testing.assert_array_equal(x, ex)
        np.testing.assert_array_equal(z, ez)
        xk, _, _ = hydro.positions("kpc")
        np.testing.assert_allclose(xk, x * OUTPUT_CONFIG['boxlen'], rtol=1e-12)

    def test_positions_of_particles(self, particles):
        x, y, z = particles.positions()
        assert x is particles['x']
        assert particles.geometry == 'particle'

    def test_unit_conversion(self, hydro):
        np.testing.assert_allclose(hydro.column('rho', 'g_cm3'), hydro['rho'] * OUTPUT_CONFIG['unit_d'])
        assert hydro.column('rho') is hydro['rho']

    def test_getextent(self, hydro):
        assert hydro.getextent() == ((0.0, 1.0), (0.0, 1.0), (0.0, 1.0))
        extent = hydro.getextent("kpc")
        for lo, hi in extent:
            assert lo == pytest.approx(0.0)
            assert hi == pytest.approx(48.0)

    def test_to_records(self, hydro):
        records = hydro.to_records()
        assert records.dtype.names == tuple(hydro.column_names)
        assert len(records) == len(hydro)
        np.testing.assert_array_equal(records['rho'], hydro['rho'])

    def test_memory_usage(self, hydro):
        assert hydro.memory_usage() == sum(hydro[name].nbytes for name in hydro.column_names)

    def test_select(self, hydro):
        mask = hydro['level'] == OUTPUT_CONFIG['levelmin']
        rng = resolve(xrange=[0.0, 0.5])
        subset = hydro.select(mask, rng)
        assert len(subset) == int(mask.sum())
        assert subset.ranges == rng
        assert subset.scale is hydro.scale
        assert subset.column_names == hydro.column_names
        with pytest.raises(ValueError):
            hydro.select(mask[:-1], rng)

    def test_construction_checks(self, hydro):
        with pytest.raises(ValueError):
            Dataset(field_group='hydro', columns={'level': np.zeros(3), 'cx': np.zeros(2)},
                    key_columns=('level', 'cx'), variables=(), lmin=1, lmax=2,
                    ranges=FULL_DOMAIN, scale=hydro.scale, boxlen=1.0)
        with pytest.raises(ValueError):
            Dataset(field_group='hydro', columns={'level': np.zeros(3)},
                    key_columns=('level', 'cx'), variables=(), lmin=1, lmax=2,
                    ranges=FULL_DOMAIN, scale=hydro.scale, boxlen=1.0)

    def test_pickle_round_trip(self, hydro):
        restored = pickle.loads(pickle.dumps(hydro))
        assert restored.column_names == hydro.column_names
        assert restored.variables == hydro.variables
        assert restored.ranges == hydro.ranges
        assert dict(restored.options) == dict(hydro.options)
        assert restored.scale['kpc'] == hydro.scale['kpc']
        np.testing.assert_array_equal(restored['rho'], hydro['rho'])
        with pytest.raises(ValueError):
            restored['rho'][0] = 1.0

    def test_repr(self, hydro):
        assert "hydro" in repr(hydro)
