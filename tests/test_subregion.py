#!/usr/bin/env python3
"""
Tests for geometric subregions and shells.
"""

import logging

import pytest
import numpy as np

from amrscope.data import ingest
from amrscope.subregion import subregion, shellregion
from amrscope.config import RunConfig, ShapeError, InvalidRangeSpec

CENTER = [0.5, 0.5, 0.5]


@pytest.fixture(scope="module")
def hydro(synthetic_output):
    return ingest(synthetic_output, 'hydro', config=RunConfig(nproc=1))


@pytest.fixture(scope="module")
def row_of_cells(scenario_output):
    return ingest(scenario_output, 'hydro', config=RunConfig(nproc=1))


@pytest.fixture(scope="module")
def particles(synthetic_output):
    return ingest(synthetic_output, 'particles', config=RunConfig(nproc=1))


def distances(ds, center=CENTER):
    x, y, z = ds.positions()
    return np.sqrt((x - center[0])**2 + (y - center[1])**2 + (z - center[2])**2)


class TestCuboid:
    """Test suite for cuboid subregions."""

    def test_centers_inside(self, hydro):
        sub = subregion(hydro, "cuboid", xrange=[0.2, 0.5], zrange=[0.4, 0.9])
        x, y, z = sub.positions()
        assert np.all((x >= 0.2) & (x <= 0.5))
        assert np.all((z >= 0.4) & (z <= 0.9))
        assert 0 < len(sub) < len(hydro)
        assert sub.ranges.bounds == pytest.approx((0.2, 0.5, 0.0, 1.0, 0.4, 0.9))

    def test_inverse_is_complement(self, hydro):
        inside = subregion(hydro, "cuboid", xrange=[0.2, 0.5])
        outside = subregion(hydro, "cuboid", xrange=[0.2, 0.5], inverse=True)
        assert len(inside) + len(outside) == len(hydro)
        x, _, _ = outside.positions()
        assert np.all((x < 0.2) | (x > 0.5))
        assert outside.ranges == hydro.ranges

    def test_physical_units(self, particles):
        frac = subregion(particles, "cuboid", xrange=[0.25, 0.75])
        kpc = subregion(particles, "cuboid", xrange=[12.0, 36.0], range_unit="kpc")
        np.testing.assert_array_equal(frac['id'], kpc['id'])

    def test_centered_box(self, particles):
        a = subregion(particles, "cuboid", xrange=[-0.1, 0.1], yrange=[-0.2, 0.2], center=CENTER)
        b = subregion(particles, "cuboid", xrange=[0.4, 0.6], yrange=[0.3, 0.7])
        np.testing.assert_array_equal(a['id'], b['id'])

    def test_no_range_keeps_everything(self, hydro):
        sub = subregion(hydro)
        assert len(sub) == len(hydro)
        assert sub is not hydro
        assert len(subregion(hydro, inverse=True)) == 0

    def test_verbose_summary(self, hydro, caplog):
        with caplog.at_level(logging.INFO, logger="amrscope"):
            subregion(hydro, "cuboid", xrange=[0.2, 0.5], config=RunConfig(nproc=1, verbose=True))
        assert "Cuboid: kept" in caplog.text

    def test_cell_whose_cube_overlaps_but_center_does_not_is_dropped(self, hydro):
        boundary = 0.5 + 1.0 / 64
        sub = subregion(hydro, "cuboid", xrange=[boundary, 1.0])
        x, _, _ = sub.positions()
        assert np.all(x >= boundary)


class TestSphere:
    """Test suite for spherical subregions."""

    def test_sphere(self, hydro):
        sub = subregion(hydro, "sphere", center=CENTER, radius=0.25)
        assert np.all(distances(sub) <= 0.25)
        assert sub.ranges.bounds == pytest.approx((0.25, 0.75) * 3)
        assert sub.scale is hydro.scale

    def test_inverse(self, hydro):
        inside = subregion(hydro, "sphere", center=CENTER, radius=0.25)
        outside = subregion(hydro, "sphere", center=CENTER, radius=0.25, inverse=True)
        assert len(inside) + len(outside) == len(hydro)
        assert np.all(distances(outside) > 0.25)
        assert outside.ranges == hydro.ranges

    def test_box_center_in_kpc(self, particles):
        frac = subregion(particles, "sphere", center=CENTER, radius=0.25)
        kpc = subregion(particles, "sphere", center=["bc", "bc", "bc"], radius=12.0, range_unit="kpc")
        np.testing.assert_array_equal(frac['id'], kpc['id'])

    def test_far_away_sphere_is_empty(self, hydro):
        sub = subregion(hydro, "sphere", center=[5.0, 5.0, 5.0], radius=0.1)
        assert len(sub) == 0
        assert sub.column_names == hydro.column_names
        assert sub.variables == hydro.variables


    def test_cuboid_outside_the_box_is_empty(self, hydro):
        sub = subregion(hydro, "cuboid", xrange=[2.0, 3.0])
        assert len(sub) == 0
        assert sub.column_names == hydro.column_names
        assert sub.ranges.is_empty


class TestCylinder:
    """Test suite for cylindrical subregions."""

    @pytest.mark.parametrize("direction, axis", [("x", 0), ("y", 1), ("z", 2)])
    def test_cylinder(self, particles, direction, axis):
        sub = subregion(particles, "cylinder", center=CENTER, radius=0.2, height=0.3, direction=direction)
        positions = sub.positions()
        axial = np.abs(positions[axis] - 0.5)
        radial = np.sqrt(sum((positions[i] - 0.5)**2 for i in range(3) if i != axis))
        assert np.all(axial <= 0.15)
        assert np.all(radial <= 0.2)
        assert len(sub) > 0

    def test_disc_alias(self, particles):
        a = subregion(particles, "disc", center=CENTER, radius=0.2, height=0.1)
        b = subregion(particles, "cylinder", center=CENTER, radius=0.2, height=0.1)
        np.testing.assert_array_equal(a['id'], b['id'])

    def test_inverse(self, particles):
        inside = subregion(particles, "cylinder", center=CENTER, radius=0.2, height=0.3)
        outside = subregion(particles, "cylinder", center=CENTER, radius=0.2, height=0.3, inverse=True)
        assert len(inside) + len(outside) == len(particles)
        assert not set(inside['id']) & set(outside['id'])


class TestShell:
    """Test suite for shellregion."""

    def test_spherical_shell(self, hydro):
        shell = shellregion(hydro, "sphere", center=CENTER, radius=(0.1, 0.3))
        d = distances(shell)
        assert np.all((d > 0.1) & (d <= 0.3))

    def test_partition(self, particles):
        """Inner sphere, shell and outside of the outer sphere cover every row exactly once."""
        inner = subregion(particles, "sphere", center=CENTER, radius=0.15)
        shell = shellregion(particles, "sphere", center=CENTER, radius=(0.15, 0.35))
        outer = subregion(particles, "sphere", center=CENTER, radius=0.35, inverse=True)
        ids = np.concatenate([inner['id'], shell['id'], outer['id']])
        assert len(ids) == len(particles)
        assert set(ids) == set(particles['id'])

    def test_cylindrical_shell(self, particles):
        shell = shellregion(particles, "cylinder", center=CENTER, radius=(0.1, 0.3), height=0.4)
        x, y, z = shell.positions()
        radial = np.sqrt((x - 0.5)**2 + (y - 0.5)**2)
        assert np.all((radial > 0.1) & (radial <= 0.3))
        assert np.all(np.abs(z - 0.5) <= 0.2)

    def test_inverse_shell(self, particles):
        shell = shellregion(particles, "sphere", center=CENTER, radius=(0.1, 0.3))
        rest = shellregion(particles, "sphere", center=CENTER, radius=(0.1, 0.3), inverse=True)
        assert len(shell) + len(rest) == len(particles)

    def test_provenance(self, particles):
        shell = shellregion(particles, "sphere", center=CENTER, radius=(0.1, 0.3))
        assert shell.ranges.bounds == pytest.approx((0.2, 0.8) * 3)


class TestCellMode:
    """Test suite for selecting grid cells by overlap instead of by center."""

    def test_cuboid_keeps_cells_touching_the_box(self, row_of_cells):
        by_center = subregion(row_of_cells, "cuboid", xrange=[0.202, 0.8])
        by_cell = subregion(row_of_cells, "cuboid", xrange=[0.202, 0.8], cell=True)
        assert list(by_center['cx']) == [77, 103, 128, 154, 180, 205]
        assert list(by_cell['cx']) == [52, 77, 103, 128, 154, 180, 205]

    def test_cuboid_inverse_in_cell_mode(self, row_of_cells):
        outside = subregion(row_of_cells, "cuboid", xrange=[0.202, 0.8], cell=True, inverse=True)
        assert list(outside['cx']) == [1, 26, 256]

    def test_sphere_radius_rounded_up_to_cells(self, row_of_cells):
        by_center = subregion(row_of_cells, "sphere", center=["bc"], radius=0.098)
        by_cell = subregion(row_of_cells, "sphere", center=["bc"], radius=0.098, cell=True)
        assert list(by_center['cx']) == [128]
        assert list(by_cell['cx']) == [103, 128, 154]

    def test_shell_in_cell_mode(self, row_of_cells):
        shell = shellregion(row_of_cells, "sphere", center=["bc"], radius=(0.05, 0.098), cell=True)
        assert list(shell['cx']) == [103, 154]

    def test_ignored_for_particles(self, particles):
        a = subregion(particles, "sphere", center=CENTER, radius=0.2)
        b = subregion(particles, "sphere", center=CENTER, radius=0.2, cell=True)
        np.testing.assert_array_equal(a['id'], b['id'])
        c = subregion(particles, "cuboid", xrange=[0.2, 0.5], cell=True)
        x, _, _ = c.positions()
        assert np.all((x >= 0.2) & (x <= 0.5))


class TestErrors:
    """Test suite for invalid subregion requests."""

    @pytest.mark.parametrize("kwargs", [
        dict(shape="pyramid", center=CENTER, radius=0.1),
        dict(shape="sphere", center=CENTER, radius=0.0),
        dict(shape="sphere", radius=0.1),
        dict(shape="cylinder", center=CENTER, radius=0.1),
        dict(shape="cylinder", center=CENTER, radius=0.1, height=0.1, direction="r"),
    ])
    def test_invalid_shapes(self, hydro, kwargs):
        kwargs = dict(kwargs)
        shape = kwargs.pop("shape")
        with pytest.raises(ShapeError):
            subregion(hydro, shape, **kwargs)

    def test_invalid_center(self, hydro):
        with pytest.raises(InvalidRangeSpec):
            subregion(hydro, "sphere", center=["middle", 0.5, 0.5], radius=0.1)

    def test_invalid_shells(self, hydro):
        with pytest.raises(ShapeError):
            shellregion(hydro, "sphere", center=CENTER, radius=0.3)
        with pytest.raises(ShapeError):
            shellregion(hydro, "sphere", center=CENTER, radius=(0.3, 0.1))
        with pytest.raises(ShapeError):
            shellregion(hydro, "cuboid", center=CENTER, radius=(0.1, 0.3))
