#!/usr/bin/env python3
"""
Tests for spatial range resolution.
"""

import pytest

from amrscope.ranges import (resolve, resolve_sphere, resolve_cylinder, ResolvedRange,
                             FULL_DOMAIN, describe_range)
from amrscope.units import create_scales
from amrscope.config import InvalidRangeSpec, ShapeError

from test_config import OUTPUT_CONFIG

BOXLEN = OUTPUT_CONFIG['boxlen']


@pytest.fixture(scope="module")
def scale():
    return create_scales(OUTPUT_CONFIG['unit_l'], OUTPUT_CONFIG['unit_d'], OUTPUT_CONFIG['unit_t'])


def approx_bounds(rng, expected):
    assert rng.bounds == pytest.approx(expected, abs=1e-12)


class TestResolve:
    """Test suite for resolve."""

    def test_defaults_to_full_domain(self):
        rng = resolve()
        assert rng.bounds == (0.0, 1.0, 0.0, 1.0, 0.0, 1.0)
        assert rng.center == (0.5, 0.5, 0.5)

    def test_fractional_range(self):
        rng = resolve(xrange=[0.2, 0.8])
        approx_bounds(rng, (0.2, 0.8, 0.0, 1.0, 0.0, 1.0))
        assert rng.center == pytest.approx((0.5, 0.5, 0.5))

    def test_physical_range_matches_fractional(self, scale):
        """48 kpc box: 9.6..38.4 kpc is 0.2..0.8 of the box."""
        rng = resolve(xrange=[9.6, 38.4], range_unit="kpc", scale=scale, boxlen=BOXLEN)
        approx_bounds(rng, (0.2, 0.8, 0.0, 1.0, 0.0, 1.0))

        rng_pc = resolve(xrange=[9600, 38400], range_unit="pc", scale=scale, boxlen=BOXLEN)
        approx_bounds(rng_pc, rng.bounds)

    def test_offsets_from_box_center(self, scale):
        rng = resolve(xrange=[-12, 12], yrange=[-6, 6], center="bc",
                      range_unit="kpc", scale=scale, boxlen=BOXLEN)
        approx_bounds(rng, (0.25, 0.75, 0.375, 0.625, 0.0, 1.0))
        assert rng.center == (0.5, 0.5, 0.5)

    def test_mixed_center_sentinels(self, scale):
        rng = resolve(zrange=[-12, 0], center=["bc", 24.0, "boxcenter"],
                      range_unit="kpc", scale=scale, boxlen=BOXLEN)
        assert rng.center == pytest.approx((0.5, 0.5, 0.5))
        approx_bounds(rng, (0.0, 1.0, 0.0, 1.0, 0.25, 0.5))

        rng = resolve(center=["bc"])
        assert rng.center == (0.5, 0.5, 0.5)

    def test_scalar_half_width(self, scale):
        rng = resolve(xrange=12, center=[24, 24, 24], range_unit="kpc", scale=scale, boxlen=BOXLEN)
        approx_bounds(rng, (0.25, 0.75, 0.0, 1.0, 0.0, 1.0))

    def test_one_sided_range(self):
        rng = resolve(xrange=[0.3, None], yrange=[None, 0.4])
        approx_bounds(rng, (0.3, 1.0, 0.0, 0.4, 0.0, 1.0))

    def test_clamped_to_domain(self):
        rng = resolve(xrange=[-0.5, 0.5])
        approx_bounds(rng, (0.0, 0.5, 0.0, 1.0, 0.0, 1.0))

    def test_out_of_domain_is_empty_not_error(self):
        rng = resolve(xrange=[2.0, 3.0])
        assert rng.is_empty
        assert rng.xmin == 2.0 and rng.xmax == 1.0

    def test_resolved_range_is_returned_unchanged(self):
        rng = ResolvedRange(0.2, 0.8, 0.1, 0.9, 0.3, 0.7, (0.5, 0.5, 0.5))
        assert resolve(rng) is rng
        again = resolve(xrange=[rng.xmin, rng.xmax], yrange=[rng.ymin, rng.ymax], zrange=[rng.zmin, rng.zmax])
        assert again.bounds == rng.bounds
        assert again.center == pytest.approx(rng.center)

    def test_resolved_range_cannot_be_combined(self):
        with pytest.raises(InvalidRangeSpec):
            resolve(FULL_DOMAIN, yrange=[0.1, 0.2])

    @pytest.mark.parametrize("kwargs", [
        dict(xrange=[0.8, 0.2]),
        dict(xrange=[0.1, 0.2, 0.3]),
        dict(xrange=["a", 0.2]),
        dict(xrange=0.2),
        dict(center=[0.5, 0.5]),
        dict(center=["middle", 0.5, 0.5]),
        dict(center="middle"),
        dict(center=[0.5]),
        dict(xrange=[0.1, 0.2], range_unit="furlong"),
    ])
    def test_invalid_requests(self, scale, kwargs):
        with pytest.raises(InvalidRangeSpec):
            resolve(scale=scale, boxlen=BOXLEN, **kwargs)

    def test_physical_unit_needs_scale(self):
        with pytest.raises(InvalidRangeSpec):
            resolve(xrange=[1, 2], range_unit="kpc")

    def test_extent(self, scale):
        rng = resolve(xrange=[0.25, 0.5])
        extent = rng.extent(scale, BOXLEN, "kpc")
        assert extent[0] == pytest.approx((12.0, 24.0))
        assert extent[1] == pytest.approx((0.0, 48.0))
        assert rng.extent() == ((0.25, 0.5), (0.0, 1.0), (0.0, 1.0))

    def test_describe_range(self, scale):
        summary = describe_range(FULL_DOMAIN, scale, BOXLEN)
        assert "kpc" in summary
        assert summary.startswith("x:")


class TestShapes:
    """Test suite for sphere and cylinder resolution."""

    def test_sphere(self, scale):
        shape = resolve_sphere(["bc", "bc", "bc"], 12, range_unit="kpc", scale=scale, boxlen=BOXLEN)
        assert shape.center == (0.5, 0.5, 0.5)
        assert shape.radius == pytest.approx(0.25)
        approx_bounds(shape.bbox, (0.25, 0.75, 0.25, 0.75, 0.25, 0.75))

    def test_sphere_bbox_is_clamped(self):
        shape = resolve_sphere([0.1, 0.5, 0.95], 0.25)
        approx_bounds(shape.bbox, (0.0, 0.35, 0.25, 0.75, 0.7, 1.0))

    def test_cylinder(self):
        shape = resolve_cylinder([0.5, 0.5, 0.5], 0.1, 0.2, direction="x")
        assert shape.half_height == pytest.approx(0.1)
        approx_bounds(shape.bbox, (0.4, 0.6, 0.4, 0.6, 0.4, 0.6))

        shape = resolve_cylinder([0.5, 0.5, 0.5], 0.1, 0.4, direction="z")
        approx_bounds(shape.bbox, (0.4, 0.6, 0.4, 0.6, 0.3, 0.7))

    @pytest.mark.parametrize("call", [
        lambda: resolve_sphere(None, 0.1),
        lambda: resolve_sphere([0.5, 0.5, 0.5], 0.0),
        lambda: resolve_sphere([0.5, 0.5, 0.5], -1.0),
        lambda: resolve_sphere([0.5, 0.5, 0.5], 0.1, inner_radius=0.2),
        lambda: resolve_cylinder([0.5, 0.5, 0.5], 0.1, None),
        lambda: resolve_cylinder([0.5, 0.5, 0.5], 0.1, 0.0),
        lambda: resolve_cylinder([0.5, 0.5, 0.5], 0.1, 0.1, direction="w"),
    ])
    def test_invalid_shapes(self, call):
        with pytest.raises(ShapeError):
            call()

    def test_shape_errors_are_range_errors(self):
        with pytest.raises(InvalidRangeSpec):
            resolve_sphere([0.5, 0.5, 0.5], 0.0)
