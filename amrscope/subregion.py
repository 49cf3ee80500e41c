"""
Geometric subregions of loaded datasets.

Selections are pure in-memory filters over an existing `Dataset`: no file is
read. Each row is represented by one point (cell center, particle position or
clump peak) which is tested against a cuboid, cylinder or sphere, or against
the shell between two cylinders or two spheres. `inverse=True` keeps the
complement.

Note that loading keeps every cell whose cube overlaps the requested box,
while selections here test cell centers unless `cell=True` is passed.
"""
import logging

import numpy as np

from .config import RunConfig, ShapeError, DEFAULT_RANGE_UNIT
from .data import _log_info
from .indexing import cells_intersect_box, points_in_box
from .ranges import AXES, resolve, resolve_cylinder, resolve_sphere

logger = logging.getLogger(__name__)

CUBOID_SHAPES = ("cuboid", "box")
CYLINDER_SHAPES = ("cylinder", "disc")
SPHERE_SHAPES = ("sphere",)


def _radial_distances(positions, shape):
    """(radial, axial) distances of points from a resolved shape's center.

    For spheres the radial distance is the full 3d distance and the axial
    offset is None.
    """
    offsets = [p - c for p, c in zip(positions, shape.center)]
    if shape.shape == "sphere":
        return np.sqrt(offsets[0]**2 + offsets[1]**2 + offsets[2]**2), None
    axis = AXES.index(shape.direction)
    radial = [o for i, o in enumerate(offsets) if i != axis]
    return np.sqrt(radial[0]**2 + radial[1]**2), np.abs(offsets[axis])


def _cell_rounded(length, levels):
    """`length` rounded up to whole cells at each row's level."""
    if levels is None:
        return length
    return np.ldexp(np.ceil(np.ldexp(length, levels)), -levels)


def _shape_mask(positions, shape, levels=None):
    """Rows inside the outer boundary of a shape and outside its inner one, if any.

    With `levels` (cell mode) radii and half heights are rounded up to whole
    cells of each row's level.
    """
    radial, axial = _radial_distances(positions, shape)
    mask = radial <= _cell_rounded(shape.radius, levels)
    if axial is not None:
        half_height = _cell_rounded(shape.half_height, levels)
        mask &= axial <= half_height
    if shape.inner_radius is not None:
        # a shell excludes the inner solid, boundary included
        inner = radial <= _cell_rounded(shape.inner_radius, levels)
        if axial is not None:
            inner &= axial <= half_height
        mask &= ~inner
    return mask


def _cell_levels(dataset, cell):
    if cell and dataset.geometry == 'grid':
        return np.asarray(dataset['level'], dtype=np.int32)
    return None


def _finish(dataset, mask, selection_range, inverse, label, config):
    if inverse:
        mask = ~mask
        selection_range = dataset.ranges
    result = dataset.select(mask, selection_range)
    _log_info(f"{label}{' (inverse)' if inverse else ''}: kept {len(result)} of {len(dataset)} rows", config)
    return result


def subregion(dataset, shape="cuboid", *, xrange=None, yrange=None, zrange=None,
              radius=None, height=None, direction="z", center=None,
              range_unit=DEFAULT_RANGE_UNIT, cell=False, inverse=False, config=None):
    """Select the rows of a dataset inside a cuboid, cylinder or sphere.

    Args:
        dataset: Dataset to filter
        shape: "cuboid", "cylinder" (or "disc"), "sphere"
        xrange, yrange, zrange: Cuboid ranges (see amrscope.ranges.resolve)
        radius: Cylinder or sphere radius
        height: Cylinder height, centered on the center plane
        direction: Cylinder axis, "x", "y" or "z"
        center: Shape center; required for cylinders and spheres
        range_unit: Unit of ranges, radius, height and numeric centers
        cell: Select grid cells by overlap with the shape rather than by
            center: cuboids keep every cell whose cube touches the box,
            cylinders and spheres round their radius and half height up to
            whole cells of each level. Ignored for particles and clumps
        inverse: Keep the rows outside the shape instead
        config: RunConfig controlling log verbosity

    Returns:
        New Dataset with the same columns. Its range is the selection's
        bounding box, or the input range for inverse selections.

    Raises:
        ShapeError: For unknown shapes or invalid radii, heights, directions
        InvalidRangeSpec: For invalid ranges, centers or units
    """
    config = config or RunConfig()
    positions = dataset.positions()

    if shape in CUBOID_SHAPES:
        if xrange is None and yrange is None and zrange is None and center is None:
            return _finish(dataset, np.ones(len(dataset), dtype=bool), dataset.ranges,
                           inverse, "Cuboid (full domain)", config)
        rng = resolve(xrange, yrange, zrange, center=center, range_unit=range_unit,
                      scale=dataset.scale, boxlen=dataset.boxlen)
        if cell and dataset.geometry == 'grid':
            mask = cells_intersect_box(dataset['level'], dataset['cx'], dataset['cy'], dataset['cz'], rng)
        else:
            mask = points_in_box(*positions, rng)
        return _finish(dataset, mask, rng, inverse, "Cuboid", config)

    if shape in CYLINDER_SHAPES:
        resolved = resolve_cylinder(center, radius, height, direction=direction, range_unit=range_unit,
                                    scale=dataset.scale, boxlen=dataset.boxlen)
    elif shape in SPHERE_SHAPES:
        resolved = resolve_sphere(center, radius, range_unit=range_unit,
                                  scale=dataset.scale, boxlen=dataset.boxlen)
    else:
        raise ShapeError(f"Unknown shape '{shape}'. Expected one of "
                         f"{CUBOID_SHAPES + CYLINDER_SHAPES + SPHERE_SHAPES}")

    mask = _shape_mask(positions, resolved, _cell_levels(dataset, cell))
    return _finish(dataset, mask, resolved.bbox, inverse, resolved.shape.capitalize(), config)


def shellregion(dataset, shape="sphere", *, radius=None, height=None, direction="z", center=None,
                range_unit=DEFAULT_RANGE_UNIT, cell=False, inverse=False, config=None):
    """Select the rows of a dataset between two concentric spheres or cylinders.

    A row belongs to the shell when it lies inside the outer shape and
    outside the inner one: inner_radius < distance <= outer_radius (for
    cylinders the axial extent is shared by both). Together with the inner
    solid and the inverse of the outer solid this partitions the dataset.

    Args:
        dataset: Dataset to filter
        shape: "sphere" or "cylinder" (or "disc")
        radius: (inner_radius, outer_radius)
        height: Cylinder height, centered on the center plane
        direction: Cylinder axis, "x", "y" or "z"
        center: Shell center
        range_unit: Unit of radii, height and numeric centers
        cell: Round radii and half height up to whole cells of each grid
            level (see subregion)
        inverse: Keep the rows outside the shell instead
        config: RunConfig controlling log verbosity

    Returns:
        New Dataset with the same columns
    """
    config = config or RunConfig()
    try:
        inner_radius, outer_radius = radius
    except (TypeError, ValueError):
        raise ShapeError(f"radius must be a pair (inner, outer), got {radius!r}") from None

    if shape in CYLINDER_SHAPES:
        resolved = resolve_cylinder(center, outer_radius, height, direction=direction, range_unit=range_unit,
                                    scale=dataset.scale, boxlen=dataset.boxlen, inner_radius=inner_radius)
    elif shape in SPHERE_SHAPES:
        resolved = resolve_sphere(center, outer_radius, range_unit=range_unit,
                                  scale=dataset.scale, boxlen=dataset.boxlen, inner_radius=inner_radius)
    else:
        raise ShapeError(f"Unknown shell shape '{shape}'. Expected one of {CYLINDER_SHAPES + SPHERE_SHAPES}")

    mask = _shape_mask(dataset.positions(), resolved, _cell_levels(dataset, cell))
    return _finish(dataset, mask, resolved.bbox, inverse, f"{resolved.shape.capitalize()} shell", config)
