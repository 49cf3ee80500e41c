"""
AMR cell indexing.

Cells are identified by (level, cx, cy, cz) with 1-based integer indices on a
2**level grid over the unit cube. All helpers accept scalars or numpy arrays.
"""
import numpy as np


def cell_size(level):
    """Edge length of a cell at `level` in fractional units."""
    return np.ldexp(1.0, -np.asarray(level, dtype=np.int32))


def cell_bounds(level, cx, cy, cz):
    """Center and half edge of a cell.

    Args:
        level: Refinement level
        cx, cy, cz: 1-based cell indices

    Returns:
        Tuple ((x, y, z), half_size)
    """
    return cell_centers(level, cx, cy, cz), cell_size(level) / 2.0


def cell_centers(level, cx, cy, cz):
    """Cell centers (c - 0.5) / 2**level on each axis."""
    level = np.asarray(level, dtype=np.int32)
    return tuple(np.ldexp(np.asarray(c, dtype=np.float64) - 0.5, -level) for c in (cx, cy, cz))


def point_in_box(point, rng):
    """Inclusive containment of a single point in a ResolvedRange."""
    x, y, z = point
    return bool(rng.xmin <= x <= rng.xmax and rng.ymin <= y <= rng.ymax and rng.zmin <= z <= rng.zmax)


def points_in_box(x, y, z, rng):
    """Vectorized inclusive containment mask."""
    return ((x >= rng.xmin) & (x <= rng.xmax) &
            (y >= rng.ymin) & (y <= rng.ymax) &
            (z >= rng.zmin) & (z <= rng.zmax))


def cells_intersect_box(level, cx, cy, cz, rng):
    """Mask of cells whose closed cube overlaps the closed box.

    Conservative: a cell touching the box boundary is kept. Used while
    decoding rank files, where nothing that could matter may be dropped.
    """
    level = np.asarray(level, dtype=np.int32)
    mask = None
    for c, lo, hi in ((cx, rng.xmin, rng.xmax), (cy, rng.ymin, rng.ymax), (cz, rng.zmin, rng.zmax)):
        c = np.asarray(c, dtype=np.float64)
        left = np.ldexp(c - 1.0, -level)
        right = np.ldexp(c, -level)
        axis_mask = (right >= lo) & (left <= hi)
        mask = axis_mask if mask is None else mask & axis_mask
    return mask


def cells_center_in_box(level, cx, cy, cz, rng):
    """Mask of cells whose center lies in the box (subregion semantics)."""
    x, y, z = cell_centers(level, cx, cy, cz)
    return points_in_box(x, y, z, rng)
