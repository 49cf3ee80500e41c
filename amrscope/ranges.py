"""
Spatial range resolution.

Every spatial request (ingestion bounding boxes and subregion shapes) is
reduced to fractional box coordinates in [0, 1]^3 before any data is touched.
Ranges may be given in fractional units ("standard") or in any length unit of
the output's `UnitScaleTable`, either absolute (measured from the box origin)
or as offsets from a center. Centers accept the sentinels "bc"/"boxcenter".
"""
import logging
import numbers
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .config import InvalidRangeSpec, ShapeError, UnknownUnitError, DEFAULT_RANGE_UNIT
from .units import humanize

logger = logging.getLogger(__name__)

BOX_CENTER_SENTINELS = ("bc", "boxcenter")
AXES = ("x", "y", "z")


@dataclass(frozen=True)
class ResolvedRange:
    """Axis-aligned box in fractional coordinates plus the request center.

    Bounds are not required to be ordered or to lie inside [0, 1]; an inverted
    box simply selects nothing.
    """
    xmin: float = 0.0
    xmax: float = 1.0
    ymin: float = 0.0
    ymax: float = 1.0
    zmin: float = 0.0
    zmax: float = 1.0
    center: Tuple[float, float, float] = (0.5, 0.5, 0.5)

    @property
    def bounds(self):
        return (self.xmin, self.xmax, self.ymin, self.ymax, self.zmin, self.zmax)

    def as_bbox(self):
        """Bounding box as [[xmin, xmax], [ymin, ymax], [zmin, zmax]]."""
        return [[self.xmin, self.xmax], [self.ymin, self.ymax], [self.zmin, self.zmax]]

    @property
    def is_empty(self):
        return self.xmin > self.xmax or self.ymin > self.ymax or self.zmin > self.zmax

    def extent(self, scale=None, boxlen=1.0, unit=DEFAULT_RANGE_UNIT):
        """Bounds in `unit`, as ((xmin, xmax), (ymin, ymax), (zmin, zmax))."""
        conv = _conversion(unit, scale, boxlen)
        b = self.as_bbox()
        return tuple((lo * conv, hi * conv) for lo, hi in b)


FULL_DOMAIN = ResolvedRange()


@dataclass(frozen=True)
class ResolvedShape:
    """Sphere or cylinder in fractional coordinates.

    Attributes:
        shape: "sphere" or "cylinder"
        center: Fractional center
        radius: Outer radius
        inner_radius: Inner radius for shells, else None
        half_height: Half of the cylinder height, None for spheres
        direction: Cylinder axis ("x", "y" or "z")
        bbox: Axis-aligned bounding box clamped to the domain
    """
    shape: str
    center: Tuple[float, float, float]
    radius: float
    inner_radius: Optional[float]
    half_height: Optional[float]
    direction: str
    bbox: ResolvedRange


def _conversion(range_unit, scale, boxlen):
    """Length of the box expressed in `range_unit`."""
    if range_unit is None or range_unit == DEFAULT_RANGE_UNIT:
        return 1.0
    if scale is None:
        raise InvalidRangeSpec(f"range_unit '{range_unit}' needs a unit scale table")
    try:
        conv = boxlen * scale[range_unit]
    except UnknownUnitError as e:
        raise InvalidRangeSpec(f"Unknown range unit '{range_unit}'") from e
    return conv


def _as_number(value, what):
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, np.floating, np.integer)):
        raise InvalidRangeSpec(f"{what} must be a number, got {value!r}")
    value = float(value)
    if np.isnan(value):
        raise InvalidRangeSpec(f"{what} must not be NaN")
    return value


def _is_sentinel(value):
    return isinstance(value, str) and value.lower() in BOX_CENTER_SENTINELS


def resolve_center(center, conv):
    """Fractional center from a center specification.

    Args:
        center: None, a sentinel string, a 1-item sequence holding a sentinel,
            or a 3-item sequence of numbers (in the range unit) and sentinels
        conv: Box length in the range unit

    Returns:
        Tuple of three fractional coordinates, or None when no center was given
    """
    if center is None:
        return None
    if isinstance(center, str):
        center = [center]
    try:
        items = list(center)
    except TypeError:
        raise InvalidRangeSpec(f"center must be a sequence, got {center!r}") from None

    if len(items) == 1:
        if not _is_sentinel(items[0]):
            raise InvalidRangeSpec(f"A single-item center must be one of {BOX_CENTER_SENTINELS}, got {items[0]!r}")
        return (0.5, 0.5, 0.5)
    if len(items) != 3:
        raise InvalidRangeSpec(f"center must have 1 or 3 entries, got {len(items)}")

    resolved = []
    for axis, item in zip(AXES, items):
        if isinstance(item, str):
            if not _is_sentinel(item):
                raise InvalidRangeSpec(f"Unknown center sentinel {item!r} on axis {axis}; "
                                       f"expected one of {BOX_CENTER_SENTINELS}")
            resolved.append(0.5)
        else:
            resolved.append(_as_number(item, f"center[{axis}]") / conv)
    return tuple(resolved)


def _axis_offsets(rng, axis, centered):
    """(lo, hi) offsets of one axis, either side None when not given."""
    if rng is None:
        return None, None
    if isinstance(rng, (numbers.Real, np.floating, np.integer)) and not isinstance(rng, bool):
        if not centered:
            raise InvalidRangeSpec(f"A scalar {axis}range is a half width and needs a center")
        half = _as_number(rng, f"{axis}range")
        if half < 0:
            raise InvalidRangeSpec(f"{axis}range half width must be >= 0, got {half}")
        return -half, half
    try:
        items = list(rng)
    except TypeError:
        raise InvalidRangeSpec(f"{axis}range must be a pair, got {rng!r}") from None
    if len(items) != 2:
        raise InvalidRangeSpec(f"{axis}range must have 2 entries, got {len(items)}")
    lo, hi = (None if v is None else _as_number(v, f"{axis}range") for v in items)
    if lo is not None and hi is not None and lo > hi:
        raise InvalidRangeSpec(f"{axis}min > {axis}max: {lo} > {hi}")
    return lo, hi


def resolve(xrange=None, yrange=None, zrange=None, center=None,
            range_unit=DEFAULT_RANGE_UNIT, scale=None, boxlen=1.0,
            dataranges=FULL_DOMAIN) -> ResolvedRange:
    """Resolve a spatial request into a fractional bounding box.

    Args:
        xrange, yrange, zrange: None, (lo, hi) with optional None sides, or a
            scalar half width when a center is given. Values are in
            `range_unit`; absolute positions without a center, offsets from
            the center otherwise. A ResolvedRange passed as `xrange` with no
            other argument is returned as is.
        center: None, "bc"/"boxcenter", or three numbers/sentinels
        range_unit: "standard" (fractional) or a length unit of `scale`
        scale: UnitScaleTable of the output
        boxlen: Box length in code units
        dataranges: Domain the result is clamped to

    Returns:
        ResolvedRange

    Raises:
        InvalidRangeSpec: For unknown units, malformed centers or bounds, or
            a lower bound above its upper bound
    """
    if isinstance(xrange, ResolvedRange):
        if yrange is not None or zrange is not None or center is not None:
            raise InvalidRangeSpec("A ResolvedRange cannot be combined with further range arguments")
        return xrange

    conv = _conversion(range_unit, scale, boxlen)
    center_frac = resolve_center(center, conv)
    centered = center_frac is not None
    origin = center_frac if centered else (0.0, 0.0, 0.0)

    defaults = dataranges.as_bbox()
    resolved = []
    for i, (axis, rng) in enumerate(zip(AXES, (xrange, yrange, zrange))):
        lo, hi = _axis_offsets(rng, axis, centered)
        dmin, dmax = defaults[i]
        vmin = dmin if lo is None else origin[i] + lo / conv
        vmax = dmax if hi is None else origin[i] + hi / conv
        # clamp to the data domain; out-of-domain requests end up inverted
        resolved.append((max(vmin, dmin), min(vmax, dmax)))

    (xmin, xmax), (ymin, ymax), (zmin, zmax) = resolved
    if not centered:
        center_frac = ((xmin + xmax) / 2.0, (ymin + ymax) / 2.0, (zmin + zmax) / 2.0)

    return ResolvedRange(xmin, xmax, ymin, ymax, zmin, zmax, tuple(center_frac))


def _positive(value, what, conv):
    value = _as_number(value, what)
    if value <= 0:
        raise ShapeError(f"{what} must be > 0, got {value}")
    return value / conv


def _require_center(center, conv, shape):
    if center is None:
        raise ShapeError(f"A {shape} selection needs a center")
    return resolve_center(center, conv)


def _clamped_box(center, half_widths):
    lo = [max(c - h, 0.0) for c, h in zip(center, half_widths)]
    hi = [min(c + h, 1.0) for c, h in zip(center, half_widths)]
    return ResolvedRange(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2], tuple(center))


def resolve_sphere(center, radius, range_unit=DEFAULT_RANGE_UNIT, scale=None, boxlen=1.0,
                   inner_radius=None):
    """Fractional sphere (or spherical shell when `inner_radius` is given)."""
    conv = _conversion(range_unit, scale, boxlen)
    c = _require_center(center, conv, "sphere")
    r = _positive(radius, "radius", conv)
    r_in = None
    if inner_radius is not None:
        r_in = _positive(inner_radius, "inner radius", conv)
        if r_in >= r:
            raise ShapeError(f"Inner radius must be smaller than the outer radius ({inner_radius} >= {radius})")
    return ResolvedShape(shape="sphere", center=c, radius=r, inner_radius=r_in,
                         half_height=None, direction="z", bbox=_clamped_box(c, (r, r, r)))


def resolve_cylinder(center, radius, height, direction="z", range_unit=DEFAULT_RANGE_UNIT,
                     scale=None, boxlen=1.0, inner_radius=None):
    """Fractional cylinder along `direction`; `height` spans both sides of the center plane."""
    if direction not in AXES:
        raise ShapeError(f"direction must be one of {AXES}, got {direction!r}")
    conv = _conversion(range_unit, scale, boxlen)
    c = _require_center(center, conv, "cylinder")
    r = _positive(radius, "radius", conv)
    if height is None:
        raise ShapeError("A cylinder selection needs a height")
    half_h = _positive(height, "height", conv) / 2.0
    r_in = None
    if inner_radius is not None:
        r_in = _positive(inner_radius, "inner radius", conv)
        if r_in >= r:
            raise ShapeError(f"Inner radius must be smaller than the outer radius ({inner_radius} >= {radius})")
    half_widths = tuple(half_h if axis == direction else r for axis in AXES)
    return ResolvedShape(shape="cylinder", center=c, radius=r, inner_radius=r_in,
                         half_height=half_h, direction=direction, bbox=_clamped_box(c, half_widths))


def describe_range(rng, scale, boxlen):
    """One-line human readable summary of a resolved range."""
    parts = []
    for axis, (lo, hi) in zip(AXES, rng.as_bbox()):
        lo_val, lo_unit = humanize(lo * boxlen, scale, "length")
        hi_val, hi_unit = humanize(hi * boxlen, scale, "length")
        parts.append(f"{axis}: {lo:.7g}::{hi:.7g} ==> {lo_val} [{lo_unit}] :: {hi_val} [{hi_unit}]")
    return "; ".join(parts)
