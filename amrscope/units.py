"""
Unit scale tables for AMR simulation outputs.

The simulation stores every quantity in code units described by three base
scalars (length, density and time in cgs). A `UnitScaleTable` holds the
multiplicative factors that turn a code-unit value into a physical one:

    physical_value = code_value * scale[unit]

so that, for a box of length `boxlen` in code units, `boxlen * scale["kpc"]`
is the box length in kiloparsec. Composite units (velocities, densities,
pressures, temperatures) are derived from the base factors.
"""
import logging
import math
from collections.abc import Mapping
from types import MappingProxyType

import numpy as np
from scipy import constants as const

from .config import UnknownUnitError

logger = logging.getLogger(__name__)


# --- Physical constants (cgs) ---
PC_CM = const.parsec * 1e2
LY_CM = const.light_year * 1e2
AU_CM = const.astronomical_unit * 1e2
YR_S = const.Julian_year
KB_CGS = const.k * 1e7            # erg / K
MP_G = const.m_p * 1e3
MH_G = 1.66e-24                   # hydrogen mass as used by RAMSES cooling
MSOL_G = 1.9891e33
MEARTH_G = 5.9722e27
MJUPITER_G = 1.89813e30

X_FRAC = 0.76                     # hydrogen mass fraction
MEAN_MOLECULAR_WEIGHT = 0.6

# Spellings accepted on top of the canonical identifiers
_UNIT_ALIASES = {
    "km/s": "km_s", "m/s": "m_s", "cm/s": "cm_s",
    "g/cm^3": "g_cm3", "g/cm3": "g_cm3", "g/cm³": "g_cm3",
    "Msun/pc^3": "Msun_pc3", "Msun/pc3": "Msun_pc3", "Msun/pc³": "Msun_pc3",
    "Msol/pc^3": "Msol_pc3", "Msol/pc3": "Msol_pc3", "Msol/pc³": "Msol_pc3",
    "Msun/pc^2": "Msun_pc2", "Msun/pc²": "Msun_pc2",
    "μm": "um", "AU": "Au", "au": "Au", "Kelvin": "K",
}


def canonical_unit_name(name):
    """Map a unit spelling onto the identifier used as table key."""
    name = str(name).strip()
    return _UNIT_ALIASES.get(name, name)


class UnitScaleTable(Mapping):
    """Read-only mapping from unit name to code-to-physical factor.

    Supports item access (`scale["kpc"]`) and attribute access
    (`scale.kpc`). Unknown names raise `UnknownUnitError`, which is also a
    `KeyError` so `in` and `get` behave like on any mapping.
    """

    def __init__(self, factors):
        object.__setattr__(self, "_factors", MappingProxyType(dict(factors)))

    def __getitem__(self, name):
        key = canonical_unit_name(name)
        try:
            return self._factors[key]
        except KeyError:
            raise UnknownUnitError(f"Unknown unit '{name}'") from None

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except UnknownUnitError:
            raise AttributeError(f"UnitScaleTable has no unit '{name}'") from None

    def __setattr__(self, name, value):
        raise AttributeError("UnitScaleTable is read-only")

    def __iter__(self):
        return iter(self._factors)

    def __len__(self):
        return len(self._factors)

    def __contains__(self, name):
        return canonical_unit_name(name) in self._factors

    def __repr__(self):
        return f"UnitScaleTable({len(self)} units, kpc={self._factors['kpc']:.6g})"

    def __reduce__(self):
        return (self.__class__, (dict(self._factors),))


def create_scales(unit_l, unit_d, unit_t, unit_m=None, unit_v=None):
    """Build the unit scale table from the base code units.

    Args:
        unit_l: Code length unit in cm
        unit_d: Code density unit in g/cm^3
        unit_t: Code time unit in s
        unit_m: Code mass unit in g, defaults to unit_d * unit_l**3
        unit_v: Code velocity unit in cm/s, defaults to unit_l / unit_t

    Returns:
        UnitScaleTable with multiply-to-physical factors
    """
    for name, value in (("unit_l", unit_l), ("unit_d", unit_d), ("unit_t", unit_t)):
        if not np.isfinite(value) or value <= 0:
            raise ValueError(f"{name} must be a positive finite number, got {value}")
    if unit_m is None:
        unit_m = unit_d * unit_l**3
    if unit_v is None:
        unit_v = unit_l / unit_t

    s = {"standard": 1.0}

    # lengths; pc derives from kpc so that pc == 1000 * kpc holds exactly
    s["kpc"] = unit_l / PC_CM / 1e3
    s["pc"] = s["kpc"] * 1e3
    s["Mpc"] = s["kpc"] / 1e3
    s["mpc"] = s["pc"] * 1e3
    s["ly"] = unit_l / LY_CM
    s["Au"] = unit_l / AU_CM
    s["km"] = unit_l / 1e5
    s["m"] = unit_l / 1e2
    s["cm"] = unit_l
    s["mm"] = unit_l * 10.0
    s["um"] = unit_l * 1e4

    for length in ("Mpc", "kpc", "pc", "mpc", "ly", "Au", "km", "m", "cm", "mm", "um"):
        s[f"{length}3"] = s[length]**3

    # densities and surface densities
    s["Msol_pc3"] = unit_d * PC_CM**3 / MSOL_G
    s["Msun_pc3"] = s["Msol_pc3"]
    s["g_cm3"] = unit_d
    s["Msol_pc2"] = unit_d * unit_l * PC_CM**2 / MSOL_G
    s["Msun_pc2"] = s["Msol_pc2"]

    # times
    s["Gyr"] = unit_t / YR_S / 1e9
    s["Myr"] = unit_t / YR_S / 1e6
    s["yr"] = unit_t / YR_S
    s["s"] = unit_t
    s["ms"] = unit_t * 1e3

    # masses
    s["Msol"] = unit_m / MSOL_G
    s["Msun"] = s["Msol"]
    s["Mearth"] = unit_m / MEARTH_G
    s["Mjupiter"] = unit_m / MJUPITER_G
    s["g"] = unit_m

    # velocities
    s["km_s"] = unit_v / 1e5
    s["m_s"] = unit_v / 1e2
    s["cm_s"] = unit_v

    # thermodynamics
    s["nH"] = X_FRAC / MH_G * unit_d
    s["erg"] = unit_m * unit_v**2
    s["g_cms2"] = unit_m / (unit_l * unit_t**2)
    s["T_mu"] = MH_G / KB_CGS * unit_v**2
    s["K_mu"] = s["T_mu"]
    s["T"] = s["T_mu"] * MEAN_MOLECULAR_WEIGHT
    s["K"] = s["T"]
    s["Ba"] = unit_m / unit_l / unit_t**2
    s["g_cm_s2"] = s["Ba"]
    s["p_kB"] = s["Ba"] / KB_CGS
    s["K_cm3"] = s["p_kB"]
    s["Gauss"] = math.sqrt(4 * math.pi * unit_m / (unit_l * unit_t**2))
    s["muG"] = s["Gauss"] * 1e6

    return UnitScaleTable(s)


def build_scale(metadata):
    """Unit scale table of a loaded simulation output."""
    scale = create_scales(metadata.unit_l, metadata.unit_d, metadata.unit_t,
                          unit_m=metadata.unit_m, unit_v=metadata.unit_v)
    logger.debug(f"Built unit scale table with {len(scale)} units (1 code length = {scale['kpc']:.6g} kpc)")
    return scale


def humanize(value, scale=None, quantity="length", ndigits=3):
    """Express a value in the largest convenient unit.

    Args:
        value: Code-unit length or time, or a byte count for "memory"
        scale: UnitScaleTable (not needed for "memory")
        quantity: "length", "time" or "memory"
        ndigits: Rounding digits of the returned value

    Returns:
        Tuple (value, unit name)
    """
    if quantity == "memory":
        value_buffer, value_unit = float(value), "Bytes"
        for unit in ("KB", "MB", "GB", "TB"):
            if value_buffer <= 1000.0:
                break
            value_buffer, value_unit = value_buffer / 1024.0, unit
        return round(value_buffer, ndigits), value_unit

    if quantity == "length":
        ladder = ("Mpc", "kpc", "pc", "mpc", "cm")
    elif quantity == "time":
        ladder = ("Gyr", "Myr", "yr", "s")
    else:
        raise ValueError(f"Unknown quantity '{quantity}', expected 'length', 'time' or 'memory'")

    if value == 0:
        return 0.0, ladder[-1]
    for unit in ladder:
        converted = value * scale[unit]
        if abs(converted) > 1.0:
            return round(converted, ndigits), unit
    return round(value * scale[ladder[-1]], ndigits), ladder[-1]
