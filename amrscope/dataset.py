"""
Immutable column-oriented container for loaded simulation data.

A `Dataset` is produced by the ingestion engine or by a subregion selection
and is never modified afterwards: its column mapping is read-only and every
column array is flagged non-writeable. Derived datasets share the unit scale
table of the output they were loaded from.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import numpy as np

import amrscope.dataspecs as amrds
from .config import VariableSelectionError, DEFAULT_RANGE_UNIT
from .indexing import cell_centers
from .ranges import ResolvedRange
from .units import UnitScaleTable


@dataclass(frozen=True, eq=False)
class Dataset:
    """Rows of one field group with their provenance.

    Attributes:
        field_group: "hydro", "gravity", "particles" or "clumps"
        columns: Read-only mapping of column name to read-only array
        key_columns: Identity/position columns (e.g. level, cx, cy, cz)
        variables: Selected variable columns in caller order
        lmin: Coarsest level of the simulation
        lmax: Level cap applied while loading
        ranges: Fractional box this dataset was selected from
        scale: Unit scale table of the originating output
        boxlen: Box length in code units
        options: Loader options that shaped the values (smallr, smallc, ...)
    """
    field_group: str
    columns: Mapping[str, np.ndarray]
    key_columns: Tuple[str, ...]
    variables: Tuple[str, ...]
    lmin: int
    lmax: int
    ranges: ResolvedRange
    scale: UnitScaleTable
    boxlen: float
    options: Mapping = field(default_factory=dict)

    def __post_init__(self):
        columns = {}
        nrows = None
        for name, values in self.columns.items():
            values = np.asarray(values)
            if values.ndim != 1:
                raise ValueError(f"Column '{name}' must be one-dimensional, got shape {values.shape}")
            if nrows is None:
                nrows = len(values)
            elif len(values) != nrows:
                raise ValueError(f"Column '{name}' has {len(values)} rows, expected {nrows}")
            values.setflags(write=False)
            columns[name] = values
        missing = [n for n in self.key_columns + self.variables if n not in columns]
        if missing:
            raise ValueError(f"Columns {missing} declared but not provided")
        object.__setattr__(self, "columns", MappingProxyType(columns))
        object.__setattr__(self, "key_columns", tuple(self.key_columns))
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def __reduce__(self):
        # mapping proxies do not pickle; rebuild from plain dicts
        return (Dataset, (self.field_group, dict(self.columns), self.key_columns, self.variables,
                          self.lmin, self.lmax, self.ranges, self.scale, self.boxlen, dict(self.options)))

    def __len__(self):
        return self.nrows

    def __getitem__(self, name):
        try:
            return self.columns[name]
        except KeyError:
            raise VariableSelectionError(f"Column '{name}' is not part of this {self.field_group} dataset. "
                                         f"Columns: {self.column_names}") from None

    def __contains__(self, name):
        return name in self.columns

    def __repr__(self):
        return (f"Dataset({self.field_group}, rows={self.nrows}, columns={self.column_names}, "
                f"lmax={self.lmax}, ranges={self.ranges.bounds})")

    @property
    def nrows(self):
        if not self.columns:
            return 0
        return len(next(iter(self.columns.values())))

    @property
    def column_names(self):
        return list(self.columns)

    @property
    def geometry(self):
        """Record kind of the field group: "grid", "particle" or "clump"."""
        return amrds.fileformats[self.field_group]['kind']

    @property
    def level_min(self) -> Optional[int]:
        """Coarsest level present in the rows, None when empty."""
        if self.nrows == 0 or 'level' not in self.columns:
            return None
        return int(self.columns['level'].min())

    @property
    def level_max(self) -> Optional[int]:
        """Finest level present in the rows, None when empty."""
        if self.nrows == 0 or 'level' not in self.columns:
            return None
        return int(self.columns['level'].max())

    def column(self, name, unit=None):
        """Column values, converted from code units to `unit` when given."""
        values = self[name]
        if unit is None or unit == DEFAULT_RANGE_UNIT:
            return values
        return values * self.scale[unit]

    def positions(self, unit=None):
        """Representative (x, y, z) of each row.

        Cell centers for grid data, particle positions, clump peak positions.
        Fractional by default, or in the length `unit`.
        """
        if self.geometry == 'grid':
            x, y, z = cell_centers(self['level'], self['cx'], self['cy'], self['cz'])
        else:
            x, y, z = (self[name] for name in amrds.fileformats[self.field_group]['position'])
        if unit is None or unit == DEFAULT_RANGE_UNIT:
            return x, y, z
        conv = self.boxlen * self.scale[unit]
        return x * conv, y * conv, z * conv

    def getextent(self, unit=DEFAULT_RANGE_UNIT):
        """Spatial extent of the selection box as ((xmin, xmax), (ymin, ymax), (zmin, zmax))."""
        return self.ranges.extent(self.scale, self.boxlen, unit)

    def memory_usage(self):
        """Bytes held by the column arrays."""
        return sum(values.nbytes for values in self.columns.values())

    def to_records(self):
        """Copy of the rows as a numpy structured array."""
        dtype = [(name, values.dtype) for name, values in self.columns.items()]
        records = np.empty(self.nrows, dtype=dtype)
        for name, values in self.columns.items():
            records[name] = values
        return records

    def select(self, mask, ranges):
        """New dataset holding the rows where `mask` is True, with provenance `ranges`."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (self.nrows,):
            raise ValueError(f"Selection mask has shape {mask.shape}, expected ({self.nrows},)")
        return Dataset(
            field_group=self.field_group,
            columns={name: values[mask] for name, values in self.columns.items()},
            key_columns=self.key_columns,
            variables=self.variables,
            lmin=self.lmin,
            lmax=self.lmax,
            ranges=ranges,
            scale=self.scale,
            boxlen=self.boxlen,
            options=self.options,
        )
