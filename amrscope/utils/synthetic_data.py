"""
Synthetic data generation utilities for amrscope.

Functions for writing small but structurally faithful simulation outputs
(per-rank files plus a YAML descriptor) for testing and debugging.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np

import amrscope.dataspecs as amrds
from ..config import FIELD_GROUPS
from ..metadata import FieldGroupInfo, SimulationMetadata
from ..units import PC_CM

logger = logging.getLogger(__name__)


def write_rank_file(path, field_group, rank, records):
    """
    Write one rank file: header followed by the packed records.

    Args:
        path: Destination file
        field_group: Field group the records belong to
        rank: 1-based rank stored in the header
        records: Structured array with the group's record dtype
    """
    nkeys = len(amrds.fileformats[field_group]['keys'])
    nvar = len(records.dtype.names) - nkeys
    records = np.asarray(records, dtype=amrds.record_dtype(field_group, nvar))

    header = np.zeros(1, dtype=amrds.header_dtype)
    header['magic'] = amrds.MAGIC
    header['version'] = amrds.VERSION
    header['kind'] = amrds.fileformats[field_group]['code']
    header['rank'] = rank
    header['nvar'] = nvar
    header['nrec'] = len(records)

    with open(path, 'wb') as f:
        header.tofile(f)
        records.tofile(f)


def make_uniform_cells(level, nvar, field_group='hydro', seed=42):
    """
    Every cell of a uniform grid at `level` with random variables.

    Returns:
        Structured array with the record dtype of `field_group`
    """
    n = 2**level
    idx = np.arange(1, n + 1, dtype=np.int32)
    cx, cy, cz = (a.ravel() for a in np.meshgrid(idx, idx, idx, indexing='ij'))
    return _cell_records(np.full(cx.size, level, dtype=np.int32), cx, cy, cz, nvar, field_group,
                         np.random.RandomState(seed))


def make_amr_cells(levelmin, levelmax, nvar, field_group='hydro', refine_center=(0.5, 0.5, 0.5),
                   refine_radius=0.3, seed=42):
    """
    Leaf cells of a grid refined towards `refine_center`.

    Starting from the uniform grid at levelmin, every cell whose center lies
    within `refine_radius` (halved at each level) is split into its eight
    children, down to levelmax. Only leaves are returned.
    """
    n = 2**levelmin
    idx = np.arange(1, n + 1, dtype=np.int64)
    cx, cy, cz = (a.ravel() for a in np.meshgrid(idx, idx, idx, indexing='ij'))

    leaves = []
    radius = refine_radius
    for level in range(levelmin, levelmax + 1):
        centers = [(c - 0.5) / 2**level for c in (cx, cy, cz)]
        dist = np.sqrt(sum((p - c)**2 for p, c in zip(centers, refine_center)))
        refine = (dist <= radius) if level < levelmax else np.zeros(cx.size, dtype=bool)
        leaves.append((np.full((~refine).sum(), level), cx[~refine], cy[~refine], cz[~refine]))

        # children of cell c at the next level are 2c-1 and 2c on each axis
        offsets = np.array([(i, j, k) for i in (1, 0) for j in (1, 0) for k in (1, 0)])
        parents = [2 * c[refine] for c in (cx, cy, cz)]
        cx, cy, cz = (np.concatenate([p - o for o in offsets[:, axis]])
                      for axis, p in enumerate(parents))
        radius /= 2.0

    level, cx, cy, cz = (np.concatenate(parts).astype(np.int32) for parts in zip(*leaves))
    return _cell_records(level, cx, cy, cz, nvar, field_group, np.random.RandomState(seed))


def _cell_records(level, cx, cy, cz, nvar, field_group, random_state):
    records = np.zeros(level.size, dtype=amrds.record_dtype(field_group, nvar))
    records['level'], records['cx'], records['cy'], records['cz'] = level, cx, cy, cz
    for i in range(1, nvar + 1):
        values = random_state.normal(0.0, 1.0, level.size)
        if field_group == 'hydro' and i in (1, 5):
            # density and pressure are positive
            values = np.exp(values)
        records[amrds.var_field(i)] = values
    return records


def make_particles(nparticles, nvar, levelmin, levelmax, seed=42):
    """Particles with uniform random positions, dark matter and stars mixed."""
    random_state = np.random.RandomState(seed)
    records = np.zeros(nparticles, dtype=amrds.record_dtype('particles', nvar))
    records['level'] = random_state.randint(levelmin, levelmax + 1, nparticles)
    for axis in ('x', 'y', 'z'):
        records[axis] = random_state.uniform(0.0, 1.0, nparticles)
    records['id'] = np.arange(1, nparticles + 1)
    records['family'] = random_state.choice([1, 2], nparticles)
    records['tag'] = 0
    for i in range(1, nvar + 1):
        records[amrds.var_field(i)] = random_state.normal(0.0, 1.0, nparticles)
    return records


def make_clumps(nclumps, nvar, levelmin, levelmax, seed=42):
    """Clump catalog entries with random peak positions."""
    random_state = np.random.RandomState(seed)
    records = np.zeros(nclumps, dtype=amrds.record_dtype('clumps', nvar))
    records['index'] = np.arange(1, nclumps + 1)
    records['level'] = random_state.randint(levelmin, levelmax + 1, nclumps)
    records['parent'] = records['index']
    records['ncell'] = random_state.randint(1, 1000, nclumps)
    for axis in ('peak_x', 'peak_y', 'peak_z'):
        records[axis] = random_state.uniform(0.0, 1.0, nclumps)
    for i in range(1, nvar + 1):
        records[amrds.var_field(i)] = np.abs(random_state.normal(1.0, 0.5, nclumps))
    return records


def _split_by_position(records, positions, ncpu):
    """Split records into ncpu contiguous slabs along x."""
    order = np.argsort(positions[0], kind='stable')
    return np.array_split(records[order], ncpu)


def generate_synthetic_output(directory,
                              output: int = 1,
                              ncpu: int = 4,
                              boxlen: float = 48.0,
                              levelmin: int = 3,
                              levelmax: int = 5,
                              unit_l: float = PC_CM * 1e3,
                              unit_d: float = 6.77e-23,
                              unit_t: float = 4.71e14,
                              groups: Sequence[str] = FIELD_GROUPS,
                              variables: Optional[Dict[str, Sequence[str]]] = None,
                              cells=None,
                              nparticles: int = 500,
                              nclumps: int = 20,
                              seed: int = 42) -> SimulationMetadata:
    """
    Write a complete synthetic output and return its metadata.

    Args:
        directory: Output directory, created if needed
        output: Output number used in file names
        ncpu: Number of ranks (files per field group)
        boxlen: Box length in code units
        levelmin, levelmax: Refinement level range
        unit_l, unit_d, unit_t: Code units in cgs (default: 1 code length = 1 kpc)
        groups: Field groups to write
        variables: Optional variable names per field group
        cells: Optional structured cell array (level, cx, cy, cz) replacing the
               default refined grid for hydro and gravity
        nparticles: Number of particles
        nclumps: Number of clumps
        seed: Random seed

    Returns:
        SimulationMetadata loaded back from the written descriptor
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    variables = variables or {}

    infos = {}
    for offset, name in enumerate(groups):
        fmt = amrds.fileformats[name]
        names = tuple(variables.get(name, fmt['vars']))
        infos[name] = FieldGroupInfo(name=name, variables=names, file_template=fmt['template'])
        nvar = len(names)
        group_seed = seed + offset

        if fmt['kind'] == 'grid':
            if cells is None:
                records = make_amr_cells(levelmin, levelmax, nvar, name, seed=group_seed)
            else:
                records = _cell_records(np.asarray(cells['level'], dtype=np.int32),
                                        cells['cx'], cells['cy'], cells['cz'], nvar, name,
                                        np.random.RandomState(group_seed))
            positions = [(records[c] - 0.5) / 2.0**records['level'] for c in ('cx', 'cy', 'cz')]
        elif fmt['kind'] == 'particle':
            records = make_particles(nparticles, nvar, levelmin, levelmax, seed=group_seed)
            positions = [records[c] for c in fmt['position']]
        else:
            records = make_clumps(nclumps, nvar, levelmin, levelmax, seed=group_seed)
            positions = [records[c] for c in fmt['position']]

        for rank, part in enumerate(_split_by_position(records, positions, ncpu), start=1):
            write_rank_file(directory / infos[name].filename(output, rank), name, rank, part)
        logger.debug(f"Wrote {len(records)} {name} records over {ncpu} rank files in {directory}")

    metadata = SimulationMetadata(path=directory, output=output, ncpu=ncpu, boxlen=boxlen,
                                  levelmin=levelmin, levelmax=levelmax, unit_l=unit_l,
                                  unit_d=unit_d, unit_t=unit_t, groups=infos)
    descriptor = directory / "simulation.yml"
    metadata.to_yaml(descriptor)
    return SimulationMetadata.from_yaml(descriptor)
