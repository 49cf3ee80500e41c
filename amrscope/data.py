# -*- coding: utf-8 -*-
"""
AMR output data interface.

PER-RANK PARALLEL INGESTION
===========================

A simulation output is split into one file per rank and per field group
(hydro, gravity, particles, clumps). Loading a field group means decoding
every rank file, culling records outside the requested region, and merging
the survivors into a single immutable `Dataset`.

Pipeline:
---------

1. Validation (main process, before any file is opened)
   - field group present in the output
   - level cap inside [levelmin, levelmax]
   - variable selection resolved once to 1-based column indices

2. Decode (worker processes)
   - rank files are distributed round-robin over min(nproc, ncpu) workers
     of a multiprocessing.Pool; nproc == 1 decodes serially
   - each file header is validated (magic, version, group, rank, variable
     count, payload size) before any record is read
   - records are read in bounded chunks and culled immediately, so peak
     memory follows the selection rather than the file size

3. Merge (main process)
   - per-file partials are concatenated in ascending rank order, which
     makes the result independent of the worker count and scheduling
   - any failure aborts the whole load; partial datasets are never returned

Culling:
--------
- cells: kept when their cube overlaps the box (boundary cells included)
  and their level does not exceed the cap
- particles and clumps: kept when their position lies in the box

Environment Variables:
---------------------
- AMRSCOPE_NPROC: default worker count
- AMRSCOPE_CHUNK_RECORDS: records decoded per read
"""
import multiprocessing as mp
import numpy as np
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import amrscope.dataspecs as amrds
from .config import (RunConfig, AmrscopeConfigError, VariableSelectionError, LevelRangeError,
                     RankFileNotFoundError, MalformedHeaderError, VariableCountMismatchError,
                     TruncatedPayloadError)
from .dataset import Dataset
from .indexing import cells_intersect_box, points_in_box
from .metadata import SimulationMetadata, load_metadata
from .ranges import FULL_DOMAIN, ResolvedRange, resolve, describe_range
from .units import humanize


logger = logging.getLogger(__name__)

# hydro variables subject to floors and sign checks (1-based)
DENSITY_INDEX = 1
PRESSURE_INDEX = 5


def _log_info(message, config):
    """Log a summary message at INFO when the run is verbose, DEBUG otherwise."""
    if config.verbose:
        logger.info(message)
    else:
        logger.debug(message)


@dataclass(frozen=True)
class VariableSelection:
    """Variables requested from one field group.

    Attributes:
        names: Caller-visible variable names, in request order
        indices: 1-based file column of each name
        include_cpu: Whether the originating rank is added as column 'cpu'
    """
    names: Tuple[str, ...]
    indices: Tuple[int, ...]
    include_cpu: bool = False


def resolve_variables(group_info, vars="all"):
    """Resolve a variable request against the declared variables of a field group.

    Args:
        group_info: FieldGroupInfo of the field group
        vars: "all", a variable name, a 1-based number, a "varN" alias, the
            special "cpu", or a list of those

    Returns:
        VariableSelection with duplicates removed, first occurrence kept

    Raises:
        VariableSelectionError: If a variable does not exist in the group
    """
    requested = list(vars) if isinstance(vars, (list, tuple)) else [vars]
    if not requested:
        raise VariableSelectionError(f"No variables selected for field group '{group_info.name}'")

    nvar = group_info.nvar
    indices = []
    include_cpu = False
    for item in requested:
        if isinstance(item, (int, np.integer)) and not isinstance(item, bool):
            if not 1 <= item <= nvar:
                raise VariableSelectionError(f"Variable number {item} out of range 1..{nvar} "
                                             f"for field group '{group_info.name}'")
            indices.append(int(item))
            continue
        if not isinstance(item, str):
            raise VariableSelectionError(f"Cannot interpret variable {item!r} for field group '{group_info.name}'")
        if item == "all":
            indices.extend(range(1, nvar + 1))
        elif item == "cpu":
            include_cpu = True
        elif item in group_info.variables:
            indices.append(group_info.variables.index(item) + 1)
        else:
            match = re.fullmatch(r'var(\d+)', item)
            if match and 1 <= int(match.group(1)) <= nvar:
                indices.append(int(match.group(1)))
            else:
                raise VariableSelectionError(f"Unknown variable '{item}' for field group '{group_info.name}'. "
                                             f"Available: {list(group_info.variables)}")

    unique = list(dict.fromkeys(indices))
    names = tuple(group_info.variables[i - 1] for i in unique)
    return VariableSelection(names=names, indices=tuple(unique), include_cpu=include_cpu)


class FileReader:
    """Handles per-rank file I/O."""

    @staticmethod
    def get_filename(metadata, field_group, rank):
        """Path of the rank file of `field_group` for 1-based `rank`."""
        info = metadata.group(field_group)
        return metadata.path / info.filename(metadata.output, rank)

    @staticmethod
    def read_header(filepath, field_group, rank, nvar):
        """Read and validate the header of a rank file.

        Args:
            filepath: Path of the rank file
            field_group: Field group the file should belong to
            rank: Rank the file should belong to
            nvar: Variable count declared by the metadata

        Returns:
            Number of records in the payload

        Raises:
            RankFileNotFoundError: If the file does not exist
            MalformedHeaderError: If the header is short or inconsistent
            VariableCountMismatchError: If the header declares another variable count
            TruncatedPayloadError: If the payload is shorter than declared
        """
        context = dict(path=filepath, field_group=field_group, rank=rank)
        if not filepath.exists():
            raise RankFileNotFoundError("Rank file not found", **context)

        size = filepath.stat().st_size
        if size < amrds.HEADER_SIZE:
            raise MalformedHeaderError(f"File holds {size} bytes, header needs {amrds.HEADER_SIZE}", **context)

        header = np.fromfile(filepath, dtype=amrds.header_dtype, count=1)[0]
        if header['magic'] != amrds.MAGIC:
            raise MalformedHeaderError(f"Bad magic {bytes(header['magic'])!r}", **context)
        if header['version'] != amrds.VERSION:
            raise MalformedHeaderError(f"Unsupported format version {int(header['version'])}", **context)
        expected_code = amrds.fileformats[field_group]['code']
        if header['kind'] != expected_code:
            found = amrds.kinds_by_code.get(int(header['kind']), int(header['kind']))
            raise MalformedHeaderError(f"File holds field group '{found}'", **context)
        if header['rank'] != rank:
            raise MalformedHeaderError(f"Header declares rank {int(header['rank'])}", **context)
        if header['nvar'] != nvar:
            raise VariableCountMismatchError(
                f"Header declares {int(header['nvar'])} variables, metadata declares {nvar}", **context)
        nrec = int(header['nrec'])
        if nrec < 0:
            raise MalformedHeaderError(f"Negative record count {nrec}", **context)

        expected = amrds.HEADER_SIZE + nrec * amrds.record_dtype(field_group, nvar).itemsize
        if size < expected:
            raise TruncatedPayloadError(f"File holds {size} bytes, header declares {expected}", **context)
        if size > expected:
            raise MalformedHeaderError(f"File holds {size - expected} bytes beyond the declared payload", **context)
        return nrec

    @staticmethod
    def read_chunk(filepath, dtype, offset=0, count=-1):
        """Read `count` records of `dtype` starting at byte `offset`."""
        return np.fromfile(filepath, dtype=dtype, offset=offset, count=count)


class DataProcessor:
    """Handles record culling and column extraction."""

    @staticmethod
    def cull(records, field_group, rng, lmax):
        """Mask of records inside the box (and under the level cap for grid data)."""
        fmt = amrds.fileformats[field_group]
        if fmt['kind'] == 'grid':
            mask = records['level'] <= lmax
            mask &= cells_intersect_box(records['level'], records['cx'], records['cy'], records['cz'], rng)
            return mask
        x, y, z = (records[name] for name in fmt['position'])
        return points_in_box(x, y, z, rng)

    @staticmethod
    def extract(records, mask, field_group, selection, rank):
        """Selected key and variable columns of the culled records."""
        kept = records[mask]
        columns = {name: np.ascontiguousarray(kept[name]) for name in amrds.key_names(field_group)}
        if selection.include_cpu:
            columns['cpu'] = np.full(len(kept), rank, dtype=np.int32)
        for name, index in zip(selection.names, selection.indices):
            columns[name] = np.ascontiguousarray(kept[amrds.var_field(index)])
        return columns

    @staticmethod
    def empty_columns(field_group, selection, nvar):
        dtype = amrds.record_dtype(field_group, nvar)
        return DataProcessor.extract(np.empty(0, dtype=dtype), np.empty(0, dtype=bool),
                                     field_group, selection, rank=0)

    @staticmethod
    def merge(partials, field_group, selection, nvar):
        """Concatenate per-file columns in ascending rank order."""
        if not partials:
            return DataProcessor.empty_columns(field_group, selection, nvar)
        ordered = [columns for _, columns in sorted(partials, key=lambda p: p[0])]
        return {name: np.concatenate([columns[name] for columns in ordered]) for name in ordered[0]}


def _read_rank_file(filepath, rank, field_group, nvar, selection, rng, lmax, chunk_records, print_filenames):
    """Decode and cull one rank file."""
    if print_filenames:
        logger.info(f"Reading {filepath}")
    nrec = FileReader.read_header(filepath, field_group, rank, nvar)
    dtype = amrds.record_dtype(field_group, nvar)

    chunks = []
    for start in range(0, nrec, chunk_records):
        count = min(chunk_records, nrec - start)
        records = FileReader.read_chunk(filepath, dtype, offset=amrds.HEADER_SIZE + start * dtype.itemsize,
                                        count=count)
        if len(records) != count:
            raise TruncatedPayloadError(f"Read {len(records)} of {count} records at record {start}",
                                        path=filepath, field_group=field_group, rank=rank)
        mask = DataProcessor.cull(records, field_group, rng, lmax)
        chunks.append(DataProcessor.extract(records, mask, field_group, selection, rank))

    if not chunks:
        return DataProcessor.empty_columns(field_group, selection, nvar)
    return {name: np.concatenate([chunk[name] for chunk in chunks]) for name in chunks[0]}


def _read_rank_files(task_id, files, field_group, nvar, selection, rng, lmax, chunk_records,
                     print_filenames, show_progress):
    """Worker entry point: decode a list of (rank, path) files."""
    partials = []
    for i, (rank, filepath) in enumerate(files):
        partials.append((rank, _read_rank_file(filepath, rank, field_group, nvar, selection,
                                               rng, lmax, chunk_records, print_filenames)))
        if show_progress:
            logger.info(f"Task {task_id}: decoded rank {rank} ({i + 1}/{len(files)} files)")
    return partials


def _decode_files(files, field_group, nvar, selection, rng, lmax, config):
    """Decode all rank files, serially or with a process pool."""
    nworkers = min(config.nproc, len(files))
    common = (field_group, nvar, selection, rng, lmax, config.chunk_records,
              config.print_filenames, config.show_progress)

    if nworkers <= 1:
        _log_info(f"Using serial execution for {len(files)} files", config)
        return _read_rank_files(0, files, *common)

    args = [(task, files[task::nworkers]) + common for task in range(nworkers)]
    _log_info(f"Using parallel execution for {len(files)} files (nproc={nworkers})", config)
    # leaving the context terminates the pool, so one failing file stops all workers
    with mp.Pool(processes=nworkers) as pool:
        results = pool.starmap(_read_rank_files, args)
    return [partial for result in results for partial in result]


def _apply_hydro_floors(columns, selection, smallr, smallc, check_negvalues):
    """Density/pressure floors and negative value checks on loaded hydro columns."""
    named = dict(zip(selection.indices, selection.names))
    for index, label, floor in ((DENSITY_INDEX, "density", smallr), (PRESSURE_INDEX, "pressure", smallc)):
        name = named.get(index)
        if name is None:
            continue
        if check_negvalues:
            nneg = int(np.count_nonzero(columns[name] < 0))
            if nneg:
                logger.warning(f"Found {nneg} negative {label} values in column '{name}'")
        if floor > 0:
            columns[name] = np.maximum(columns[name], floor)


def ingest(metadata, field_group, vars="all", ranges=None, lmax=None, config=None,
           smallr=0.0, smallc=0.0, check_negvalues=False):
    """Load one field group of an output into a Dataset.

    Args:
        metadata: SimulationMetadata of the output
        field_group: "hydro", "gravity", "particles" or "clumps"
        vars: Variable selection (see resolve_variables)
        ranges: ResolvedRange to load, full domain when None
        lmax: Level cap for grid data, defaults to the finest level
        config: RunConfig, defaults to RunConfig()
        smallr: Density floor applied to hydro data
        smallc: Pressure floor applied to hydro data
        check_negvalues: Warn about negative hydro density or pressure

    Returns:
        Dataset holding the selected rows in rank order

    Raises:
        FieldGroupError: If the group is unknown or absent
        LevelRangeError: If lmax lies outside [levelmin, levelmax]
        VariableSelectionError: If a requested variable does not exist
        IngestError: If any rank file is missing, malformed or truncated
    """
    config = config or RunConfig()
    start_time = time.time()

    group_info = metadata.group(field_group)
    if lmax is None:
        lmax = metadata.levelmax
    if isinstance(lmax, bool) or not isinstance(lmax, (int, np.integer)):
        raise LevelRangeError(f"lmax must be an integer, got {lmax!r}")
    if not metadata.levelmin <= lmax <= metadata.levelmax:
        raise LevelRangeError(f"lmax={lmax} outside the simulation levels "
                              f"[{metadata.levelmin}, {metadata.levelmax}]")
    if field_group != 'hydro' and (smallr or smallc or check_negvalues):
        raise AmrscopeConfigError("smallr, smallc and check_negvalues only apply to hydro data")
    if smallr < 0 or smallc < 0:
        raise AmrscopeConfigError(f"Floors must be >= 0, got smallr={smallr}, smallc={smallc}")

    selection = resolve_variables(group_info, vars)
    rng = FULL_DOMAIN if ranges is None else ranges
    if not isinstance(rng, ResolvedRange):
        raise AmrscopeConfigError(f"ranges must be a ResolvedRange, got {type(rng).__name__}")

    files = metadata.rank_files(field_group)
    _log_info(f"Loading {field_group} of output {metadata.output} from {len(files)} files", config)
    _log_info(f"Variables: {list(selection.names)}" + (" + cpu" if selection.include_cpu else ""), config)
    _log_info(f"Domain: {describe_range(rng, metadata.scale, metadata.boxlen)}", config)
    _log_info(f"Levels: {metadata.levelmin}..{lmax}", config)

    partials = _decode_files(files, field_group, group_info.nvar, selection, rng, int(lmax), config)
    columns = DataProcessor.merge(partials, field_group, selection, group_info.nvar)

    options = {}
    if field_group == 'hydro':
        _apply_hydro_floors(columns, selection, smallr, smallc, check_negvalues)
        options = {'smallr': smallr, 'smallc': smallc}

    key_columns = tuple(amrds.key_names(field_group)) + (('cpu',) if selection.include_cpu else ())
    dataset = Dataset(
        field_group=field_group,
        columns=columns,
        key_columns=key_columns,
        variables=selection.names,
        lmin=metadata.levelmin,
        lmax=int(lmax),
        ranges=rng,
        scale=metadata.scale,
        boxlen=metadata.boxlen,
        options=options,
    )

    mem_val, mem_unit = humanize(dataset.memory_usage(), quantity="memory")
    _log_info(f"Loaded {len(dataset)} {field_group} rows ({mem_val} {mem_unit}) "
              f"in {time.time() - start_time:.2f} seconds", config)
    return dataset


class Data:
    """Simulation output data interface."""

    def __init__(self, metadata, *, config=None):
        """Initialize the data interface.

        Args:
            metadata: SimulationMetadata, or a path accepted by load_metadata
            config: RunConfig used by every load through this object
        """
        if not isinstance(metadata, SimulationMetadata):
            metadata = load_metadata(Path(metadata))
        self.metadata = metadata
        self.config = config or RunConfig()

        _log_info(f"Initialized data interface for output {metadata.output} ({metadata.path})", self.config)
        _log_info(f"Found {metadata.ncpu} ranks, field groups {list(metadata.groups)}", self.config)

    @property
    def scale(self):
        return self.metadata.scale

    def resolve_range(self, xrange=None, yrange=None, zrange=None, center=None, range_unit="standard"):
        """Resolve a spatial request against this output's box and units."""
        return resolve(xrange, yrange, zrange, center=center, range_unit=range_unit,
                       scale=self.metadata.scale, boxlen=self.metadata.boxlen)

    def fetch_data(self, field_group, vars="all", ranges=None, lmax=None, **hydro_options):
        """Load `field_group` for an already resolved range."""
        return ingest(self.metadata, field_group, vars=vars, ranges=ranges, lmax=lmax,
                      config=self.config, **hydro_options)

    def gethydro(self, vars="all", *, xrange=None, yrange=None, zrange=None, center=None,
                 range_unit="standard", lmax=None, smallr=0.0, smallc=0.0, check_negvalues=False):
        """Load hydro cells."""
        rng = self.resolve_range(xrange, yrange, zrange, center, range_unit)
        return self.fetch_data('hydro', vars, rng, lmax, smallr=smallr, smallc=smallc,
                               check_negvalues=check_negvalues)

    def getgravity(self, vars="all", *, xrange=None, yrange=None, zrange=None, center=None,
                   range_unit="standard", lmax=None):
        """Load gravity cells."""
        rng = self.resolve_range(xrange, yrange, zrange, center, range_unit)
        return self.fetch_data('gravity', vars, rng, lmax)

    def getparticles(self, vars="all", *, xrange=None, yrange=None, zrange=None, center=None,
                     range_unit="standard"):
        """Load particles."""
        rng = self.resolve_range(xrange, yrange, zrange, center, range_unit)
        return self.fetch_data('particles', vars, rng)

    def getclumps(self, vars="all", *, xrange=None, yrange=None, zrange=None, center=None,
                  range_unit="standard"):
        """Load the clump catalog."""
        rng = self.resolve_range(xrange, yrange, zrange, center, range_unit)
        return self.fetch_data('clumps', vars, rng)
