"""
Simulation metadata for one AMR output.

An output directory is described either by a YAML descriptor
(`simulation.yml`) or by RAMSES-style text files (`info_NNNNN.txt` plus
optional `<group>_file_descriptor.txt`). Both are loaded into an immutable
`SimulationMetadata` record that the ingestion engine consumes.
"""
import logging
import re
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

import amrscope.dataspecs as amrds
from .config import FieldGroupError, MetadataError, DEFAULT_METADATA_FILE
from .units import build_scale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldGroupInfo:
    """Declared layout of one field group of an output."""
    name: str
    variables: Tuple[str, ...]
    file_template: str

    def __post_init__(self):
        if self.name not in amrds.fileformats:
            raise FieldGroupError(f"Unknown field group '{self.name}'. "
                                  f"Known groups: {list(amrds.fileformats)}")
        variables = tuple(str(v) for v in self.variables)
        object.__setattr__(self, "variables", variables)
        if len(set(variables)) != len(variables):
            raise MetadataError(f"Duplicate variable names in field group '{self.name}': {list(variables)}")
        clashes = set(variables) & set(amrds.key_names(self.name)) | ({"cpu"} & set(variables))
        if clashes:
            raise MetadataError(f"Variable names {sorted(clashes)} of field group '{self.name}' "
                                f"collide with reserved column names")

    @property
    def nvar(self):
        return len(self.variables)

    def filename(self, output, rank):
        return self.file_template.format(output=output, rank=rank)


@dataclass(frozen=True)
class SimulationMetadata:
    """Scalars and field-group layouts of one simulation output.

    Attributes:
        path: Output directory holding the per-rank files
        output: Output number
        ncpu: Number of ranks, i.e. files per field group
        boxlen: Box length in code units
        levelmin: Coarsest refinement level
        levelmax: Finest refinement level
        unit_l: Code length unit [cm]
        unit_d: Code density unit [g/cm^3]
        unit_t: Code time unit [s]
        unit_m: Code mass unit [g], derived from unit_d and unit_l when omitted
        unit_v: Code velocity unit [cm/s], derived from unit_l and unit_t when omitted
        time: Simulation time of the output in code units
        groups: Field groups present in the output
    """
    path: Path
    output: int
    ncpu: int
    boxlen: float
    levelmin: int
    levelmax: int
    unit_l: float
    unit_d: float
    unit_t: float
    unit_m: Optional[float] = None
    unit_v: Optional[float] = None
    time: float = 0.0
    groups: Dict[str, FieldGroupInfo] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))
        if self.unit_m is None:
            object.__setattr__(self, "unit_m", self.unit_d * self.unit_l**3)
        if self.unit_v is None:
            object.__setattr__(self, "unit_v", self.unit_l / self.unit_t)
        if self.ncpu < 1:
            raise MetadataError(f"ncpu must be >= 1, got {self.ncpu}")
        if self.boxlen <= 0:
            raise MetadataError(f"boxlen must be positive, got {self.boxlen}")
        if not 0 <= self.levelmin <= self.levelmax:
            raise MetadataError(f"Invalid level range: levelmin={self.levelmin}, levelmax={self.levelmax}")
        for name, info in self.groups.items():
            if name != info.name:
                raise MetadataError(f"Field group registered as '{name}' describes '{info.name}'")

    @cached_property
    def scale(self):
        """UnitScaleTable shared by every dataset loaded from this output."""
        return build_scale(self)

    def group(self, name):
        """Layout of field group `name`.

        Raises:
            FieldGroupError: If the group is unknown or absent from this output
        """
        if name not in amrds.fileformats:
            raise FieldGroupError(f"Unknown field group '{name}'. Known groups: {list(amrds.fileformats)}")
        if name not in self.groups:
            raise FieldGroupError(f"Field group '{name}' is not present in output {self.output} "
                                  f"({self.path}). Present groups: {list(self.groups)}")
        return self.groups[name]

    def rank_files(self, name) -> List[Tuple[int, Path]]:
        """(rank, path) pairs of every per-rank file of field group `name`, ranks 1..ncpu."""
        info = self.group(name)
        return [(rank, self.path / info.filename(self.output, rank))
                for rank in range(1, self.ncpu + 1)]

    @classmethod
    def from_yaml(cls, yaml_path):
        """Load metadata from a YAML descriptor.

        The output directory defaults to the directory holding the descriptor.
        Groups may omit `file_template` and `variables`; the defaults of
        `amrscope.dataspecs` apply.

        Raises:
            FileNotFoundError: If the descriptor does not exist
            MetadataError: If required keys are missing or malformed
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Metadata file not found: {yaml_path}")

        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise MetadataError(f"Metadata file {yaml_path} must hold a mapping")

        required = ['output', 'ncpu', 'boxlen', 'levelmin', 'levelmax', 'unit_l', 'unit_d', 'unit_t']
        missing = [key for key in required if key not in data]
        if missing:
            raise MetadataError(f"Missing required metadata keys in {yaml_path}: {missing}")

        groups = {}
        for name, spec in (data.get('groups') or {}).items():
            spec = spec or {}
            fmt = amrds.fileformats.get(name)
            if fmt is None:
                raise FieldGroupError(f"Unknown field group '{name}' in {yaml_path}")
            groups[name] = FieldGroupInfo(
                name=name,
                variables=tuple(spec.get('variables', fmt['vars'])),
                file_template=spec.get('file_template', fmt['template']),
            )

        try:
            return cls(
                path=Path(data.get('path', yaml_path.parent)),
                output=int(data['output']),
                ncpu=int(data['ncpu']),
                boxlen=float(data['boxlen']),
                levelmin=int(data['levelmin']),
                levelmax=int(data['levelmax']),
                unit_l=float(data['unit_l']),
                unit_d=float(data['unit_d']),
                unit_t=float(data['unit_t']),
                unit_m=float(data['unit_m']) if data.get('unit_m') is not None else None,
                unit_v=float(data['unit_v']) if data.get('unit_v') is not None else None,
                time=float(data.get('time', 0.0)),
                groups=groups,
            )
        except (TypeError, ValueError) as e:
            raise MetadataError(f"Malformed metadata in {yaml_path}: {e}") from e

    def to_yaml(self, yaml_path):
        """Write this metadata as a YAML descriptor readable by `from_yaml`."""
        data = {
            'output': self.output,
            'ncpu': self.ncpu,
            'boxlen': self.boxlen,
            'levelmin': self.levelmin,
            'levelmax': self.levelmax,
            'unit_l': self.unit_l,
            'unit_d': self.unit_d,
            'unit_t': self.unit_t,
            'unit_m': self.unit_m,
            'unit_v': self.unit_v,
            'time': self.time,
            'groups': {name: {'variables': list(info.variables),
                              'file_template': info.file_template}
                       for name, info in self.groups.items()},
        }
        with open(yaml_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


class MetadataParser:
    """Handles parsing of RAMSES-style info and file descriptor files."""

    @staticmethod
    def parse_parameter(content, varname, vartype):
        """Parse a `name = value` scalar from info file content.

        Args:
            content: The info file content as a string
            varname: Name of the parameter to find
            vartype: Expected type (float, int)

        Returns:
            Parsed value or None if not found
        """
        escaped_name = re.escape(varname)
        if vartype == int:
            match = re.search(rf'^\s*{escaped_name}\s*=\s*([-+]?\d+)\s*$', content, re.MULTILINE)
            return int(match.group(1)) if match else None
        # Fortran output may use D exponents
        match = re.search(rf'^\s*{escaped_name}\s*=\s*([-+]?\d*\.?\d+(?:[eEdD][-+]?\d+)?)',
                          content, re.MULTILINE)
        return float(match.group(1).replace('D', 'E').replace('d', 'e')) if match else None

    @staticmethod
    def parse_descriptor(content):
        """Variable names from a `<group>_file_descriptor.txt`.

        Understands both the legacy `variable #  1: density` lines and the
        csv form `1, density, d`.
        """
        variables = []
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            legacy = re.match(r'variable\s*#\s*(\d+)\s*:\s*(\S+)', line)
            if legacy:
                variables.append(legacy.group(2))
                continue
            parts = [p.strip() for p in line.split(',')]
            if len(parts) >= 2 and parts[0].isdigit():
                variables.append(parts[1])
        return variables

    @staticmethod
    def load_info(info_file, groups=None):
        """Load metadata from a RAMSES-style `info_NNNNN.txt`.

        Field groups are detected from the presence of their rank-1 file next
        to the info file, with variable names from the matching descriptor file
        when one exists.

        Args:
            info_file: Path to the info file
            groups: Optional explicit list of field groups to register

        Returns:
            SimulationMetadata

        Raises:
            FileNotFoundError: If the info file doesn't exist
            MetadataError: If required scalars are missing
        """
        info_file = Path(info_file)
        if not info_file.exists():
            raise FileNotFoundError(f"Info file not found: {info_file}")
        content = info_file.read_text()

        match = re.search(r'info_(\d+)\.txt$', info_file.name)
        if not match:
            raise MetadataError(f"Cannot derive output number from {info_file.name}")
        output = int(match.group(1))

        required_params = {
            'ncpu': int,
            'levelmin': int,
            'levelmax': int,
            'boxlen': float,
            'unit_l': float,
            'unit_d': float,
            'unit_t': float,
        }
        params = {}
        missing_params = []
        for name, vartype in required_params.items():
            value = MetadataParser.parse_parameter(content, name, vartype)
            if value is None:
                missing_params.append(name)
            else:
                params[name] = value
        if missing_params:
            raise MetadataError(f"Missing required parameters in {info_file}: {missing_params}")
        params['time'] = MetadataParser.parse_parameter(content, 'time', float) or 0.0

        directory = info_file.parent
        registered = {}
        for name in (groups or amrds.fileformats):
            fmt = amrds.fileformats.get(name)
            if fmt is None:
                raise FieldGroupError(f"Unknown field group '{name}'")
            if groups is None and not (directory / fmt['template'].format(output=output, rank=1)).exists():
                continue
            variables = fmt['vars']
            descriptor = directory / f"{name}_file_descriptor.txt"
            if descriptor.exists():
                variables = MetadataParser.parse_descriptor(descriptor.read_text()) or variables
            registered[name] = FieldGroupInfo(name=name, variables=tuple(variables),
                                              file_template=fmt['template'])

        logger.debug(f"Parsed {info_file}: ncpu={params['ncpu']}, groups={list(registered)}")
        return SimulationMetadata(path=directory, output=output, groups=registered, **params)


def load_metadata(path):
    """Load the metadata of an output from a directory or descriptor file.

    Args:
        path: Output directory, YAML descriptor or info file

    Returns:
        SimulationMetadata
    """
    from .utils.file_discovery import locate_metadata

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Output or metadata file not found: {path}")
    if path.is_dir():
        path = locate_metadata(path)
    if path.suffix in ('.yml', '.yaml'):
        return SimulationMetadata.from_yaml(path)
    if path.name.startswith('info_'):
        return MetadataParser.load_info(path)
    raise MetadataError(f"Unrecognized metadata file {path}; expected {DEFAULT_METADATA_FILE} or info_NNNNN.txt")
