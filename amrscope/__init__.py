"""amrscope: multi-file AMR simulation loading and geometric selection"""

__version__ = "0.1.0"

from .config import (RunConfig, AmrscopeError, AmrscopeConfigError, InvalidRangeSpec, UnknownUnitError,
                     ShapeError, VariableSelectionError, FieldGroupError, LevelRangeError, MetadataError,
                     IngestError, RankFileNotFoundError, MalformedHeaderError, VariableCountMismatchError,
                     TruncatedPayloadError)
from .units import UnitScaleTable, build_scale, create_scales, humanize
from .metadata import SimulationMetadata, FieldGroupInfo, MetadataParser, load_metadata
from .ranges import ResolvedRange, FULL_DOMAIN, resolve
from .dataset import Dataset
from .data import Data, ingest, resolve_variables
from .subregion import subregion, shellregion
from .utils import find_outputs, setup_environment, setup_logging, generate_synthetic_output

__all__ = [
    'RunConfig',
    'AmrscopeError',
    'AmrscopeConfigError',
    'InvalidRangeSpec',
    'UnknownUnitError',
    'ShapeError',
    'VariableSelectionError',
    'FieldGroupError',
    'LevelRangeError',
    'MetadataError',
    'IngestError',
    'RankFileNotFoundError',
    'MalformedHeaderError',
    'VariableCountMismatchError',
    'TruncatedPayloadError',
    'UnitScaleTable',
    'build_scale',
    'create_scales',
    'humanize',
    'SimulationMetadata',
    'FieldGroupInfo',
    'MetadataParser',
    'load_metadata',
    'ResolvedRange',
    'FULL_DOMAIN',
    'resolve',
    'Dataset',
    'Data',
    'ingest',
    'resolve_variables',
    'subregion',
    'shellregion',
    'find_outputs',
    'setup_environment',
    'setup_logging',
    'generate_synthetic_output'
]
