"""
Configuration management for amrscope.

This module centralizes environment-driven defaults, the run configuration
threaded through ingestion and subregion calls, and the exception taxonomy
shared by the whole package.
"""
import os
from dataclasses import dataclass


# --- Environment Variable Helpers ---
def get_env_variable(var_name: str, default: str | None = None) -> str:
    """Fetches an environment variable, raises error if not found and no default."""
    value = os.getenv(var_name)
    if value is None:
        if default is not None:
            return default
        raise EnvironmentVariableError(f"Environment variable {var_name} not set and no default provided.")
    return value


# --- Default Run Parameters ---
DEFAULT_NPROC = int(get_env_variable("AMRSCOPE_NPROC", str(os.cpu_count() or 1)))
DEFAULT_CHUNK_RECORDS = int(get_env_variable("AMRSCOPE_CHUNK_RECORDS", "1048576"))
DEFAULT_RANGE_UNIT = "standard"
DEFAULT_METADATA_FILE = "simulation.yml"

# Field groups an output may carry, in the order they are reported
FIELD_GROUPS = ("hydro", "gravity", "particles", "clumps")


@dataclass(frozen=True)
class RunConfig:
    """Per-call execution options.

    Passed explicitly into every loader and selector so that verbosity and
    progress reporting never depend on module state.

    Attributes:
        nproc: Number of worker processes used to decode rank files
        verbose: Log summaries (variables, ranges, row counts) at INFO level
        show_progress: Log a message per decoded rank file
        print_filenames: Log each rank file path as it is opened
        chunk_records: Records decoded per read while culling a rank file
    """
    nproc: int = DEFAULT_NPROC
    verbose: bool = False
    show_progress: bool = False
    print_filenames: bool = False
    chunk_records: int = DEFAULT_CHUNK_RECORDS

    def __post_init__(self):
        if self.nproc < 1:
            raise ValueError(f"nproc must be >= 1, got {self.nproc}")
        if self.chunk_records < 1:
            raise ValueError(f"chunk_records must be >= 1, got {self.chunk_records}")


# --- Custom Exceptions ---
class AmrscopeError(Exception):
    """Base exception for all amrscope errors."""
    pass

class AmrscopeConfigError(AmrscopeError):
    """Base exception for invalid requests, raised before any file is opened."""
    pass

class EnvironmentVariableError(AmrscopeConfigError):
    """Exception raised for missing or invalid environment variables."""
    pass

class InvalidRangeSpec(AmrscopeConfigError):
    """Exception raised for malformed spatial ranges, centers or range units."""
    pass

class UnknownUnitError(AmrscopeConfigError, KeyError):
    """Exception raised when a unit name is not in the unit scale table."""

    def __str__(self):
        return str(self.args[0]) if self.args else ""

class ShapeError(InvalidRangeSpec):
    """Exception raised for invalid subregion shapes, radii, heights or directions."""
    pass

class VariableSelectionError(AmrscopeConfigError):
    """Exception raised for variables that do not exist in a field group."""
    pass

class FieldGroupError(AmrscopeConfigError):
    """Exception raised for unknown field groups or groups absent from an output."""
    pass

class LevelRangeError(AmrscopeConfigError):
    """Exception raised for level caps outside [levelmin, levelmax]."""
    pass

class MetadataError(AmrscopeConfigError):
    """Exception raised for missing or inconsistent simulation metadata."""
    pass


class IngestError(AmrscopeError):
    """Base exception for failures while decoding per-rank files.

    Carries the offending path, field group and rank so that a failure raised
    inside a worker process is still actionable once it reaches the caller.
    """

    def __init__(self, message, *, path=None, field_group=None, rank=None):
        super().__init__(message)
        self.message = message
        self.path = path
        self.field_group = field_group
        self.rank = rank

    def __str__(self):
        context = []
        if self.field_group is not None:
            context.append(f"field group '{self.field_group}'")
        if self.rank is not None:
            context.append(f"rank {self.rank}")
        if self.path is not None:
            context.append(f"file {self.path}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"

    def __reduce__(self):
        # keyword-only context does not survive the default exception pickling
        return (self.__class__, (self.message,), self.__dict__)

class RankFileNotFoundError(IngestError, FileNotFoundError):
    """Exception raised when a rank file expected from the metadata is missing."""
    pass

class MalformedHeaderError(IngestError):
    """Exception raised when a rank file header cannot be decoded or is inconsistent."""
    pass

class VariableCountMismatchError(IngestError):
    """Exception raised when a rank file declares a different variable count than the metadata."""
    pass

class TruncatedPayloadError(IngestError):
    """Exception raised when a rank file holds fewer bytes than its header declares."""
    pass
