"""
VLSVtools

Reader for Vlasiator VLSV output files: footer parsing, variable reads on the
AMR spatial grid and the field-solver grid, AMR cell-id arithmetic, velocity
distribution reads, refinement to uniform grids, and snapshot comparison.
"""

from .io.read_VLSV import MetaData, VarInfo, read_meta
from .io.velocity import VelocitySpaceReader, PopulationVelocityBlock, VelocityMeshInfo
from .io.mesh import MeshDescriptor, MeshKind
from .io.frames import read_variable_frames, extract_point_series
from .io.compare import compare
from .funcs.amr import AMRIndexer
from .funcs.refine import refine_to_finest
from .logging_config import setup_logging
from .exceptions import (
    VLSVError,
    FormatError,
    MissingParameterError,
    UnknownVariableError,
    UnknownCellIdError,
    InvalidCellIdError,
    OutOfDomainError,
    NoDistributionError,
    NotFoundError,
    IoError,
)

__version__ = "0.1.0"

__all__ = [
    'read_meta',
    'MetaData',
    'VarInfo',
    'VelocitySpaceReader',
    'PopulationVelocityBlock',
    'VelocityMeshInfo',
    'MeshDescriptor',
    'MeshKind',
    'read_variable_frames',
    'extract_point_series',
    'compare',
    'AMRIndexer',
    'refine_to_finest',
    'setup_logging',
    # Errors
    'VLSVError',
    'FormatError',
    'MissingParameterError',
    'UnknownVariableError',
    'UnknownCellIdError',
    'InvalidCellIdError',
    'OutOfDomainError',
    'NoDistributionError',
    'NotFoundError',
    'IoError',
]
