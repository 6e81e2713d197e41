"""
VLSVtools AMR Module

Cell-id arithmetic for DCCRG octree meshes: refinement levels, per-level
indices, cell-centre coordinates, point location, line and plane queries.
Numba kernels do the per-cell work.
"""

# Import main classes
from .operations import AMRIndexer
from .constants import X, Y, Z, OUT_OF_DOMAIN, NOT_STORED

# Import core functions for advanced users
from .core_functions import (
    sorted_position_core,
    amr_level_core,
    cell_indices_core,
    cell_coordinates_core,
    cellid_at_points_core,
)

__version__ = "1.0.0"

# Define public API
__all__ = [
    'AMRIndexer',
    'X', 'Y', 'Z',
    'OUT_OF_DOMAIN', 'NOT_STORED',
    # Core functions for advanced use
    'sorted_position_core',
    'amr_level_core',
    'cell_indices_core',
    'cell_coordinates_core',
    'cellid_at_points_core',
]
