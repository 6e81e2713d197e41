"""
VLSVtools Refinement Module

Projects leaf-cell values of an AMR mesh onto the uniform finest level,
as a 2D slice or a full 3D volume.
"""

from .operations import refine_to_finest
from .constants import FILL_VALUE

from .core_functions import (
    refine_slice_core,
    refine_volume_core,
)

__version__ = "1.0.0"

__all__ = [
    'refine_to_finest',
    'FILL_VALUE',
    'refine_slice_core',
    'refine_volume_core',
]
