"""
VLSVtools Refinement Projection

Turns scalar AMR data (one value per leaf cell) into a uniform array at the
finest refinement level, for plotting slices or volumes on a regular grid.
This is nearest-neighbour upsampling: a coarse cell's value is copied into
all of its finest-level descendants, nothing is interpolated.
"""

import logging
from typing import Optional

import numpy as np

from .constants import *
from .core_functions import *
from ..amr.operations import AMRIndexer
from ...io.mesh import MeshDescriptor

logger = logging.getLogger(__name__)


def refine_to_finest(
    mesh        : MeshDescriptor,
    cell_ids    : np.ndarray,
    values      : np.ndarray,
    normal_axis : Optional[int] = None,
    fill_value  : float = FILL_VALUE) -> np.ndarray:
    """
    Project scalar cell data onto the finest refinement level.

    Args:
        mesh: descriptor of the DCCRG mesh the ids belong to
        cell_ids: (n,) cell ids, e.g. from AMRIndexer.slice_cell_ids
        values: (n,) scalar value per id
        normal_axis: 0, 1 or 2 for a 2D slice (each cell then covers
                     4**(max_level - level) finest cells), or None for the
                     full 3D volume (8**(max_level - level) finest cells)
        fill_value: value of finest cells no input cell covers

    Returns:
        slice: (n_a, n_b) over the two in-plane axes a < b,
        volume: (nx, ny, nz), all at the finest level
    """
    ids = np.ascontiguousarray(np.asarray(cell_ids).reshape(-1), dtype=np.int64)
    vals = np.asarray(values)
    if vals.ndim != 1:
        raise ValueError(f"refine_to_finest takes scalar data, got values of shape {vals.shape}")
    if vals.shape[0] != ids.shape[0]:
        raise ValueError(f"{ids.shape[0]} cell ids but {vals.shape[0]} values")
    vals = np.ascontiguousarray(vals, dtype=np.float64)

    indexer = AMRIndexer(mesh, np.sort(ids))
    levels = indexer.level_of(ids)
    indices = indexer.indices_of(ids)
    max_level = mesh.max_refinement_level
    finest = mesh.grid_size(max_level)

    if normal_axis is None:
        out = refine_volume_core(
            np.ascontiguousarray(indices),
            levels,
            vals,
            max_level,
            finest[X], finest[Y], finest[Z],
            float(fill_value))
    else:
        if normal_axis not in (X, Y, Z):
            raise ValueError(f"normal_axis must be 0, 1, 2 or None, got {normal_axis}")
        axis_a, axis_b = [a for a in (X, Y, Z) if a != normal_axis]
        out = refine_slice_core(
            np.ascontiguousarray(indices[:, axis_a]),
            np.ascontiguousarray(indices[:, axis_b]),
            levels,
            vals,
            max_level,
            finest[axis_a], finest[axis_b],
            float(fill_value))

    logger.debug(f"Refined {ids.size} cells onto a {out.shape} grid at level {max_level}")
    return out
