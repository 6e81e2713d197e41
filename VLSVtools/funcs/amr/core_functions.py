"""
Core Numba JIT compiled functions for AMR cell-id arithmetic.

Cell ids are 1-based. Level L owns ids level_start[L] + 1 ... level_start[L+1]
and its grid has base_grid_size * 2**L cells per axis, numbered x fastest.
"""
import numpy as np
from numba import njit
from .constants import *

##########################################################################################
# Sorted-id lookup
##########################################################################################

@njit(sig_sorted_position, cache=True)
def sorted_position_core(sorted_ids, value):
    """
    Binary search for value in an ascending id array.

    Returns:
        index of value in sorted_ids, or -1 if absent
    """
    lo = 0
    hi = sorted_ids.shape[0]
    while lo < hi:
        mid = (lo + hi) // 2
        if sorted_ids[mid] < value:
            lo = mid + 1
        else:
            hi = mid
    if lo < sorted_ids.shape[0] and sorted_ids[lo] == value:
        return lo
    return -1

##########################################################################################
# Id <-> level <-> index <-> coordinate
##########################################################################################

@njit(sig_amr_level, cache=True)
def amr_level_core(ids, level_start):
    """
    Refinement level of every id: the largest L with level_start[L] < id.
    Ids outside [1, level_start[-1]] get INVALID_LEVEL.
    """
    n_levels = level_start.shape[0] - 1
    levels = np.empty(ids.shape[0], dtype=np.int64)
    for p in range(ids.shape[0]):
        cid = ids[p]
        if cid < 1 or cid > level_start[n_levels]:
            levels[p] = INVALID_LEVEL
            continue
        lo = 0
        hi = n_levels - 1
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if level_start[mid] < cid:
                lo = mid
            else:
                hi = mid - 1
        levels[p] = lo
    return levels


@njit(sig_cell_indices, cache=True)
def cell_indices_core(ids, levels, level_start, base_grid_size):
    """(i, j, k) of every id on its own level's grid."""
    out = np.empty((ids.shape[0], N_DIMS), dtype=np.int64)
    for p in range(ids.shape[0]):
        lvl = levels[p]
        idx = ids[p] - 1 - level_start[lvl]
        nx = base_grid_size[X] << lvl
        ny = base_grid_size[Y] << lvl
        out[p, X] = idx % nx
        out[p, Y] = (idx // nx) % ny
        out[p, Z] = idx // (nx * ny)
    return out


@njit(sig_cell_coordinates, cache=True)
def cell_coordinates_core(indices, levels, domain_min, base_cell_size):
    """Cell centres: domain_min + (index + 0.5) * base_cell_size / 2**level."""
    out = np.empty((indices.shape[0], N_DIMS), dtype=np.float64)
    for p in range(indices.shape[0]):
        scale = 1.0 / (1 << levels[p])
        for a in range(N_DIMS):
            out[p, a] = domain_min[a] + (indices[p, a] + 0.5) * base_cell_size[a] * scale
    return out


@njit(sig_cellid_at_points, cache=True)
def cellid_at_points_core(points, domain_min, domain_max, base_cell_size,
                          base_grid_size, level_start, sorted_ids, max_level):
    """
    Deepest stored cell id covering each point.

    Walks the levels from coarsest to finest and returns the first candidate
    id present in sorted_ids. Points on a cell face go to the cell on the
    positive side; the domain is half-open [domain_min, domain_max).

    Returns:
        ids, with OUT_OF_DOMAIN for points outside the domain and NOT_STORED
        for in-domain points that no stored cell covers
    """
    n_points = points.shape[0]
    out = np.empty(n_points, dtype=np.int64)
    for p in range(n_points):
        inside = True
        for a in range(N_DIMS):
            if not (points[p, a] >= domain_min[a] and points[p, a] < domain_max[a]):
                inside = False
        if not inside:
            out[p] = OUT_OF_DOMAIN
            continue

        out[p] = NOT_STORED
        for lvl in range(max_level + 1):
            factor = 1 << lvl
            nx = base_grid_size[X] << lvl
            ny = base_grid_size[Y] << lvl
            nz = base_grid_size[Z] << lvl
            # the offset is non-negative here, so int() truncation is floor
            i = min(int((points[p, X] - domain_min[X]) / base_cell_size[X] * factor), nx - 1)
            j = min(int((points[p, Y] - domain_min[Y]) / base_cell_size[Y] * factor), ny - 1)
            k = min(int((points[p, Z] - domain_min[Z]) / base_cell_size[Z] * factor), nz - 1)
            cid = level_start[lvl] + 1 + i + nx * j + nx * ny * k
            if sorted_position_core(sorted_ids, cid) >= 0:
                out[p] = cid
                break
    return out
