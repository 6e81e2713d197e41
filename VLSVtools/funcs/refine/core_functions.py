"""
Core Numba JIT compiled functions for projecting AMR data onto the finest
refinement level. Each coarse value is replicated over every finest cell it
contains (nearest-neighbour upsampling).
"""
import numpy as np
from numba import njit, prange
from .constants import *


@njit(sig_refine_slice, parallel=True, cache=True)
def refine_slice_core(index_a, index_b, levels, values, max_level, n_a, n_b, fill_value):
    out = np.full((n_a, n_b), fill_value, dtype=np.float64)
    for p in prange(values.shape[0]):
        ratio = 1 << (max_level - levels[p])
        a0 = index_a[p] * ratio
        b0 = index_b[p] * ratio
        for u in range(ratio):
            for v in range(ratio):
                out[a0 + u, b0 + v] = values[p]
    return out


@njit(sig_refine_volume, parallel=True, cache=True)
def refine_volume_core(indices, levels, values, max_level, nx, ny, nz, fill_value):
    out = np.full((nx, ny, nz), fill_value, dtype=np.float64)
    for p in prange(values.shape[0]):
        ratio = 1 << (max_level - levels[p])
        i0 = indices[p, X] * ratio
        j0 = indices[p, Y] * ratio
        k0 = indices[p, Z] * ratio
        for u in range(ratio):
            for v in range(ratio):
                for w in range(ratio):
                    out[i0 + u, j0 + v, k0 + w] = values[p]
    return out
