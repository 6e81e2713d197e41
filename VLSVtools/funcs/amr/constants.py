"""
Type signatures and constants for the AMR cell-id kernels.
Centralizes all Numba type definitions.
"""
from numba import types

##############################################################################
# Global constants
##############################################################################

X, Y, Z = 0, 1, 2  # coordinate indices
N_DIMS = 3
OUT_OF_DOMAIN = -1  # kernel marker: point outside [domain_min, domain_max)
NOT_STORED = 0      # kernel marker: no stored cell covers the point
INVALID_LEVEL = -1  # kernel marker: id outside every refinement level
DEFAULT_LINE_SAMPLES_PER_CELL = 4  # samples per finest cell along a line


##############################################################################
# Type signatures for Numba functions
##############################################################################

# Sorted-id membership
sig_sorted_position = types.int64(
    types.int64[:],     # sorted_ids
    types.int64         # value
    )

# Refinement level of each id
sig_amr_level = types.int64[:](
    types.int64[:],     # ids
    types.int64[:]      # level_start
    )

# Per-level (i, j, k) of each id
sig_cell_indices = types.int64[:,:](
    types.int64[:],     # ids
    types.int64[:],     # levels
    types.int64[:],     # level_start
    types.int64[:]      # base_grid_size
    )

# Cell centres from (i, j, k) and level
sig_cell_coordinates = types.float64[:,:](
    types.int64[:,:],   # indices
    types.int64[:],     # levels
    types.float64[:],   # domain_min
    types.float64[:]    # base cell size
    )

# Stored cell id covering each point
sig_cellid_at_points = types.int64[:](
    types.float64[:,:], # points
    types.float64[:],   # domain_min
    types.float64[:],   # domain_max
    types.float64[:],   # base cell size
    types.int64[:],     # base_grid_size
    types.int64[:],     # level_start
    types.int64[:],     # sorted_ids
    types.int64         # max_level
    )
