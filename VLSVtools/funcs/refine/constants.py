"""
Type signatures and constants for the refinement projection kernels.
"""
from numba import types

##############################################################################
# Global constants
##############################################################################

X, Y, Z = 0, 1, 2  # coordinate indices
FILL_VALUE = float("nan")  # finest cells not covered by any input cell


##############################################################################
# Type signatures for Numba functions
##############################################################################

sig_refine_slice = types.float64[:,:](
    types.int64[:],     # in-plane index along the first axis
    types.int64[:],     # in-plane index along the second axis
    types.int64[:],     # levels
    types.float64[:],   # values
    types.int64,        # max_level
    types.int64,        # finest cells along the first axis
    types.int64,        # finest cells along the second axis
    types.float64       # fill value
    )

sig_refine_volume = types.float64[:,:,:](
    types.int64[:,:],   # (i, j, k) per cell
    types.int64[:],     # levels
    types.float64[:],   # values
    types.int64,        # max_level
    types.int64,        # finest nx
    types.int64,        # finest ny
    types.int64,        # finest nz
    types.float64       # fill value
    )
