"""
Layout constants and defaults for the VLSV file format.
"""
import numpy as np

##############################################################################
# File header
##############################################################################

ENDIANNESS_OFFSET = 0       # byte holding the endianness marker
FOOTER_OFFSET_POSITION = 8  # uint64 offset of the XML footer
HEADER_SIZE = 16            # endianness block + footer offset
LITTLE_ENDIAN, BIG_ENDIAN = 0, 1

##############################################################################
# Footer tags and attributes
##############################################################################

TAG_PARAMETER = "PARAMETER"
TAG_VARIABLE = "VARIABLE"
TAG_MESH = "MESH"
TAG_MESH_BBOX = "MESH_BBOX"
TAG_NODE_CRDS = ("MESH_NODE_CRDS_X", "MESH_NODE_CRDS_Y", "MESH_NODE_CRDS_Z")
TAG_MESH_DECOMPOSITION = "MESH_DECOMPOSITION"
TAG_CELLS_WITH_BLOCKS = "CELLSWITHBLOCKS"
TAG_BLOCKS_PER_CELL = "BLOCKSPERCELL"
TAG_BLOCK_IDS = "BLOCKIDS"
TAG_BLOCK_VARIABLE = "BLOCKVARIABLE"

REQUIRED_ATTRIBUTES = ("arraysize", "datasize", "datatype", "vectorsize")
INFO_ATTRIBUTES = ("unit", "unitLaTeX", "variableLaTeX", "unitConversion")

##############################################################################
# Meshes
##############################################################################

SPATIAL_MESH = "SpatialGrid"
FSGRID_MESH = "fsgrid"
CELLID_VARIABLE = "CellID"

# parameters describing the spatial mesh, with their MESH_BBOX / node
# coordinate fallbacks resolved in mesh.py
BASE_CELL_PARAMETERS = ("xcells_ini", "ycells_ini", "zcells_ini")
DOMAIN_MIN_PARAMETERS = ("xmin", "ymin", "zmin")
DOMAIN_MAX_PARAMETERS = ("xmax", "ymax", "zmax")
MAX_LEVEL_PARAMETER = "max_refinement_level"
WRITING_RANKS_PARAMETER = "numWritingRanks"
TIME_PARAMETERS = ("time", "t")

##############################################################################
# Velocity space
##############################################################################

DEFAULT_POPULATION = "proton"
VELOCITY_BLOCK_WIDTH = 4  # velocity cells per block along each axis
VELOCITY_BLOCK_CELLS = VELOCITY_BLOCK_WIDTH**3
LEGACY_DISTRIBUTION_VARIABLE = "avgs"  # BLOCKVARIABLE name before per-population output

##############################################################################
# Datatypes
##############################################################################

DATATYPE_KINDS = {
    "float" : "f",
    "int"   : "i",
    "uint"  : "u",
}
SUPPORTED_SIZES = {
    "float" : (4, 8),
    "int"   : (1, 2, 4, 8),
    "uint"  : (1, 2, 4, 8),
}

##############################################################################
# Comparison
##############################################################################

DEFAULT_COMPARE_TOL = 1e-4
COMPARE_SKIP_SUFFIXES = ("CellID", "rank", "blocks")
COMPARE_SKIP_PARAMETERS = ("numWritingRanks",)

CELLID_DTYPE = np.int64
