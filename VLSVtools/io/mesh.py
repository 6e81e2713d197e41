"""
    mesh

    Mesh descriptors derived from the footer: domain bounds, base cell counts,
    maximum refinement level and the per-level cell-id offset table. Also the
    field-solver (fsgrid) domain decomposition used to stitch per-rank chunks.
"""

import enum
import logging
from itertools import accumulate
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .constants import *
from .binary import VLSVFileHandle
from .footer import FooterCatalog
from ..exceptions import MissingParameterError, FormatError

logger = logging.getLogger(__name__)

N_CHILDREN = 8  # octree refinement


class MeshKind(enum.Enum):
    DCCRG = "DCCRG"
    FIELD_SOLVER = "FieldSolver"


@dataclass(frozen=True)
class MeshDescriptor:
    """
    Geometry of one mesh.

    level_start has max_refinement_level + 2 entries: level_start[L] is the
    number of cell ids on all levels below L, and level_start[-1] is the
    total number of ids. Cell ids are 1-based, so level L owns the ids
    level_start[L] + 1 ... level_start[L + 1].
    """
    mesh_name            : str
    kind                 : MeshKind
    domain_min           : Tuple[float, float, float]
    domain_max           : Tuple[float, float, float]
    base_grid_size       : Tuple[int, int, int]
    max_refinement_level : int
    cells_per_level      : Tuple[int, ...]
    level_start          : Tuple[int, ...]

    @classmethod
    def create(
        cls,
        mesh_name            : str,
        kind                 : MeshKind,
        domain_min,
        domain_max,
        base_grid_size,
        max_refinement_level : int) -> 'MeshDescriptor':
        """Build a descriptor, deriving cells_per_level and level_start."""

        base = tuple(int(n) for n in base_grid_size)
        if any(n <= 0 for n in base):
            raise FormatError(f"mesh {mesh_name} has non-positive base grid size {base}")
        lo = tuple(float(x) for x in domain_min)
        hi = tuple(float(x) for x in domain_max)
        if any(h <= l for l, h in zip(lo, hi)):
            raise FormatError(f"mesh {mesh_name} has an empty domain {lo} - {hi}")
        max_level = int(max_refinement_level)
        if max_level < 0:
            raise FormatError(f"mesh {mesh_name} has negative max refinement level {max_level}")

        n_base = base[0] * base[1] * base[2]
        cells_per_level = tuple(n_base * N_CHILDREN**level for level in range(max_level + 1))
        level_start = tuple(accumulate(cells_per_level, initial=0))
        return cls(mesh_name, kind, lo, hi, base, max_level, cells_per_level, level_start)

    @property
    def n_cell_ids(self) -> int:
        return self.level_start[-1]

    @property
    def domain_size(self) -> np.ndarray:
        return np.asarray(self.domain_max) - np.asarray(self.domain_min)

    def grid_size(
        self,
        level : int = 0) -> np.ndarray:
        """Number of cells along each axis if the whole domain were at level."""
        return np.asarray(self.base_grid_size, dtype=np.int64) << int(level)

    def cell_size(
        self,
        level : int = 0) -> np.ndarray:
        """Cell edge lengths at level; halves with every level."""
        return self.domain_size / np.asarray(self.base_grid_size) * 0.5**level


def _parameter(
    catalog : FooterCatalog,
    name    : str):
    rec = catalog.parameters.get(name)
    return None if rec is None else rec.value


def read_bbox(
    catalog : FooterCatalog,
    handle  : VLSVFileHandle,
    mesh    : str) -> Optional[np.ndarray]:
    rec = catalog.find(TAG_MESH_BBOX, mesh=mesh)
    if rec is None:
        return None
    bbox = handle.read_array(rec.byte_offset, rec.dtype(handle.byteorder), rec.n_elements)
    if bbox.size < 6:
        raise FormatError(f"MESH_BBOX of mesh {mesh} has {bbox.size} entries, expected 6")
    return bbox.astype(np.int64)


def read_node_extent(
    catalog : FooterCatalog,
    handle  : VLSVFileHandle,
    mesh    : str,
    axis    : int) -> Optional[Tuple[float, float]]:
    rec = catalog.find(TAG_NODE_CRDS[axis], mesh=mesh)
    if rec is None or rec.n_elements < 2:
        return None
    dtype = rec.dtype(handle.byteorder)
    first = handle.read_array(rec.byte_offset, dtype, 1)[0]
    last = handle.read_array(rec.byte_offset + (rec.n_elements - 1) * rec.element_size, dtype, 1)[0]
    return float(first), float(last)


def max_level_from_cellids(
    cellids : np.ndarray,
    n_base  : int) -> int:
    """Smallest level L such that ids up to max(cellids) fit into levels 0..L."""
    if cellids.size == 0:
        return 0
    max_id = int(cellids.max())
    level, covered = 0, n_base
    while covered < max_id:
        level += 1
        covered += n_base * N_CHILDREN**level
    return level


def build_spatial_descriptor(
    catalog : FooterCatalog,
    handle  : VLSVFileHandle,
    cellids : Optional[np.ndarray] = None,
    mesh    : str = SPATIAL_MESH) -> MeshDescriptor:
    """
    Derive the DCCRG mesh descriptor.

    Parameters take precedence; MESH_BBOX and MESH_NODE_CRDS_* are used when
    a parameter is absent. The maximum refinement level falls back to the
    largest stored cell id.
    """
    bbox = None
    base = []
    for axis, pname in enumerate(BASE_CELL_PARAMETERS):
        value = _parameter(catalog, pname)
        if value is None:
            if bbox is None:
                bbox = read_bbox(catalog, handle, mesh)
            if bbox is None:
                raise MissingParameterError(pname, mesh)
            value = bbox[axis]
        base.append(int(value))

    lo, hi = [], []
    for axis in range(3):
        vmin = _parameter(catalog, DOMAIN_MIN_PARAMETERS[axis])
        vmax = _parameter(catalog, DOMAIN_MAX_PARAMETERS[axis])
        if vmin is None or vmax is None:
            extent = read_node_extent(catalog, handle, mesh, axis)
            if extent is None:
                missing = DOMAIN_MIN_PARAMETERS[axis] if vmin is None else DOMAIN_MAX_PARAMETERS[axis]
                raise MissingParameterError(missing, mesh)
            vmin = extent[0] if vmin is None else vmin
            vmax = extent[1] if vmax is None else vmax
        lo.append(vmin)
        hi.append(vmax)

    max_level = _parameter(catalog, MAX_LEVEL_PARAMETER)
    if max_level is None:
        if cellids is None:
            raise MissingParameterError(MAX_LEVEL_PARAMETER, mesh)
        max_level = max_level_from_cellids(cellids, base[0] * base[1] * base[2])

    descriptor = MeshDescriptor.create(mesh, MeshKind.DCCRG, lo, hi, base, max_level)
    logger.debug(f"Spatial mesh {mesh}: base {descriptor.base_grid_size}, "
                 f"max level {descriptor.max_refinement_level}, "
                 f"domain {descriptor.domain_min} - {descriptor.domain_max}")
    return descriptor


def build_fsgrid_descriptor(
    catalog : FooterCatalog,
    handle  : VLSVFileHandle,
    spatial : MeshDescriptor,
    mesh    : str = FSGRID_MESH) -> Optional[MeshDescriptor]:
    """The uniform field-solver mesh, or None if the file has none."""
    bbox = read_bbox(catalog, handle, mesh)
    if bbox is None:
        return None
    return MeshDescriptor.create(
        mesh, MeshKind.FIELD_SOLVER,
        spatial.domain_min, spatial.domain_max,
        bbox[:3], 0)


##############################################################################
# fsgrid domain decomposition
##############################################################################

def calc_local_start(
    global_cells : int,
    ntasks       : int,
    my_n         : int) -> int:
    n_per_task = global_cells // ntasks
    remainder = global_cells % ntasks
    if my_n < remainder:
        return my_n * (n_per_task + 1)
    return my_n * n_per_task + remainder


def calc_local_size(
    global_cells : int,
    ntasks       : int,
    my_n         : int) -> int:
    n_per_task = global_cells // ntasks
    remainder = global_cells % ntasks
    if my_n < remainder:
        return n_per_task + 1
    return n_per_task


def compute_domain_decomposition(
    global_size : Tuple[int, int, int],
    ntasks      : int) -> List[int]:
    """
    Rank layout chosen by the field solver for ntasks writing ranks: the
    (i, j, k) with i*j*k == ntasks minimising box volume plus face areas.
    """
    decomposition = [1, 1, 1]
    box = [0.0, 0.0, 0.0]
    optim_value = np.inf
    for i in range(1, min(ntasks, global_size[0]) + 1):
        box[0] = max(global_size[0] / i, 1.0)
        for j in range(1, min(ntasks, global_size[1]) + 1):
            if i * j > ntasks:
                break
            box[1] = max(global_size[1] / j, 1.0)
            for k in range(1, min(ntasks, global_size[2]) + 1):
                if i * j * k > ntasks:
                    break
                box[2] = max(global_size[2] / k, 1.0)
                value = (10 * box[0] * box[1] * box[2]
                         + (box[1] * box[2] if i > 1 else 0)
                         + (box[0] * box[2] if j > 1 else 0)
                         + (box[0] * box[1] if k > 1 else 0))
                if i * j * k == ntasks and value < optim_value:
                    optim_value = value
                    decomposition = [i, j, k]
    return decomposition


def fsgrid_rank_boxes(
    global_size   : Tuple[int, int, int],
    decomposition : List[int]) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    (start, size) of every writing rank's sub-box, in rank order. Ranks are
    numbered with z fastest, then y, then x.
    """
    nranks = decomposition[0] * decomposition[1] * decomposition[2]
    boxes = []
    for rank in range(nranks):
        task = ((rank // decomposition[2]) // decomposition[1],
                (rank // decomposition[2]) % decomposition[1],
                rank % decomposition[2])
        start = np.array([calc_local_start(global_size[a], decomposition[a], task[a]) for a in range(3)])
        size = np.array([calc_local_size(global_size[a], decomposition[a], task[a]) for a in range(3)])
        boxes.append((start, size))
    return boxes
