"""
    velocity

    Reader for the sparse velocity-space distributions stored per spatial
    cell and particle population. Only some spatial cells store a
    distribution; absence is reported explicitly (None from block_offset,
    NoDistributionError from the read functions) rather than as an empty
    result.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .constants import *
from .binary import VLSVFileHandle
from .footer import FooterCatalog, ArrayRecord
from .mesh import read_bbox, read_node_extent
from ..exceptions import FormatError, NoDistributionError, NotFoundError, UnknownVariableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PopulationVelocityBlock:
    """Distribution of one population in one spatial cell."""
    spatial_cell_id   : int
    population_name   : str
    velocity_cell_ids : np.ndarray
    values            : np.ndarray

    def __len__(self) -> int:
        return self.velocity_cell_ids.shape[0]

    def to_dict(self) -> Dict[int, float]:
        return dict(zip(self.velocity_cell_ids.tolist(), self.values.tolist()))


@dataclass(frozen=True)
class VelocityMeshInfo:
    """Velocity mesh of one population."""
    population : str
    n_blocks   : Tuple[int, int, int]
    block_size : Tuple[int, int, int]
    vmin       : Tuple[float, float, float]
    vmax       : Tuple[float, float, float]

    @property
    def n_cells(self) -> np.ndarray:
        return np.asarray(self.n_blocks) * np.asarray(self.block_size)

    @property
    def dv(self) -> np.ndarray:
        return (np.asarray(self.vmax) - np.asarray(self.vmin)) / self.n_cells


class _PopulationIndex():
    """Sorted index of the cells that stored a distribution for one population."""

    def __init__(
        self,
        cells           : np.ndarray,
        blocks_per_cell : np.ndarray) -> None:

        self.order = np.argsort(cells, kind="stable")
        self.sorted_cells = cells[self.order]
        self.blocks_per_cell = blocks_per_cell
        # first block of every cell, in file order
        self.block_start = np.zeros(cells.shape[0], dtype=np.int64)
        np.cumsum(blocks_per_cell[:-1], out=self.block_start[1:])

    def lookup(
        self,
        cellid : int) -> Optional[Tuple[int, int]]:
        pos = int(np.searchsorted(self.sorted_cells, cellid))
        if pos >= self.sorted_cells.shape[0] or self.sorted_cells[pos] != cellid:
            return None
        row = self.order[pos]
        return int(self.block_start[row]), int(self.blocks_per_cell[row])


class VelocitySpaceReader():
    """
    Per-cell velocity distribution reads for every population in a file.

    Indices are built lazily, once per population, on first use.
    """

    def __init__(
        self,
        handle  : VLSVFileHandle,
        footer  : FooterCatalog,
        indexer = None) -> None:
        """
        Args:
            handle: open snapshot
            footer: parsed footer of that snapshot
            indexer: AMRIndexer of the spatial mesh, needed only for
                     nearest_cell_with_distribution
        """
        self.handle = handle
        self.footer = footer
        self.indexer = indexer
        self._indices = {}
        self._trees = {}


    @property
    def populations(self):
        """Populations with stored velocity blocks."""
        return [rec.name for rec in self.footer.find_all(TAG_BLOCK_IDS)]


    def _read(
        self,
        rec : ArrayRecord) -> np.ndarray:
        return self.handle.read_array(rec.byte_offset, rec.dtype(self.handle.byteorder), rec.n_elements)


    def _record(
        self,
        tag  : str,
        name : str,
        mesh : Optional[str] = None) -> ArrayRecord:
        rec = self.footer.find(tag, name=name, mesh=mesh)
        if rec is None:
            raise UnknownVariableError(f"no {tag} record for population '{mesh or name}'")
        return rec


    def _distribution_record(
        self,
        pop : str) -> ArrayRecord:
        """BLOCKVARIABLE holding the distribution values of pop."""
        rec = self.footer.find(TAG_BLOCK_VARIABLE, name=pop)
        if rec is None:
            # older single-population files store it as name="avgs", mesh=pop
            rec = self.footer.find(TAG_BLOCK_VARIABLE, name=LEGACY_DISTRIBUTION_VARIABLE, mesh=pop)
        if rec is None:
            raise UnknownVariableError(f"no {TAG_BLOCK_VARIABLE} record for population '{pop}'")
        return rec


    def _index(
        self,
        pop : str) -> _PopulationIndex:
        if pop not in self._indices:
            cells = self._read(self._record(TAG_CELLS_WITH_BLOCKS, pop)).astype(CELLID_DTYPE)
            blocks = self._read(self._record(TAG_BLOCKS_PER_CELL, pop)).astype(np.int64)
            if cells.shape != blocks.shape:
                raise FormatError(
                    f"population '{pop}': {cells.size} cells with blocks but "
                    f"{blocks.size} block counts")
            self._indices[pop] = _PopulationIndex(cells, blocks)
            logger.debug(f"Indexed {cells.size} cells with '{pop}' distributions")
        return self._indices[pop]


    def cells_with_distribution(
        self,
        pop : str = DEFAULT_POPULATION) -> np.ndarray:
        """Ascending ids of the spatial cells that stored a distribution."""
        return self._index(pop).sorted_cells


    def block_offset(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> Optional[Tuple[int, int]]:
        """(first block, number of blocks) of the cell, or None if it has no distribution."""
        return self._index(pop).lookup(int(cellid))


    def has_distribution(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> bool:
        return self.block_offset(cellid, pop) is not None


    def read_velocity_block(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> PopulationVelocityBlock:
        """
        Read the distribution of one spatial cell.

        Raises:
            NoDistributionError: the cell did not store a distribution
            UnknownVariableError: the population is not in the file
        """
        loc = self.block_offset(cellid, pop)
        if loc is None:
            raise NoDistributionError(f"cell {cellid} has no stored '{pop}' distribution")
        first, n_blocks = loc

        rec_ids = self._record(TAG_BLOCK_IDS, pop)
        rec_avgs = self._distribution_record(pop)
        if rec_avgs.vector_size != VELOCITY_BLOCK_CELLS:
            raise FormatError(
                f"'{pop}' blocks have {rec_avgs.vector_size} cells, expected {VELOCITY_BLOCK_CELLS}")

        block_ids = self.handle.read_array(
            rec_ids.byte_offset + first * rec_ids.vector_size * rec_ids.element_size,
            rec_ids.dtype(self.handle.byteorder),
            n_blocks * rec_ids.vector_size).astype(np.int64)
        avgs = self.handle.read_array(
            rec_avgs.byte_offset + first * rec_avgs.vector_size * rec_avgs.element_size,
            rec_avgs.dtype(self.handle.byteorder),
            n_blocks * rec_avgs.vector_size)

        local = np.arange(VELOCITY_BLOCK_CELLS, dtype=np.int64)
        vcellids = (block_ids[:, None] * VELOCITY_BLOCK_CELLS + local[None, :]).reshape(-1)
        return PopulationVelocityBlock(
            spatial_cell_id=int(cellid),
            population_name=pop,
            velocity_cell_ids=vcellids,
            values=avgs.astype(np.float64))


    def read_velocity_cells(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> Dict[int, float]:
        """Mapping velocity cell id -> phase-space density for one spatial cell."""
        return self.read_velocity_block(cellid, pop).to_dict()


    def nearest_cell_with_distribution(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> int:
        """
        The cell itself if it stored a distribution, otherwise the stored
        distribution cell whose centre is closest to the cell's centre.

        Raises:
            NotFoundError: no cell stored a distribution for pop
        """
        cells = self.cells_with_distribution(pop)
        if cells.size == 0:
            raise NotFoundError(f"no cell stores a '{pop}' distribution")
        if self.has_distribution(cellid, pop):
            return int(cellid)
        if self.indexer is None:
            raise ValueError("nearest_cell_with_distribution needs the spatial AMR indexer")

        if pop not in self._trees:
            self._trees[pop] = cKDTree(self.indexer.coordinates_of(cells))
        _, nearest = self._trees[pop].query(self.indexer.coordinates_of(int(cellid)))
        return int(cells[nearest])


    def velocity_mesh(
        self,
        pop : str = DEFAULT_POPULATION) -> VelocityMeshInfo:
        bbox = read_bbox(self.footer, self.handle, pop)
        if bbox is None:
            raise UnknownVariableError(f"no velocity mesh for population '{pop}'")
        vmin, vmax = [], []
        for axis in range(3):
            extent = read_node_extent(self.footer, self.handle, pop, axis)
            if extent is None:
                raise FormatError(f"velocity mesh of '{pop}' lacks {TAG_NODE_CRDS[axis]}")
            vmin.append(extent[0])
            vmax.append(extent[1])
        return VelocityMeshInfo(
            population=pop,
            n_blocks=tuple(int(n) for n in bbox[:3]),
            block_size=tuple(int(n) for n in bbox[3:6]),
            vmin=tuple(vmin),
            vmax=tuple(vmax))


    def velocity_cell_coordinates(
        self,
        vcellids,
        pop : str = DEFAULT_POPULATION) -> np.ndarray:
        """Velocity-space centres of velocity cell ids; shape (n, 3)."""
        vmesh = self.velocity_mesh(pop)
        ids = np.asarray(vcellids, dtype=np.int64).reshape(-1)
        nbx, nby, _ = vmesh.n_blocks
        wx, wy, _ = vmesh.block_size
        cells_per_block = int(np.prod(vmesh.block_size))

        block = ids // cells_per_block
        local = ids % cells_per_block
        block_index = np.stack([block % nbx, (block // nbx) % nby, block // (nbx * nby)], axis=1)
        cell_index = np.stack([local % wx, (local // wx) % wy, local // (wx * wy)], axis=1)
        index = block_index * np.asarray(vmesh.block_size)[None, :] + cell_index
        return np.asarray(vmesh.vmin)[None, :] + (index + 0.5) * vmesh.dv[None, :]
