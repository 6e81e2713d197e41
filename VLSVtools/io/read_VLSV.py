"""
    read_VLSV

    Reader for Vlasiator VLSV snapshots. MetaData owns the open file, the
    parsed footer, the mesh descriptors and the cell-id index, and reads
    variables from the DCCRG spatial grid (optionally sorted by cell id), the
    uniform field-solver grid, and the per-cell velocity distributions.

    Example:
        with read_meta("bulk.0000004.vlsv") as meta:
            rho = meta.read_variable("proton/vg_rho")
            cid = meta.get_cellid([2.0, 0.0, 0.0])
            rho_at = meta.read_variable_select("proton/vg_rho", [cid])
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union, List

import numpy as np

from .constants import *
from .binary import VLSVFileHandle
from .footer import parse_footer, ArrayRecord
from .mesh import (build_spatial_descriptor, build_fsgrid_descriptor,
                   compute_domain_decomposition, fsgrid_rank_boxes)
from .velocity import VelocitySpaceReader, PopulationVelocityBlock, VelocityMeshInfo
from ..funcs.amr.operations import AMRIndexer
from ..funcs.refine.operations import refine_to_finest
from ..exceptions import (FormatError, MissingParameterError, UnknownVariableError,
                          UnknownCellIdError)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VarInfo:
    """Units and labels attached to a variable in the footer."""
    unit            : str
    unit_latex      : str
    variable_latex  : str
    unit_conversion : str


class MetaData():
    """
    One opened VLSV snapshot.

    The file stays open until close() is called or the with-block exits. If
    parsing fails in the constructor, the file is closed before the error
    propagates.
    """

    def __init__(
        self,
        file_name : Union[str, os.PathLike],
        verbose   : bool = False) -> None:
        """
        Args:
            file_name: path to the .vlsv file
            verbose: log metadata summaries at INFO rather than DEBUG level
        """
        self.verbose = verbose
        self.handle = VLSVFileHandle(file_name)
        self.file_name = self.handle.file_name
        try:
            self.footer = parse_footer(self.handle, verbose=verbose)
            self.cellid = self._read_cellids()
            self.cellindex = np.argsort(self.cellid, kind="stable")
            self.sorted_cellid = np.ascontiguousarray(self.cellid[self.cellindex])
            self.mesh = build_spatial_descriptor(self.footer, self.handle, self.cellid)
            self._check_cellids()
            self.fsgrid = build_fsgrid_descriptor(self.footer, self.handle, self.mesh)
            self.amr = AMRIndexer(self.mesh, self.sorted_cellid)
            self.velocity = VelocitySpaceReader(self.handle, self.footer, self.amr)
        except BaseException:
            self.handle.close()
            raise

        level = logging.INFO if verbose else logging.DEBUG
        logger.log(level, f"Read metadata of {self.file_name}: {self.cellid.size} cells, "
                          f"max AMR level {self.mesh.max_refinement_level}, "
                          f"{len(self.show_variables())} variables")


    def __enter__(
        self) -> 'MetaData':
        return self


    def __exit__(
        self,
        exc_type : Union[type, None],
        exc_val  : Union[BaseException, None],
        exc_tb) -> None:
        self.close()


    def __repr__(self) -> str:
        return (f"MetaData('{self.file_name}', cells={self.cellid.size}, "
                f"base={self.mesh.base_grid_size}, max_level={self.mesh.max_refinement_level})")


    def close(
        self) -> None:
        self.handle.close()


    @property
    def closed(self) -> bool:
        return self.handle.closed


    ##########################################################################
    # Metadata
    ##########################################################################

    def _read_cellids(
        self) -> np.ndarray:
        rec = self.footer.find(TAG_VARIABLE, name=CELLID_VARIABLE, mesh=SPATIAL_MESH)
        if rec is None:
            # the spatial MESH element itself points at the cell id array
            rec = self.footer.find(TAG_MESH, name=SPATIAL_MESH)
        if rec is None:
            raise FormatError(f"{self.file_name} has no {CELLID_VARIABLE} array for {SPATIAL_MESH}")
        return self._read_record(rec).reshape(-1).astype(CELLID_DTYPE)


    def _check_cellids(
        self) -> None:
        if self.cellid.size == 0:
            return
        if self.sorted_cellid[0] < 1 or self.sorted_cellid[-1] > self.mesh.n_cell_ids:
            raise FormatError(
                f"stored cell ids span [{self.sorted_cellid[0]}, {self.sorted_cellid[-1]}], "
                f"outside [1, {self.mesh.n_cell_ids}] of the mesh")
        if np.any(self.sorted_cellid[1:] == self.sorted_cellid[:-1]):
            raise FormatError(f"{self.file_name} stores duplicate cell ids")


    @property
    def time(self) -> Optional[float]:
        """Simulation time, or None if the file does not record it."""
        for name in TIME_PARAMETERS:
            if name in self.footer.parameters:
                return self.footer.parameters[name].value
        return None


    @property
    def populations(self) -> List[str]:
        return self.velocity.populations


    def has_parameter(
        self,
        name : str) -> bool:
        return name in self.footer.parameters


    def read_parameter(
        self,
        name : str):
        """Value of a PARAMETER; raises MissingParameterError if absent."""
        if name not in self.footer.parameters:
            raise MissingParameterError(name)
        return self.footer.parameters[name].value


    def has_variable(
        self,
        name : str,
        mesh : Optional[str] = None) -> bool:
        return len(self.footer.find_all(TAG_VARIABLE, name=name, mesh=mesh)) > 0


    def show_variables(
        self,
        mesh : Optional[str] = None) -> List[str]:
        """Names of all variables, optionally on one mesh."""
        return self.footer.variable_names(mesh)


    def _variable_record(
        self,
        name : str,
        mesh : Optional[str] = None) -> ArrayRecord:
        rec = self.footer.find(TAG_VARIABLE, name=name, mesh=mesh)
        if rec is None:
            where = f" on mesh {mesh}" if mesh else ""
            raise UnknownVariableError(f"variable '{name}'{where} not found in {self.file_name}")
        return rec


    def read_variable_info(
        self,
        name : str,
        mesh : Optional[str] = None) -> VarInfo:
        attrs = self._variable_record(name, mesh).attributes
        return VarInfo(
            unit=attrs.get("unit", ""),
            unit_latex=attrs.get("unitLaTeX", ""),
            variable_latex=attrs.get("variableLaTeX", ""),
            unit_conversion=attrs.get("unitConversion", ""))


    ##########################################################################
    # Variable reads
    ##########################################################################

    def _read_record(
        self,
        rec : ArrayRecord) -> np.ndarray:
        dtype = rec.dtype(self.handle.byteorder)
        data = self.handle.read_array(rec.byte_offset, dtype, rec.n_elements)
        if not dtype.isnative:
            data = data.astype(dtype.newbyteorder("="))
        if rec.vector_size > 1:
            data = data.reshape(rec.record_count, rec.vector_size)
        return data


    def read_variable(
        self,
        name   : str,
        sorted : bool = True,
        mesh   : Optional[str] = None) -> np.ndarray:
        """
        Read a whole variable.

        Args:
            name: variable name, e.g. 'proton/vg_rho'
            sorted: for DCCRG variables, reorder records by ascending cell id;
                    other meshes are always returned in stored order
            mesh: disambiguates names present on several meshes

        Returns:
            (n,) for scalars or (n, vector_size)
        """
        rec = self._variable_record(name, mesh)
        data = self._read_record(rec)
        if sorted and rec.mesh == self.mesh.mesh_name:
            if data.shape[0] != self.cellid.size:
                raise FormatError(
                    f"variable '{name}' has {data.shape[0]} records but the mesh has "
                    f"{self.cellid.size} cells")
            data = data[self.cellindex]
        return data


    def _record_rows(
        self,
        ids : np.ndarray) -> np.ndarray:
        """File-order record index of each id, via the sorted id index."""
        pos = np.searchsorted(self.sorted_cellid, ids)
        found = pos < self.sorted_cellid.size
        found[found] = self.sorted_cellid[pos[found]] == ids[found]
        if not np.all(found):
            raise UnknownCellIdError(
                f"cell id {ids[~found][0]} is not stored in mesh {self.mesh.mesh_name}")
        return self.cellindex[pos]


    def read_variable_select(
        self,
        name : str,
        ids,
        mesh : Optional[str] = None) -> np.ndarray:
        """
        Read a DCCRG variable for a subset of cells, in the order given.

        Every id is validated before anything is read. Records that are
        contiguous in the file are fetched with a single read.

        Raises:
            UnknownCellIdError: an id is not stored in the mesh
        """
        rec = self._variable_record(name, mesh)
        if rec.mesh != self.mesh.mesh_name:
            raise ValueError(f"variable '{name}' lives on mesh {rec.mesh}, which has no cell ids")
        if rec.record_count != self.cellid.size:
            raise FormatError(
                f"variable '{name}' has {rec.record_count} records but the mesh has "
                f"{self.cellid.size} cells")

        req = np.asarray(ids)
        scalar = req.ndim == 0
        req = req.reshape(-1).astype(CELLID_DTYPE)
        rows = self._record_rows(req)

        dtype = rec.dtype(self.handle.byteorder)
        row_bytes = rec.vector_size * rec.element_size
        unique_rows = np.unique(rows)
        runs = np.split(unique_rows, np.flatnonzero(np.diff(unique_rows) != 1) + 1)

        block = np.empty((unique_rows.size, rec.vector_size), dtype=dtype)
        filled = 0
        for run in runs:
            if run.size == 0:
                continue
            chunk = self.handle.read_array(
                rec.byte_offset + int(run[0]) * row_bytes, dtype, run.size * rec.vector_size)
            block[filled:filled + run.size] = chunk.reshape(run.size, rec.vector_size)
            filled += run.size

        if not dtype.isnative:
            block = block.astype(dtype.newbyteorder("="))
        data = block[np.searchsorted(unique_rows, rows)]
        if rec.vector_size == 1:
            data = data[:, 0]
        logger.debug(f"Selective read of '{name}': {req.size} ids in {len(runs)} runs")
        return data[0] if scalar else data


    def _fsgrid_decomposition(
        self) -> List[int]:
        rec = self.footer.find(TAG_MESH_DECOMPOSITION, mesh=self.fsgrid.mesh_name)
        if rec is not None:
            decomposition = self._read_record(rec).reshape(-1)
            return [int(n) for n in decomposition[:3]]
        ranks = self.read_parameter(WRITING_RANKS_PARAMETER)
        return compute_domain_decomposition(self.fsgrid.base_grid_size, int(ranks))


    def read_fsgrid_variable(
        self,
        name : str) -> np.ndarray:
        """
        Read a field-solver variable and stitch the per-rank chunks into
        an (nx, ny, nz) or (nx, ny, nz, vector_size) array.
        """
        if self.fsgrid is None:
            raise UnknownVariableError(f"{self.file_name} has no {FSGRID_MESH} mesh")
        rec = self._variable_record(name, mesh=self.fsgrid.mesh_name)
        raw = self._read_record(rec)
        size = self.fsgrid.base_grid_size
        if rec.record_count != size[0] * size[1] * size[2]:
            raise FormatError(
                f"fsgrid variable '{name}' has {rec.record_count} records, "
                f"expected {size[0] * size[1] * size[2]}")

        shape = size + ((rec.vector_size,) if rec.vector_size > 1 else ())
        out = np.empty(shape, dtype=raw.dtype)
        offset = 0
        for start, box in fsgrid_rank_boxes(size, self._fsgrid_decomposition()):
            n = int(np.prod(box))
            chunk = raw[offset:offset + n]
            # cells within a rank's chunk run x fastest
            if rec.vector_size > 1:
                chunk = chunk.reshape(tuple(box) + (rec.vector_size,), order="F")
            else:
                chunk = chunk.reshape(tuple(box), order="F")
            end = start + box
            out[start[0]:end[0], start[1]:end[1], start[2]:end[2]] = chunk
            offset += n
        return out


    ##########################################################################
    # Spatial queries
    ##########################################################################

    def get_max_amr_level(
        self) -> int:
        return self.amr.get_max_amr_level()


    def get_amr_level(
        self,
        cellid):
        return self.amr.level_of(cellid)


    def get_cell_coordinates(
        self,
        cellid) -> np.ndarray:
        return self.amr.coordinates_of(cellid)


    def get_cellid(
        self,
        location):
        return self.amr.cellid_at(location)


    def get_cell_in_line(
        self,
        point1 : Sequence[float],
        point2 : Sequence[float]):
        """(cell ids, distances from point1, coordinates) along a segment."""
        return self.amr.cells_in_line(point1, point2)


    def get_slice_cellid(
        self,
        plane_location : float,
        normal_axis    : int,
        bounding_box   = None) -> np.ndarray:
        return self.amr.slice_cell_ids(plane_location, normal_axis, bounding_box)


    def refine_to_finest(
        self,
        cell_ids,
        values,
        normal_axis : Optional[int] = None) -> np.ndarray:
        return refine_to_finest(self.mesh, cell_ids, values, normal_axis)


    def read_slice(
        self,
        name           : str,
        plane_location : float,
        normal_axis    : int,
        bounding_box   = None) -> np.ndarray:
        """Uniform finest-level 2D cut of a scalar DCCRG variable."""
        ids = self.get_slice_cellid(plane_location, normal_axis, bounding_box)
        values = self.read_variable_select(name, ids)
        return self.refine_to_finest(ids, values, normal_axis)


    ##########################################################################
    # Velocity space
    ##########################################################################

    def read_velocity_block(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> PopulationVelocityBlock:
        return self.velocity.read_velocity_block(cellid, pop)


    def read_velocity_cells(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION):
        return self.velocity.read_velocity_cells(cellid, pop)


    def nearest_cell_with_distribution(
        self,
        cellid : int,
        pop    : str = DEFAULT_POPULATION) -> int:
        return self.velocity.nearest_cell_with_distribution(cellid, pop)


    def velocity_mesh(
        self,
        pop : str = DEFAULT_POPULATION) -> VelocityMeshInfo:
        return self.velocity.velocity_mesh(pop)


    def get_velocity_cell_coordinates(
        self,
        vcellids,
        pop : str = DEFAULT_POPULATION) -> np.ndarray:
        return self.velocity.velocity_cell_coordinates(vcellids, pop)


def read_meta(
    file_name : Union[str, os.PathLike],
    verbose   : bool = False) -> MetaData:
    """Open a VLSV file and parse its metadata. Close it when done."""
    return MetaData(file_name, verbose=verbose)
