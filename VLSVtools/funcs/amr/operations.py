"""
VLSVtools AMR Operations Module

Bidirectional mapping between cell ids, refinement levels, per-level grid
indices and physical coordinates on a DCCRG mesh, plus the geometric queries
built on it (cells along a line, cells cut by a plane).
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .constants import *
from .core_functions import *
from ...io.mesh import MeshDescriptor
from ...exceptions import InvalidCellIdError, OutOfDomainError, UnknownCellIdError

logger = logging.getLogger(__name__)

ArrayLike = Union[int, Sequence[int], np.ndarray]


class AMRIndexer():
    """
    Cell-id arithmetic for one DCCRG mesh.

    The indexer only needs the mesh descriptor and the ascending array of
    cell ids stored in the file; it never touches the file itself.
    """

    def __init__(
        self,
        descriptor : MeshDescriptor,
        sorted_ids : np.ndarray) -> None:
        """
        Args:
            descriptor: geometry of the mesh
            sorted_ids: stored cell ids in ascending order
        """
        self.descriptor = descriptor
        self.sorted_ids = np.ascontiguousarray(sorted_ids, dtype=np.int64)
        self.level_start = np.asarray(descriptor.level_start, dtype=np.int64)
        self.base_grid_size = np.asarray(descriptor.base_grid_size, dtype=np.int64)
        self.domain_min = np.asarray(descriptor.domain_min, dtype=np.float64)
        self.domain_max = np.asarray(descriptor.domain_max, dtype=np.float64)
        self.base_cell_size = np.ascontiguousarray(descriptor.cell_size(0), dtype=np.float64)
        self.max_level = descriptor.max_refinement_level

        # per stored cell, filled on first geometric query
        self._stored_levels = None
        self._stored_indices = None


    @staticmethod
    def _as_ids(
        ids : ArrayLike) -> Tuple[np.ndarray, bool]:
        arr = np.asarray(ids)
        scalar = arr.ndim == 0
        return np.ascontiguousarray(arr.reshape(-1), dtype=np.int64), scalar


    @staticmethod
    def _as_points(
        points) -> Tuple[np.ndarray, bool]:
        arr = np.asarray(points, dtype=np.float64)
        single = arr.ndim == 1
        arr = np.atleast_2d(arr)
        if arr.shape[-1] != N_DIMS:
            raise ValueError(f"points must have {N_DIMS} coordinates, got shape {arr.shape}")
        return np.ascontiguousarray(arr), single


    def get_max_amr_level(
        self) -> int:
        return self.max_level


    def _levels(
        self,
        arr : np.ndarray) -> np.ndarray:
        levels = amr_level_core(arr, self.level_start)
        bad = levels == INVALID_LEVEL
        if np.any(bad):
            raise InvalidCellIdError(
                f"cell id {arr[bad][0]} is outside [1, {self.level_start[-1]}] "
                f"of mesh {self.descriptor.mesh_name}")
        return levels


    def level_of(
        self,
        ids : ArrayLike) -> Union[int, np.ndarray]:
        """
        Refinement level of cell ids.

        Raises:
            InvalidCellIdError: for 0, negative ids, or ids past the last level
        """
        arr, scalar = self._as_ids(ids)
        levels = self._levels(arr)
        return int(levels[0]) if scalar else levels


    def indices_of(
        self,
        ids : ArrayLike) -> np.ndarray:
        """(i, j, k) on each id's own refinement level; shape (3,) or (n, 3)."""
        arr, scalar = self._as_ids(ids)
        levels = self._levels(arr)
        out = cell_indices_core(arr, levels, self.level_start, self.base_grid_size)
        return out[0] if scalar else out


    def coordinates_of(
        self,
        ids : ArrayLike) -> np.ndarray:
        """Cell-centre coordinates; shape (3,) for a single id, else (n, 3)."""
        arr, scalar = self._as_ids(ids)
        levels = self._levels(arr)
        indices = cell_indices_core(arr, levels, self.level_start, self.base_grid_size)
        coords = cell_coordinates_core(indices, levels, self.domain_min, self.base_cell_size)
        return coords[0] if scalar else coords


    def cell_bounds(
        self,
        ids : ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
        """Lower and upper corners of each cell."""
        arr, scalar = self._as_ids(ids)
        levels = self._levels(arr)
        indices = cell_indices_core(arr, levels, self.level_start, self.base_grid_size)
        size = self.base_cell_size[None, :] * 0.5**levels[:, None]
        lo = self.domain_min[None, :] + indices * size
        hi = lo + size
        return (lo[0], hi[0]) if scalar else (lo, hi)


    def cellid_at(
        self,
        points) -> Union[int, np.ndarray]:
        """
        Stored cell id covering each point.

        Args:
            points: (3,) or (n, 3) coordinates

        Raises:
            OutOfDomainError: a point lies outside [domain_min, domain_max)
            UnknownCellIdError: no stored cell covers an in-domain point
        """
        pts, single = self._as_points(points)
        ids = cellid_at_points_core(
            pts,
            self.domain_min,
            self.domain_max,
            self.base_cell_size,
            self.base_grid_size,
            self.level_start,
            self.sorted_ids,
            self.max_level)
        outside = ids == OUT_OF_DOMAIN
        if np.any(outside):
            raise OutOfDomainError(
                f"point {pts[outside][0].tolist()} lies outside the domain "
                f"{tuple(self.domain_min)} - {tuple(self.domain_max)}")
        missing = ids == NOT_STORED
        if np.any(missing):
            raise UnknownCellIdError(f"no stored cell covers point {pts[missing][0].tolist()}")
        return int(ids[0]) if single else ids


    def cells_in_line(
        self,
        point1,
        point2,
        samples_per_cell : int = DEFAULT_LINE_SAMPLES_PER_CELL) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Cells crossed by the segment point1 -> point2.

        The segment is sampled with a fixed step of the smallest finest-level
        cell edge divided by samples_per_cell; consecutive repeats are
        dropped. Both end points are sampled. This is sampling, not an exact
        ray walk: a cell whose corner the segment clips over less than one
        step can be missed.

        Returns:
            ids, distances from point1, and the coordinate at which each cell
            was first entered, ordered by increasing distance
        """
        p1 = np.asarray(point1, dtype=np.float64).reshape(N_DIMS)
        p2 = np.asarray(point2, dtype=np.float64).reshape(N_DIMS)
        length = float(np.linalg.norm(p2 - p1))

        step = float(np.min(self.base_cell_size)) * 0.5**self.max_level / samples_per_cell
        n_steps = int(np.ceil(length / step)) if length > 0 else 0
        distances = np.linspace(0.0, length, n_steps + 1)
        if length > 0:
            points = p1[None, :] + distances[:, None] * ((p2 - p1) / length)[None, :]
            points[-1] = p2
        else:
            points = p1[None, :].copy()

        ids = np.atleast_1d(self.cellid_at(points))
        keep = np.ones(ids.shape[0], dtype=bool)
        keep[1:] = ids[1:] != ids[:-1]
        return ids[keep], distances[keep], points[keep]


    def _stored_geometry(
        self) -> Tuple[np.ndarray, np.ndarray]:
        if self._stored_levels is None:
            levels = amr_level_core(self.sorted_ids, self.level_start)
            self._stored_indices = cell_indices_core(
                self.sorted_ids, levels, self.level_start, self.base_grid_size)
            self._stored_levels = levels
        return self._stored_levels, self._stored_indices


    def slice_cell_ids(
        self,
        plane_location : float,
        normal_axis    : int,
        bounding_box   : Optional[Tuple[Sequence[float], Sequence[float]]] = None) -> np.ndarray:
        """
        Stored leaf cells cut by the plane x[normal_axis] == plane_location.

        Args:
            plane_location: coordinate of the plane along normal_axis
            normal_axis: 0, 1 or 2
            bounding_box: optional (min_xyz, max_xyz); only cells whose
                          in-plane extent overlaps it are returned

        Returns:
            ascending array of cell ids
        """
        if normal_axis not in (X, Y, Z):
            raise ValueError(f"normal_axis must be 0, 1 or 2, got {normal_axis}")
        loc = float(plane_location)
        if not (self.domain_min[normal_axis] <= loc < self.domain_max[normal_axis]):
            raise OutOfDomainError(
                f"slice at {loc} lies outside [{self.domain_min[normal_axis]}, "
                f"{self.domain_max[normal_axis]}) along axis {normal_axis}")

        levels, indices = self._stored_geometry()
        factor = np.left_shift(np.int64(1), levels)
        plane_index = np.floor(
            (loc - self.domain_min[normal_axis]) / self.base_cell_size[normal_axis] * factor
            ).astype(np.int64)
        mask = indices[:, normal_axis] == plane_index

        if bounding_box is not None:
            box_min = np.asarray(bounding_box[0], dtype=np.float64)
            box_max = np.asarray(bounding_box[1], dtype=np.float64)
            size = self.base_cell_size[None, :] / factor[:, None]
            lo = self.domain_min[None, :] + indices * size
            hi = lo + size
            for axis in (X, Y, Z):
                if axis == normal_axis:
                    continue
                mask &= (lo[:, axis] < box_max[axis]) & (hi[:, axis] > box_min[axis])

        ids = self.sorted_ids[mask]
        logger.debug(f"Slice at {loc} along axis {normal_axis}: {ids.size} cells")
        return ids
