"""
    frames

    Reads across a series of VLSV snapshots. Every snapshot is opened in its
    own worker with its own MetaData, so the handles are never shared.

    Example:
        times, rho = extract_point_series(sorted(glob("bulk.*.vlsv")),
                                          "proton/vg_rho",
                                          [1.0e7, 0.0, 0.0],
                                          n_jobs=4)
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from .read_VLSV import MetaData

logger = logging.getLogger(__name__)


def _read_frame(
    file_name : str,
    name      : str,
    sorted    : bool) -> np.ndarray:
    with MetaData(file_name) as meta:
        return meta.read_variable(name, sorted=sorted)


def _read_point(
    file_name : str,
    name      : str,
    location  : Sequence[float]) -> Tuple[float, np.ndarray]:
    with MetaData(file_name) as meta:
        cellid = meta.get_cellid(location)
        value = meta.read_variable_select(name, cellid)
        time = meta.time
    return (np.nan if time is None else time), value


def read_variable_frames(
    file_names : Sequence[str],
    name       : str,
    sorted     : bool = True,
    n_jobs     : int = 1) -> List[np.ndarray]:
    """
    Read one variable from every snapshot.

    Args:
        file_names: snapshot paths, in the order the frames are wanted
        name: variable name
        sorted: sort DCCRG variables by cell id
        n_jobs: joblib workers

    Returns:
        list of arrays, one per snapshot. Frames are not stacked because the
        number of cells may change between snapshots of a refining run.
    """
    logger.info(f"Reading '{name}' from {len(file_names)} snapshots with n_jobs={n_jobs}")
    return Parallel(n_jobs=n_jobs)(
        delayed(_read_frame)(f, name, sorted) for f in file_names)


def extract_point_series(
    file_names : Sequence[str],
    name       : str,
    location   : Sequence[float],
    n_jobs     : int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """
    Time series of a DCCRG variable at a fixed point.

    The covering cell is looked up separately in each snapshot.

    Returns:
        times (NaN where a snapshot records no time) and values, stacked
        along the first axis
    """
    logger.info(f"Extracting '{name}' at {list(location)} from {len(file_names)} snapshots")
    results = Parallel(n_jobs=n_jobs)(
        delayed(_read_point)(f, name, location) for f in file_names)
    if not results:
        return np.empty(0), np.empty(0)
    times, values = zip(*results)
    return np.asarray(times, dtype=np.float64), np.stack([np.asarray(v) for v in values])
