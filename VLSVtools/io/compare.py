"""
    compare

    Compare two VLSV snapshots of the same run, e.g. a restart against the
    original or two runs with different numbers of writing ranks. Arrays
    whose layout depends on the parallel write (cell ordering, rank maps,
    block counts) are not compared, and neither is the file size.
"""

import logging
from typing import Union
import os

import numpy as np

from .constants import *
from .read_VLSV import MetaData

logger = logging.getLogger(__name__)


def _skipped(
    name : str) -> bool:
    return name.endswith(COMPARE_SKIP_SUFFIXES)


def _close(
    a,
    b,
    tol : float) -> bool:
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape:
        return False
    if a.dtype.kind in "iub" and b.dtype.kind in "iub":
        return bool(np.array_equal(a, b))
    return bool(np.allclose(a, b, rtol=tol, atol=0.0, equal_nan=True))


def _compare_parameters(
    meta1 : MetaData,
    meta2 : MetaData,
    tol   : float) -> bool:
    same = True
    names1 = set(meta1.footer.parameters)
    names2 = set(meta2.footer.parameters)
    for name in sorted(names1 ^ names2):
        if name not in COMPARE_SKIP_PARAMETERS:
            logger.warning(f"Parameter '{name}' exists in only one file")
            same = False
    for name in sorted(names1 & names2):
        if name in COMPARE_SKIP_PARAMETERS:
            continue
        v1 = meta1.read_parameter(name)
        v2 = meta2.read_parameter(name)
        if not _close(v1, v2, tol):
            logger.warning(f"Parameter '{name}' differs: {v1} != {v2}")
            same = False
    return same


def _compare_variables(
    meta1 : MetaData,
    meta2 : MetaData,
    tol   : float) -> bool:
    same = True
    keys1 = {(r.name, r.mesh) for r in meta1.footer.find_all(TAG_VARIABLE)}
    keys2 = {(r.name, r.mesh) for r in meta2.footer.find_all(TAG_VARIABLE)}
    for name, mesh in sorted(keys1 ^ keys2, key=str):
        logger.warning(f"Variable '{name}' on mesh {mesh} exists in only one file")
    for name, mesh in sorted(keys1 & keys2, key=str):
        if _skipped(name):
            continue
        if meta1.fsgrid is not None and meta2.fsgrid is not None and mesh == meta1.fsgrid.mesh_name:
            # the per-rank chunk layout changes with the number of writing ranks
            v1 = meta1.read_fsgrid_variable(name)
            v2 = meta2.read_fsgrid_variable(name)
        else:
            v1 = meta1.read_variable(name, mesh=mesh)
            v2 = meta2.read_variable(name, mesh=mesh)
        if not _close(v1, v2, tol):
            if np.shape(v1) == np.shape(v2):
                diff = np.nanmax(np.abs(np.asarray(v1, dtype=np.float64) - np.asarray(v2, dtype=np.float64)))
                logger.warning(f"Variable '{name}' on mesh {mesh} differs, max abs difference {diff:g}")
            else:
                logger.warning(f"Variable '{name}' on mesh {mesh} has shapes {np.shape(v1)} and {np.shape(v2)}")
            same = False
    return same


def compare(
    file1 : Union[str, os.PathLike],
    file2 : Union[str, os.PathLike],
    tol   : float = DEFAULT_COMPARE_TOL) -> bool:
    """
    True if both files hold the same parameters and variables within a
    relative tolerance.

    DCCRG variables are compared after sorting by cell id, so the order in
    which ranks wrote their cells does not matter. Every difference found
    is logged before returning.
    """
    with MetaData(file1) as meta1, MetaData(file2) as meta2:
        if not np.array_equal(meta1.sorted_cellid, meta2.sorted_cellid):
            logger.warning(f"{meta1.file_name} and {meta2.file_name} store different cell ids")
            return False
        same_parameters = _compare_parameters(meta1, meta2, tol)
        same_variables = _compare_variables(meta1, meta2, tol)
    same = same_parameters and same_variables
    logger.info(f"Compared {file1} and {file2}: {'identical' if same else 'different'} (tol={tol})")
    return same
