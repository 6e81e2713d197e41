"""
    binary

    Positioned, typed reads from a VLSV snapshot. Knows nothing about the
    footer: callers pass an offset, a datatype and a count.
"""

import os
import threading
import logging
from typing import Union

import numpy as np

from .constants import *
from ..exceptions import FormatError, IoError

logger = logging.getLogger(__name__)


def numpy_dtype(
    datatype     : str,
    element_size : int,
    byteorder    : str = "<") -> np.dtype:
    """
    Map a footer (datatype, datasize) pair onto a numpy dtype.

    Args:
        datatype: one of 'float', 'int', 'uint'
        element_size: bytes per element
        byteorder: '<' or '>'

    Returns:
        np.dtype with the requested byte order
    """
    if datatype not in DATATYPE_KINDS:
        raise FormatError(f"unsupported datatype '{datatype}'")
    if element_size not in SUPPORTED_SIZES[datatype]:
        raise FormatError(f"unsupported element size {element_size} for datatype '{datatype}'")
    return np.dtype(f"{byteorder}{DATATYPE_KINDS[datatype]}{element_size}")


class VLSVFileHandle():
    """
    Owns an open, read-only binary stream to one snapshot file.

    Reads are serialised by a lock, so a single handle may be shared by
    threads. Use as a context manager, or call close() explicitly.
    """

    def __init__(
        self,
        file_name : Union[str, os.PathLike]) -> None:

        self.file_name = os.path.abspath(os.fspath(file_name))
        self._lock = threading.Lock()
        try:
            self._fp = open(self.file_name, "rb")
        except OSError as err:
            raise IoError(f"cannot open {self.file_name}: {err}") from err

        try:
            self._fp.seek(0, os.SEEK_END)
            self.file_size = self._fp.tell()
            self.byteorder = self._read_byteorder()
        except BaseException:
            self._fp.close()
            raise
        logger.debug(f"Opened {self.file_name} ({self.file_size} bytes, byteorder '{self.byteorder}')")


    def __enter__(
        self) -> 'VLSVFileHandle':
        return self


    def __exit__(
        self,
        exc_type : Union[type, None],
        exc_val  : Union[BaseException, None],
        exc_tb) -> None:
        self.close()


    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"VLSVFileHandle('{self.file_name}', {state})"


    @property
    def closed(self) -> bool:
        return self._fp.closed


    def close(
        self) -> None:
        """Release the file. Safe to call more than once."""
        if not self._fp.closed:
            self._fp.close()
            logger.debug(f"Closed {self.file_name}")


    def _read_byteorder(
        self) -> str:
        if self.file_size < HEADER_SIZE:
            raise FormatError(
                f"{self.file_name} is {self.file_size} bytes, shorter than the {HEADER_SIZE} byte header")
        marker = self.read_bytes(ENDIANNESS_OFFSET, 1)[0]
        if marker == LITTLE_ENDIAN:
            return "<"
        elif marker == BIG_ENDIAN:
            return ">"
        raise FormatError(f"unknown endianness marker {marker} in {self.file_name}")


    def _check_bounds(
        self,
        offset : int,
        nbytes : int) -> None:
        if offset < 0 or offset + nbytes > self.file_size:
            raise FormatError(
                f"read of {nbytes} bytes at offset {offset} runs past the end of "
                f"{self.file_name} ({self.file_size} bytes)")


    def read_bytes(
        self,
        offset : int,
        nbytes : int) -> bytes:
        """Read exactly nbytes raw bytes starting at offset."""
        self._check_bounds(offset, nbytes)
        try:
            with self._lock:
                self._fp.seek(offset)
                buf = self._fp.read(nbytes)
        except ValueError as err:
            # raised by operations on a closed file
            raise IoError(f"{self.file_name}: {err}") from err
        except OSError as err:
            raise IoError(f"read of {nbytes} bytes at offset {offset} failed: {err}") from err
        if len(buf) != nbytes:
            raise FormatError(
                f"short read at offset {offset}: expected {nbytes} bytes, got {len(buf)}")
        return buf


    def read_array(
        self,
        offset : int,
        dtype  : np.dtype,
        count  : int) -> np.ndarray:
        """
        Read count elements of dtype starting at byte offset.

        Short reads are a FormatError; the array is never truncated.
        """
        dtype = np.dtype(dtype)
        count = int(count)
        self._check_bounds(offset, count * dtype.itemsize)
        if count == 0:
            return np.empty(0, dtype=dtype)
        try:
            with self._lock:
                self._fp.seek(offset)
                data = np.fromfile(self._fp, dtype=dtype, count=count)
        except ValueError as err:
            raise IoError(f"{self.file_name}: {err}") from err
        except OSError as err:
            raise IoError(f"read of {count} x {dtype} at offset {offset} failed: {err}") from err
        if data.size != count:
            raise FormatError(
                f"short read at offset {offset}: expected {count} elements, got {data.size}")
        return data


    def read_uint64(
        self,
        offset : int) -> int:
        """Read one unsigned 64-bit integer in the file's byte order."""
        return int(self.read_array(offset, np.dtype(f"{self.byteorder}u8"), 1)[0])
