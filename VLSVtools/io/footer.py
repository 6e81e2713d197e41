"""
    footer

    Parser for the XML footer that closes every VLSV file. The footer lists
    each stored array (its tag, name, mesh, byte offset, element type and
    counts); the parser turns it into a FooterCatalog without touching any
    variable payload. PARAMETER values are scalars and are read eagerly.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Any

import numpy as np

from .constants import *
from .binary import VLSVFileHandle, numpy_dtype
from ..exceptions import FormatError, UnknownVariableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArrayRecord:
    """One array declaration from the footer."""
    tag          : str
    name         : str
    mesh         : Optional[str]
    byte_offset  : int
    datatype     : str
    element_size : int
    vector_size  : int
    record_count : int
    attributes   : Dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> Tuple[str, str, Optional[str]]:
        return (self.tag, self.name, self.mesh)

    @property
    def n_elements(self) -> int:
        return self.record_count * self.vector_size

    @property
    def n_bytes(self) -> int:
        return self.n_elements * self.element_size

    def dtype(self, byteorder: str = "<") -> np.dtype:
        return numpy_dtype(self.datatype, self.element_size, byteorder)


@dataclass(frozen=True)
class ParameterRecord:
    name  : str
    value : Any


class FooterCatalog():
    """
    All array records of one snapshot, indexed by (tag, name, mesh).
    """

    def __init__(
        self,
        records    : List[ArrayRecord],
        parameters : Dict[str, ParameterRecord]) -> None:

        self.records = list(records)
        self.parameters = dict(parameters)
        self._by_key = {}
        self._by_tag = {}
        for rec in self.records:
            if rec.key in self._by_key:
                raise FormatError(f"duplicate footer entry {rec.tag} name='{rec.name}' mesh='{rec.mesh}'")
            self._by_key[rec.key] = rec
            self._by_tag.setdefault(rec.tag, []).append(rec)


    def __len__(self) -> int:
        return len(self.records)


    @property
    def meshes(self) -> List[str]:
        """Names of all meshes declared by a MESH element."""
        return [rec.name for rec in self._by_tag.get(TAG_MESH, [])]


    def records_for_mesh(
        self,
        mesh : str) -> List[ArrayRecord]:
        return [rec for rec in self.records if rec.mesh == mesh]


    def find_all(
        self,
        tag  : str,
        name : Optional[str] = None,
        mesh : Optional[str] = None) -> List[ArrayRecord]:
        """All records with this tag, optionally filtered by name and mesh."""
        return [rec for rec in self._by_tag.get(tag, [])
                if (name is None or rec.name == name)
                and (mesh is None or rec.mesh == mesh)]


    def find(
        self,
        tag  : str,
        name : Optional[str] = None,
        mesh : Optional[str] = None) -> Optional[ArrayRecord]:
        """
        The single record matching the query, or None.

        Raises UnknownVariableError if the query is ambiguous, i.e. the same
        name exists on several meshes and no mesh was given.
        """
        if name is not None and mesh is not None:
            return self._by_key.get((tag, name, mesh))
        found = self.find_all(tag, name, mesh)
        if not found:
            return None
        if len(found) > 1:
            meshes = sorted(str(rec.mesh) for rec in found)
            raise UnknownVariableError(
                f"{tag} '{name}' is ambiguous, it exists on meshes {meshes}; pass mesh=")
        return found[0]


    def variable_names(
        self,
        mesh : Optional[str] = None) -> List[str]:
        return [rec.name for rec in self.find_all(TAG_VARIABLE, mesh=mesh)]


def _record_from_element(
    elem : ET.Element) -> ArrayRecord:
    """Build an ArrayRecord from one footer element, validating its attributes."""

    attrib = elem.attrib
    missing = [a for a in REQUIRED_ATTRIBUTES if a not in attrib]
    if missing:
        raise FormatError(
            f"footer element {elem.tag} name='{attrib.get('name')}' is missing attribute(s) {missing}")

    mesh = attrib.get("mesh")
    # MESH_BBOX and friends carry only a mesh attribute
    name = attrib.get("name", mesh)
    if name is None:
        raise FormatError(f"footer element {elem.tag} has neither a name nor a mesh attribute")

    try:
        offset = int((elem.text or "").strip())
        record_count = int(attrib["arraysize"])
        element_size = int(attrib["datasize"])
        vector_size = int(attrib["vectorsize"])
    except ValueError as err:
        raise FormatError(f"footer element {elem.tag} name='{name}' has a non-integer field: {err}") from err

    if offset < 0 or record_count < 0 or element_size <= 0 or vector_size < 0:
        raise FormatError(f"footer element {elem.tag} name='{name}' has negative sizes or offset")

    extra = {k: v for k, v in attrib.items() if k not in REQUIRED_ATTRIBUTES + ("name", "mesh")}
    return ArrayRecord(
        tag=elem.tag,
        name=name,
        mesh=mesh,
        byte_offset=offset,
        datatype=attrib["datatype"],
        element_size=element_size,
        vector_size=vector_size,
        record_count=record_count,
        attributes=extra)


def read_footer_xml(
    handle : VLSVFileHandle) -> ET.Element:
    """Locate the footer through the header offset and parse it as XML."""

    footer_offset = handle.read_uint64(FOOTER_OFFSET_POSITION)
    if footer_offset < HEADER_SIZE or footer_offset >= handle.file_size:
        raise FormatError(
            f"footer offset {footer_offset} lies outside {handle.file_name} "
            f"(valid range [{HEADER_SIZE}, {handle.file_size}))")

    raw = handle.read_bytes(footer_offset, handle.file_size - footer_offset)
    try:
        root = ET.fromstring(raw.rstrip(b"\x00"))
    except ET.ParseError as err:
        raise FormatError(f"footer at offset {footer_offset} is not well-formed XML: {err}") from err
    if root.tag != "VLSV":
        raise FormatError(f"footer root element is <{root.tag}>, expected <VLSV>")
    return root


def read_parameter_value(
    handle : VLSVFileHandle,
    rec    : ArrayRecord) -> Any:
    data = handle.read_array(rec.byte_offset, rec.dtype(handle.byteorder), rec.n_elements)
    if data.size == 1:
        return data[0].item()
    return data


def parse_footer(
    handle  : VLSVFileHandle,
    verbose : bool = False) -> FooterCatalog:
    """
    Parse the footer of an open VLSV file.

    Args:
        handle: the open file
        verbose: log a summary at INFO rather than DEBUG level

    Returns:
        FooterCatalog with every array record and all PARAMETER values

    Raises:
        FormatError: out-of-range footer offset, malformed XML or missing
        attributes on any element.
    """
    root = read_footer_xml(handle)

    records = []
    parameters = {}
    for elem in root:
        rec = _record_from_element(elem)
        records.append(rec)
        if rec.tag == TAG_PARAMETER:
            parameters[rec.name] = ParameterRecord(rec.name, read_parameter_value(handle, rec))

    catalog = FooterCatalog(records, parameters)
    level = logging.INFO if verbose else logging.DEBUG
    logger.log(level, f"Parsed footer of {handle.file_name}: {len(records)} records, "
                      f"{len(parameters)} parameters, meshes {catalog.meshes}")
    return catalog
