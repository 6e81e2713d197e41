"""
Error types raised by the VLSV reader.

Every error derives from VLSVError and from the closest builtin, so callers
can catch either the package-specific class or e.g. KeyError.
"""


class VLSVError(Exception):
    """Base class for all VLSVtools errors."""


class FormatError(VLSVError, ValueError):
    """Malformed header, footer or payload (including short reads)."""


class MissingParameterError(VLSVError, KeyError):
    """A mesh descriptor cannot be derived because a parameter is absent."""

    def __init__(self, name: str, mesh: str = None):
        self.name = name
        self.mesh = mesh
        where = f" for mesh {mesh}" if mesh else ""
        super().__init__(f"missing parameter '{name}'{where}")

    def __str__(self):
        return self.args[0]


class UnknownVariableError(VLSVError, KeyError):
    """No array with the requested name exists in the footer."""

    def __str__(self):
        return self.args[0] if self.args else ""


class UnknownCellIdError(VLSVError, KeyError):
    """A cell id is not stored in the mesh's CellID array."""

    def __str__(self):
        return self.args[0] if self.args else ""


class InvalidCellIdError(VLSVError, ValueError):
    """A cell id lies outside every refinement level of the mesh."""


class OutOfDomainError(VLSVError, ValueError):
    """A spatial query lies outside [domain_min, domain_max)."""


class NoDistributionError(VLSVError, LookupError):
    """The spatial cell did not store a velocity distribution."""


class NotFoundError(VLSVError, LookupError):
    """No cell in the mesh satisfies the query."""


class IoError(VLSVError, OSError):
    """The underlying file could not be opened or read."""
