"""
Exception types raised when mapping regions of interest onto surface meshes.

Each class derives from the built-in exception that the rest of the package raises for the same
kind of failure, so callers may catch either the specific type or the built-in one.
"""


class InvalidInput(ValueError):
    """
    Malformed arguments: empty point sets, out-of-range color or alpha values, or negative
    dilation counts and distance thresholds.
    """


class GeometryError(IndexError):
    """
    Index out of bounds against the mesh topology (faces or current-to-origin vertex map).
    """


class UnsupportedMode(ValueError):
    """
    The requested mapping mode needs data the mesh does not carry (e.g. normal-directed search
    on a mesh without normals).
    """
