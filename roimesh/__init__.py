# pylint: disable=missing-module-docstring
import importlib

from roimesh.exceptions import GeometryError, InvalidInput, UnsupportedMode

__version__ = '0.1.0'

# ----------------------------------------------------------------------
# Lazy import of submodules (keeps matplotlib and joblib off the import path until needed)
# ----------------------------------------------------------------------
_SUBMODULES = ["mapping", "roi", "surf", "util", "viz"]
__all__ = _SUBMODULES + ["GeometryError", "InvalidInput", "UnsupportedMode"]


def __getattr__(name):
    if name in _SUBMODULES:
        return importlib.import_module(f"roimesh.{name}")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
