"""Servicarr: self-hosted service status monitor."""

from servicarr.exceptions import (
    ConfigurationIncompleteError,
    DispatchError,
    ServicarrError,
    ServiceNotFoundError,
    TargetBlockedError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ServicarrError",
    "ConfigurationIncompleteError",
    "DispatchError",
    "ServiceNotFoundError",
    "TargetBlockedError",
]
