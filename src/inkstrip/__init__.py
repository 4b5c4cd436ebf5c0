"""InkStrip package."""

from inkstrip.exceptions import (
    BackendError,
    BatchInProgressError,
    BatchPageError,
    DependencyError,
    ExportError,
    PackageError,
    PersistenceError,
    RasterizationError,
    ReconstructionError,
    SettingsError,
    WorkspaceError,
)
from inkstrip.logging import configure_logging, get_logger
from inkstrip.settings import Settings, get_settings

__version__ = "0.1.0"

# Initialize package logger at import time via `get_logger`.
logger = get_logger("inkstrip")

__all__ = [
    "BackendError",
    "BatchInProgressError",
    "BatchPageError",
    "DependencyError",
    "ExportError",
    "PackageError",
    "PersistenceError",
    "RasterizationError",
    "ReconstructionError",
    "Settings",
    "SettingsError",
    "WorkspaceError",
    "__version__",
    "configure_logging",
    "get_logger",
    "logger",
]
