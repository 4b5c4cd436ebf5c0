"""Package exceptions."""

from __future__ import annotations

from dataclasses import dataclass


class PackageError(Exception):
    """Root exception for the package."""


@dataclass(frozen=True)
class SettingsError(PackageError):
    """Raised when settings cannot be loaded or validated."""

    message: str = "Failed to load settings"
    exc: BaseException | None = None

    def __str__(self) -> str:
        """Return error message payload."""
        return f"{self.message}: {self.exc}" if self.exc else self.message


@dataclass(frozen=True)
class DependencyError(PackageError):
    """Raised when optional runtime dependencies are missing."""

    missing_package: list[str]
    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return f"Missing runtime dependencies for '{self.message}': {', '.join(self.missing_package)}"


@dataclass(frozen=True)
class BackendError(PackageError):
    """Raised when the tuning-suggestion service call fails."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class RasterizationError(PackageError):
    """Raised when a page cannot be rendered to pixels."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class ReconstructionError(PackageError):
    """Raised when a masked region cannot be reconstructed."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class BatchPageError(PackageError):
    """Raised when one page of a document job fails."""

    page_index: int
    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class BatchInProgressError(PackageError):
    """Raised when a batch run is requested while another one is active."""

    message: str = "A batch run is already in progress"

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass
class PersistenceError(PackageError):
    """Raised when the session key/value store fails."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class ExportError(PackageError):
    """Raised when cleaned pages cannot be assembled into an output document."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class WorkspaceError(PackageError):
    """Raised when a workspace operation is rejected."""

    message: str

    def __str__(self) -> str:
        """Return error message payload."""
        return self.message


@dataclass(frozen=True)
class RenderCancelledError(RasterizationError):
    """Raised when a render was superseded by a newer request before it completed."""

    message: str = "Render was superseded by a newer request"
