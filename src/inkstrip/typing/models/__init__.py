"""Core domain model exports."""

from inkstrip.typing.models.document import DocumentHandle, RenderCacheEntry
from inkstrip.typing.models.jobs import BatchRun, DocumentJob, PageResult, SourceDocument
from inkstrip.typing.models.raster import DetectionMask, PixelBuffer
from inkstrip.typing.models.snapshot import JobSnapshot, ManifestEntry, PageSnapshot, WorkspaceManifest
from inkstrip.typing.models.tuning import DEFAULT_TUNING, TuningProfile
from inkstrip.typing.models.workspace import UploadOutcome

__all__ = [
    "DEFAULT_TUNING",
    "BatchRun",
    "DetectionMask",
    "DocumentHandle",
    "DocumentJob",
    "JobSnapshot",
    "ManifestEntry",
    "PageResult",
    "PageSnapshot",
    "PixelBuffer",
    "RenderCacheEntry",
    "SourceDocument",
    "TuningProfile",
    "UploadOutcome",
    "WorkspaceManifest",
]
