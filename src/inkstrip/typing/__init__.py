"""Typing-centric domain modules."""

from inkstrip.typing.enums import ImageFormat, JobStatus, PageStatus
from inkstrip.typing.models import (
    DEFAULT_TUNING,
    BatchRun,
    DetectionMask,
    DocumentHandle,
    DocumentJob,
    JobSnapshot,
    ManifestEntry,
    PageResult,
    PageSnapshot,
    PixelBuffer,
    RenderCacheEntry,
    SourceDocument,
    TuningProfile,
    UploadOutcome,
    WorkspaceManifest,
)
from inkstrip.typing.protocol import DocumentCodec, KeyValueStore, TuningSource

__all__ = [
    "DEFAULT_TUNING",
    "BatchRun",
    "DetectionMask",
    "DocumentCodec",
    "DocumentHandle",
    "DocumentJob",
    "ImageFormat",
    "JobSnapshot",
    "JobStatus",
    "KeyValueStore",
    "ManifestEntry",
    "PageResult",
    "PageSnapshot",
    "PageStatus",
    "PixelBuffer",
    "RenderCacheEntry",
    "SourceDocument",
    "TuningProfile",
    "TuningSource",
    "UploadOutcome",
    "WorkspaceManifest",
]
