"""Serialized session state persisted between runs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from inkstrip.typing.enums import JobStatus, PageStatus


class PageSnapshot(BaseModel):
    """Persisted form of a `PageResult`."""

    model_config = ConfigDict(extra="forbid")

    page_index: int = Field(ge=0)
    status: PageStatus
    error: str | None = None
    image_png_base64: str | None = None


class JobSnapshot(BaseModel):
    """Persisted form of a `DocumentJob`."""

    model_config = ConfigDict(extra="forbid")

    document_id: str
    name: str = ""
    status: JobStatus
    error: str | None = None
    completed: int = 0
    total: int = 0
    pages: list[PageSnapshot] = Field(default_factory=list)


class ManifestEntry(BaseModel):
    """One uploaded document known to a workspace."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str


class WorkspaceManifest(BaseModel):
    """Document list and selection of a persisted workspace."""

    model_config = ConfigDict(extra="forbid")

    documents: list[ManifestEntry] = Field(default_factory=list)
    active_id: str | None = None
