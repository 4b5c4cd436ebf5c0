"""Workspace upload models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from inkstrip.typing.models.jobs import SourceDocument


class UploadOutcome(BaseModel):
    """Result of adding files to a workspace."""

    model_config = ConfigDict(extra="forbid")

    added: list[SourceDocument] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list, description="Names refused for not being PDF files.")
    dropped: int = Field(default=0, ge=0, description="Files beyond the upload limit.")
