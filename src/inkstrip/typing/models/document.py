"""Decoded document handle and render cache entry models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentHandle(BaseModel):
    """An opened document; `native` is the codec's own document object."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    identity: str
    page_count: int = Field(ge=0)
    native: Any = Field(default=None, repr=False)
    closed: bool = False


class RenderCacheEntry(BaseModel):
    """Raw RGBA raster of one page rendered at one scale."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    page_index: int = Field(ge=0)
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    scale: float = Field(gt=0)
    data: bytes = Field(repr=False)
