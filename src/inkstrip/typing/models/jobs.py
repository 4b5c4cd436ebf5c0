"""Batch job state models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from inkstrip.typing.enums import JobStatus, PageStatus
from inkstrip.typing.models.raster import PixelBuffer


class SourceDocument(BaseModel):
    """An uploaded document awaiting processing."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    data: bytes = Field(repr=False)


class PageResult(BaseModel):
    """Outcome for one page of a document job."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    page_index: int = Field(ge=0)
    status: PageStatus = PageStatus.PENDING
    raster: PixelBuffer | None = Field(default=None, repr=False)
    error: str | None = None

    def mark_processing(self) -> None:
        """Move the page into processing."""
        self.status = PageStatus.PROCESSING
        self.error = None

    def mark_done(self, raster: PixelBuffer) -> None:
        """Record the fully reconstructed raster."""
        self.raster = raster
        self.status = PageStatus.DONE
        self.error = None

    def mark_failed(self, message: str) -> None:
        """Record a failure; a failed page never keeps a partial raster."""
        self.raster = None
        self.status = PageStatus.FAILED
        self.error = message


class DocumentJob(BaseModel):
    """Processing state of one document across its pages."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    document_id: str
    name: str = ""
    pages: list[PageResult] = Field(default_factory=list)
    completed: int = 0
    total: int = 0
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    cancel_requested: bool = False

    def reset(self) -> None:
        """Drop every page and zero the progress counters."""
        self.pages = []
        self.completed = 0
        self.total = 0
        self.status = JobStatus.PENDING
        self.error = None
        self.cancel_requested = False

    def start(self, total: int) -> None:
        """Enter processing with `total` pending pages."""
        self.pages = [PageResult(page_index=index) for index in range(total)]
        self.total = total
        self.completed = 0
        self.status = JobStatus.PROCESSING
        self.error = None

    def cancel(self) -> None:
        """Request the job to stop before its next page."""
        self.cancel_requested = True

    def fail(self, message: str) -> None:
        """Enter the failed state with the triggering message."""
        self.status = JobStatus.FAILED
        self.error = message

    def next_pending_index(self) -> int | None:
        """Return the index of the first page that is not done."""
        for page in self.pages:
            if page.status != PageStatus.DONE:
                return page.page_index
        return None

    def cleaned_pages(self) -> list[PixelBuffer]:
        """Return reconstructed rasters of done pages in page order."""
        return [
            page.raster
            for page in sorted(self.pages, key=lambda item: item.page_index)
            if page.status == PageStatus.DONE and page.raster is not None
        ]

    @property
    def progress(self) -> tuple[int, int]:
        """Return `(completed, total)` page counters."""
        return self.completed, self.total


class BatchRun(BaseModel):
    """A processing session across several document jobs."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    jobs: list[DocumentJob] = Field(default_factory=list)
    running: bool = False

    def job_for(self, document_id: str) -> DocumentJob | None:
        """Return the job tracking `document_id`, if any."""
        return next((job for job in self.jobs if job.document_id == document_id), None)

    @property
    def succeeded(self) -> bool:
        """Return whether every job reached `done`."""
        return all(job.status == JobStatus.DONE for job in self.jobs)
