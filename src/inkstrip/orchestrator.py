"""Batch orchestration of page cleaning across documents."""

from __future__ import annotations

from typing import TYPE_CHECKING

from inkstrip import logger
from inkstrip.cancellation import CancellationSource
from inkstrip.cleaning import clean_page
from inkstrip.exceptions import BatchInProgressError, BatchPageError, PackageError
from inkstrip.rasterizer import Rasterizer, RenderCache
from inkstrip.state_store import snapshot_job
from inkstrip.typing.enums import JobStatus, PageStatus
from inkstrip.typing.models import BatchRun, DocumentJob

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from inkstrip.cancellation import CancellationToken
    from inkstrip.state_store import SessionStore
    from inkstrip.tuning import TuningResolver
    from inkstrip.typing.models import DocumentHandle, PixelBuffer, SourceDocument
    from inkstrip.typing.protocol import DocumentCodec


class BatchOrchestrator:
    """Runs render, tuning and cleaning over every page of every document.

    Documents are processed one after another and pages strictly in index
    order. A failing page stops its own document only; pages completed before
    it are kept. `reset()` supersedes in-flight work, which then stops without
    touching its job.
    """

    def __init__(
        self,
        codec: DocumentCodec,
        resolver: TuningResolver,
        *,
        working_scale: float = 1.75,
        session: SessionStore | None = None,
        on_progress: Callable[[DocumentJob], None] | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            codec (DocumentCodec): Document codec.
            resolver (TuningResolver): Tuning resolver.
            working_scale (float): Render scale used for cleaning.
            session (SessionStore | None): Optional persistence for snapshots.
            on_progress (Callable[[DocumentJob], None] | None): Called after each page.
        """
        self._codec = codec
        self._resolver = resolver
        self._working_scale = working_scale
        self._session = session
        self._on_progress = on_progress
        self._rasterizer = Rasterizer(codec, RenderCache())
        self._tokens = CancellationSource()
        self._active_run: BatchRun | None = None
        self._encoded_pages: dict[str, dict[int, str]] = {}

    @property
    def active_run(self) -> BatchRun | None:
        """Return the running batch, if any."""
        return self._active_run

    @property
    def is_running(self) -> bool:
        """Return whether a batch run is active."""
        return self._active_run is not None and self._active_run.running

    def reset(self) -> None:
        """Supersede every in-flight job and forget the active run."""
        self._tokens.cancel()
        self._rasterizer.cancel()
        self._rasterizer.cache.clear()
        self._encoded_pages.clear()
        if self._active_run is not None:
            self._active_run.running = False
        self._active_run = None
        logger.info("Orchestrator reset")

    async def process_all(
        self,
        sources: Sequence[SourceDocument],
        jobs: dict[str, DocumentJob] | None = None,
        *,
        resume: bool = False,
    ) -> BatchRun:
        """Process every document sequentially.

        Args:
            sources (Sequence[SourceDocument]): Documents in processing order.
            jobs (dict[str, DocumentJob] | None): Existing jobs to reuse, by document id.
            resume (bool): Keep finished jobs and continue the others from their
                first page that is not done, instead of starting over.

        Raises:
            BatchInProgressError: If another batch run is active.

        Returns:
            BatchRun: The finished run.
        """
        if self.is_running:
            raise BatchInProgressError

        known = jobs or {}
        run = BatchRun(
            jobs=[
                known.get(source.id) or DocumentJob(document_id=source.id, name=source.name)
                for source in sources
            ],
            running=True,
        )
        self._active_run = run
        token = self._tokens.current
        logger.info("Batch started", extra={"documents": len(sources)})

        try:
            for source, job in zip(sources, run.jobs, strict=True):
                if not self._tokens.is_current(token):
                    break
                if not resume:
                    await self.process_document(job, source)
                elif job.status != JobStatus.DONE:
                    await self.resume_document(job, source)
        finally:
            run.running = False
            if self._active_run is run:
                self._active_run = None

        logger.info(
            "Batch finished",
            extra={
                "documents": len(run.jobs),
                "done": sum(1 for job in run.jobs if job.status == JobStatus.DONE),
                "failed": sum(1 for job in run.jobs if job.status == JobStatus.FAILED),
            },
        )
        return run

    async def process_document(self, job: DocumentJob, source: SourceDocument) -> DocumentJob:
        """Clean every page of one document from scratch.

        Args:
            job (DocumentJob): Job to reset and fill.
            source (SourceDocument): Document bytes.

        Returns:
            DocumentJob: The same job in a terminal state, or untouched past the
            point where it was superseded.
        """
        job.reset()
        job.name = job.name or source.name
        return await self._run(job, source, resume=False)

    async def resume_document(self, job: DocumentJob, source: SourceDocument) -> DocumentJob:
        """Continue a restored job from its first page that is not done.

        Args:
            job (DocumentJob): Restored job.
            source (SourceDocument): Document bytes.

        Returns:
            DocumentJob: The same job in a terminal state.
        """
        if not job.pages:
            return await self.process_document(job, source)
        job.cancel_requested = False
        return await self._run(job, source, resume=True)

    async def _run(self, job: DocumentJob, source: SourceDocument, *, resume: bool) -> DocumentJob:
        token = self._tokens.current
        self._encoded_pages.pop(job.document_id, None)
        try:
            return await self._run_job(job, source, token, resume=resume)
        finally:
            self._encoded_pages.pop(job.document_id, None)

    async def _run_job(
        self,
        job: DocumentJob,
        source: SourceDocument,
        token: CancellationToken,
        *,
        resume: bool,
    ) -> DocumentJob:
        try:
            document = self._codec.open_document(source.data, source.id)
        except PackageError as exc:
            job.fail(str(exc))
            logger.warning(
                "Document could not be opened",
                extra={"document_id": job.document_id, "error": str(exc)},
            )
            self._persist(job)
            return job

        try:
            if resume and job.total == document.page_count:
                job.status = JobStatus.PROCESSING
                job.error = None
            else:
                job.start(document.page_count)
            self._persist(job)
            await self._process_pages(job, document, token)
        finally:
            self._codec.close_document(document)

        if self._tokens.is_current(token):
            self._persist(job)
            logger.info(
                "Document finished",
                extra={"document_id": job.document_id, "status": job.status.to_str(), "pages": job.progress},
            )
        return job

    async def _process_pages(
        self,
        job: DocumentJob,
        document: DocumentHandle,
        token: CancellationToken,
    ) -> None:
        for page in job.pages:
            if page.status == PageStatus.DONE:
                continue
            if not self._tokens.is_current(token):
                logger.debug("Job superseded", extra={"document_id": job.document_id})
                return
            if job.cancel_requested:
                job.status = JobStatus.CANCELLED
                logger.info(
                    "Job cancelled",
                    extra={"document_id": job.document_id, "page_index": page.page_index},
                )
                return

            page.mark_processing()
            try:
                raster = await self._clean(document, page.page_index)
            except BatchPageError as exc:
                if not self._tokens.is_current(token):
                    return
                page.mark_failed(exc.message)
                job.fail(exc.message)
                logger.warning(
                    "Page failed",
                    extra={
                        "document_id": job.document_id,
                        "page_index": page.page_index,
                        "error": exc.message,
                    },
                )
                return

            if not self._tokens.is_current(token):
                return
            page.mark_done(raster)
            job.completed += 1
            self._persist(job)
            if self._on_progress is not None:
                self._on_progress(job)

        job.status = JobStatus.DONE
        job.error = None

    async def _clean(self, document: DocumentHandle, page_index: int) -> PixelBuffer:
        """Render, tune and clean one page, wrapping any failure in `BatchPageError`."""
        try:
            buffer = await self._rasterizer.render(document, page_index, self._working_scale)
            sample = self._codec.encode_png(buffer) if self._resolver.has_source else None
            profile = await self._resolver.resolve(sample)
            return clean_page(buffer, profile).raster
        except PackageError as exc:
            raise BatchPageError(page_index=page_index, message=str(exc)) from exc
        except Exception as exc:
            logger.exception("Unexpected error while cleaning page", extra={"page_index": page_index})
            raise BatchPageError(page_index=page_index, message=str(exc) or type(exc).__name__) from exc

    def _persist(self, job: DocumentJob) -> None:
        if self._session is None:
            return
        try:
            encoded = self._encoded_pages.setdefault(job.document_id, {})
            snapshot = snapshot_job(job, self._codec, encoded=encoded)
        except PackageError as exc:
            logger.warning(
                "Failed to snapshot job",
                extra={"document_id": job.document_id, "error": str(exc)},
            )
            return
        self._session.save_job_state(snapshot)
