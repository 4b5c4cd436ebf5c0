"""Uploaded documents, their jobs and the session they persist to."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from inkstrip import logger
from inkstrip.exceptions import WorkspaceError
from inkstrip.state_store import restore_job
from inkstrip.typing.models import (
    DocumentJob,
    ManifestEntry,
    SourceDocument,
    UploadOutcome,
    WorkspaceManifest,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from inkstrip.orchestrator import BatchOrchestrator
    from inkstrip.state_store import SessionStore
    from inkstrip.typing.models import BatchRun
    from inkstrip.typing.protocol import DocumentCodec

_PDF_SUFFIX = ".pdf"


class Workspace:
    """Ordered set of uploaded documents with one active selection."""

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        *,
        session: SessionStore | None = None,
        max_files: int = 20,
    ) -> None:
        """Initialize workspace.

        Args:
            orchestrator (BatchOrchestrator): Orchestrator running the jobs.
            session (SessionStore | None): Optional persistence.
            max_files (int): Maximum number of documents held at once.
        """
        self._orchestrator = orchestrator
        self._session = session
        self._max_files = max_files
        self._documents: list[SourceDocument] = []
        self.jobs: dict[str, DocumentJob] = {}
        self.active_id: str | None = None

    @property
    def documents(self) -> list[SourceDocument]:
        """Return documents in upload order."""
        return list(self._documents)

    @property
    def active(self) -> SourceDocument | None:
        """Return the selected document, if any."""
        if self.active_id is None:
            return None
        return self._find(self.active_id)

    def add(self, files: Iterable[tuple[str, bytes]]) -> UploadOutcome:
        """Add `(name, data)` pairs, keeping PDF files up to the upload limit.

        Args:
            files (Iterable[tuple[str, bytes]]): File names and contents.

        Returns:
            UploadOutcome: Added documents, refused names and the number of
            files dropped for exceeding the limit.
        """
        outcome = UploadOutcome()
        for name, data in files:
            if not name.lower().endswith(_PDF_SUFFIX):
                outcome.rejected.append(name)
                continue
            if len(self._documents) >= self._max_files:
                outcome.dropped += 1
                continue
            document = SourceDocument(id=str(uuid.uuid4()), name=name, data=data)
            self._documents.append(document)
            self.jobs[document.id] = DocumentJob(document_id=document.id, name=name)
            outcome.added.append(document)
            if self._session is not None:
                self._session.save_file_data(document.id, data)

        if self.active_id is None and self._documents:
            self.active_id = self._documents[0].id
        if outcome.dropped:
            logger.warning(
                "Upload limit reached",
                extra={"max_files": self._max_files, "dropped": outcome.dropped},
            )
        if outcome.rejected:
            logger.warning("Ignoring non-PDF files", extra={"names": outcome.rejected})
        self._save_manifest()
        return outcome

    def remove(self, document_id: str) -> None:
        """Forget a document, its job and its stored state.

        Raises:
            WorkspaceError: If the id is unknown.
        """
        document = self._require(document_id)
        self._documents.remove(document)
        self.jobs.pop(document_id, None)
        if self._session is not None:
            self._session.delete_file_data(document_id)
            self._session.delete_job_state(document_id)
        if self.active_id == document_id:
            self.active_id = self._documents[0].id if self._documents else None
        self._save_manifest()

    def select(self, document_id: str) -> SourceDocument:
        """Make a document the active one.

        Raises:
            WorkspaceError: If the id is unknown.
        """
        document = self._require(document_id)
        self.active_id = document_id
        self._save_manifest()
        return document

    def search(self, query: str) -> list[SourceDocument]:
        """Return documents whose name contains `query`, ignoring case."""
        needle = query.strip().lower()
        if not needle:
            return self.documents
        return [document for document in self._documents if needle in document.name.lower()]

    def reset(self) -> None:
        """Stop in-flight work and drop every document, job and stored value."""
        self._orchestrator.reset()
        self._documents.clear()
        self.jobs.clear()
        self.active_id = None
        if self._session is not None:
            self._session.clear_all()
        logger.info("Workspace reset")

    async def process_all(self, *, resume: bool = False) -> BatchRun:
        """Run every document through the orchestrator, in upload order.

        Args:
            resume (bool): Continue restored jobs instead of starting over.

        Raises:
            BatchInProgressError: If a batch run is already active.

        Returns:
            BatchRun: The finished run.
        """
        run = await self._orchestrator.process_all(self._documents, self.jobs, resume=resume)
        for job in run.jobs:
            self.jobs[job.document_id] = job
        return run

    def persist(self) -> None:
        """Store the manifest and every document's bytes."""
        if self._session is None:
            return
        for document in self._documents:
            self._session.save_file_data(document.id, document.data)
        self._save_manifest()

    @classmethod
    def restore(
        cls,
        orchestrator: BatchOrchestrator,
        session: SessionStore,
        codec: DocumentCodec,
        *,
        max_files: int = 20,
    ) -> Workspace:
        """Rebuild a workspace from its persisted manifest.

        Documents whose bytes are missing are skipped; documents without a
        snapshot start with a fresh pending job.

        Args:
            orchestrator (BatchOrchestrator): Orchestrator running the jobs.
            session (SessionStore): Persistence holding the workspace.
            codec (DocumentCodec): Codec decoding cleaned page images.
            max_files (int): Maximum number of documents held at once.

        Returns:
            Workspace: Restored workspace, empty when nothing was stored.
        """
        workspace = cls(orchestrator, session=session, max_files=max_files)
        manifest = session.load_manifest()
        if manifest is None:
            return workspace

        for entry in manifest.documents[:max_files]:
            data = session.load_file_data(entry.id)
            if data is None:
                logger.warning("Skipping document without stored bytes", extra={"document_id": entry.id})
                continue
            workspace._documents.append(SourceDocument(id=entry.id, name=entry.name, data=data))
            snapshot = session.load_job_state(entry.id)
            workspace.jobs[entry.id] = (
                restore_job(snapshot, codec)
                if snapshot is not None
                else DocumentJob(document_id=entry.id, name=entry.name)
            )

        known = {document.id for document in workspace._documents}
        if manifest.active_id in known:
            workspace.active_id = manifest.active_id
        elif workspace._documents:
            workspace.active_id = workspace._documents[0].id
        logger.info("Workspace restored", extra={"documents": len(workspace._documents)})
        return workspace

    def _find(self, document_id: str) -> SourceDocument | None:
        return next((document for document in self._documents if document.id == document_id), None)

    def _require(self, document_id: str) -> SourceDocument:
        document = self._find(document_id)
        if document is None:
            raise WorkspaceError(message=f"Unknown document id: {document_id}")
        return document

    def _save_manifest(self) -> None:
        if self._session is None:
            return
        self._session.save_manifest(
            WorkspaceManifest(
                documents=[ManifestEntry(id=document.id, name=document.name) for document in self._documents],
                active_id=self.active_id,
            ),
        )
