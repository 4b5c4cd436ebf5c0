"""Key/value persistence of session state for resuming work."""

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from inkstrip import logger
from inkstrip.exceptions import PackageError, PersistenceError
from inkstrip.typing.enums import JobStatus, PageStatus
from inkstrip.typing.models import (
    DocumentJob,
    JobSnapshot,
    PageResult,
    PageSnapshot,
    WorkspaceManifest,
)

if TYPE_CHECKING:
    from inkstrip.typing.protocol import DocumentCodec, KeyValueStore

_KEY_PATTERN = re.compile(r"[A-Za-z0-9._-]+")
_FILE_PREFIX = "file-"
_STATE_PREFIX = "state-"
_MANIFEST_KEY = "workspace"
_VALUE_SUFFIX = ".bin"


def file_key(document_id: str) -> str:
    """Return the key holding a document's raw bytes."""
    return f"{_FILE_PREFIX}{document_id}"


def state_key(document_id: str) -> str:
    """Return the key holding a document's job snapshot."""
    return f"{_STATE_PREFIX}{document_id}"


class FileKeyValueStore(BaseModel):
    """Filesystem-based key/value store, one file per key."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    root: Path = Field(description="Store directory root.")

    def model_post_init(self, __context: object, /) -> None:
        """Ensure the store directory exists after model initialization.

        Args:
            __context (object): Pydantic model context.

        Raises:
            PersistenceError: If the directory cannot be created.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(message=f"Cannot create state directory {self.root}: {exc}") from exc

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.fullmatch(key):
            raise PersistenceError(message=f"Invalid store key: {key!r}")
        return self.root / f"{key}{_VALUE_SUFFIX}"

    def get(self, key: str) -> bytes | None:
        """Return the stored value or None.

        Raises:
            PersistenceError: If the value exists but cannot be read.
        """
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise PersistenceError(message=f"Cannot read {key}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        """Store a value, replacing any previous one atomically.

        Raises:
            PersistenceError: If the value cannot be written.
        """
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_bytes(value)
            tmp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(message=f"Cannot write {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        """Remove a key if present.

        Raises:
            PersistenceError: If the value cannot be removed.
        """
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(message=f"Cannot delete {key}: {exc}") from exc

    def clear(self) -> None:
        """Remove every stored key.

        Raises:
            PersistenceError: If a value cannot be removed.
        """
        for key in self.keys():
            self.delete(key)

    def keys(self) -> list[str]:
        """List stored keys in sorted order."""
        return sorted(path.name.removesuffix(_VALUE_SUFFIX) for path in self.root.glob(f"*{_VALUE_SUFFIX}"))


class SessionStore:
    """Session persistence over a key/value store.

    Raw document bytes live under `file-<id>`, job snapshots under `state-<id>`.
    Every store failure is logged and ignored so that persistence never blocks
    processing.
    """

    def __init__(self, store: KeyValueStore) -> None:
        """Initialize session store.

        Args:
            store (KeyValueStore): Backing store.
        """
        self._store = store

    def save_file_data(self, document_id: str, data: bytes) -> None:
        """Persist a document's raw bytes."""
        self._safe_set(file_key(document_id), data)

    def load_file_data(self, document_id: str) -> bytes | None:
        """Return a document's raw bytes, if stored."""
        return self._safe_get(file_key(document_id))

    def delete_file_data(self, document_id: str) -> None:
        """Remove a document's raw bytes."""
        self._safe_delete(file_key(document_id))

    def save_job_state(self, snapshot: JobSnapshot) -> None:
        """Persist a job snapshot."""
        self._safe_set(state_key(snapshot.document_id), snapshot.model_dump_json().encode("utf-8"))

    def load_job_state(self, document_id: str) -> JobSnapshot | None:
        """Return a job snapshot, or None when absent or unreadable."""
        raw = self._safe_get(state_key(document_id))
        if raw is None:
            return None
        try:
            return JobSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable job snapshot", extra={"document_id": document_id})
            return None

    def delete_job_state(self, document_id: str) -> None:
        """Remove a job snapshot."""
        self._safe_delete(state_key(document_id))

    def save_manifest(self, manifest: WorkspaceManifest) -> None:
        """Persist the workspace document list."""
        self._safe_set(_MANIFEST_KEY, manifest.model_dump_json().encode("utf-8"))

    def load_manifest(self) -> WorkspaceManifest | None:
        """Return the workspace document list, or None when absent or unreadable."""
        raw = self._safe_get(_MANIFEST_KEY)
        if raw is None:
            return None
        try:
            return WorkspaceManifest.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable workspace manifest")
            return None

    def clear_all(self) -> None:
        """Remove every stored value."""
        try:
            self._store.clear()
        except PackageError as exc:
            logger.warning("Failed to clear session storage", extra={"error": str(exc)})

    def list_ids(self) -> list[str]:
        """Return document ids known in either namespace."""
        try:
            keys = self._store.keys()
        except PackageError as exc:
            logger.warning("Failed to list session storage", extra={"error": str(exc)})
            return []
        ids: set[str] = set()
        for key in keys:
            for prefix in (_FILE_PREFIX, _STATE_PREFIX):
                if key.startswith(prefix):
                    ids.add(key.removeprefix(prefix))
        return sorted(ids)

    def _safe_get(self, key: str) -> bytes | None:
        try:
            return self._store.get(key)
        except PackageError as exc:
            logger.warning("Failed to read session storage", extra={"key": key, "error": str(exc)})
            return None

    def _safe_set(self, key: str, value: bytes) -> None:
        try:
            self._store.set(key, value)
        except PackageError as exc:
            logger.warning("Failed to write session storage", extra={"key": key, "error": str(exc)})

    def _safe_delete(self, key: str) -> None:
        try:
            self._store.delete(key)
        except PackageError as exc:
            logger.warning("Failed to delete session storage", extra={"key": key, "error": str(exc)})


def snapshot_job(
    job: DocumentJob,
    codec: DocumentCodec,
    *,
    encoded: dict[int, str] | None = None,
) -> JobSnapshot:
    """Serialize a job, embedding done pages as base64 PNG.

    Args:
        job (DocumentJob): Job to serialize.
        codec (DocumentCodec): Codec used for PNG encoding.
        encoded (dict[int, str] | None): Per-page cache of already encoded
            images, filled in place so repeated snapshots encode each page once.

    Returns:
        JobSnapshot: Serializable snapshot.
    """
    cache = {} if encoded is None else encoded
    pages: list[PageSnapshot] = []
    for page in job.pages:
        image: str | None = None
        if page.status == PageStatus.DONE and page.raster is not None:
            image = cache.get(page.page_index)
            if image is None:
                image = base64.b64encode(codec.encode_png(page.raster)).decode("ascii")
                cache[page.page_index] = image
        pages.append(
            PageSnapshot(
                page_index=page.page_index,
                status=page.status,
                error=page.error,
                image_png_base64=image,
            ),
        )
    return JobSnapshot(
        document_id=job.document_id,
        name=job.name,
        status=job.status,
        error=job.error,
        completed=job.completed,
        total=job.total,
        pages=pages,
    )


def restore_job(snapshot: JobSnapshot, codec: DocumentCodec) -> DocumentJob:
    """Rebuild a job from its snapshot.

    Interrupted work is rolled back to `pending`: pages caught mid-processing,
    done pages whose image cannot be decoded, and jobs caught mid-processing.

    Args:
        snapshot (JobSnapshot): Persisted snapshot.
        codec (DocumentCodec): Codec used for PNG decoding.

    Returns:
        DocumentJob: Restored job.
    """
    pages: list[PageResult] = []
    rolled_back = False
    for item in snapshot.pages:
        page = PageResult(page_index=item.page_index)
        if item.status == PageStatus.DONE:
            try:
                page.mark_done(codec.decode_image(base64.b64decode(item.image_png_base64 or "")))
            except (PackageError, ValueError):
                logger.warning(
                    "Dropping unreadable cleaned page",
                    extra={"document_id": snapshot.document_id, "page_index": item.page_index},
                )
                rolled_back = True
        elif item.status == PageStatus.FAILED:
            page.mark_failed(item.error or "")
        pages.append(page)

    status = snapshot.status
    if status == JobStatus.PROCESSING or (status == JobStatus.DONE and rolled_back):
        status = JobStatus.PENDING
    return DocumentJob(
        document_id=snapshot.document_id,
        name=snapshot.name,
        pages=pages,
        completed=sum(1 for page in pages if page.status == PageStatus.DONE),
        total=snapshot.total,
        status=status,
        error=snapshot.error,
    )
