"""Assembly of cleaned pages into output documents."""

from __future__ import annotations

import io
import zipfile
from typing import TYPE_CHECKING

from inkstrip import logger
from inkstrip.exceptions import ExportError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from inkstrip.typing.models import DocumentJob
    from inkstrip.typing.protocol import DocumentCodec

ARCHIVE_NAME = "processed_pdfs.zip"
_PDF_SUFFIX = ".pdf"
_FALLBACK_BASE = "document"


def output_name(source_name: str, page_count: int) -> str:
    """Return the file name of a cleaned document.

    Args:
        source_name (str): Uploaded file name.
        page_count (int): Number of cleaned pages in the output.

    Returns:
        str: `processed_<base>.pdf`, with `_multi` before the suffix for
        multi-page outputs.
    """
    base = source_name[: -len(_PDF_SUFFIX)] if source_name.lower().endswith(_PDF_SUFFIX) else source_name
    multi = "_multi" if page_count > 1 else ""
    return f"processed_{base or _FALLBACK_BASE}{multi}{_PDF_SUFFIX}"


def unique_name(name: str, used: set[str]) -> str:
    """Suffix a counter before the extension until the output name is free."""
    stem = name.removesuffix(_PDF_SUFFIX)
    candidate = name
    counter = 2
    while candidate in used:
        candidate = f"{stem}_{counter}{_PDF_SUFFIX}"
        counter += 1
    return candidate


def export_job(job: DocumentJob, codec: DocumentCodec) -> bytes:
    """Assemble the done pages of a job, in page order.

    Args:
        job (DocumentJob): Job holding cleaned pages.
        codec (DocumentCodec): Codec building the output document.

    Raises:
        ExportError: If the job has no cleaned page.

    Returns:
        bytes: Output document bytes.
    """
    pages = job.cleaned_pages()
    if not pages:
        raise ExportError(message=f"No cleaned pages to export for {job.name or job.document_id}")
    data = codec.build_document(pages)
    logger.info(
        "Document exported",
        extra={"document_id": job.document_id, "pages": len(pages), "bytes": len(data)},
    )
    return data


def export_archive(jobs: Iterable[DocumentJob], codec: DocumentCodec) -> bytes:
    """Bundle every job with cleaned pages into one ZIP archive.

    Jobs without cleaned pages are skipped.

    Args:
        jobs (Iterable[DocumentJob]): Jobs to export.
        codec (DocumentCodec): Codec building each output document.

    Raises:
        ExportError: If no job has a cleaned page.

    Returns:
        bytes: ZIP archive bytes.
    """
    buffer = io.BytesIO()
    used: set[str] = set()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for job in jobs:
            pages = job.cleaned_pages()
            if not pages:
                continue
            name = unique_name(output_name(job.name, len(pages)), used)
            archive.writestr(name, codec.build_document(pages))
            used.add(name)

    if not used:
        raise ExportError(message="No cleaned documents to export")
    logger.info("Archive exported", extra={"documents": len(used)})
    return buffer.getvalue()
