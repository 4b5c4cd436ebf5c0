"""Preview surface showing one document page at a time."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from inkstrip import logger
from inkstrip.cancellation import CancellationSource
from inkstrip.exceptions import RasterizationError, RenderCancelledError
from inkstrip.rasterizer import Rasterizer, RenderCache

if TYPE_CHECKING:
    from inkstrip.typing.models import DocumentHandle, PixelBuffer
    from inkstrip.typing.protocol import DocumentCodec


class PreviewSurface:
    """Renders pages of the selected document at the preview scale.

    The surface owns its own rasterizer and cache, so previews never evict
    pages rendered by a batch run. Loads and renders both follow
    "latest request wins". A replaced document is closed only after every
    render still reading it has returned.
    """

    def __init__(self, codec: DocumentCodec, *, scale: float = 1.25) -> None:
        """Initialize preview surface.

        Args:
            codec (DocumentCodec): Document codec.
            scale (float): Preview render scale.
        """
        self._codec = codec
        self._scale = scale
        self._rasterizer = Rasterizer(codec, RenderCache())
        self._loads = CancellationSource()
        self._document: DocumentHandle | None = None
        self._page_number = 1
        self._rendering: dict[int, int] = {}
        self._retired: dict[int, DocumentHandle] = {}

    @property
    def document(self) -> DocumentHandle | None:
        """Return the installed document, if any."""
        return self._document

    @property
    def page_count(self) -> int:
        """Return the installed document's page count, 0 when empty."""
        return self._document.page_count if self._document is not None else 0

    @property
    def page_number(self) -> int:
        """Return the current 1-based page number."""
        return self._page_number

    @property
    def scale(self) -> float:
        """Return the preview scale."""
        return self._scale

    async def load(self, data: bytes, identity: str) -> bool:
        """Open a document and install it unless a newer load started meanwhile.

        Args:
            data (bytes): Document bytes.
            identity (str): Document identity.

        Raises:
            RasterizationError: If the bytes cannot be opened.

        Returns:
            bool: True when the document was installed.
        """
        token = self._loads.issue()
        document = await asyncio.to_thread(self._codec.open_document, data, identity)
        if not self._loads.is_current(token):
            self._codec.close_document(document)
            logger.debug("Discarding superseded document load", extra={"document_id": identity})
            return False

        previous = self._document
        self._rasterizer.cancel()
        self._rasterizer.cache.clear()
        self._document = document
        self._page_number = 1
        if previous is not None:
            self._retire(previous)
        logger.debug("Preview document loaded", extra={"document_id": identity, "pages": document.page_count})
        return True

    def set_scale(self, scale: float) -> None:
        """Change the preview scale, dropping every cached render."""
        if scale <= 0:
            raise ValueError("Preview scale must be positive")  # noqa: TRY003
        self._scale = scale
        self._rasterizer.cache.clear()

    async def show(self, page_number: int) -> PixelBuffer | None:
        """Render a page of the installed document.

        Args:
            page_number (int): Page number, 1-based.

        Raises:
            RasterizationError: If no document is loaded, the page does not
                exist or rendering failed.

        Returns:
            PixelBuffer | None: Rendered raster, or None when a newer request
            superseded this one.
        """
        document = self._document
        if document is None:
            raise RasterizationError(message="No document loaded")
        self._page_number = page_number
        key = id(document)
        self._rendering[key] = self._rendering.get(key, 0) + 1
        try:
            return await self._rasterizer.render(document, page_number - 1, self._scale)
        except RenderCancelledError:
            return None
        finally:
            self._release(document)

    def close(self) -> None:
        """Supersede pending work and release the installed document."""
        self._loads.cancel()
        self._rasterizer.cancel()
        self._rasterizer.cache.clear()
        if self._document is not None:
            self._retire(self._document)
        self._document = None
        self._page_number = 1

    def _retire(self, document: DocumentHandle) -> None:
        """Close a replaced document once no render is reading it."""
        if self._rendering.get(id(document)):
            self._retired[id(document)] = document
            return
        self._codec.close_document(document)

    def _release(self, document: DocumentHandle) -> None:
        key = id(document)
        remaining = self._rendering.get(key, 0) - 1
        if remaining > 0:
            self._rendering[key] = remaining
            return
        self._rendering.pop(key, None)
        retired = self._retired.pop(key, None)
        if retired is not None:
            self._codec.close_document(retired)
