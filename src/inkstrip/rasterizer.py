"""Page rasterization with a per-surface render cache."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from inkstrip import logger
from inkstrip.cancellation import CancellationSource
from inkstrip.exceptions import RasterizationError, RenderCancelledError
from inkstrip.typing.models import PixelBuffer, RenderCacheEntry

if TYPE_CHECKING:
    from inkstrip.cancellation import CancellationToken
    from inkstrip.typing.models import DocumentHandle
    from inkstrip.typing.protocol import DocumentCodec


class RenderCache:
    """Rasters of one document at one scale, keyed by page index.

    Binding the cache to another document identity or scale clears it
    entirely; entries are never invalidated one by one.
    """

    def __init__(self) -> None:
        self._entries: dict[int, RenderCacheEntry] = {}
        self._identity: str | None = None
        self._scale: float | None = None

    def bind(self, identity: str, scale: float) -> None:
        """Attach the cache to a document and scale, clearing it on any change."""
        if identity != self._identity or scale != self._scale:
            self.clear()
            self._identity = identity
            self._scale = scale

    def is_bound_to(self, identity: str, scale: float) -> bool:
        """Return whether entries currently belong to `identity` at `scale`."""
        return identity == self._identity and scale == self._scale

    def get(self, page_index: int) -> RenderCacheEntry | None:
        """Return the cached entry for a page, if any."""
        return self._entries.get(page_index)

    def put(self, entry: RenderCacheEntry) -> None:
        """Store an entry for its page index."""
        self._entries[entry.page_index] = entry

    def clear(self) -> None:
        """Drop every entry and forget the binding."""
        self._entries.clear()
        self._identity = None
        self._scale = None

    def __len__(self) -> int:
        return len(self._entries)


class Rasterizer:
    """Renders pages for one output target.

    Each `render` call supersedes the previous one: a render that completes
    after a newer request started raises `RenderCancelledError` and leaves the
    cache untouched. The codec call itself is not interrupted.
    """

    def __init__(self, codec: DocumentCodec, cache: RenderCache | None = None) -> None:
        """Initialize rasterizer.

        Args:
            codec (DocumentCodec): Codec performing the actual rendering.
            cache (RenderCache | None): Cache owned by the calling surface.
        """
        self._codec = codec
        self.cache = cache if cache is not None else RenderCache()
        self._tokens = CancellationSource()

    def cancel(self) -> None:
        """Supersede any in-flight render."""
        self._tokens.cancel()

    async def render(self, document: DocumentHandle, page_index: int, scale: float) -> PixelBuffer:
        """Render one page, replaying the cache when possible.

        Args:
            document (DocumentHandle): Opened document.
            page_index (int): Page index, 0-based.
            scale (float): Render scale.

        Raises:
            RasterizationError: If the index is out of range, the document was
                closed, or rendering failed.
            RenderCancelledError: If a newer render request superseded this one.

        Returns:
            PixelBuffer: Rendered raster.
        """
        token = self._tokens.issue()
        if not 0 <= page_index < document.page_count:
            raise RasterizationError(
                message=f"Page index {page_index} out of range for {document.page_count} pages",
            )

        self.cache.bind(document.identity, scale)
        cached = self.cache.get(page_index)
        if cached is not None:
            await asyncio.sleep(0)
            self._ensure_current(token, document)
            logger.debug("Render cache hit", extra={"page_index": page_index, "scale": scale})
            return PixelBuffer.from_rgba_bytes(cached.width, cached.height, cached.data, scale=cached.scale)

        buffer = await asyncio.to_thread(self._codec.render_page, document, page_index, scale)
        self._ensure_current(token, document)

        if self.cache.is_bound_to(document.identity, scale):
            self.cache.put(
                RenderCacheEntry(
                    page_index=page_index,
                    width=buffer.width,
                    height=buffer.height,
                    scale=scale,
                    data=buffer.to_rgba_bytes(),
                ),
            )
        logger.debug(
            "Page rendered",
            extra={"page_index": page_index, "scale": scale, "width": buffer.width, "height": buffer.height},
        )
        return buffer

    def _ensure_current(self, token: CancellationToken, document: DocumentHandle) -> None:
        """Reject results of superseded renders or of closed documents."""
        if not self._tokens.is_current(token):
            raise RenderCancelledError
        if document.closed:
            raise RasterizationError(message=f"Document {document.identity} was closed during render")
