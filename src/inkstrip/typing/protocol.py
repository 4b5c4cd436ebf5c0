"""Collaborator interfaces."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from inkstrip.typing.models import DocumentHandle, PixelBuffer


class DocumentCodec(Protocol):
    """Reads pages from and writes pages to a portable document format."""

    def open_document(self, data: bytes, identity: str) -> DocumentHandle:
        """Decode document bytes.

        Args:
            data: Raw document bytes.
            identity: Identifier used for cache invalidation.

        Returns:
            DocumentHandle: Opened document.
        """

    def page_count(self, doc: DocumentHandle) -> int:
        """Return the number of pages in the document."""

    def render_page(self, doc: DocumentHandle, page_index: int, scale: float) -> PixelBuffer:
        """Render one page (0-based) to RGBA pixels.

        Args:
            doc: Opened document.
            page_index: Page index, 0-based.
            scale: Render scale relative to 72 DPI.

        Returns:
            PixelBuffer: Rendered raster.
        """

    def close_document(self, doc: DocumentHandle) -> None:
        """Release the document."""

    def encode_png(self, buffer: PixelBuffer) -> bytes:
        """Encode a raster as PNG bytes."""

    def decode_image(self, data: bytes) -> PixelBuffer:
        """Decode PNG or JPEG bytes into a raster."""

    def build_document(self, images: Sequence[PixelBuffer | bytes | str]) -> bytes:
        """Assemble one page per image, in order.

        Args:
            images: Rasters, encoded image bytes or image data URLs.

        Returns:
            bytes: Encoded document.
        """


class TuningSource(Protocol):
    """External service suggesting detection thresholds from a sample page."""

    async def suggest(self, image_png_base64: str) -> str:
        """Return free-form text expected to hold one JSON tuning object.

        Args:
            image_png_base64: Base64 PNG sample image.

        Returns:
            str: Raw response text.
        """


class KeyValueStore(Protocol):
    """Opaque string-keyed byte storage."""

    def get(self, key: str) -> bytes | None:
        """Return the stored value or None."""

    def set(self, key: str, value: bytes) -> None:
        """Store a value."""

    def delete(self, key: str) -> None:
        """Remove a key if present."""

    def clear(self) -> None:
        """Remove every key."""

    def keys(self) -> list[str]:
        """List stored keys."""
