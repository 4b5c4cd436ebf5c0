"""PyMuPDF-backed document codec."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

import fitz
import numpy as np

from inkstrip import logger
from inkstrip.exceptions import ExportError, RasterizationError
from inkstrip.typing.enums import ImageFormat
from inkstrip.typing.models import DocumentHandle, PixelBuffer

if TYPE_CHECKING:
    from collections.abc import Sequence

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_PNG_DATA_URL_PREFIX = "data:image/png"
_RGB_CHANNELS = 3
_RGBA_CHANNELS = 4


def detect_image_format(item: bytes | str) -> ImageFormat:
    """Infer the encoding of an image payload from its prefix.

    Args:
        item (bytes | str): Encoded image bytes or a data URL.

    Returns:
        ImageFormat: `PNG` for a PNG signature or PNG data URL, `JPEG` otherwise.
    """
    if isinstance(item, str):
        return ImageFormat.PNG if item.startswith(_PNG_DATA_URL_PREFIX) else ImageFormat.JPEG
    return ImageFormat.PNG if item.startswith(_PNG_SIGNATURE) else ImageFormat.JPEG


def _data_url_bytes(data_url: str) -> bytes:
    """Decode the base64 payload of a data URL.

    Args:
        data_url (str): `data:<mime>;base64,<payload>` string.

    Raises:
        ExportError: If the string carries no base64 payload.

    Returns:
        bytes: Decoded payload.
    """
    header, _, payload = data_url.partition(",")
    if not payload or ";base64" not in header:
        raise ExportError(message="Image data URL has no base64 payload")
    return base64.b64decode(payload)


def _pixmap_to_buffer(pix: fitz.Pixmap, *, scale: float) -> PixelBuffer:
    """Convert a pixmap of any colorspace to an RGBA buffer."""
    if pix.colorspace is None or pix.colorspace.n != _RGB_CHANNELS:
        pix = fitz.Pixmap(fitz.csRGB, pix)
    samples = np.frombuffer(pix.samples, dtype=np.uint8)
    rows = samples.reshape(pix.height, pix.stride)[:, : pix.width * pix.n]
    pixels = rows.reshape(pix.height, pix.width, pix.n)
    if pix.n == _RGB_CHANNELS:
        return PixelBuffer.from_array(pixels, scale=scale)
    rgba = pixels[:, :, :_RGBA_CHANNELS].copy()
    return PixelBuffer(width=pix.width, height=pix.height, pixels=rgba, scale=scale)


class PdfCodec:
    """Document codec for PDF files built on PyMuPDF."""

    def open_document(self, data: bytes, identity: str) -> DocumentHandle:
        """Decode PDF bytes.

        Args:
            data (bytes): PDF bytes.
            identity (str): Document identity used by render caches.

        Raises:
            RasterizationError: If the bytes are not a readable PDF.

        Returns:
            DocumentHandle: Opened document.
        """
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise RasterizationError(message=f"Failed to open document {identity}: {exc}") from exc
        logger.debug("Document opened", extra={"document_id": identity, "pages": len(doc)})
        return DocumentHandle(identity=identity, page_count=len(doc), native=doc)

    def page_count(self, doc: DocumentHandle) -> int:
        """Return the number of pages in the document."""
        return doc.page_count

    def render_page(self, doc: DocumentHandle, page_index: int, scale: float) -> PixelBuffer:
        """Render one page over a white background.

        Args:
            doc (DocumentHandle): Opened document.
            page_index (int): Page index, 0-based.
            scale (float): Zoom factor relative to 72 DPI.

        Raises:
            RasterizationError: If the handle is closed, the index is out of range
                or the page cannot be decoded.

        Returns:
            PixelBuffer: Opaque RGBA raster.
        """
        if doc.closed:
            raise RasterizationError(message=f"Document {doc.identity} was closed")
        if not 0 <= page_index < doc.page_count:
            raise RasterizationError(
                message=f"Page index {page_index} out of range for {doc.page_count} pages",
            )
        try:
            page = doc.native.load_page(page_index)
            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            return _pixmap_to_buffer(pix, scale=scale)
        except Exception as exc:
            raise RasterizationError(message=f"Failed to render page {page_index + 1}: {exc}") from exc

    def close_document(self, doc: DocumentHandle) -> None:
        """Close the document (best effort)."""
        if doc.closed:
            return
        doc.closed = True
        try:
            doc.native.close()
        except Exception:
            logger.warning("Failed to close document", extra={"document_id": doc.identity})

    def encode_png(self, buffer: PixelBuffer) -> bytes:
        """Encode an RGBA raster as PNG bytes."""
        pix = fitz.Pixmap(fitz.csRGB, buffer.width, buffer.height, buffer.to_rgba_bytes(), 1)
        return pix.tobytes("png")

    def decode_image(self, data: bytes) -> PixelBuffer:
        """Decode PNG or JPEG bytes.

        Raises:
            RasterizationError: If the bytes are not a decodable image.

        Returns:
            PixelBuffer: Decoded RGBA raster.
        """
        try:
            pix = fitz.Pixmap(data)
        except Exception as exc:
            raise RasterizationError(message=f"Failed to decode image: {exc}") from exc
        return _pixmap_to_buffer(pix, scale=1.0)

    def build_document(self, images: Sequence[PixelBuffer | bytes | str]) -> bytes:
        """Assemble a PDF with one page per image, each sized to the image's pixels.

        Args:
            images (Sequence[PixelBuffer | bytes | str]): Rasters, PNG/JPEG bytes or data URLs.

        Raises:
            ExportError: If no image is given or an image cannot be embedded.

        Returns:
            bytes: PDF bytes.
        """
        if not images:
            raise ExportError(message="Cannot build a document without pages")

        out = fitz.open()
        try:
            for position, item in enumerate(images):
                if isinstance(item, PixelBuffer):
                    stream = self.encode_png(item)
                    width, height = item.width, item.height
                else:
                    stream = _data_url_bytes(item) if isinstance(item, str) else item
                    width, height = self._image_size(stream)
                image_format = detect_image_format(item if isinstance(item, str) else stream)
                page = out.new_page(width=width, height=height)
                try:
                    page.insert_image(page.rect, stream=stream)
                except Exception as exc:
                    raise ExportError(
                        message=f"Failed to embed {image_format.to_str()} image {position + 1}: {exc}",
                    ) from exc
            return out.tobytes()
        finally:
            out.close()

    @staticmethod
    def _image_size(stream: bytes) -> tuple[int, int]:
        """Return pixel dimensions of encoded image bytes."""
        try:
            pix = fitz.Pixmap(stream)
        except Exception as exc:
            raise ExportError(message=f"Unreadable image payload: {exc}") from exc
        return pix.width, pix.height
