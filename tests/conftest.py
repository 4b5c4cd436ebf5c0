"""Pytest marker auto-assignment by folder and shared fakes."""

from __future__ import annotations

import struct
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pytest

from inkstrip import logger
from inkstrip.exceptions import ExportError, RasterizationError
from inkstrip.typing.models import DocumentHandle, PixelBuffer

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

_HEADER = struct.Struct(">4sII")
_MAGIC = b"FAKE"


def _mark_tests_by_directory(
    config: pytest.Config,
    items: list[pytest.Item],
    marker: str,
) -> None:
    """Mark collected tests located under tests/<marker>/."""
    target_dir = Path(config.rootpath) / "tests" / marker
    target_dir = target_dir.resolve()

    for item in items:
        try:
            path = Path(str(item.fspath)).resolve()
        except Exception:
            logger.warning(
                f"Could not resolve path for test item {item.name!s}; skipping {marker!s} marker assignment",
            )
            continue

        if path == target_dir or target_dir in path.parents:
            item.add_marker(getattr(pytest.mark, marker))


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Apply directory-based markers to test items."""
    _mark_tests_by_directory(config, items, "unit")
    _mark_tests_by_directory(config, items, "integration")
    _mark_tests_by_directory(config, items, "end2end")


def solid_buffer(
    width: int,
    height: int,
    rgb: tuple[int, int, int] = (255, 255, 255),
    alpha: int = 255,
) -> PixelBuffer:
    """Return a buffer filled with one color."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = alpha
    return PixelBuffer(width=width, height=height, pixels=pixels)


class FakeCodec:
    """In-memory codec: documents are lists of prepared page buffers keyed by their bytes."""

    def __init__(self, documents: dict[bytes, list[PixelBuffer]] | None = None) -> None:
        self.documents = documents or {}
        self.failing_pages: set[tuple[bytes, int]] = set()
        self.render_calls: list[tuple[str, int, float]] = []
        self.closed: list[str] = []
        self.built: list[int] = []

    def open_document(self, data: bytes, identity: str) -> DocumentHandle:
        if data not in self.documents:
            raise RasterizationError(message=f"Failed to open document {identity}")
        return DocumentHandle(identity=identity, page_count=len(self.documents[data]), native=data)

    def page_count(self, doc: DocumentHandle) -> int:
        return doc.page_count

    def render_page(self, doc: DocumentHandle, page_index: int, scale: float) -> PixelBuffer:
        self.render_calls.append((doc.identity, page_index, scale))
        if (doc.native, page_index) in self.failing_pages:
            raise RasterizationError(message=f"Failed to render page {page_index + 1}")
        page = self.documents[doc.native][page_index]
        return page.model_copy(update={"scale": scale})

    def close_document(self, doc: DocumentHandle) -> None:
        doc.closed = True
        self.closed.append(doc.identity)

    def encode_png(self, buffer: PixelBuffer) -> bytes:
        return _HEADER.pack(_MAGIC, buffer.width, buffer.height) + buffer.to_rgba_bytes()

    def decode_image(self, data: bytes) -> PixelBuffer:
        if len(data) < _HEADER.size:
            raise RasterizationError(message="Failed to decode image")
        magic, width, height = _HEADER.unpack_from(data)
        payload = data[_HEADER.size :]
        if magic != _MAGIC or len(payload) != width * height * 4:
            raise RasterizationError(message="Failed to decode image")
        return PixelBuffer.from_rgba_bytes(width, height, payload)

    def build_document(self, images: Sequence[PixelBuffer | bytes | str]) -> bytes:
        if not images:
            raise ExportError(message="Cannot build a document without pages")
        self.built.append(len(images))
        return b"%PDF-fake " + str(len(images)).encode("ascii")


@pytest.fixture
def make_buffer() -> Callable[..., PixelBuffer]:
    return solid_buffer


@pytest.fixture
def fake_codec() -> FakeCodec:
    return FakeCodec()
