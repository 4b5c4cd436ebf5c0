"""Square-neighbourhood operations on detection masks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from inkstrip.typing.models import DetectionMask

if TYPE_CHECKING:
    from collections.abc import Iterator


def neighbourhood_offsets(radius: int) -> Iterator[tuple[int, int]]:
    """Yield `(dy, dx)` offsets of the `(2r+1) x (2r+1)` square, centre included."""
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            yield dy, dx


def overlap_slices(size: int, offset: int) -> tuple[slice, slice]:
    """Return `(target, source)` slices pairing index `i` with `i + offset` inside `[0, size)`."""
    start = min(size, max(0, -offset))
    stop = max(start, min(size, size - offset))
    return slice(start, stop), slice(start + offset, stop + offset)


def dilate(mask: DetectionMask, radius: int) -> DetectionMask:
    """Set every pixel within Chebyshev distance `radius` of a set pixel.

    The structuring element is a square applied once; offsets falling outside
    the raster are skipped.

    Args:
        mask (DetectionMask): Input mask.
        radius (int): Square half-size; 0 returns `mask` itself.

    Raises:
        ValueError: If `radius` is negative.

    Returns:
        DetectionMask: Dilated mask with the same dimensions.
    """
    if radius < 0:
        raise ValueError(f"dilation radius must be >= 0, got {radius}")  # noqa: TRY003
    if radius == 0:
        return mask

    source = mask.flags
    grown = np.zeros_like(source)
    for dy, dx in neighbourhood_offsets(radius):
        rows_out, rows_in = overlap_slices(mask.height, -dy)
        cols_out, cols_in = overlap_slices(mask.width, -dx)
        grown[rows_out, cols_out] |= source[rows_in, cols_in]

    return DetectionMask(width=mask.width, height=mask.height, flags=grown)
