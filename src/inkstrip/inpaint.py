"""Neighbour-mean reconstruction of masked pixels."""

from __future__ import annotations

import numpy as np

from inkstrip.exceptions import ReconstructionError
from inkstrip.morphology import neighbourhood_offsets, overlap_slices
from inkstrip.typing.models import DetectionMask, PixelBuffer

FALLBACK_RGBA = (255, 255, 255, 255)


def reconstruct(buffer: PixelBuffer, mask: DetectionMask, radius: int) -> PixelBuffer:
    """Replace masked pixels with the mean of unmasked neighbours.

    Every masked pixel gets the per-channel mean (rounded half up) of the
    unmasked pixels in its `(2r+1) x (2r+1)` square, read from the original
    buffer, and keeps its alpha. Masked pixels with no unmasked neighbour
    become opaque white. Unmasked pixels are copied unchanged.

    Args:
        buffer (PixelBuffer): Source raster; never modified.
        mask (DetectionMask): Pixels to reconstruct.
        radius (int): Neighbourhood half-size.

    Raises:
        ReconstructionError: If mask and buffer disagree in size, the radius is
            negative, or the output surface cannot be allocated.

    Returns:
        PixelBuffer: Reconstructed raster.
    """
    if not mask.matches(buffer):
        raise ReconstructionError(
            message=(
                f"Mask {mask.width}x{mask.height} does not match raster {buffer.width}x{buffer.height}"
            ),
        )
    if radius < 0:
        raise ReconstructionError(message=f"Inpaint radius must be >= 0, got {radius}")

    masked = mask.flags
    output = buffer.pixels.copy()
    if not masked.any():
        return PixelBuffer(width=buffer.width, height=buffer.height, pixels=output, scale=buffer.scale)

    try:
        sums, counts = _neighbour_sums(buffer.pixels[..., :3], ~masked, radius)
    except MemoryError as exc:
        raise ReconstructionError(message="Not enough memory to reconstruct page") from exc

    filled = masked & (counts > 0)
    means = np.floor(sums[filled] / counts[filled][:, None] + 0.5)
    output[filled, :3] = means.astype(np.uint8)
    output[masked & (counts == 0)] = FALLBACK_RGBA

    return PixelBuffer(width=buffer.width, height=buffer.height, pixels=output, scale=buffer.scale)


def _neighbour_sums(
    rgb: np.ndarray,
    valid: np.ndarray,
    radius: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Sum RGB values and count valid pixels over each pixel's square neighbourhood."""
    height, width = valid.shape
    weighted = rgb.astype(np.int64) * valid[..., None]
    valid_count = valid.astype(np.int64)

    sums = np.zeros((height, width, 3), dtype=np.int64)
    counts = np.zeros((height, width), dtype=np.int64)
    for dy, dx in neighbourhood_offsets(radius):
        rows_out, rows_in = overlap_slices(height, dy)
        cols_out, cols_in = overlap_slices(width, dx)
        sums[rows_out, cols_out] += weighted[rows_in, cols_in]
        counts[rows_out, cols_out] += valid_count[rows_in, cols_in]
    return sums, counts
