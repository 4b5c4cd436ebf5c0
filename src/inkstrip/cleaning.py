"""Single-page ink removal: detect, dilate, reconstruct."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from inkstrip import logger
from inkstrip.detection import detect
from inkstrip.inpaint import reconstruct
from inkstrip.morphology import dilate
from inkstrip.typing.models import PixelBuffer, TuningProfile


class CleanedPage(BaseModel):
    """Reconstructed raster and how many pixels were rewritten."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    raster: PixelBuffer
    detected_pixels: int
    masked_pixels: int


def clean_page(buffer: PixelBuffer, profile: TuningProfile) -> CleanedPage:
    """Remove correction ink from one rendered page.

    Args:
        buffer (PixelBuffer): Rendered page.
        profile (TuningProfile): Detection parameters.

    Returns:
        CleanedPage: Cleaned raster and mask statistics.
    """
    mask = detect(buffer, profile)
    grown = dilate(mask, profile.dilate_radius)
    raster = reconstruct(buffer, grown, profile.inpaint_radius)

    detected, masked = mask.count(), grown.count()
    logger.debug(
        "Page cleaned",
        extra={"width": buffer.width, "height": buffer.height, "detected": detected, "masked": masked},
    )
    return CleanedPage(raster=raster, detected_pixels=detected, masked_pixels=masked)
