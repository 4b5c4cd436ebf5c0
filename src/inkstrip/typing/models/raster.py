"""Pixel buffer and detection mask models."""

from __future__ import annotations

from typing import Self

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

_RGBA_CHANNELS = 4


class PixelBuffer(BaseModel):
    """A rendered page as an `(height, width, 4)` RGBA `uint8` array in row-major order."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    width: int = Field(ge=1)
    height: int = Field(ge=1)
    pixels: np.ndarray
    scale: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _check_shape(self) -> Self:
        expected = (self.height, self.width, _RGBA_CHANNELS)
        if self.pixels.shape != expected:
            raise ValueError(f"pixels shape {self.pixels.shape} does not match {expected}")  # noqa: TRY003
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"pixels dtype must be uint8, got {self.pixels.dtype}")  # noqa: TRY003
        return self

    @classmethod
    def from_rgba_bytes(cls, width: int, height: int, data: bytes, *, scale: float = 1.0) -> PixelBuffer:
        """Build a buffer from raw RGBA bytes.

        Args:
            width (int): Pixel width.
            height (int): Pixel height.
            data (bytes): `width * height * 4` bytes, row-major.
            scale (float): Scale factor used to render the page.

        Returns:
            PixelBuffer: New buffer owning a copy of the data.
        """
        array = np.frombuffer(data, dtype=np.uint8).reshape(height, width, _RGBA_CHANNELS).copy()
        return cls(width=width, height=height, pixels=array, scale=scale)

    @classmethod
    def from_array(cls, pixels: np.ndarray, *, scale: float = 1.0) -> PixelBuffer:
        """Build a buffer from an RGB or RGBA array, adding an opaque alpha channel if needed."""
        array = np.asarray(pixels, dtype=np.uint8)
        if array.ndim == 3 and array.shape[2] == 3:  # noqa: PLR2004
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        height, width = array.shape[:2]
        return cls(width=width, height=height, pixels=np.ascontiguousarray(array), scale=scale)

    def to_rgba_bytes(self) -> bytes:
        """Return the raw RGBA bytes."""
        return self.pixels.tobytes()


class DetectionMask(BaseModel):
    """Per-pixel foreign-ink flags over a `PixelBuffer`."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    width: int = Field(ge=1)
    height: int = Field(ge=1)
    flags: np.ndarray

    @model_validator(mode="after")
    def _check_shape(self) -> Self:
        if self.flags.shape != (self.height, self.width):
            raise ValueError(  # noqa: TRY003
                f"flags shape {self.flags.shape} does not match {(self.height, self.width)}",
            )
        if self.flags.dtype != np.bool_:
            raise ValueError(f"flags dtype must be bool, got {self.flags.dtype}")  # noqa: TRY003
        return self

    @classmethod
    def empty_like(cls, buffer: PixelBuffer) -> DetectionMask:
        """Return an all-clear mask with the buffer's dimensions."""
        return cls(
            width=buffer.width,
            height=buffer.height,
            flags=np.zeros((buffer.height, buffer.width), dtype=np.bool_),
        )

    def matches(self, buffer: PixelBuffer) -> bool:
        """Return whether the mask covers exactly the buffer's dimensions."""
        return self.width == buffer.width and self.height == buffer.height

    def count(self) -> int:
        """Return the number of flagged pixels."""
        return int(self.flags.sum())
