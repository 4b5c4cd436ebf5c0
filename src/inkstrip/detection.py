"""HSV-threshold detection of correction ink."""

from __future__ import annotations

import numpy as np

from inkstrip.typing.models import DetectionMask, PixelBuffer, TuningProfile

# Pixels with alpha below this value are treated as empty canvas.
ALPHA_DISCARD_THRESHOLD = 10


def rgb_to_hsv(red: float, green: float, blue: float) -> tuple[float, float, float]:
    """Convert one normalized RGB triple to hue (degrees), saturation and value.

    Args:
        red (float): Red channel in `[0, 1]`.
        green (float): Green channel in `[0, 1]`.
        blue (float): Blue channel in `[0, 1]`.

    Returns:
        tuple[float, float, float]: `(h, s, v)` with `h` in `[0, 360)`.
    """
    high = max(red, green, blue)
    low = min(red, green, blue)
    delta = high - low

    hue = 0.0
    if delta != 0:
        if high == red:
            hue = ((green - blue) / delta) % 6
        elif high == green:
            hue = (blue - red) / delta + 2
        else:
            hue = (red - green) / delta + 4
        hue *= 60

    saturation = 0.0 if high == 0 else delta / high
    return hue, saturation, high


def in_hue_range(hue: float, lower: float, upper: float) -> bool:
    """Return whether a hue falls in `[lower, upper]`, wrapping through 0 when `lower > upper`."""
    if lower <= upper:
        return lower <= hue <= upper
    return hue >= lower or hue <= upper


def hsv_planes(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Vectorized `rgb_to_hsv` over an `(h, w, 3)` uint8 array.

    Returns:
        tuple[np.ndarray, np.ndarray, np.ndarray]: Hue, saturation and value planes.
    """
    channels = rgb.astype(np.float64) / 255.0
    red, green, blue = channels[..., 0], channels[..., 1], channels[..., 2]
    high = channels.max(axis=-1)
    low = channels.min(axis=-1)
    delta = high - low

    chromatic = delta != 0
    safe_delta = np.where(chromatic, delta, 1.0)
    hue = np.select(
        [high == red, high == green],
        [
            np.mod((green - blue) / safe_delta, 6.0),
            (blue - red) / safe_delta + 2.0,
        ],
        default=(red - green) / safe_delta + 4.0,
    )
    hue = np.where(chromatic, hue * 60.0, 0.0)

    saturation = np.where(high == 0, 0.0, delta / np.where(high == 0, 1.0, high))
    return hue, saturation, high


def _hue_membership(hue: np.ndarray, bounds: tuple[float, float]) -> np.ndarray:
    lower, upper = bounds
    if lower <= upper:
        return (hue >= lower) & (hue <= upper)
    return (hue >= lower) | (hue <= upper)


def detect(buffer: PixelBuffer, profile: TuningProfile) -> DetectionMask:
    """Flag every pixel whose color falls inside the profile's ink model.

    Args:
        buffer (PixelBuffer): Source raster.
        profile (TuningProfile): Thresholds and hue ranges.

    Returns:
        DetectionMask: Flags with the buffer's dimensions.
    """
    pixels = buffer.pixels
    hue, saturation, value = hsv_planes(pixels[..., :3])

    visible = pixels[..., 3] >= ALPHA_DISCARD_THRESHOLD
    strong = (saturation >= profile.s_min) & (value >= profile.v_min)
    in_range = _hue_membership(hue, profile.hue_a) | _hue_membership(hue, profile.hue_b)

    return DetectionMask(width=buffer.width, height=buffer.height, flags=visible & strong & in_range)
