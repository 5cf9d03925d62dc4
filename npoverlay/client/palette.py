"""
Accent tint derived from cover art.

The artwork is downsampled, averaged with alpha weighting, blended toward a
dark base color and pulled into a luma band so overlay text stays readable.
"""

import logging
from typing import Optional, Sequence, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

BASE_RGB = (18, 14, 40)
BLEND_RATIO = 0.68
MIN_LUMA = 55
MAX_LUMA = 140
LIGHTEN_FACTOR = 0.25
SAMPLE_SIZE = 48
ACCENT_ALPHA = 0.86

RGB = Tuple[int, int, int]


def clamp_channel(value: float) -> int:
    return min(255, max(0, round(value)))


def mix_channel(base: float, sample: float, ratio: float) -> float:
    """Blend from base (ratio 0) to sample (ratio 1)."""
    return base * (1 - ratio) + sample * ratio


def luma(rgb: Sequence[float]) -> float:
    """Relative luminance (Rec. 709 weights) on the 0-255 scale."""
    return 0.2126 * rgb[0] + 0.7152 * rgb[1] + 0.0722 * rgb[2]


def adjust_luma(rgb: Sequence[float]) -> RGB:
    """
    Pull a color into the [MIN_LUMA, MAX_LUMA] band.

    Too bright colors are darkened toward BASE_RGB in proportion to the
    overshoot; too dark colors are lightened in proportion to the undershoot.
    """
    value = luma(rgb)
    if value > MAX_LUMA:
        ratio = (value - MAX_LUMA) / (255 - MAX_LUMA)
        return tuple(
            clamp_channel(mix_channel(channel, base, ratio))
            for channel, base in zip(rgb, BASE_RGB)
        )

    if value < MIN_LUMA:
        ratio = (MIN_LUMA - value) / MIN_LUMA
        return tuple(
            clamp_channel(channel + (255 - channel) * ratio * LIGHTEN_FACTOR) for channel in rgb
        )

    return tuple(clamp_channel(channel) for channel in rgb)


def average_color(image: Image.Image) -> Optional[Tuple[float, float, float]]:
    """
    Alpha-weighted average color of an image.

    Returns:
        (r, g, b) floats, or None if every sampled pixel is fully transparent
    """
    sample = image.convert("RGBA").resize((SAMPLE_SIZE, SAMPLE_SIZE), Image.Resampling.BILINEAR)
    data = sample.tobytes()

    r = g = b = 0.0
    weight = 0.0
    for i in range(0, len(data), 4):
        alpha = data[i + 3]
        if alpha == 0:
            continue
        a = alpha / 255
        r += data[i] * a
        g += data[i + 1] * a
        b += data[i + 2] * a
        weight += a

    if weight == 0:
        return None
    return (r / weight, g / weight, b / weight)


def accent_rgb(image: Image.Image) -> Optional[RGB]:
    """Muted accent color for an image, or None if no color can be derived."""
    try:
        average = average_color(image)
    except (OSError, ValueError) as e:
        logger.warning("Failed to sample artwork colors: %s", e)
        return None

    if average is None:
        return None

    blended = [mix_channel(base, channel, BLEND_RATIO) for base, channel in zip(BASE_RGB, average)]
    return adjust_luma(blended)


def accent_color(image: Image.Image) -> Optional[str]:
    """Translucent accent color as an rgba() string, or None."""
    rgb = accent_rgb(image)
    if rgb is None:
        return None
    return f"rgba({rgb[0]}, {rgb[1]}, {rgb[2]}, {ACCENT_ALPHA})"
