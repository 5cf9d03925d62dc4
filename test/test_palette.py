"""
Unit tests for the artwork accent palette.
"""

from unittest.mock import Mock

from PIL import Image

from npoverlay.client import palette


def solid(color, mode="RGB", size=(64, 64)):
    return Image.new(mode, size, color)


def test_fully_transparent_image_has_no_accent():
    image = solid((255, 0, 0, 0), mode="RGBA")
    assert palette.average_color(image) is None
    assert palette.accent_rgb(image) is None
    assert palette.accent_color(image) is None


def test_transparent_pixels_are_ignored():
    image = Image.new("RGBA", (48, 48), (0, 0, 255, 0))
    image.paste((255, 0, 0, 255), (0, 0, 24, 48))
    assert palette.average_color(image) == (255, 0, 0)


def test_average_is_alpha_weighted():
    image = Image.new("RGBA", (48, 48), (0, 0, 0, 255))
    image.paste((255, 255, 255, 51), (0, 0, 24, 48))
    r, g, b = palette.average_color(image)
    assert abs(r - 42.5) < 0.01
    assert r == g == b


def test_bright_artwork_is_darkened_into_band():
    rgb = palette.accent_rgb(solid((255, 255, 255)))
    assert palette.luma(rgb) <= palette.MAX_LUMA
    assert palette.luma(rgb) >= palette.MIN_LUMA


def test_light_grey_artwork_stays_under_max_luma():
    rgb = palette.accent_rgb(solid((200, 200, 200)))
    assert palette.luma(rgb) <= palette.MAX_LUMA


def test_dark_artwork_is_lightened():
    assert palette.accent_color(solid((0, 0, 0))) == "rgba(62, 61, 67, 0.86)"


def test_adjust_luma_keeps_colors_inside_band():
    assert palette.adjust_luma((100, 100, 100)) == (100, 100, 100)
    assert palette.adjust_luma((100.4, 99.6, 100)) == (100, 100, 100)


def test_mix_channel():
    assert palette.mix_channel(0, 100, 0) == 0
    assert palette.mix_channel(0, 100, 1) == 100
    assert palette.mix_channel(0, 100, 0.25) == 25


def test_clamp_channel():
    assert palette.clamp_channel(-3) == 0
    assert palette.clamp_channel(300) == 255
    assert palette.clamp_channel(12.6) == 13


def test_unreadable_image_has_no_accent():
    image = Mock()
    image.convert.side_effect = OSError("truncated")
    assert palette.accent_color(image) is None
