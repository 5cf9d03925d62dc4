"""
Theme registry for the image surface.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from ..errors import ThemeLoadError

RGBA = Tuple[int, int, int, int]


@dataclass(frozen=True)
class Theme:
    """Colors and layout metrics of an overlay card."""

    name: str
    background: RGBA
    title_color: RGBA
    artist_color: RGBA
    album_color: RGBA
    title_size: int = 38
    artist_size: int = 28
    album_size: int = 24
    card_width: int = 720
    cover_size: int = 170
    padding: int = 24
    gap: int = 24
    radius: int = 20
    cover_radius: int = 12

    @property
    def card_height(self) -> int:
        return self.cover_size + self.padding * 2

    @property
    def text_width(self) -> int:
        """Width of the text column, next to the artwork column."""
        return self.card_width - self.padding * 2 - self.cover_size - self.gap


THEMES: Dict[str, Theme] = {
    "vanilla": Theme(
        name="vanilla",
        background=(12, 12, 18, 200),
        title_color=(255, 255, 255, 255),
        artist_color=(220, 220, 230, 255),
        album_color=(150, 150, 160, 255),
    ),
    # Background is replaced by the artwork accent tint when one is available
    "fancy": Theme(
        name="fancy",
        background=(18, 14, 40, 219),
        title_color=(255, 255, 255, 255),
        artist_color=(236, 230, 255, 255),
        album_color=(190, 182, 220, 255),
        title_size=40,
        radius=28,
        cover_radius=18,
    ),
}


def get_theme(name: str) -> Theme:
    """
    Look up a theme by name.

    Raises:
        ThemeLoadError: If no theme has that name
    """
    try:
        return THEMES[name]
    except KeyError:
        raise ThemeLoadError(f"Unknown theme: {name}") from None
