"""
Abstract overlay surface.

The display state machine and the marquee animator only talk to the overlay
through this interface, so the same state machines drive any renderer.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from PIL import Image

# Scrollable text regions
TITLE = "title"
ARTIST = "artist"
ALBUM = "album"
TEXT_REGIONS = (TITLE, ARTIST, ALBUM)

# Style variables understood by surfaces
OVERLAY_SHADOW = "--overlay-shadow"
LAYOUT_SAFE_INSET = "--layout-safe-inset"
OVERLAY_BACKGROUND_DYNAMIC = "--overlay-background-dynamic"


class OverlaySurface(ABC):
    """Display contract for the overlay."""

    # Text regions
    @abstractmethod
    def set_text(self, region: str, text: str) -> None:
        pass

    @abstractmethod
    def get_text(self, region: str) -> Optional[str]:
        """Current text of a region, or None if it was never set."""
        pass

    @abstractmethod
    def measure(self, region: str) -> Tuple[float, float]:
        """
        Measure a region after layout.

        Returns:
            (content_width, container_width) in pixels
        """
        pass

    @abstractmethod
    def set_offset(
        self,
        region: str,
        offset: float,
        transition_ms: int = 0,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Scroll a region's text left by offset pixels.

        With transition_ms > 0 the move is eased over that duration and
        on_complete is called when it finishes. A transition is not
        guaranteed to complete (e.g. when the overlay is hidden).
        """
        pass

    @abstractmethod
    def clear_transition_listener(self, region: str) -> None:
        """Drop a pending on_complete callback for a region."""
        pass

    @abstractmethod
    def set_scroll_active(self, region: str, active: bool) -> None:
        pass

    # Artwork
    @abstractmethod
    def set_cover(self, url: Optional[str]) -> None:
        """Show artwork from url, or hide it when url is None."""
        pass

    @abstractmethod
    def cover_visible(self) -> bool:
        pass

    @abstractmethod
    def cover_image(self) -> Optional[Image.Image]:
        """Decoded artwork if loaded, else None."""
        pass

    @abstractmethod
    def set_cover_listeners(
        self, on_load: Callable[[], None], on_error: Callable[[], None]
    ) -> None:
        pass

    # Theme and styling
    @abstractmethod
    def load_stylesheet(self, theme: str) -> None:
        """
        Activate a theme's stylesheet.

        Raises:
            ThemeLoadError: If the theme cannot be loaded
        """
        pass

    @abstractmethod
    def set_theme_tag(self, theme: str) -> None:
        pass

    @abstractmethod
    def set_variable(self, name: str, value: Optional[str]) -> None:
        """Set a style variable, or remove it when value is None or empty."""
        pass

    @abstractmethod
    def restart_transition(self) -> None:
        """Play the track transition from the start, even if one is running."""
        pass
