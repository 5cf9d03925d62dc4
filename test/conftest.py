"""
Shared fixtures for the overlay client tests.
"""

from typing import Callable, Dict, List, Optional, Tuple

import pytest

from npoverlay.client.scheduler import ManualScheduler
from npoverlay.client.surface import TEXT_REGIONS, OverlaySurface
from npoverlay.errors import ThemeLoadError


class FakeSurface(OverlaySurface):
    """In-memory surface that records what the state machines do to it."""

    def __init__(self):
        self.texts: Dict[str, Optional[str]] = {region: None for region in TEXT_REGIONS}
        self.offsets: Dict[str, float] = {region: 0.0 for region in TEXT_REGIONS}
        self.offset_history: Dict[str, List[Tuple[float, int]]] = {r: [] for r in TEXT_REGIONS}
        self.listeners: Dict[str, Callable[[], None]] = {}
        self.scroll_active: Dict[str, bool] = {}
        self.content_widths: Dict[str, float] = {}
        self.container_width = 300.0

        self.cover_url: Optional[str] = None
        self.cover_images = {}
        self.cover_requests: List[Optional[str]] = []
        self.on_cover_load: Optional[Callable[[], None]] = None
        self.on_cover_error: Optional[Callable[[], None]] = None

        self.known_themes = {"vanilla", "fancy"}
        self.stylesheet = "vanilla"
        self.stylesheet_loads: List[str] = []
        self.theme_tag: Optional[str] = None
        self.variables: Dict[str, str] = {}
        self.transitions_restarted = 0

    def set_text(self, region, text):
        self.texts[region] = text

    def get_text(self, region):
        return self.texts[region]

    def measure(self, region):
        text = self.texts[region] or ""
        return self.content_widths.get(region, len(text) * 10.0), self.container_width

    def set_offset(self, region, offset, transition_ms=0, on_complete=None):
        self.offsets[region] = offset
        self.offset_history[region].append((offset, transition_ms))
        if transition_ms > 0 and on_complete is not None:
            self.listeners[region] = on_complete
        elif transition_ms == 0:
            self.listeners.pop(region, None)

    def clear_transition_listener(self, region):
        self.listeners.pop(region, None)

    def complete_transition(self, region):
        """Fire the pending transition-end callback of a region."""
        callback = self.listeners.pop(region)
        callback()

    def set_scroll_active(self, region, active):
        self.scroll_active[region] = active

    def set_cover(self, url):
        self.cover_requests.append(url)
        self.cover_url = url

    def cover_visible(self):
        return self.cover_url is not None

    def cover_image(self):
        if self.cover_url is None:
            return None
        return self.cover_images.get(self.cover_url)

    def set_cover_listeners(self, on_load, on_error):
        self.on_cover_load = on_load
        self.on_cover_error = on_error

    def load_stylesheet(self, theme):
        self.stylesheet_loads.append(theme)
        if theme not in self.known_themes:
            raise ThemeLoadError(f"Unknown theme: {theme}")
        self.stylesheet = theme

    def set_theme_tag(self, theme):
        self.theme_tag = theme

    def set_variable(self, name, value):
        if value:
            self.variables[name] = value
        else:
            self.variables.pop(name, None)

    def restart_transition(self):
        self.transitions_restarted += 1


@pytest.fixture
def scheduler():
    """Scheduler on a virtual clock."""
    return ManualScheduler()


@pytest.fixture
def surface():
    """In-memory overlay surface."""
    return FakeSurface()
