"""
Display state machine for the overlay client.

Turns polled snapshots into surface updates: theme and theme options, track
text, artwork, the track transition and the artwork accent tint. Applying the
same snapshot twice changes nothing and never replays the transition.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from ..errors import ThemeLoadError
from ..models import NowPlayingSnapshot, SnapshotTrack
from . import palette
from .marquee import TextMarqueeAnimator
from .surface import (
    ALBUM,
    ARTIST,
    LAYOUT_SAFE_INSET,
    OVERLAY_BACKGROUND_DYNAMIC,
    OVERLAY_SHADOW,
    TITLE,
    OverlaySurface,
)

DEFAULT_THEME = "vanilla"
REACTIVE_THEME = "fancy"
DEFAULT_SHADOW_STYLE = "none"
SHADOW_STYLES = ("none", "macos")

PLACEHOLDER_TITLE = "No Now Playing"
UNKNOWN_TITLE = "Unknown track"
UNKNOWN_ARTIST = "Unknown artist"

MACOS_SHADOW = "0 58px 120px rgba(8, 10, 22, 0.55), 0 18px 48px rgba(10, 12, 24, 0.42)"
MACOS_SAFE_INSET = "80px"


@dataclass(frozen=True)
class DisplayState:
    """What the overlay currently shows."""

    theme: str = DEFAULT_THEME
    shadow_style: str = DEFAULT_SHADOW_STYLE
    signature: Optional[str] = None
    failed_theme: Optional[str] = None


def track_signature(track: Optional[SnapshotTrack]) -> Optional[str]:
    """Identity of a track for change detection, or None without a track."""
    if track is None:
        return None
    parts = [track.id, track.title, track.artist, track.album]
    return "|".join(part or "" for part in parts)


def normalize_theme_name(theme: Optional[str]) -> str:
    if isinstance(theme, str) and theme.strip():
        return theme.strip().lower()
    return DEFAULT_THEME


def normalize_shadow_style(options: Any) -> str:
    """Shadow style from theme options; anything unrecognized means none."""
    style = getattr(options, "shadow_style", None)
    if isinstance(options, dict):
        style = options.get("shadowStyle")
    if isinstance(style, str) and style.lower() in SHADOW_STYLES:
        return style.lower()
    return DEFAULT_SHADOW_STYLE


class DisplayStateMachine:
    """Applies polled snapshots to an overlay surface."""

    def __init__(self, surface: OverlaySurface, marquee: TextMarqueeAnimator):
        """
        Initialize DisplayStateMachine.

        Args:
            surface: Surface to draw on
            marquee: Animator that owns the text regions' scroll state
        """
        self.surface = surface
        self.marquee = marquee
        self.state = DisplayState()
        self.logger = logging.getLogger(__name__)
        surface.set_cover_listeners(on_load=self.on_cover_loaded, on_error=self.clear_accent)

    def reset(self) -> None:
        """Start from the default theme and a cleared display."""
        self.surface.set_theme_tag(self.state.theme)
        self.clear_track_display()

    def apply_snapshot(self, snapshot: NowPlayingSnapshot) -> bool:
        """
        Apply a polled snapshot.

        Args:
            snapshot: Snapshot from the relay

        Returns:
            True if the track transition was triggered
        """
        self.apply_theme(snapshot.theme)
        self.apply_theme_options(snapshot.theme_options)

        if not snapshot.playing:
            self.clear_track_display()
            return False

        signature = track_signature(snapshot.track)
        animate = bool(signature) and signature != self.state.signature

        self.update_track_display(snapshot)
        if animate:
            self.surface.restart_transition()
            self.logger.info("Now showing: %s", signature)

        self.refresh_accent()
        self.state = replace(self.state, signature=signature)
        return animate

    def apply_theme(self, theme: Optional[str]) -> None:
        """Switch stylesheets when the theme changes, falling back to the default once."""
        requested = normalize_theme_name(theme)
        # a theme that already failed goes straight to the default
        desired = DEFAULT_THEME if requested == self.state.failed_theme else requested
        if desired == self.state.theme:
            return

        try:
            self.surface.load_stylesheet(desired)
            if desired == requested:
                self.state = replace(self.state, theme=desired, failed_theme=None)
            else:
                self.state = replace(self.state, theme=desired)
        except ThemeLoadError as e:
            self.logger.warning("Theme %s failed to load, using %s: %s", desired, DEFAULT_THEME, e)
            self.state = replace(self.state, failed_theme=desired)
            if self.state.theme != DEFAULT_THEME:
                self.state = replace(self.state, theme=DEFAULT_THEME)
                try:
                    self.surface.load_stylesheet(DEFAULT_THEME)
                except ThemeLoadError as default_error:
                    self.logger.error("Default theme failed to load: %s", default_error)

        self.surface.set_theme_tag(self.state.theme)
        self.refresh_accent()

    def apply_theme_options(self, options: Any) -> None:
        shadow_style = normalize_shadow_style(options)
        if shadow_style == self.state.shadow_style:
            return

        self.state = replace(self.state, shadow_style=shadow_style)
        if shadow_style == "macos":
            self.surface.set_variable(OVERLAY_SHADOW, MACOS_SHADOW)
            self.surface.set_variable(LAYOUT_SAFE_INSET, MACOS_SAFE_INSET)
        else:
            self.surface.set_variable(OVERLAY_SHADOW, None)
            self.surface.set_variable(LAYOUT_SAFE_INSET, None)

    def clear_track_display(self) -> None:
        """Show the placeholder, hide the artwork and drop the tint."""
        self.state = replace(self.state, signature=None)
        self.marquee.set_content(TITLE, PLACEHOLDER_TITLE)
        self.marquee.set_content(ARTIST, "")
        self.marquee.set_content(ALBUM, "")
        self.surface.set_cover(None)
        self.clear_accent()

    def update_track_display(self, snapshot: NowPlayingSnapshot) -> None:
        track = snapshot.track or SnapshotTrack(id="")
        self.marquee.set_content(TITLE, UNKNOWN_TITLE if track.title is None else track.title)
        self.marquee.set_content(ARTIST, UNKNOWN_ARTIST if track.artist is None else track.artist)
        self.marquee.set_content(ALBUM, track.album or "")

        if snapshot.cover_art and snapshot.cover_art.url:
            self.surface.set_cover(snapshot.cover_art.url)
        else:
            self.surface.set_cover(None)

    def refresh_accent(self) -> None:
        """Recompute the tint for the reactive theme, or clear it."""
        if self.state.theme != REACTIVE_THEME or not self.surface.cover_visible():
            self.clear_accent()
            return

        image = self.surface.cover_image()
        if image is None:
            # not loaded yet, on_cover_loaded will pick it up
            return

        color = palette.accent_color(image)
        if color is None:
            self.clear_accent()
            return
        self.surface.set_variable(OVERLAY_BACKGROUND_DYNAMIC, color)

    def on_cover_loaded(self) -> None:
        self.refresh_accent()

    def clear_accent(self) -> None:
        self.surface.set_variable(OVERLAY_BACKGROUND_DYNAMIC, None)
