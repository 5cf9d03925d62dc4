"""
Pillow overlay surface for npoverlay.

Renders the overlay card (artwork, scrolling text, theme, tint, shadow and the
track transition) into an RGBA image, and writes frames to a PNG file that
streaming software can use as an image source.
"""

import logging
import os
import re
import threading
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urljoin

import requests
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from .scheduler import Handle, Scheduler
from .surface import (
    ALBUM,
    ARTIST,
    LAYOUT_SAFE_INSET,
    OVERLAY_BACKGROUND_DYNAMIC,
    OVERLAY_SHADOW,
    TEXT_REGIONS,
    TITLE,
    OverlaySurface,
)
from .themes import Theme, get_theme

logger = logging.getLogger(__name__)

TRACK_TRANSITION_MS = 600
TRACK_TRANSITION_SLIDE = 12  # px
SHADOW_BLUR = 24
SHADOW_OFFSET = 18
SHADOW_ALPHA = 140
COVER_TIMEOUT_SECONDS = 10

RGBA_PATTERN = re.compile(
    r"rgba\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*([0-9.]+)\s*\)"
)
PX_PATTERN = re.compile(r"^\s*(\d+)(?:px)?\s*$")

FONT_PATHS = [
    # macOS fonts
    "/System/Library/Fonts/Helvetica.ttc",
    "/Library/Fonts/Arial.ttf",
    # Linux fonts
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
]
BOLD_FONT_PATHS = [
    "/System/Library/Fonts/Helvetica.ttc",
    "/Library/Fonts/Arial Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
]


def parse_rgba(value: Optional[str]) -> Optional[Tuple[int, int, int, int]]:
    """Parse an `rgba(r, g, b, a)` string into an RGBA tuple."""
    if not value:
        return None
    match = RGBA_PATTERN.match(value.strip())
    if not match:
        return None
    r, g, b = (min(255, int(match.group(i))) for i in (1, 2, 3))
    alpha = min(1.0, float(match.group(4)))
    return (r, g, b, round(alpha * 255))


def parse_px(value: Optional[str]) -> int:
    if not value:
        return 0
    match = PX_PATTERN.match(value)
    return int(match.group(1)) if match else 0


def ease_out(t: float) -> float:
    return 1 - (1 - t) ** 3


class FontLoader:
    """Finds system fonts, with caching."""

    def __init__(self):
        self._font_cache: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}

    def get(self, size: int, bold: bool = False):
        """Get a font at the specified size."""
        cache_key = (size, bold)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        font_names = (BOLD_FONT_PATHS + FONT_PATHS) if bold else FONT_PATHS
        font = None
        for font_path in font_names:
            if os.path.exists(font_path):
                try:
                    font = ImageFont.truetype(font_path, size)
                    break
                except OSError:
                    continue

        if font is None:
            font = ImageFont.load_default(size)
            logger.warning("Could not load system font, using default")

        self._font_cache[cache_key] = font
        return font


@dataclass
class _OffsetTransition:
    start_ms: float
    duration_ms: float
    start: float
    end: float


@dataclass
class _TextRegion:
    text: Optional[str] = None
    offset: float = 0.0
    scroll_active: bool = False
    transition: Optional[_OffsetTransition] = None
    on_complete: Optional[Callable[[], None]] = None


class ImageSurface(OverlaySurface):
    """Overlay surface drawn with Pillow."""

    def __init__(
        self,
        relay_url: str,
        scheduler: Scheduler,
        width: int = 880,
        height: int = 380,
        session: Optional[requests.Session] = None,
        load_covers_in_background: bool = True,
        fonts: Optional[FontLoader] = None,
    ):
        """
        Initialize ImageSurface.

        Args:
            relay_url: Base URL of the relay, used to resolve artwork paths
            scheduler: Scheduler whose clock drives transitions
            width: Frame width in pixels
            height: Frame height in pixels
            session: requests Session for artwork downloads
            load_covers_in_background: Download artwork on a worker thread
            fonts: FontLoader (default: a new one)
        """
        self.relay_url = relay_url.rstrip("/") + "/"
        self.scheduler = scheduler
        self.width = width
        self.height = height
        self.session = session or requests.Session()
        self.load_covers_in_background = load_covers_in_background
        self.fonts = fonts or FontLoader()

        self.theme: Theme = get_theme("vanilla")
        self.theme_tag = self.theme.name
        self.variables: Dict[str, str] = {}
        self.regions: Dict[str, _TextRegion] = {region: _TextRegion() for region in TEXT_REGIONS}
        self.transition_started_ms: Optional[float] = None

        self._cover_url: Optional[str] = None
        self._cover_visible = False
        self._cover_image: Optional[Image.Image] = None
        self._on_cover_load: Optional[Callable[[], None]] = None
        self._on_cover_error: Optional[Callable[[], None]] = None

    # Text regions
    def _size_for(self, region: str) -> int:
        if region == TITLE:
            return self.theme.title_size
        if region == ARTIST:
            return self.theme.artist_size
        return self.theme.album_size

    def _font_for(self, region: str):
        return self.fonts.get(self._size_for(region), bold=region == TITLE)

    def set_text(self, region: str, text: str) -> None:
        self.regions[region].text = text

    def get_text(self, region: str) -> Optional[str]:
        return self.regions[region].text

    def measure(self, region: str) -> Tuple[float, float]:
        text = self.regions[region].text or ""
        return self._font_for(region).getlength(text), float(self.theme.text_width)

    def set_offset(
        self,
        region: str,
        offset: float,
        transition_ms: int = 0,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        state = self.regions[region]
        if transition_ms > 0:
            state.transition = _OffsetTransition(
                start_ms=self.scheduler.now_ms(),
                duration_ms=transition_ms,
                start=state.offset,
                end=offset,
            )
            state.on_complete = on_complete
            return

        state.transition = None
        state.on_complete = None
        state.offset = offset

    def clear_transition_listener(self, region: str) -> None:
        self.regions[region].on_complete = None

    def set_scroll_active(self, region: str, active: bool) -> None:
        self.regions[region].scroll_active = active

    def advance(self, now_ms: Optional[float] = None) -> None:
        """Move running offset transitions to now, firing completion callbacks."""
        now = self.scheduler.now_ms() if now_ms is None else now_ms
        for state in self.regions.values():
            transition = state.transition
            if transition is None:
                continue

            progress = (now - transition.start_ms) / transition.duration_ms
            if progress < 1:
                eased = ease_out(max(0.0, progress))
                state.offset = transition.start + (transition.end - transition.start) * eased
                continue

            state.offset = transition.end
            state.transition = None
            callback, state.on_complete = state.on_complete, None
            if callback:
                callback()

    # Artwork
    def set_cover_listeners(
        self, on_load: Callable[[], None], on_error: Callable[[], None]
    ) -> None:
        self._on_cover_load = on_load
        self._on_cover_error = on_error

    def set_cover(self, url: Optional[str]) -> None:
        if url is None:
            self._cover_url = None
            self._cover_visible = False
            self._cover_image = None
            return

        self._cover_visible = True
        if url == self._cover_url:
            return

        self._cover_url = url
        self._cover_image = None
        if self.load_covers_in_background:
            threading.Thread(
                target=self._load_cover_in_background, args=(url,), daemon=True, name="CoverLoader"
            ).start()
        else:
            self._cover_loaded(url, self._download_cover(url))

    def _download_cover(self, url: str) -> Optional[Image.Image]:
        try:
            response = self.session.get(urljoin(self.relay_url, url), timeout=COVER_TIMEOUT_SECONDS)
            response.raise_for_status()
            image = Image.open(BytesIO(response.content))
            image.load()
            return image.convert("RGBA")
        except (requests.RequestException, OSError) as e:
            logger.warning("Failed to load cover art %s: %s", url, e)
            return None

    def _load_cover_in_background(self, url: str) -> None:
        image = self._download_cover(url)
        self.scheduler.post(lambda: self._cover_loaded(url, image))

    def _cover_loaded(self, url: str, image: Optional[Image.Image]) -> None:
        if url != self._cover_url:
            # superseded by a newer cover
            return

        self._cover_image = image
        if image is None:
            if self._on_cover_error:
                self._on_cover_error()
        elif self._on_cover_load:
            self._on_cover_load()

    def cover_visible(self) -> bool:
        return self._cover_visible

    def cover_image(self) -> Optional[Image.Image]:
        return self._cover_image if self._cover_visible else None

    # Theme and styling
    def load_stylesheet(self, theme: str) -> None:
        self.theme = get_theme(theme)

    def set_theme_tag(self, theme: str) -> None:
        self.theme_tag = theme

    def set_variable(self, name: str, value: Optional[str]) -> None:
        if value:
            self.variables[name] = value
        else:
            self.variables.pop(name, None)

    def restart_transition(self) -> None:
        self.transition_started_ms = self.scheduler.now_ms()

    # Rendering
    def _transition_progress(self) -> float:
        if self.transition_started_ms is None:
            return 1.0
        progress = (self.scheduler.now_ms() - self.transition_started_ms) / TRACK_TRANSITION_MS
        if progress >= 1:
            self.transition_started_ms = None
            return 1.0
        return ease_out(max(0.0, progress))

    def _draw_card(self) -> Image.Image:
        theme = self.theme
        card = Image.new("RGBA", (theme.card_width, theme.card_height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(card)

        background = parse_rgba(self.variables.get(OVERLAY_BACKGROUND_DYNAMIC)) or theme.background
        draw.rounded_rectangle(
            (0, 0, theme.card_width - 1, theme.card_height - 1), radius=theme.radius, fill=background
        )

        text_x = theme.padding
        if self._cover_visible:
            self._draw_cover(card, theme.padding, theme.padding)
            text_x += theme.cover_size + theme.gap

        lines = [
            (TITLE, theme.title_color),
            (ARTIST, theme.artist_color),
            (ALBUM, theme.album_color),
        ]
        heights = [round(self._size_for(region) * 1.3) for region, _ in lines]
        y = theme.padding + max(0, (theme.cover_size - sum(heights)) // 2)
        for (region, color), line_height in zip(lines, heights):
            state = self.regions[region]
            if state.text:
                layer = Image.new("RGBA", (theme.text_width, line_height), (0, 0, 0, 0))
                ImageDraw.Draw(layer).text(
                    (-state.offset, 0), state.text, font=self._font_for(region), fill=color
                )
                card.alpha_composite(layer, (text_x, y))
            y += line_height

        return card

    def _draw_cover(self, card: Image.Image, x: int, y: int) -> None:
        theme = self.theme
        size = (theme.cover_size, theme.cover_size)
        mask = Image.new("L", size, 0)
        ImageDraw.Draw(mask).rounded_rectangle(
            (0, 0, size[0] - 1, size[1] - 1), radius=theme.cover_radius, fill=255
        )

        if self._cover_image is not None:
            cover = self._cover_image.resize(size, Image.Resampling.LANCZOS)
        else:
            cover = Image.new("RGBA", size, (255, 255, 255, 30))

        alpha = Image.new("L", size, 0)
        alpha.paste(cover.getchannel("A"), mask=mask)
        cover.putalpha(alpha)
        card.alpha_composite(cover, (x, y))

    def render(self) -> Image.Image:
        """Render the current frame."""
        frame = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        card = self._draw_card()
        inset = parse_px(self.variables.get(LAYOUT_SAFE_INSET))

        progress = self._transition_progress()
        if progress < 1:
            card.putalpha(card.getchannel("A").point(lambda value: round(value * progress)))
        position = (inset, inset + round((1 - progress) * TRACK_TRANSITION_SLIDE))

        if self.variables.get(OVERLAY_SHADOW):
            shadow_mask = Image.new("L", frame.size, 0)
            ImageDraw.Draw(shadow_mask).rounded_rectangle(
                (
                    position[0],
                    position[1] + SHADOW_OFFSET,
                    position[0] + card.width,
                    position[1] + SHADOW_OFFSET + card.height,
                ),
                radius=self.theme.radius,
                fill=round(SHADOW_ALPHA * progress),
            )
            shadow = Image.new("RGBA", frame.size, (8, 10, 22, 0))
            shadow.putalpha(shadow_mask.filter(ImageFilter.GaussianBlur(SHADOW_BLUR)))
            frame.alpha_composite(shadow)

        frame.alpha_composite(card, position)
        return frame


class FrameLoop:
    """Renders an ImageSurface at a fixed rate and writes changed frames to disk."""

    def __init__(
        self,
        surface: ImageSurface,
        scheduler: Scheduler,
        output_path: Path,
        fps: int = 30,
    ):
        self.surface = surface
        self.scheduler = scheduler
        self.output_path = Path(output_path)
        self.interval_ms = 1000.0 / fps
        self.frames_written = 0
        self._handle: Optional[Handle] = None
        self._last_frame: Optional[bytes] = None

    def start(self) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._schedule()

    def stop(self) -> None:
        self.scheduler.cancel(self._handle)
        self._handle = None

    def _schedule(self) -> None:
        self.scheduler.cancel(self._handle)
        self._handle = self.scheduler.call_later(self.interval_ms, self._tick)

    def _tick(self) -> None:
        self._handle = None
        try:
            self.render_once()
        finally:
            self._schedule()

    def render_once(self) -> bool:
        """
        Advance transitions, render, and write the frame if it changed.

        Returns:
            True if a frame was written
        """
        self.surface.advance()
        frame = self.surface.render()
        data = frame.tobytes()
        if data == self._last_frame:
            return False

        tmp_path = self.output_path.with_name(self.output_path.name + ".tmp")
        try:
            frame.save(tmp_path, "PNG")
            os.replace(tmp_path, self.output_path)
        except OSError as e:
            logger.error("Failed to write frame to %s: %s", self.output_path, e)
            return False

        self._last_frame = data
        self.frames_written += 1
        return True
