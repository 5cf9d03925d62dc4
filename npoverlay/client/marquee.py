"""
Marquee scrolling for overflowing text regions.

Each region runs its own loop: wait, scroll to the end, hold, ease back to the
start, and wait again. A region has at most one scheduled callback pending at
any time, and any content change tears the loop down before it is rebuilt.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .scheduler import Handle, Scheduler
from .surface import OverlaySurface

SCROLL_SPEED = 0.6  # px per frame
OVERFLOW_THRESHOLD = 4  # px
HOLD_DELAY_MS = 5000
RESET_ANIMATION_MS = 500
RESET_FALLBACK_GRACE_MS = 50


class MarqueeState(Enum):
    """Marquee state of a text region."""

    IDLE = "idle"
    WAITING = "waiting"
    SCROLLING = "scrolling"
    HELD = "held"
    RESETTING = "resetting"


@dataclass
class RegionAnimation:
    """Animation state of one overflowing region."""

    overflow: float
    offset: float = 0.0
    state: MarqueeState = MarqueeState.WAITING
    handle: Optional[Handle] = None
    listening: bool = False


class TextMarqueeAnimator:
    """Scrolls text regions whose content is wider than their container."""

    def __init__(
        self,
        surface: OverlaySurface,
        scheduler: Scheduler,
        speed: float = SCROLL_SPEED,
        hold_delay_ms: float = HOLD_DELAY_MS,
        reset_animation_ms: int = RESET_ANIMATION_MS,
        overflow_threshold: float = OVERFLOW_THRESHOLD,
    ):
        self.surface = surface
        self.scheduler = scheduler
        self.speed = speed
        self.hold_delay_ms = hold_delay_ms
        self.reset_animation_ms = reset_animation_ms
        self.overflow_threshold = overflow_threshold
        self.animations: Dict[str, RegionAnimation] = {}
        self._measure_handles: Dict[str, Handle] = {}
        self.logger = logging.getLogger(__name__)

    def state_of(self, region: str) -> MarqueeState:
        animation = self.animations.get(region)
        return animation.state if animation else MarqueeState.IDLE

    def set_content(self, region: str, text: Optional[str]) -> None:
        """
        Replace a region's text.

        Identical text keeps the running animation. Otherwise the old
        animation is torn down and overflow is measured on the next frame,
        once the new text has been laid out.
        """
        next_text = text or ""
        if self.surface.get_text(region) == next_text:
            return

        self.stop(region)
        self.surface.set_text(region, next_text)
        self._measure_handles[region] = self.scheduler.request_frame(
            lambda: self._measure(region)
        )

    def _measure(self, region: str) -> None:
        self._measure_handles.pop(region, None)
        self.evaluate(region)

    def evaluate(self, region: str) -> None:
        """Start or stop scrolling depending on the region's current overflow."""
        content_width, container_width = self.surface.measure(region)
        overflow = content_width - container_width
        if overflow > self.overflow_threshold:
            self.surface.set_scroll_active(region, True)
            self.start(region, overflow)
        else:
            self.surface.set_scroll_active(region, False)
            self.stop(region)

    def start(self, region: str, overflow: float) -> None:
        """Begin the scroll loop for a region, replacing any previous one."""
        self.stop(region)
        if overflow <= 0:
            return

        animation = RegionAnimation(overflow=overflow)
        self.animations[region] = animation
        self.surface.set_offset(region, 0)
        self.logger.debug("Marquee for %s: %.1fpx overflow", region, overflow)
        self._wait(region, animation)

    def stop(self, region: str) -> None:
        """Cancel everything pending for a region and put its text back at the start."""
        self.scheduler.cancel(self._measure_handles.pop(region, None))

        animation = self.animations.pop(region, None)
        if animation is None:
            return

        self.scheduler.cancel(animation.handle)
        animation.handle = None
        if animation.listening:
            self.surface.clear_transition_listener(region)
            animation.listening = False
        animation.state = MarqueeState.IDLE
        self.surface.set_offset(region, 0)

    def stop_all(self) -> None:
        for region in list(self.animations) + list(self._measure_handles):
            self.stop(region)

    def _is_current(self, region: str, animation: RegionAnimation) -> bool:
        return self.animations.get(region) is animation

    def _wait(self, region: str, animation: RegionAnimation) -> None:
        animation.state = MarqueeState.WAITING
        animation.offset = 0.0
        animation.handle = self.scheduler.call_later(
            self.hold_delay_ms, lambda: self._begin_scroll(region, animation)
        )

    def _begin_scroll(self, region: str, animation: RegionAnimation) -> None:
        if not self._is_current(region, animation):
            return
        animation.state = MarqueeState.SCROLLING
        animation.handle = self.scheduler.request_frame(lambda: self._tick(region, animation))

    def _tick(self, region: str, animation: RegionAnimation) -> None:
        if not self._is_current(region, animation):
            return

        animation.offset += self.speed
        if animation.offset >= animation.overflow:
            animation.offset = animation.overflow
            animation.state = MarqueeState.HELD
            self.surface.set_offset(region, animation.overflow)
            # let the final position paint before easing back
            animation.handle = self.scheduler.request_frame(
                lambda: self._reset(region, animation)
            )
            return

        self.surface.set_offset(region, animation.offset)
        animation.handle = self.scheduler.request_frame(lambda: self._tick(region, animation))

    def _reset(self, region: str, animation: RegionAnimation) -> None:
        if not self._is_current(region, animation):
            return

        animation.state = MarqueeState.RESETTING
        animation.listening = True
        # the completion event is not guaranteed, so a timeout races it
        animation.handle = self.scheduler.call_later(
            self.reset_animation_ms + RESET_FALLBACK_GRACE_MS,
            lambda: self._reset_done(region, animation),
        )
        self.surface.set_offset(
            region,
            0,
            transition_ms=self.reset_animation_ms,
            on_complete=lambda: self._reset_done(region, animation),
        )

    def _reset_done(self, region: str, animation: RegionAnimation) -> None:
        if not self._is_current(region, animation) or animation.state is not MarqueeState.RESETTING:
            return

        if animation.listening:
            self.surface.clear_transition_listener(region)
            animation.listening = False
        self.scheduler.cancel(animation.handle)
        animation.handle = None
        self._wait(region, animation)
