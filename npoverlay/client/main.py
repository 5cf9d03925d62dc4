"""
Main entry point for the npoverlay client.

Polls a relay for one user and renders the animated overlay to a PNG file.
"""

import argparse
import logging
import signal

from .display import DisplayStateMachine
from .marquee import TextMarqueeAnimator
from .polling import DEFAULT_REFRESH_MS, PollingLoop
from .render import FrameLoop, ImageSurface
from .scheduler import ThreadScheduler

logger = logging.getLogger(__name__)


class OverlayClient:
    """Wires the client components together on one scheduler."""

    def __init__(
        self,
        relay_url: str,
        slug: str,
        output_path: str,
        width: int = 880,
        height: int = 380,
        fps: int = 30,
        default_interval_ms: float = DEFAULT_REFRESH_MS,
    ):
        logger.info("Initializing overlay client for %s at %s", slug, relay_url)

        self.scheduler = ThreadScheduler()
        self.surface = ImageSurface(relay_url, self.scheduler, width=width, height=height)
        self.marquee = TextMarqueeAnimator(self.surface, self.scheduler)
        self.display = DisplayStateMachine(self.surface, self.marquee)
        self.polling = PollingLoop(
            relay_url,
            slug,
            self.display,
            self.scheduler,
            default_interval_ms=default_interval_ms,
            fetch_in_background=True,
        )
        self.frames = FrameLoop(self.surface, self.scheduler, output_path, fps=fps)

    def run(self) -> None:
        """Run until stop() is called."""
        self.scheduler.post(self.display.reset)
        self.scheduler.post(self.polling.start)
        self.scheduler.post(self.frames.start)
        logger.info("Writing frames to %s", self.frames.output_path)
        self.scheduler.run_forever()

    def stop(self) -> None:
        logger.info("Stopping overlay client...")
        self.scheduler.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="npoverlay client - render a now playing overlay")
    parser.add_argument("relay_url", help="Base URL of the npoverlay relay, e.g. http://localhost:3000")
    parser.add_argument("slug", help="User slug to display")
    parser.add_argument("--output", default="overlay.png", help="PNG file to write frames to")
    parser.add_argument("--width", type=int, default=880, help="Frame width in pixels")
    parser.add_argument("--height", type=int, default=380, help="Frame height in pixels")
    parser.add_argument("--fps", type=int, default=30, help="Frames rendered per second")
    parser.add_argument(
        "--default-interval-ms",
        type=float,
        default=DEFAULT_REFRESH_MS,
        help="Minimum poll interval; failed polls retry after twice this",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    client = OverlayClient(
        args.relay_url,
        args.slug,
        args.output,
        width=args.width,
        height=args.height,
        fps=args.fps,
        default_interval_ms=args.default_interval_ms,
    )
    signal.signal(signal.SIGTERM, lambda _signum, _frame: client.stop())
    try:
        client.run()
    except KeyboardInterrupt:
        client.stop()


if __name__ == "__main__":
    main()
