"""
Polling loop for the overlay client.

Fetches the relay's now-playing snapshot for one user, hands it to the
display state machine and schedules the next poll. A failed poll is retried
later and leaves the display alone.
"""

import logging
import threading
from typing import Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ..errors import ClientPollError
from ..models import NowPlayingSnapshot
from .display import DisplayStateMachine
from .scheduler import Handle, Scheduler

DEFAULT_REFRESH_MS = 5000
REQUEST_TIMEOUT_SECONDS = 10


class PollingLoop:
    """Polls the relay for one user, with at most one poll pending at a time."""

    def __init__(
        self,
        relay_url: str,
        slug: str,
        display: DisplayStateMachine,
        scheduler: Scheduler,
        session: Optional[requests.Session] = None,
        default_interval_ms: float = DEFAULT_REFRESH_MS,
        fetch_in_background: bool = False,
    ):
        """
        Initialize PollingLoop.

        Args:
            relay_url: Base URL of the relay
            slug: User slug to poll
            display: State machine that receives each snapshot
            scheduler: Scheduler the loop runs on
            session: requests Session (default: a new one)
            default_interval_ms: Minimum interval between successful polls;
                failed polls are retried after twice this
            fetch_in_background: Run the HTTP request on a worker thread and
                post the result back to the scheduler
        """
        self.url = f"{relay_url.rstrip('/')}/api/users/{quote(slug, safe='')}/now-playing"
        self.slug = slug
        self.display = display
        self.scheduler = scheduler
        self.session = session or requests.Session()
        self.default_interval_ms = default_interval_ms
        self.fetch_in_background = fetch_in_background
        self.last_snapshot: Optional[NowPlayingSnapshot] = None
        self.consecutive_failures = 0
        self.logger = logging.getLogger(__name__)
        self._timer: Optional[Handle] = None
        self._in_flight = False

    def start(self) -> None:
        """Poll now; every poll schedules the next one."""
        self.poll()

    def stop(self) -> None:
        self.scheduler.cancel(self._timer)
        self._timer = None

    def schedule_next(self, delay_ms: float) -> None:
        """Replace any pending poll with one delay_ms from now."""
        self.scheduler.cancel(self._timer)
        self._timer = self.scheduler.call_later(delay_ms, self.poll)

    def next_delay_ms(self, snapshot: NowPlayingSnapshot) -> float:
        return max(snapshot.refresh_interval_ms or 0, self.default_interval_ms)

    def fetch_snapshot(self) -> NowPlayingSnapshot:
        """
        Fetch one snapshot from the relay.

        Raises:
            ClientPollError: On transport failure, non-2xx status, or a malformed body
        """
        try:
            response = self.session.get(self.url, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise ClientPollError(f"Request to {self.url} failed: {e}") from e

        if not response.ok:
            raise ClientPollError(f"Request failed with status {response.status_code}")

        try:
            return NowPlayingSnapshot.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ClientPollError(f"Malformed now-playing response: {e}") from e

    def poll(self) -> None:
        """Fetch a snapshot and apply it (scheduler callback)."""
        self.stop()
        if self._in_flight:
            return

        if not self.fetch_in_background:
            self._handle_result(*self._fetch())
            return

        self._in_flight = True
        threading.Thread(target=self._fetch_in_background, daemon=True, name="NowPlayingPoll").start()

    def _fetch(self):
        try:
            return self.fetch_snapshot(), None
        except ClientPollError as e:
            return None, e

    def _fetch_in_background(self) -> None:
        snapshot, error = self._fetch()
        self.scheduler.post(lambda: self._handle_result(snapshot, error))

    def _handle_result(
        self, snapshot: Optional[NowPlayingSnapshot], error: Optional[ClientPollError]
    ) -> None:
        self._in_flight = False
        if error is not None or snapshot is None:
            self.consecutive_failures += 1
            self.logger.error(
                "Failed to fetch now playing data (%d in a row): %s", self.consecutive_failures, error
            )
            self.schedule_next(self.default_interval_ms * 2)
            return

        self.consecutive_failures = 0
        try:
            self.display.apply_snapshot(snapshot)
            self.last_snapshot = snapshot
        finally:
            self.schedule_next(self.next_delay_ms(snapshot))
