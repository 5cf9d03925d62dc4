"""
Subsonic API client for npoverlay.

Builds authenticated request URLs and wraps the two upstream operations the
relay needs: "now playing" and "cover art".
"""

import hashlib
import logging
import secrets
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urljoin, urlsplit

import requests

from .errors import ConfigurationError, UpstreamError
from .models import NowPlayingEntry, UserConfig

DEFAULT_TIMEOUT_SECONDS = 10.0


def random_salt(length: int = 12) -> str:
    """Hex-encoded salt from `length` random bytes."""
    return secrets.token_hex(length)


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class SubsonicClient:
    """Client for the Subsonic-compatible media server API."""

    NOW_PLAYING_ENDPOINT = "/rest/getNowPlaying.view"
    COVER_ART_ENDPOINT = "/rest/getCoverArt.view"
    COVER_ART_SIZE = 500

    def __init__(
        self,
        client_name: str,
        api_version: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize SubsonicClient.

        Args:
            client_name: Client identity sent as the `c` parameter
            api_version: API version sent as the `v` parameter
            session: requests Session to use (default: a new one)
            timeout: Timeout in seconds for every upstream request
        """
        self.client_name = client_name
        self.api_version = api_version
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def build_auth_params(self, user: UserConfig) -> Dict[str, str]:
        """
        Build the authentication query parameters for a user.

        Exactly one credential mode is used, in order of precedence: salted
        token computed from the password, precomputed token and salt, then
        plaintext password.

        Args:
            user: Configured user

        Returns:
            Ordered dict of query parameters

        Raises:
            ConfigurationError: If the user has no usable credential
        """
        params = {
            "u": user.username,
            "v": self.api_version,
            "c": self.client_name,
            "f": "json",
        }

        if user.use_token_auth:
            if not user.password:
                raise ConfigurationError(
                    f"User {user.slug} is configured for token auth but no password was provided."
                )
            salt = random_salt()
            params["t"] = md5_hex(user.password + salt)
            params["s"] = salt
        elif user.token and user.salt:
            params["t"] = user.token
            params["s"] = user.salt
        elif user.password:
            params["p"] = user.password
        else:
            raise ConfigurationError(
                f"No valid authentication credentials found for user {user.slug}."
            )

        return params

    def build_url(
        self, user: UserConfig, endpoint: str, query: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Build a fully authenticated URL for an API endpoint.

        Args:
            user: Configured user
            endpoint: Absolute endpoint path (e.g. /rest/getNowPlaying.view)
            query: Extra query parameters; None values are skipped

        Returns:
            URL string
        """
        params = self.build_auth_params(user)
        for key, value in (query or {}).items():
            if value is not None:
                params[key] = str(value)
        return f"{urljoin(user.server_url, endpoint)}?{urlencode(params)}"

    def _get(self, url: str, stream: bool = False, **kwargs) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout, stream=stream, **kwargs)
        except requests.RequestException as e:
            # exception text carries the full URL, credentials included
            raise UpstreamError(
                f"Request to media server {urlsplit(url).netloc} failed: {type(e).__name__}"
            ) from None

        if not response.ok:
            response.close()
            raise UpstreamError(
                f"Request failed with status {response.status_code}: {response.reason}"
            )
        return response

    def fetch_now_playing(self, user: UserConfig) -> Optional[NowPlayingEntry]:
        """
        Get the most recent now-playing entry for a user.

        Args:
            user: Configured user

        Returns:
            The user's entry with the smallest minutes-ago, or None if the
            user is not playing anything

        Raises:
            ConfigurationError: If the user has no usable credential
            UpstreamError: On transport failure, HTTP error, or error envelope
        """
        url = self.build_url(user, self.NOW_PLAYING_ENDPOINT)
        self.logger.debug("Fetching now playing for %s", user.slug)
        response = self._get(url, headers={"Accept": "application/json"})

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from media server: {e}") from e

        body = payload.get("subsonic-response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            raise UpstreamError("Subsonic getNowPlaying failed: missing subsonic-response")

        if body.get("status") != "ok":
            error = body.get("error") or {}
            message = error.get("message") or "Unknown error"
            raise UpstreamError(f"Subsonic getNowPlaying failed: {message}")

        entries = self._normalize_entries((body.get("nowPlaying") or {}).get("entry"))
        matches = [entry for entry in entries if entry.username == user.username]
        if not matches:
            return None

        # min() keeps the first of equal candidates
        return min(matches, key=lambda entry: entry.minutes_ago)

    @staticmethod
    def _normalize_entries(raw: Any) -> List[NowPlayingEntry]:
        """The API returns a single object for one listener and a list for several."""
        if not raw:
            return []
        if isinstance(raw, dict):
            raw = [raw]
        return [NowPlayingEntry.from_payload(item) for item in raw if isinstance(item, dict)]

    def fetch_cover_art(self, user: UserConfig, cover_id: str) -> requests.Response:
        """
        Request cover art for streaming pass-through.

        The response is opened with streaming enabled; the caller forwards its
        headers, reads the body in chunks and closes it.

        Args:
            user: Configured user
            cover_id: Cover art identifier from a now-playing entry

        Returns:
            Open requests Response

        Raises:
            ConfigurationError: If the user has no usable credential
            UpstreamError: On transport failure or HTTP error
        """
        url = self.build_url(
            user, self.COVER_ART_ENDPOINT, {"id": cover_id, "size": self.COVER_ART_SIZE}
        )
        self.logger.debug("Fetching cover art %s for %s", cover_id, user.slug)
        try:
            return self._get(url, stream=True)
        except UpstreamError as e:
            raise UpstreamError(f"Failed to download cover art: {e}") from None
