"""
Data models for npoverlay.

Entities read from the media server are plain dataclasses; configuration and
the relay's wire format are pydantic models so they can be validated on the
way in and serialized with camelCase aliases on the way out.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ShadowStyle = Literal["none", "macos"]


@dataclass
class NowPlayingEntry:
    """One playback event reported by the media server."""

    id: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    cover_art: Optional[str] = None
    username: Optional[str] = None
    minutes_ago: int = 0
    duration: Optional[int] = None
    player_name: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "NowPlayingEntry":
        """Build an entry from a raw `nowPlaying.entry` object."""
        cover_art = data.get("coverArt")
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title"),
            artist=data.get("artist"),
            album=data.get("album"),
            cover_art=str(cover_art) if cover_art is not None else None,
            username=data.get("username"),
            minutes_ago=data.get("minutesAgo") or 0,
            duration=data.get("duration"),
            player_name=data.get("playerName"),
        )


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Configuration models
class ThemeOptions(_CamelModel):
    shadow_style: Optional[str] = Field(default=None, alias="shadowStyle")


class ListenConfig(_CamelModel):
    host: Optional[str] = None
    port: Optional[Any] = None


class UserConfig(_CamelModel):
    """A configured listener identity on a media server."""

    slug: str
    server_url: str = Field(alias="serverUrl")
    username: str
    password: Optional[str] = None
    token: Optional[str] = None
    salt: Optional[str] = None
    use_token_auth: bool = Field(default=False, alias="useTokenAuth")
    refresh_interval_ms: Optional[float] = Field(default=None, alias="refreshIntervalMs")
    theme: Optional[str] = None
    theme_options: Optional[ThemeOptions] = Field(default=None, alias="themeOptions")


class AppConfig(_CamelModel):
    client_name: str = Field(alias="clientName")
    api_version: str = Field(alias="apiVersion")
    refresh_interval_ms: Optional[float] = Field(default=None, alias="refreshIntervalMs")
    default_theme: Optional[str] = Field(default=None, alias="defaultTheme")
    upstream_timeout_seconds: Optional[float] = Field(default=None, alias="upstreamTimeoutSeconds")
    listen: Optional[ListenConfig] = None
    users: List[UserConfig]


# Relay wire format
class SnapshotTrack(_CamelModel):
    id: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None


class SnapshotCoverArt(_CamelModel):
    id: str
    url: str


class SnapshotThemeOptions(_CamelModel):
    shadow_style: str = Field(default="none", alias="shadowStyle")


class NowPlayingSnapshot(_CamelModel):
    """Self-contained description of current playback and display theme."""

    playing: bool
    track: Optional[SnapshotTrack] = None
    cover_art: Optional[SnapshotCoverArt] = Field(default=None, alias="coverArt")
    theme: Optional[str] = None
    theme_options: Optional[SnapshotThemeOptions] = Field(default=None, alias="themeOptions")
    refresh_interval_ms: Optional[float] = Field(default=None, alias="refreshIntervalMs")
    fetched_at: Optional[int] = Field(default=None, alias="fetchedAt")
