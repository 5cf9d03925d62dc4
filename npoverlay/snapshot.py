"""
Builds the relay's now-playing snapshot from an upstream entry.
"""

import time
from typing import Optional
from urllib.parse import quote

from .config_manager import ConfigManager
from .models import (
    NowPlayingEntry,
    NowPlayingSnapshot,
    SnapshotCoverArt,
    SnapshotThemeOptions,
    SnapshotTrack,
    UserConfig,
)


def cover_art_url(slug: str, cover_id: str) -> str:
    """Relay path for a user's cover art."""
    return f"/api/users/{slug}/cover-art/{quote(cover_id, safe='')}"


def build_snapshot(
    config: ConfigManager,
    user: UserConfig,
    entry: Optional[NowPlayingEntry],
) -> NowPlayingSnapshot:
    """
    Build the snapshot served to overlay clients.

    Args:
        config: ConfigManager for theme and refresh interval resolution
        user: The user the snapshot is for
        entry: The user's now-playing entry, or None when nothing is playing

    Returns:
        NowPlayingSnapshot stamped with the current time
    """
    snapshot = NowPlayingSnapshot(
        playing=entry is not None,
        theme=config.get_theme(user),
        theme_options=SnapshotThemeOptions.model_validate(config.get_theme_options(user)),
        refresh_interval_ms=config.get_refresh_interval_ms(user),
        fetched_at=int(time.time() * 1000),
    )
    if entry is None:
        return snapshot

    snapshot.track = SnapshotTrack(
        id=entry.id,
        title=entry.title,
        artist=entry.artist,
        album=entry.album,
    )
    if entry.cover_art:
        snapshot.cover_art = SnapshotCoverArt(
            id=entry.cover_art, url=cover_art_url(user.slug, entry.cover_art)
        )
    return snapshot
