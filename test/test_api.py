"""
API endpoint tests for npoverlay.

The SubsonicClient is mocked; the FastAPI app is exercised through TestClient.
"""

import logging
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from npoverlay.config_manager import ConfigManager
from npoverlay.errors import ConfigurationError, UpstreamError
from npoverlay.models import AppConfig, NowPlayingEntry
from npoverlay.subsonic import SubsonicClient
from npoverlay.web.server import create_app


@pytest.fixture
def config_manager():
    config = AppConfig.model_validate(
        {
            "clientName": "npoverlay",
            "apiVersion": "1.16.1",
            "refreshIntervalMs": 4000,
            "users": [
                {
                    "slug": "alice",
                    "serverUrl": "https://music.example.com",
                    "username": "alice",
                    "password": "secret",
                    "theme": "fancy",
                    "themeOptions": {"shadowStyle": "macos"},
                },
                {
                    "slug": "bob",
                    "serverUrl": "https://music.example.com",
                    "username": "bob",
                    "password": "secret",
                },
            ],
        }
    )
    return ConfigManager(config=config)


@pytest.fixture
def mock_subsonic():
    """Create a mock SubsonicClient."""
    subsonic = Mock(spec=SubsonicClient)
    subsonic.fetch_now_playing.return_value = None
    return subsonic


@pytest.fixture
def client(config_manager, mock_subsonic):
    """Create test client."""
    return TestClient(create_app(config_manager, subsonic_client=mock_subsonic))


def playing_entry(**overrides):
    data = dict(
        id="tr-1",
        title="Song",
        artist="Band",
        album="Record",
        cover_art="al 1/x",
        username="alice",
        minutes_ago=0,
    )
    data.update(overrides)
    return NowPlayingEntry(**data)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestNowPlaying:
    """Tests for GET /api/users/{slug}/now-playing."""

    def test_playing(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.return_value = playing_entry()

        response = client.get("/api/users/alice/now-playing")

        assert response.status_code == 200
        data = response.json()
        assert data["playing"] is True
        assert data["track"] == {"id": "tr-1", "title": "Song", "artist": "Band", "album": "Record"}
        assert data["coverArt"] == {"id": "al 1/x", "url": "/api/users/alice/cover-art/al%201%2Fx"}
        assert data["theme"] == "fancy"
        assert data["themeOptions"] == {"shadowStyle": "macos"}
        assert data["refreshIntervalMs"] == 4000
        assert isinstance(data["fetchedAt"], int)

    def test_playing_without_cover(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.return_value = playing_entry(cover_art=None, title=None)

        data = client.get("/api/users/alice/now-playing").json()

        assert data["coverArt"] is None
        assert data["track"]["title"] is None

    def test_not_playing(self, client, mock_subsonic):
        data = client.get("/api/users/bob/now-playing").json()

        assert data["playing"] is False
        assert data["track"] is None
        assert data["theme"] == "vanilla"
        assert data["themeOptions"] == {"shadowStyle": "none"}

    def test_unknown_slug(self, client, mock_subsonic):
        response = client.get("/api/users/nobody/now-playing")

        assert response.status_code == 404
        assert response.json() == {"message": "Unknown user slug: nobody"}
        mock_subsonic.fetch_now_playing.assert_not_called()

    def test_upstream_failure(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.side_effect = UpstreamError(
            "Subsonic getNowPlaying failed: Wrong credentials"
        )

        response = client.get("/api/users/alice/now-playing")

        assert response.status_code == 502
        assert response.json() == {"message": "Subsonic getNowPlaying failed: Wrong credentials"}

    def test_missing_credentials(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.side_effect = ConfigurationError("No valid credentials")

        response = client.get("/api/users/alice/now-playing")

        assert response.status_code == 500
        assert response.json() == {"message": "No valid credentials"}


class TestCoverArt:
    """Tests for GET /api/users/{slug}/cover-art/{cover_id}."""

    def test_streams_body_and_headers(self, client, mock_subsonic):
        upstream = Mock()
        upstream.status_code = 200
        upstream.headers = {
            "Content-Type": "image/jpeg",
            "Cache-Control": "max-age=3600",
            "Transfer-Encoding": "chunked",
        }
        upstream.raw.stream.return_value = iter([b"\xff\xd8", b"jpeg", b"\xff\xd9"])
        mock_subsonic.fetch_cover_art.return_value = upstream

        response = client.get("/api/users/alice/cover-art/al-1")

        assert response.status_code == 200
        assert response.content == b"\xff\xd8jpeg\xff\xd9"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["cache-control"] == "max-age=3600"
        mock_subsonic.fetch_cover_art.assert_called_once()
        assert mock_subsonic.fetch_cover_art.call_args.args[1] == "al-1"
        upstream.raw.stream.assert_called_once()
        assert upstream.raw.stream.call_args.kwargs["decode_content"] is False
        upstream.close.assert_called()

    def test_upstream_closed_without_consuming_body(self, config_manager, mock_subsonic):
        upstream = Mock()
        upstream.status_code = 200
        upstream.headers = {"Content-Type": "image/jpeg"}
        mock_subsonic.fetch_cover_art.return_value = upstream
        app = create_app(config_manager, subsonic_client=mock_subsonic)
        path = "/api/users/{slug}/cover-art/{cover_id}"
        route = next(r for r in app.routes if getattr(r, "path", "") == path)

        response = route.endpoint(
            slug="alice",
            cover_id="al-1",
            user=config_manager.get_user("alice"),
            subsonic=mock_subsonic,
        )

        # the client went away before any chunk was sent
        upstream.raw.stream.assert_not_called()
        assert response.background is not None
        response.background.func()
        upstream.close.assert_called_once()

    def test_unknown_slug(self, client):
        response = client.get("/api/users/nobody/cover-art/al-1")
        assert response.status_code == 404

    def test_upstream_failure(self, client, mock_subsonic):
        mock_subsonic.fetch_cover_art.side_effect = UpstreamError("boom")

        response = client.get("/api/users/alice/cover-art/al-1")

        assert response.status_code == 502
        assert response.json() == {"message": "Unable to load cover art"}


class TestOverlayPage:
    def test_renders_current_track(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.return_value = playing_entry()

        response = client.get("/overlay/alice")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Song" in response.text
        assert 'data-theme="fancy"' in response.text
        assert 'content="4"' in response.text

    def test_renders_placeholder_on_upstream_failure(self, client, mock_subsonic):
        mock_subsonic.fetch_now_playing.side_effect = UpstreamError("down")

        response = client.get("/overlay/alice")

        assert response.status_code == 200
        assert "No Now Playing" in response.text

    def test_unknown_slug(self, client):
        assert client.get("/overlay/nobody").status_code == 404


def test_root_redirects_to_first_overlay(client):
    response = client.get("/", follow_redirects=False)
    assert response.status_code in (302, 307)
    assert response.headers["location"] == "/overlay/alice"


def test_unknown_route(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert "message" in response.json()


class TestCredentialsStayOutOfLogs:
    """Media server credentials never reach the logs, tracebacks included."""

    @pytest.fixture
    def unreachable_client(self):
        config = AppConfig.model_validate(
            {
                "clientName": "npoverlay",
                "apiVersion": "1.16.1",
                "users": [
                    {
                        "slug": "alice",
                        # nothing listens on the discard port
                        "serverUrl": "http://127.0.0.1:9",
                        "username": "alice",
                        "password": "SUPERSECRETPW",
                    }
                ],
            }
        )
        subsonic = SubsonicClient("npoverlay", "1.16.1", timeout=2)
        return TestClient(create_app(ConfigManager(config=config), subsonic_client=subsonic))

    def assert_password_not_logged(self, caplog):
        formatter = logging.Formatter("%(message)s")
        for record in caplog.records:
            assert "SUPERSECRETPW" not in formatter.format(record)
        assert "SUPERSECRETPW" not in caplog.text

    def test_now_playing(self, unreachable_client, caplog):
        caplog.set_level(logging.DEBUG, logger="npoverlay")

        response = unreachable_client.get("/api/users/alice/now-playing")

        assert response.status_code == 502
        assert "SUPERSECRETPW" not in response.text
        assert any(record.exc_info for record in caplog.records)
        self.assert_password_not_logged(caplog)

    def test_cover_art(self, unreachable_client, caplog):
        caplog.set_level(logging.DEBUG, logger="npoverlay")

        response = unreachable_client.get("/api/users/alice/cover-art/al-1")

        assert response.status_code == 502
        self.assert_password_not_logged(caplog)
