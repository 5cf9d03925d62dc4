"""
Tests for listen address resolution.
"""

import pytest

from npoverlay.config_manager import ConfigManager
from npoverlay.main import resolve_listen
from npoverlay.models import AppConfig


@pytest.fixture
def config_manager():
    config = AppConfig.model_validate(
        {
            "clientName": "npoverlay",
            "apiVersion": "1.16.1",
            "listen": {"host": "127.0.0.1", "port": 4000},
            "users": [
                {
                    "slug": "alice",
                    "serverUrl": "https://music.example.com",
                    "username": "alice",
                    "password": "secret",
                }
            ],
        }
    )
    return ConfigManager(config=config)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("HOST", "LISTEN_HOST", "PORT", "LISTEN_PORT"):
        monkeypatch.delenv(name, raising=False)


def test_config_file(config_manager):
    assert resolve_listen(config_manager) == ("127.0.0.1", 4000)


def test_environment_beats_config_file(config_manager, monkeypatch):
    monkeypatch.setenv("LISTEN_HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "5000")
    assert resolve_listen(config_manager) == ("0.0.0.0", 5000)


def test_command_line_beats_environment(config_manager, monkeypatch):
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "5000")
    assert resolve_listen(config_manager, "localhost", 6000) == ("localhost", 6000)


def test_invalid_environment_port_is_ignored(config_manager, monkeypatch):
    monkeypatch.setenv("PORT", "http")
    assert resolve_listen(config_manager) == ("127.0.0.1", 4000)
