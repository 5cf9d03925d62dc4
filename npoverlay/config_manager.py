"""
Configuration management using a JSON file.

Loads the process-wide settings and the configured users, and resolves the
per-user values (theme, theme options, refresh interval) with defaults.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .errors import ConfigurationError
from .models import AppConfig, UserConfig

THEME_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$", re.IGNORECASE)
ALLOWED_SHADOW_STYLES = ("none", "macos")


def default_config_path() -> Path:
    """Resolve the config file from CONFIG_PATH, relative to the working directory."""
    override = os.environ.get("CONFIG_PATH")
    if override:
        return Path.cwd() / override
    return Path.cwd() / "config" / "users.json"


class ConfigManager:
    """Manages configuration loaded from the users file."""

    # Default configuration values
    DEFAULTS = {
        "theme": "vanilla",
        "refresh_interval_ms": 5000,
        "listen_host": "0.0.0.0",
        "listen_port": 3000,
        "upstream_timeout_seconds": 10.0,
        "shadow_style": "none",
    }

    def __init__(self, config_path: Optional[Path] = None, config: Optional[AppConfig] = None):
        """
        Initialize ConfigManager.

        Args:
            config_path: Path to the JSON users file (default: CONFIG_PATH or config/users.json)
            config: Already parsed configuration (skips reading the file)

        Raises:
            ConfigurationError: If the file is missing, malformed, or has no users
        """
        self.logger = logging.getLogger(__name__)
        if config is None:
            self.config_path = Path(config_path) if config_path else default_config_path()
            config = self._read_config_file(self.config_path)
        else:
            self.config_path = None
        if not config.users:
            raise ConfigurationError(
                'Configuration must include at least one user in the "users" array.'
            )
        self.config = config
        self.logger.info("Loaded configuration with %d user(s)", len(config.users))

    def _read_config_file(self, path: Path) -> AppConfig:
        if not path.exists():
            raise ConfigurationError(f"Missing configuration file. Expected at {path}")

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {e}") from e

        if not isinstance(raw, dict) or not isinstance(raw.get("users"), list) or not raw["users"]:
            raise ConfigurationError(
                'Configuration must include at least one user in the "users" array.'
            )

        try:
            return AppConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

    @property
    def client_name(self) -> str:
        return self.config.client_name

    @property
    def api_version(self) -> str:
        return self.config.api_version

    @property
    def users(self) -> List[UserConfig]:
        return list(self.config.users)

    def get_user(self, slug: str) -> Optional[UserConfig]:
        """
        Get a configured user by slug.

        Args:
            slug: URL slug of the user

        Returns:
            UserConfig, or None if no user has that slug
        """
        for user in self.config.users:
            if user.slug == slug:
                return user
        return None

    def get_default_slug(self) -> str:
        """Slug of the first configured user."""
        return self.config.users[0].slug

    def get_refresh_interval_ms(self, user: Optional[UserConfig] = None) -> float:
        """Poll interval for a user: positive user override, then global value, then default."""
        override = user.refresh_interval_ms if user else None
        if override is not None and override > 0:
            return override
        if self.config.refresh_interval_ms is not None:
            return self.config.refresh_interval_ms
        return self.DEFAULTS["refresh_interval_ms"]

    @staticmethod
    def normalize_theme(theme: Optional[str]) -> Optional[str]:
        """Lowercase and validate a theme name, returning None if unusable."""
        if not theme:
            return None
        trimmed = theme.strip().lower()
        if not trimmed or not THEME_NAME_PATTERN.match(trimmed):
            return None
        return trimmed

    def get_theme(self, user: Optional[UserConfig] = None) -> str:
        """Theme for a user: user theme, then default theme, then built-in default."""
        user_theme = self.normalize_theme(user.theme if user else None)
        if user_theme:
            return user_theme

        default_theme = self.normalize_theme(self.config.default_theme)
        if default_theme:
            return default_theme

        return self.DEFAULTS["theme"]

    def get_theme_options(self, user: Optional[UserConfig] = None) -> Dict[str, Any]:
        """Theme options for a user merged over the defaults; unknown values are dropped."""
        options = {"shadowStyle": self.DEFAULTS["shadow_style"]}
        if user is None or user.theme_options is None:
            return options

        shadow_style = user.theme_options.shadow_style
        if shadow_style:
            candidate = shadow_style.lower()
            if candidate in ALLOWED_SHADOW_STYLES:
                options["shadowStyle"] = candidate
            else:
                self.logger.warning(
                    "Ignoring unknown shadow style %r for user %s", shadow_style, user.slug
                )
        return options

    def get_upstream_timeout(self) -> float:
        """Timeout in seconds for requests to the media server."""
        timeout = self.config.upstream_timeout_seconds
        if timeout is None or timeout <= 0:
            return self.DEFAULTS["upstream_timeout_seconds"]
        return timeout

    def get_listen(self) -> Tuple[str, int]:
        """
        Get the listen address from the config file.

        Returns:
            (host, port) with defaults applied for missing or invalid values
        """
        listen = self.config.listen
        host = self.DEFAULTS["listen_host"]
        port = self.DEFAULTS["listen_port"]
        if listen is None:
            return host, port

        if isinstance(listen.host, str) and listen.host.strip():
            host = listen.host.strip()

        normalized = self.parse_port(listen.port)
        if normalized is not None:
            port = normalized
        elif listen.port is not None:
            self.logger.warning("Invalid listen port %r, using %d", listen.port, port)
        return host, port

    @staticmethod
    def parse_port(value: Any) -> Optional[int]:
        """Return value as a valid TCP port, or None."""
        if isinstance(value, bool) or value is None:
            return None
        try:
            port = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None
        if 0 < port < 65536:
            return port
        return None
