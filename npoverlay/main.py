"""
Main entry point for the npoverlay relay server.

Loads configuration and starts the web server.
"""

import argparse
import logging
import os
import sys
from typing import Optional, Tuple

import uvicorn

from .config_manager import ConfigManager
from .errors import ConfigurationError
from .web.server import create_app

logger = logging.getLogger(__name__)


def resolve_listen(
    config_manager: ConfigManager,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> Tuple[str, int]:
    """
    Resolve the listen address.

    Priority: 1) command line, 2) HOST/LISTEN_HOST and PORT/LISTEN_PORT env vars,
    3) "listen" section of the config file.
    """
    config_host, config_port = config_manager.get_listen()

    env_host = os.environ.get("HOST") or os.environ.get("LISTEN_HOST")
    env_port = os.environ.get("PORT") or os.environ.get("LISTEN_PORT")

    resolved_host = host or (env_host.strip() if env_host and env_host.strip() else config_host)

    resolved_port = ConfigManager.parse_port(port) or ConfigManager.parse_port(env_port)
    if resolved_port is None:
        if env_port:
            logger.warning("Ignoring invalid port from environment: %s", env_port)
        resolved_port = config_port

    return resolved_host, resolved_port


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="npoverlay - now playing overlay relay")
    parser.add_argument("--config", help="Path to users.json (default: $CONFIG_PATH or config/users.json)")
    parser.add_argument("--host", help="Listen host")
    parser.add_argument("--port", type=int, help="Listen port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config_manager = ConfigManager(args.config)
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    host, port = resolve_listen(config_manager, args.host, args.port)
    app = create_app(config_manager)

    logger.info("=" * 60)
    logger.info("npoverlay is running!")
    logger.info("Server listening on http://%s:%d", host, port)
    for user in config_manager.users:
        logger.info("Overlay for %s: http://%s:%d/overlay/%s", user.slug, host, port, user.slug)
    logger.info("=" * 60)

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    try:
        server.run()
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
