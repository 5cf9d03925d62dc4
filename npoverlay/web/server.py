"""
FastAPI web server for npoverlay.

Relays now-playing data and cover art from the media server and serves the
overlay page.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional

import requests
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config_manager import ConfigManager
from ..errors import ConfigurationError, UpstreamError
from ..models import NowPlayingSnapshot, UserConfig
from ..snapshot import build_snapshot
from ..subsonic import SubsonicClient

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
COVER_ART_CHUNK_SIZE = 64 * 1024
HOP_BY_HOP_HEADERS = {"connection", "keep-alive", "transfer-encoding"}


# Dependencies to get components
def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def get_subsonic_client(request: Request) -> SubsonicClient:
    """Get SubsonicClient from app state."""
    return request.app.state.subsonic_client


def get_user(slug: str, config: ConfigManager = Depends(get_config_manager)) -> UserConfig:
    """Resolve the user for a slug path parameter, or answer 404."""
    user = config.get_user(slug)
    if not user:
        raise HTTPException(status_code=404, detail=f"Unknown user slug: {slug}")
    return user


def _stream_body(upstream: requests.Response) -> Iterator[bytes]:
    """Yield the raw upstream body in chunks, closing the response at the end."""
    try:
        yield from upstream.raw.stream(COVER_ART_CHUNK_SIZE, decode_content=False)
    finally:
        upstream.close()


def create_app(
    config_manager: ConfigManager,
    subsonic_client: Optional[SubsonicClient] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config_manager: ConfigManager instance
        subsonic_client: SubsonicClient instance (default: built from config)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="npoverlay", version="1.0.0")

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    if subsonic_client is None:
        subsonic_client = SubsonicClient(
            config_manager.client_name,
            config_manager.api_version,
            timeout=config_manager.get_upstream_timeout(),
        )

    # Store components in app state
    app.state.config_manager = config_manager
    app.state.subsonic_client = subsonic_client

    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Answer every HTTP error with a {message} body."""
        return JSONResponse({"message": exc.detail}, status_code=exc.status_code)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get(
        "/api/users/{slug}/now-playing",
        response_model=NowPlayingSnapshot,
        response_model_by_alias=True,
    )
    def now_playing(
        slug: str,
        user: UserConfig = Depends(get_user),
        config: ConfigManager = Depends(get_config_manager),
        subsonic: SubsonicClient = Depends(get_subsonic_client),
    ):
        """Get the user's current track as a snapshot for overlay clients."""
        try:
            entry = subsonic.fetch_now_playing(user)
        except ConfigurationError as e:
            logger.error("Misconfigured credentials for %s: %s", slug, e)
            raise HTTPException(status_code=500, detail=str(e))
        except UpstreamError as e:
            logger.error("Failed to retrieve now playing for %s: %s", slug, e, exc_info=True)
            raise HTTPException(status_code=502, detail=str(e))

        return build_snapshot(config, user, entry)

    @app.get("/api/users/{slug}/cover-art/{cover_id}")
    def cover_art(
        slug: str,
        cover_id: str,
        user: UserConfig = Depends(get_user),
        subsonic: SubsonicClient = Depends(get_subsonic_client),
    ):
        """Stream cover art from the media server with its headers."""
        try:
            upstream = subsonic.fetch_cover_art(user, cover_id)
        except ConfigurationError as e:
            logger.error("Misconfigured credentials for %s: %s", slug, e)
            raise HTTPException(status_code=500, detail=str(e))
        except UpstreamError as e:
            logger.error("Failed to proxy cover art for %s: %s", slug, e, exc_info=True)
            raise HTTPException(status_code=502, detail="Unable to load cover art")

        headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in HOP_BY_HOP_HEADERS
        }
        return StreamingResponse(
            _stream_body(upstream),
            status_code=upstream.status_code,
            headers=headers,
            # also runs when the client disconnects mid-stream
            background=BackgroundTask(upstream.close),
        )

    @app.get("/overlay/{slug}", response_class=HTMLResponse)
    def overlay(
        request: Request,
        slug: str,
        user: UserConfig = Depends(get_user),
        config: ConfigManager = Depends(get_config_manager),
        subsonic: SubsonicClient = Depends(get_subsonic_client),
    ):
        """Serve the overlay page, rendered with the current track."""
        try:
            entry = subsonic.fetch_now_playing(user)
        except (ConfigurationError, UpstreamError) as e:
            logger.warning("Rendering overlay for %s without track data: %s", slug, e)
            entry = None

        snapshot = build_snapshot(config, user, entry)
        return templates.TemplateResponse(
            request,
            "overlay.html",
            {
                "slug": slug,
                "snapshot": snapshot,
                "refresh_seconds": max(1, round(snapshot.refresh_interval_ms / 1000)),
            },
        )

    @app.get("/")
    async def index(config: ConfigManager = Depends(get_config_manager)):
        """Redirect to the first configured user's overlay."""
        return RedirectResponse(url=f"/overlay/{config.get_default_slug()}")

    return app
