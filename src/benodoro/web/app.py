"""FastAPI control surface served by the app process."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from benodoro import __version__
from benodoro.core.config import Config, get_config
from benodoro.session.manager import SessionManager

logger = logging.getLogger(__name__)


def create_app(manager: SessionManager, config: Config | None = None) -> FastAPI:
    """Create the FastAPI application bound to ``manager``."""
    config = config or get_config()

    app = FastAPI(
        title="benodoro",
        description="Pomodoro session control and companion endpoint",
        version=__version__,
    )

    app.state.manager = manager
    app.state.widget_interval_seconds = config.widget.entry_interval_seconds

    from benodoro.web.routes import api

    app.include_router(api.router, prefix="/api")

    return app
