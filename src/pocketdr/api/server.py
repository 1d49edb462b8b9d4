"""FastAPI application factory for the PocketDr API server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pocketdr import __version__
from pocketdr.api.engine import create_engine
from pocketdr.config import Config
from pocketdr.prompts.composer import PromptComposer

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The persona template is loaded here, so a misconfigured persona raises
    PromptError before the server starts listening. The chat engine and its
    HTTP client live for the duration of the lifespan.
    """
    resolved_config = config or Config()
    composer = PromptComposer(persona=resolved_config.chat.persona)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = await create_engine(resolved_config, composer=composer)
        app.state.engine = engine
        try:
            yield
        finally:
            await engine.shutdown()

    app = FastAPI(
        title="PocketDr",
        description="Health assistant chat completion service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = resolved_config

    origins = resolved_config.server.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    else:
        logger.info("CORS disabled: no server.cors_origins configured")

    from pocketdr.api.routes import router

    app.include_router(router)

    return app
