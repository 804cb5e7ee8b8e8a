"""FastAPI application serving the HTTP routes and the WebSocket endpoint."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .context import BridgeContext

logger = logging.getLogger(__name__)


def create_app(context: BridgeContext) -> FastAPI:
    """Build the application around a bridge context.

    The serial link is opened on startup; if that fails the application
    does not start serving.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting bridge: opening {context.config.serial_port}")
        try:
            await context.start()
        except Exception:
            logger.exception("Bridge startup failed")
            raise
        try:
            yield
        finally:
            logger.info("Shutting down bridge")
            await context.stop()

    app = FastAPI(title="Biometric Serial Bridge", lifespan=lifespan)
    # Browser clients are served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.context = context
    app.include_router(router)
    return app
