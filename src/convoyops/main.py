"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import analytics, checkpoints, conflicts, convoys, events, health, merges, network, optimizer
from .config import settings
from .data.convoy_repository import load_seed_convoys
from .data.network_repository import get_network
from .persistence.filesystem import FileStorage
from .services.dispatch import DispatchService


def build_dispatch() -> DispatchService:
    """Wire the routing core from the configured network and seed files."""
    storage = FileStorage() if settings.persist_state else None
    dispatch = DispatchService(get_network(), storage=storage)
    dispatch.seed(load_seed_convoys())
    return dispatch


def create_app(dispatch: DispatchService | None = None) -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.dispatch.close()

    app = FastAPI(title=settings.app_name, root_path="", lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.state.dispatch = dispatch or build_dispatch()

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(convoys.router, prefix=settings.api_prefix)
    app.include_router(optimizer.router, prefix=settings.api_prefix)
    app.include_router(events.router, prefix=settings.api_prefix)
    app.include_router(checkpoints.router, prefix=settings.api_prefix)
    app.include_router(conflicts.router, prefix=settings.api_prefix)
    app.include_router(merges.router, prefix=settings.api_prefix)
    app.include_router(network.router, prefix=settings.api_prefix)
    app.include_router(analytics.router, prefix=settings.api_prefix)
    return app


app = create_app()
