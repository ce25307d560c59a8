"""
FastAPI application serving recorded rewards.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import structlog

from aleo_rewards import __version__
from aleo_rewards.api.routes import rewards
from aleo_rewards.api.schemas.common import HealthResponse
from aleo_rewards.core.config import Settings, settings as default_settings
from aleo_rewards.core.database import Database
from aleo_rewards.storage.base import RewardStore
from aleo_rewards.storage.sql_store import SqlRewardStore


logger = structlog.get_logger(__name__)


def create_app(store: Optional[RewardStore] = None, config: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Reward store to serve from; a SQL store is opened from
            settings when omitted
        config: Settings (defaults to global settings)
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting rewards API server")
        if getattr(app.state, "store", None) is None:
            app.state.store = SqlRewardStore(Database(config=config))
            app.state.owns_store = True
        yield
        if getattr(app.state, "owns_store", False):
            await app.state.store.close()
        logger.info("Rewards API server stopped")

    app = FastAPI(
        title=config.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["content-type"],
    )

    app.include_router(rewards.router, tags=["rewards"])

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", version=__version__)

    return app
