from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from ..optical_path import EngineConfig
from .config import AppSettings, settings as default_settings
from .routers import prediction

logger = logging.getLogger(__name__)


def create_app(
    settings: AppSettings | None = None,
    engine_config: EngineConfig | None = None,
) -> FastAPI:
    """Create the FastAPI app serving prediction, OBM and volume profile."""
    settings = settings or default_settings
    if engine_config is None:
        engine_config = (
            EngineConfig.from_yaml(settings.optical_path_config)
            if settings.optical_path_config is not None
            else EngineConfig()
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Starting optical-path server on %s:%d (config %s, backend %s)",
            settings.host,
            settings.port,
            engine_config.config_version,
            engine_config.backend.name,
        )
        yield
        logger.info("Shutting down optical-path server")

    app = FastAPI(
        title="Optical Path API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine_config = engine_config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "env": settings.app_env,
            "configVersion": engine_config.config_version,
            "backend": engine_config.backend.name,
        }

    app.include_router(prediction.router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "src.serving.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=(default_settings.app_env == "development"),
    )
