"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from cascadex.ml.cascade_manager import CascadeManager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cascadex.api.routes import router
from cascadex.config import get_settings
from cascadex.ml.cascade import CascadeFormatError
from cascadex.ml.cascade_manager import FileCascadeManager
from cascadex.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting CascadeX (cascade=%s, scale_factor=%s, max_concurrent=%s)",
        settings.cascade_name,
        settings.scale_factor,
        settings.max_concurrent,
    )

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    cascade_manager: CascadeManager = FileCascadeManager(settings)
    app.state.cascade_manager = cascade_manager

    try:
        cascade_manager.get_cascade(settings.cascade_name)
    except (KeyError, FileNotFoundError, CascadeFormatError) as exc:
        logger.warning("No detector configured, detection will return no faces: %s", exc)

    logger.info("CascadeX ready")
    yield

    logger.info("Shutting down CascadeX")
    cascade_manager.shutdown()
    inference_pool.shutdown()
    logger.info("CascadeX shutdown complete")


def create_app() -> FastAPI:
    """Build the application; state is attached by the lifespan."""
    settings = get_settings()
    application = FastAPI(
        title="CascadeX",
        description="Haar cascade face detection and tracking API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run("cascadex.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
