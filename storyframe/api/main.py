"""
FastAPI Application - Storyboard, Image and Video Generation Gateway.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from storyframe.config import AppConfig, load_config
from storyframe.services.pipeline import StoryPipeline

from .routes import health_router, storyboards_router, images_router, videos_router, blobs_router
from .exceptions import APIError, api_error_handler, generic_exception_handler, request_validation_handler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    pipeline: Optional[StoryPipeline] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    A pipeline passed in is owned by the caller and is not closed on shutdown.
    """
    config = config or load_config()
    owns_pipeline = pipeline is None
    pipeline = pipeline or StoryPipeline.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application lifespan handler."""
        logger.info("=" * 60)
        logger.info("Starting Storyframe API...")
        config.log_status()
        logger.info("=" * 60)

        yield

        logger.info("Shutting down Storyframe API...")
        if owns_pipeline:
            await pipeline.close()

    app = FastAPI(
        title="Storyframe API",
        description="Diary text to storyboards, scene images and short videos",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=config.debug,
    )

    app.state.config = config
    app.state.pipeline = pipeline
    app.state.blob_store = pipeline.videos.blob_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(storyboards_router)
    app.include_router(images_router)
    app.include_router(videos_router)
    app.include_router(blobs_router)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storyframe.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
