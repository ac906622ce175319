"""
Shared dependencies for API routes.
"""
from fastapi import Header, Request

from storyframe.config import AppConfig
from storyframe.persistence import BlobStore
from storyframe.services.pipeline import StoryPipeline

DEFAULT_OWNER = "anonymous"


def get_pipeline(request: Request) -> StoryPipeline:
    """The pipeline built at app creation."""
    return request.app.state.pipeline


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_owner_id(x_user_id: str = Header(default=DEFAULT_OWNER)) -> str:
    """Caller identity from X-User-Id; authentication happens upstream."""
    return x_user_id.strip() or DEFAULT_OWNER
