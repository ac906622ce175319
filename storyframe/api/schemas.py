"""
Pydantic schemas for API requests and responses.

Request models are deliberately loose: business validation (scene count,
empty selections, missing diary) happens in the pipeline so that both the
API and direct callers get the same errors.
"""
from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime


class StoryboardRequest(BaseModel):
    """POST /api/storyboards request body."""
    content: str = Field(default="", description="Diary text")
    diary_id: Optional[str] = Field(default=None, description="Enables caching per diary")


class ImagesRequest(BaseModel):
    """POST /api/images request body."""
    storyboards: list[dict[str, Any]] = Field(default_factory=list)
    diary_id: Optional[str] = Field(default=None, description="Persist results for this diary")


class SceneImagesRequest(BaseModel):
    """POST /api/images/scene request body."""
    storyboard: dict[str, Any]
    scene_id: int = Field(..., ge=1, le=4)


class VideoSubmitRequest(BaseModel):
    """POST /api/videos request body."""
    selected_images: list[str] = Field(default_factory=list)
    diary_id: Optional[str] = Field(default=None)
    scene_id: Optional[str] = Field(default=None)
    video_params: dict[str, Any] = Field(default_factory=dict)


class PipelineResponse(BaseModel):
    """Envelope returned by every pipeline endpoint, success or not."""
    success: bool
    data: Optional[Any] = None
    message: str = ""
    error_code: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    storage_backend: str
    timestamp: datetime
