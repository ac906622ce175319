"""
Image generation endpoints.
"""
import logging

from fastapi import APIRouter, Depends

from storyframe.services.pipeline import StoryPipeline

from ..schemas import ImagesRequest, PipelineResponse, SceneImagesRequest
from ..dependencies import get_owner_id, get_pipeline
from ..exceptions import to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/images", tags=["Images"])


@router.post(
    "",
    response_model=PipelineResponse,
    summary="Generate Images For All Scenes",
    description="Four scenes in batches of two. Failed scenes receive placeholder images.",
)
async def generate_images(
    request: ImagesRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: StoryPipeline = Depends(get_pipeline),
) -> PipelineResponse:
    logger.info(f"[API] Images requested by {owner_id} for {len(request.storyboards)} scenes")
    result = await pipeline.generate_images(request.storyboards, owner_id, request.diary_id)
    return to_response(result)


@router.post(
    "/scene",
    response_model=PipelineResponse,
    summary="Generate Images For One Scene",
    description="Regenerate one scene. Always succeeds; failures fall back to placeholders.",
)
async def generate_scene_images(
    request: SceneImagesRequest,
    pipeline: StoryPipeline = Depends(get_pipeline),
) -> PipelineResponse:
    result = await pipeline.generate_scene_images(request.storyboard, request.scene_id)
    return to_response(result)
