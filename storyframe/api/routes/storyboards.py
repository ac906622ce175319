"""
Storyboard endpoints.
"""
import logging

from fastapi import APIRouter, Depends

from storyframe.services.pipeline import StoryPipeline

from ..schemas import PipelineResponse, StoryboardRequest
from ..dependencies import get_owner_id, get_pipeline
from ..exceptions import to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/storyboards", tags=["Storyboards"])


@router.post(
    "",
    response_model=PipelineResponse,
    summary="Generate Storyboard",
    description="Turn diary text into four scenes. Cached per diary for 24 hours.",
)
async def generate_storyboard(
    request: StoryboardRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: StoryPipeline = Depends(get_pipeline),
) -> PipelineResponse:
    logger.info(f"[API] Storyboard requested by {owner_id} (diary={request.diary_id})")
    result = await pipeline.generate_storyboard(request.content, owner_id, request.diary_id)
    return to_response(result)
