"""
Video task endpoints.
"""
import logging

from fastapi import APIRouter, Depends, status

from storyframe.services.pipeline import StoryPipeline

from ..schemas import PipelineResponse, VideoSubmitRequest
from ..dependencies import get_owner_id, get_pipeline
from ..exceptions import to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["Videos"])


@router.post(
    "",
    response_model=PipelineResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Video Task",
    description="Submit the selected images for image-to-video generation.",
)
async def submit_video(
    request: VideoSubmitRequest,
    owner_id: str = Depends(get_owner_id),
    pipeline: StoryPipeline = Depends(get_pipeline),
) -> PipelineResponse:
    logger.info(f"[API] Video submit by {owner_id} (diary={request.diary_id}, images={len(request.selected_images)})")
    result = await pipeline.submit_video(
        request.selected_images,
        owner_id,
        request.diary_id,
        scene_id=request.scene_id,
        video_params=request.video_params,
    )
    return to_response(result)


@router.get(
    "/{task_id}",
    response_model=PipelineResponse,
    summary="Poll Video Task",
    description="Query the provider once and return the task's current state.",
)
async def poll_video(
    task_id: str,
    pipeline: StoryPipeline = Depends(get_pipeline),
) -> PipelineResponse:
    result = await pipeline.poll_video(task_id)
    return to_response(result)
