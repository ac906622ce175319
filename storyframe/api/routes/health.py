"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends, status
from datetime import datetime, timezone

from storyframe.config import AppConfig

from ..schemas import HealthResponse
from ..dependencies import get_app_config

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health Check",
    description="Check API health status.",
)
async def health_check(config: AppConfig = Depends(get_app_config)) -> HealthResponse:
    """
    Health check endpoint.
    Storyboards and images degrade to local fallbacks, so the service is
    healthy even without provider keys.
    """
    return HealthResponse(
        status="healthy",
        service="storyframe-api",
        version="1.0.0",
        storage_backend=config.storage.backend,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/health/config",
    status_code=status.HTTP_200_OK,
    summary="Configuration Status",
    description="Check API key configuration status (does not expose actual keys).",
)
async def config_status(config: AppConfig = Depends(get_app_config)) -> dict:
    """Which providers are configured, without exposing keys."""
    status_info = config.validate()
    providers = status_info["providers"]

    notes = []
    if not providers["llm_configured"]:
        notes.append("Using local template storyboards (set DEEPSEEK_API_KEY for model storyboards)")
    if not providers["image_configured"]:
        notes.append("Scenes receive placeholder images (set VOLC_SECRETKEY for image generation)")
    if not providers["video_configured"]:
        notes.append("Video submission disabled (set JIMENG_ACCESS_KEY and JIMENG_SECRET_KEY)")

    return {
        "status": "configured" if all(providers.values()) else "partial",
        "apis": {
            "deepseek": "configured" if providers["llm_configured"] else "missing",
            "ark_images": "configured" if providers["image_configured"] else "missing",
            "jimeng_video": "configured" if providers["video_configured"] else "missing",
        },
        "capabilities": {
            "storyboards": status_info["ready_for_storyboards"],
            "images": True,
            "video": status_info["ready_for_video"],
        },
        "storage": status_info["storage"],
        "notes": notes,
    }
