"""
Services Module - the asynchronous generation pipeline.

Storyboards (cached, with a local fallback), batched scene images and
signed image-to-video tasks, behind the StoryPipeline facade.
"""
from .models import (
    GenerationRequest,
    CharacterCard,
    SceneStyle,
    Scene,
    Storyboard,
    StoryboardGeneration,
    Image,
    SceneImageSet,
    BatchImageResult,
    VideoTaskStatus,
    VideoTask,
    PipelineResult,
)
from .storyboard_cache import StoryboardCache
from .storyboard_service import StoryboardGenerator, validate_and_fix
from .batch_image_generator import BatchImageGenerator
from .video_status import apply_provider_status
from .video_task_manager import VideoTaskManager
from .pipeline import StoryPipeline

__all__ = [
    "GenerationRequest",
    "CharacterCard",
    "SceneStyle",
    "Scene",
    "Storyboard",
    "StoryboardGeneration",
    "Image",
    "SceneImageSet",
    "BatchImageResult",
    "VideoTaskStatus",
    "VideoTask",
    "PipelineResult",
    "StoryboardCache",
    "StoryboardGenerator",
    "validate_and_fix",
    "BatchImageGenerator",
    "apply_provider_status",
    "VideoTaskManager",
    "StoryPipeline",
]
