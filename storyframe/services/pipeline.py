"""
Story Pipeline - the public boundary of the generation pipeline.

Every operation returns a PipelineResult; pipeline errors become failed
results carrying their code, unexpected errors become INTERNAL_ERROR.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from storyframe.config import AppConfig
from storyframe.persistence import BlobStore, RecordStore, get_blob_store, get_record_store
from storyframe.providers.exceptions import PipelineError, ValidationFailed
from storyframe.providers.images import ImageGenerationClient
from storyframe.providers.llm import ChatCompletionClient

from .batch_image_generator import BatchImageGenerator
from .models import GenerationRequest, PipelineResult, Scene
from .scoring import placeholder_images
from .storyboard_cache import StoryboardCache
from .storyboard_service import StoryboardGenerator
from .video_task_manager import VideoTaskManager

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"


def _scene_from_payload(data: Any, fallback_id: Optional[int] = None) -> Scene:
    if not isinstance(data, dict):
        raise ValidationFailed("分镜数据格式错误")
    item = dict(data)
    if fallback_id is not None and not item.get("scene_id"):
        item["scene_id"] = fallback_id
    item.setdefault("seed", 0)
    try:
        return Scene.from_dict(item)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationFailed(f"分镜数据格式错误: {e}") from e


class StoryPipeline:
    """
    Facade over the storyboard, image and video stages.

    Build it with from_config() for real providers, or hand in pre-built
    components (tests).
    """

    def __init__(
        self,
        storyboards: StoryboardGenerator,
        images: BatchImageGenerator,
        videos: VideoTaskManager,
        store: Optional[RecordStore] = None,
        closers: Optional[List[Callable[[], Awaitable[None]]]] = None,
    ):
        self.storyboards = storyboards
        self.images = images
        self.videos = videos
        self.store = store
        self._closers = closers or []

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: Optional[RecordStore] = None,
        blob_store: Optional[BlobStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "StoryPipeline":
        """Wire every stage from configuration."""
        store = store or get_record_store(config)
        blob_store = blob_store or get_blob_store(config)
        http_client = http_client or httpx.AsyncClient()
        providers = config.providers
        tuning = config.pipeline

        llm = None
        if providers.has_llm:
            llm = ChatCompletionClient(
                providers.deepseek_api_key,
                base_url=providers.deepseek_base_url,
                model=providers.deepseek_model,
                timeout=tuning.text_timeout,
                client=http_client,
            )

        image_client = None
        if providers.has_image:
            image_client = ImageGenerationClient(
                providers.ark_api_key,
                url=providers.ark_image_url,
                model=providers.ark_image_model,
                timeout=tuning.image_timeout,
                client=http_client,
            )

        cache = StoryboardCache(store, ttl_hours=tuning.cache_ttl_hours)

        return cls(
            storyboards=StoryboardGenerator(llm=llm, cache=cache, config=tuning),
            images=BatchImageGenerator(image_client, store=store, config=tuning),
            videos=VideoTaskManager(
                store,
                access_key=providers.jimeng_access_key,
                secret_key=providers.jimeng_secret_key,
                blob_store=blob_store,
                config=tuning,
                http_client=http_client,
            ),
            store=store,
            closers=[http_client.aclose, store.close],
        )

    async def _run(self, operation: str, call: Callable[[], Awaitable[PipelineResult]]) -> PipelineResult:
        try:
            return await call()
        except PipelineError as e:
            logger.warning(f"[PIPELINE] {operation} failed ({e.code}): {e.message}")
            return PipelineResult.fail(e.message, e.code)
        except Exception as e:
            logger.exception(f"[PIPELINE] {operation} crashed: {e}")
            return PipelineResult.fail(f"内部错误: {e}", INTERNAL_ERROR)

    # =========================================================================
    # STORYBOARDS
    # =========================================================================

    async def generate_storyboard(
        self,
        source_text: str,
        owner_id: str,
        diary_id: Optional[str] = None,
    ) -> PipelineResult:
        async def call():
            request = GenerationRequest(source_text, owner_id, diary_id)
            generation = await self.storyboards.generate(request.source_text, request.scope)
            message = "使用缓存的分镜" if generation.from_cache else "分镜生成成功"
            return PipelineResult.ok(generation.to_dict(), message)

        return await self._run("generate_storyboard", call)

    # =========================================================================
    # IMAGES
    # =========================================================================

    async def generate_images(
        self,
        storyboards: List[Dict[str, Any]],
        owner_id: str,
        diary_id: Optional[str] = None,
    ) -> PipelineResult:
        async def call():
            if not isinstance(storyboards, list):
                raise ValidationFailed("分镜数量必须为4个")
            scenes = [_scene_from_payload(item, index) for index, item in enumerate(storyboards, start=1)]
            scope = (diary_id, owner_id) if diary_id else None
            result = await self.images.generate_all(scenes, scope)
            message = "部分场景生成失败，已使用备用图片" if result.errors else "所有图片生成成功"
            return PipelineResult.ok(result.to_dict(), message)

        return await self._run("generate_images", call)

    async def generate_scene_images(self, storyboard: Dict[str, Any], scene_id: int) -> PipelineResult:
        """Single scene; a failed scene still succeeds with placeholder images."""
        async def call():
            scene = _scene_from_payload(storyboard, scene_id)
            scene.scene_id = scene_id
            try:
                image_set = await self.images.generate_one(scene)
            except PipelineError as e:
                logger.warning(f"[IMAGES] Scene {scene_id} degraded to placeholders: {e.message}")
                images = placeholder_images(scene_id, scene.seed)
                return PipelineResult.ok(
                    {"images": [img.to_dict() for img in images], "error": e.message},
                    f"使用备用图片: {e.message}",
                )
            return PipelineResult.ok({"images": [img.to_dict() for img in image_set.images]}, "图片生成成功")

        return await self._run("generate_scene_images", call)

    # =========================================================================
    # VIDEOS
    # =========================================================================

    async def submit_video(
        self,
        selected_images: List[str],
        owner_id: str,
        diary_id: str,
        scene_id: Optional[str] = None,
        video_params: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        async def call():
            task = await self.videos.submit(
                selected_images,
                video_params,
                owner_id=owner_id,
                diary_ref=diary_id,
                scene_ref=scene_id or "batch",
            )
            return PipelineResult.ok(task.to_dict(), "视频生成任务已提交")

        return await self._run("submit_video", call)

    async def poll_video(self, task_id: str) -> PipelineResult:
        async def call():
            task = await self.videos.poll(task_id)
            return PipelineResult.ok(task.to_dict(), f"任务状态: {task.status.value}")

        return await self._run("poll_video", call)

    async def close(self):
        for closer in self._closers:
            await closer()
