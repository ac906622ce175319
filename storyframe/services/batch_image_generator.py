"""
Batch Image Generator - candidate images for all four scenes.

Scenes are processed in small concurrent batches with a cooldown between
batches to stay under the provider's rate limit. A scene that fails after
retries gets placeholder images; the batch as a whole never fails.
"""
import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from storyframe.config import PipelineConfig
from storyframe.persistence import IMAGE_GENERATION_RESULTS, RecordStore
from storyframe.providers.exceptions import ErrorKind, PipelineError, UpstreamPermanent, ValidationFailed
from storyframe.providers.images import ImageGenerationClient

from .models import SCENE_COUNT, BatchImageResult, Scene, SceneImageSet
from .retry import RetryPolicy, Sleep, with_retry
from .scoring import placeholder_images, score_images

logger = logging.getLogger(__name__)

Scope = Tuple[str, str]  # (diary_id, owner_id)


class BatchImageGenerator:
    """
    Generates scored candidate images per scene.

    Retry (per scene): 1s warm-up, then on rate-limit/timeout/network errors
    up to 5 retries waiting min(3s * 2^retry, 30s).
    """

    def __init__(
        self,
        client: Optional[ImageGenerationClient],
        store: Optional[RecordStore] = None,
        config: Optional[PipelineConfig] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or PipelineConfig()
        self.sleep = sleep
        self.rng = rng
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.policy = RetryPolicy(
            max_retries=self.config.image_max_retries,
            base_delay=self.config.image_retry_base,
            max_delay=self.config.image_retry_cap,
            warmup_delay=self.config.image_warmup_delay,
            retry_on=(ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.NETWORK),
            exponent_offset=1,
        )

        if self.client is None:
            logger.warning("[IMAGES] No image API configured - scenes will receive placeholders")

    async def generate_one(self, scene: Scene) -> SceneImageSet:
        """
        Generate candidates for one scene.

        Raises:
            UpstreamTransient / UpstreamPermanent after retries are exhausted
        """
        if self.client is None:
            raise UpstreamPermanent("图片生成服务未配置", ImageGenerationClient.PROVIDER)

        logger.info(f"[IMAGES] Generating scene {scene.scene_id}...")
        urls = await with_retry(
            lambda: self.client.generate(
                scene.prompt,
                size=self.config.image_size,
                n=self.config.images_per_scene,
                seed=scene.seed,
            ),
            self.policy,
            sleep=self.sleep,
            label=f"scene {scene.scene_id}",
        )

        images = score_images(scene.scene_id, urls, scene.prompt, scene.seed, self.rng)
        logger.info(f"[IMAGES] Scene {scene.scene_id}: {len(images)} images")
        return SceneImageSet(scene_id=scene.scene_id, images=images)

    async def _generate_or_placeholder(self, scene: Scene) -> Tuple[SceneImageSet, Optional[str]]:
        try:
            return await self.generate_one(scene), None
        except PipelineError as e:
            logger.error(f"[IMAGES] Scene {scene.scene_id} failed, using placeholders: {e.message}")
            placeholder = SceneImageSet(
                scene_id=scene.scene_id,
                images=placeholder_images(scene.scene_id, scene.seed),
                success=False,
                error=e.message,
            )
            return placeholder, f"场景{scene.scene_id}: {e.message}"

    async def generate_all(self, scenes: Sequence[Scene], scope: Optional[Scope] = None) -> BatchImageResult:
        """
        Generate images for exactly four scenes.

        Args:
            scenes: The storyboard's scenes
            scope: (diary_id, owner_id); when given, results are persisted

        Returns:
            BatchImageResult sorted by scene_id
        """
        if not isinstance(scenes, (list, tuple)) or len(scenes) != SCENE_COUNT:
            raise ValidationFailed("分镜数量必须为4个")

        batch_size = max(1, self.config.image_batch_size)
        batches = [list(scenes[i:i + batch_size]) for i in range(0, len(scenes), batch_size)]

        results: List[SceneImageSet] = []
        errors: List[str] = []

        for batch_index, batch in enumerate(batches, start=1):
            ids = ", ".join(str(s.scene_id) for s in batch)
            logger.info(f"[IMAGES] Batch {batch_index}/{len(batches)}: scenes {ids}")

            outcomes = await asyncio.gather(*(self._generate_or_placeholder(scene) for scene in batch))
            for image_set, error in outcomes:
                results.append(image_set)
                if error:
                    errors.append(error)

            if batch_index < len(batches):
                logger.info(f"[IMAGES] Cooling down {self.config.image_batch_cooldown}s before next batch")
                await self.sleep(self.config.image_batch_cooldown)

        results.sort(key=lambda r: r.scene_id)
        batch_result = BatchImageResult(results=results, errors=errors)

        if scope and self.store:
            await self._save_results(scope, batch_result)

        logger.info(f"[IMAGES] Done: {SCENE_COUNT - len(errors)}/{SCENE_COUNT} scenes generated")
        return batch_result

    async def _save_results(self, scope: Scope, batch_result: BatchImageResult) -> None:
        diary_id, owner_id = scope
        try:
            await self.store.add(IMAGE_GENERATION_RESULTS, {
                "diary_id": diary_id,
                "owner_id": owner_id,
                "results": [r.to_dict() for r in batch_result.results],
                "status": "completed",
                "created_at": self.clock().isoformat(),
            })
        except Exception as e:
            logger.error(f"[IMAGES] Failed to save results for diary {diary_id}: {e}")
