"""
Storyboard Service - diary text to four consistent visual scenes.

Flow:
1. Cache lookup (per diary + owner)
2. Seed draw and character card extraction
3. Model storyboard (with retry), falling back to the local template generator
4. validate_and_fix, then cache write
"""
import asyncio
import logging
import random
from typing import Any, List, Optional, Tuple

from storyframe.config import PipelineConfig
from storyframe.providers.exceptions import ErrorKind, GenerationFailed, ParseFailed, PersistenceFailed, PipelineError
from storyframe.providers.llm import ChatCompletionClient

from .fallback_storyboard import default_scene_prompt, default_video_prompt, generate_local_storyboard
from .json_repair import ParseStatus, parse_model_json
from .models import (
    SCENE_COUNT,
    CharacterCard,
    Scene,
    SceneStyle,
    Storyboard,
    StoryboardGeneration,
    truncate_prompt,
)
from .retry import RetryPolicy, Sleep, first_success, with_retry
from .storyboard_cache import StoryboardCache

logger = logging.getLogger(__name__)

SEED_MIN = 1
SEED_MAX = 10 ** 9

Scope = Tuple[str, str]  # (diary_id, owner_id)


# ============================================================
# PROMPTS
# ============================================================

STORYBOARD_SYSTEM_PROMPT = """你是一个专业的视觉分镜师。请根据用户提供的日记内容，生成4个连贯的视觉分镜，忠于原文，确保角色一致性。

要求：
1. 生成4个分镜，每个分镜包含scene_id、prompt、video_prompt、seed、style字段
2. prompt字段按照"角色卡片+风格+主体描述+美学+氛围"结构，使用日记的语言输出，280字符以内
3. video_prompt为视频生成提示词，简洁明了
4. seed使用提供的全局种子值确保一致性
5. style包含model、preset、color、aspect_ratio字段
6. 严格按照JSON格式输出，不要包含任何其他文字

JSON格式示例：
{
  "storyboards": [
    {
      "scene_id": 1,
      "prompt": "角色描述，韩式动漫3D风格，主体行为描述，镜头美学，情感氛围",
      "video_prompt": "特写镜头，画面稳定",
      "seed": 123456789,
      "style": {"model": "dmx-3.0", "preset": "korean_anime", "color": "light_blue", "aspect_ratio": "9:16"}
    }
  ]
}"""

CHARACTER_SYSTEM_PROMPT = """从日记中提取核心人物的特征，生成一个JSON对象描述其外貌。JSON结构如下：
{
  "description": "简短的角色核心描述（例如：一个活泼的短发女孩）",
  "hair_style": "具体的发型（例如：棕色及肩短发，有刘海）",
  "eye_color": "瞳色（例如：明亮的蓝色眼眸）",
  "outfit": "典型的着装风格（例如：穿着白色T恤和蓝色牛仔背带裤）",
  "accessories": "标志性配饰（例如：戴着一顶黄色的贝雷帽）"
}
要求：使用日记的语言描述。如果日记中信息不足，请根据"可爱的小女孩"这一核心概念进行合理、一致的想象和补充。"""


def validate_and_fix(raw_scenes: Any, character: str, seed: int) -> Storyboard:
    """
    Coerce model output into exactly four well-formed scenes.

    Scenes are taken positionally; missing prompts and video prompts get
    per-index defaults, every seed is pinned, style keys override defaults.
    """
    items: List[Any] = raw_scenes if isinstance(raw_scenes, list) else []
    scenes = []

    for index in range(1, SCENE_COUNT + 1):
        item = items[index - 1] if index - 1 < len(items) else {}
        if not isinstance(item, dict):
            item = {}

        prompt = item.get("prompt")
        prompt = str(prompt) if prompt else default_scene_prompt(character, index)

        video_prompt = item.get("video_prompt")
        video_prompt = str(video_prompt) if video_prompt else default_video_prompt(index)

        scenes.append(Scene(
            scene_id=index,
            prompt=truncate_prompt(prompt),
            video_prompt=video_prompt,
            seed=seed,
            style=SceneStyle.merged(item.get("style")),
        ))

    return Storyboard(scenes=scenes)


class StoryboardGenerator:
    """
    Generates four-scene storyboards.

    generate() only raises GenerationFailed (empty input); every other failure
    degrades to the local template generator.
    """

    def __init__(
        self,
        llm: Optional[ChatCompletionClient] = None,
        cache: Optional[StoryboardCache] = None,
        config: Optional[PipelineConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.llm = llm
        self.cache = cache
        self.config = config or PipelineConfig()
        self.rng = rng or random.Random()
        self.sleep = sleep

        self.llm_policy = RetryPolicy(
            max_retries=self.config.llm_max_retries,
            base_delay=self.config.llm_retry_base,
            retry_on=(ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER),
        )

        if self.llm is None:
            logger.warning("[STORYBOARD] No LLM configured - using local template storyboards")

    def draw_seed(self) -> int:
        return self.rng.randint(SEED_MIN, SEED_MAX)

    async def generate(self, source_text: str, scope: Optional[Scope] = None) -> StoryboardGeneration:
        """
        Generate (or fetch from cache) the storyboard for a text.

        Args:
            source_text: Diary text
            scope: (diary_id, owner_id); enables cache read and write

        Returns:
            StoryboardGeneration
        """
        if not source_text or not source_text.strip():
            raise GenerationFailed("日记内容不能为空")

        if scope and self.cache:
            cached = await self.cache.get(*scope)
            if cached is not None:
                return StoryboardGeneration(
                    storyboard=cached,
                    seed=cached.seed,
                    character_card=None,
                    from_cache=True,
                    source="cache",
                )

        seed = self.draw_seed()
        card = await self.generate_character_card(source_text)
        character = card.full_description

        strategies = []
        if self.llm is not None:
            strategies.append(("model", lambda text: self._model_storyboard(text, character, seed)))
        strategies.append(("fallback", lambda text: self._local_storyboard(text, character, seed)))

        source, storyboard = await first_success(strategies, source_text)
        logger.info(f"[STORYBOARD] Generated via {source} (seed={seed})")

        if scope and self.cache:
            try:
                await self.cache.put(scope[0], scope[1], storyboard)
            except PersistenceFailed as e:
                logger.warning(f"[CACHE] Failed to store storyboard for diary {scope[0]}: {e.message}")

        return StoryboardGeneration(
            storyboard=storyboard,
            seed=seed,
            character_card=card,
            from_cache=False,
            source=source,
        )

    async def generate_character_card(self, source_text: str) -> CharacterCard:
        """Extract the recurring character; the default card after all attempts fail."""
        if self.llm is None:
            return CharacterCard.default()

        attempts = 1 + self.config.character_card_retries
        for attempt in range(1, attempts + 1):
            try:
                content = await self.llm.complete_json(
                    CHARACTER_SYSTEM_PROMPT,
                    f"请为以下日记内容生成角色卡片：\n\n{source_text}",
                    temperature=0.6,
                    max_tokens=500,
                )
                data = parse_model_json(content).unwrap()
                if not isinstance(data, dict):
                    raise ParseFailed("character card is not a JSON object")
                card = CharacterCard.from_model_output(data)
                logger.info(f"[LLM] Character card: {card.full_description[:60]}")
                return card
            except PipelineError as e:
                logger.warning(f"[LLM] Character card attempt {attempt}/{attempts} failed: {e}")

        return CharacterCard.default()

    async def _model_storyboard(self, source_text: str, character: str, seed: int) -> Storyboard:
        user_prompt = f"角色核心设定：{character}\n全局种子值：{seed}\n\n请为以下日记内容生成4个连贯的分镜：\n\n{source_text}"

        content = await with_retry(
            lambda: self.llm.complete_json(STORYBOARD_SYSTEM_PROMPT, user_prompt, temperature=0.7, max_tokens=2000),
            self.llm_policy,
            sleep=self.sleep,
            label="storyboard",
        )

        outcome = parse_model_json(content)
        if outcome.status is ParseStatus.REPAIRED:
            logger.info("[STORYBOARD] Model output needed JSON repair")
        data = outcome.unwrap()
        if not isinstance(data, dict):
            raise ParseFailed("storyboard output is not a JSON object")

        raw_scenes = data.get("storyboards")
        if raw_scenes is None:
            raw_scenes = data.get("scenes")
        return validate_and_fix(raw_scenes, character, seed)

    async def _local_storyboard(self, source_text: str, character: str, seed: int) -> Storyboard:
        return generate_local_storyboard(source_text, character, seed)
