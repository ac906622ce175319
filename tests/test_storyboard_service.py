"""
Tests for storyboard generation.
"""
import json
import random

import httpx
import pytest

from conftest import MockProvider, chat_response
from storyframe.config import PipelineConfig
from storyframe.providers.exceptions import GenerationFailed
from storyframe.providers.llm import ChatCompletionClient
from storyframe.services.models import DEFAULT_CHARACTER
from storyframe.services.storyboard_cache import StoryboardCache
from storyframe.services.storyboard_service import StoryboardGenerator, validate_and_fix

LIBRARY_DIARY = "今天下午我去图书馆看书，感觉很安静。"

CARD = {
    "description": "一个短发女孩",
    "hair_style": "棕色及肩短发",
    "eye_color": "明亮的蓝色眼眸",
    "outfit": "白色T恤",
    "accessories": "",
}


def make_generator(provider=None, cache=None, sleep=None):
    llm = None
    if provider is not None:
        llm = ChatCompletionClient(api_key="sk-test", client=provider.client())
    kwargs = {"sleep": sleep} if sleep is not None else {}
    return StoryboardGenerator(llm=llm, cache=cache, config=PipelineConfig(), rng=random.Random(1), **kwargs)


class TestValidateAndFix:
    """Tests for validate_and_fix."""

    def test_pads_to_four_scenes_and_pins_seed(self):
        raw = [
            {"scene_id": 9, "prompt": "第一幕", "video_prompt": "推镜", "seed": 1, "style": {"color": "warm"}},
            "not a scene",
        ]
        storyboard = validate_and_fix(raw, "小女孩", 77)

        assert [s.scene_id for s in storyboard.scenes] == [1, 2, 3, 4]
        assert {s.seed for s in storyboard.scenes} == {77}
        assert storyboard.scenes[0].prompt == "第一幕"
        assert storyboard.scenes[0].style.color == "warm"
        assert storyboard.scenes[0].style.preset == "korean_anime"
        assert storyboard.scenes[1].prompt.startswith("小女孩")
        assert storyboard.scenes[3].video_prompt == "特写镜头，聚焦于细节"

    def test_extra_scenes_are_dropped(self):
        raw = [{"prompt": f"p{i}", "video_prompt": "v"} for i in range(6)]
        assert len(validate_and_fix(raw, "x", 1).scenes) == 4

    def test_non_list_input(self):
        storyboard = validate_and_fix({"oops": True}, "小猫", 3)
        assert all(s.prompt.startswith("小猫") for s in storyboard.scenes)

    def test_prompts_are_truncated(self):
        storyboard = validate_and_fix([{"prompt": "字" * 500}], "x", 1)
        assert len(storyboard.scenes[0].prompt) == 280


class TestStoryboardGenerator:
    """Tests for StoryboardGenerator.generate."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("diary", [LIBRARY_DIARY, "今天去了图书馆，很安静"])
    async def test_model_failure_falls_back_to_local_storyboard(self, recording_sleep, diary):
        provider = MockProvider(httpx.Response(500, text="upstream exploded"))
        generator = make_generator(provider, sleep=recording_sleep)

        result = await generator.generate(diary)

        assert result.source == "fallback"
        assert len(result.storyboard.scenes) == 4
        assert {s.seed for s in result.storyboard.scenes} == {result.seed}
        first = result.storyboard.scenes[0].prompt
        assert DEFAULT_CHARACTER in first
        assert "图书馆" in first
        # 3 character card attempts + 1 storyboard call with 3 retries
        assert provider.calls == 7
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_permanent_error_skips_retries(self, recording_sleep):
        provider = MockProvider(httpx.Response(401, text="bad key"))
        generator = make_generator(provider, sleep=recording_sleep)

        result = await generator.generate(LIBRARY_DIARY)

        assert result.source == "fallback"
        assert provider.calls == 4
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_model_output_is_repaired_and_completed(self, recording_sleep):
        scenes = {"storyboards": [
            {"scene_id": 1, "prompt": "短发女孩走进图书馆", "video_prompt": "推镜", "seed": 5},
            {"scene_id": 2, "prompt": "她翻开一本书", "video_prompt": "特写", "seed": 5},
        ]}
        provider = MockProvider(
            chat_response(CARD),
            chat_response("好的，这是分镜：\n" + json.dumps(scenes, ensure_ascii=False) + "\n祝你愉快"),
        )
        generator = make_generator(provider, sleep=recording_sleep)

        result = await generator.generate(LIBRARY_DIARY)

        assert result.source == "model"
        assert result.character_card.short_description == "一个短发女孩"
        assert result.storyboard.scenes[0].prompt == "短发女孩走进图书馆"
        assert result.storyboard.scenes[2].prompt.startswith(result.character_card.full_description)
        assert {s.seed for s in result.storyboard.scenes} == {result.seed}
        assert result.seed != 5

    @pytest.mark.asyncio
    async def test_character_card_is_sent_with_storyboard_request(self):
        provider = MockProvider(chat_response(CARD), chat_response({"scenes": []}))
        generator = make_generator(provider)

        result = await generator.generate(LIBRARY_DIARY)

        storyboard_request = provider.json_body(1)
        user_prompt = storyboard_request["messages"][1]["content"]
        assert "一个短发女孩" in user_prompt
        assert str(result.seed) in user_prompt
        assert storyboard_request["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_unparseable_card_uses_default(self, recording_sleep):
        provider = MockProvider(
            chat_response("no json here"),
            chat_response("still none"),
            chat_response("nope"),
            chat_response({"storyboards": []}),
        )
        generator = make_generator(provider, sleep=recording_sleep)

        result = await generator.generate(LIBRARY_DIARY)

        assert result.character_card.full_description == DEFAULT_CHARACTER
        assert result.source == "model"

    @pytest.mark.asyncio
    async def test_without_model_uses_local_storyboard(self):
        generator = make_generator()

        result = await generator.generate("在公园和朋友聊天")

        assert result.source == "fallback"
        assert result.character_card.full_description == DEFAULT_CHARACTER

    @pytest.mark.asyncio
    async def test_cache_hit_skips_model(self, memory_store, clock):
        provider = MockProvider(chat_response(CARD), chat_response({"storyboards": []}))
        cache = StoryboardCache(memory_store, clock=clock)
        generator = make_generator(provider, cache=cache)

        first = await generator.generate(LIBRARY_DIARY, scope=("diary-1", "user-1"))
        second = await generator.generate(LIBRARY_DIARY, scope=("diary-1", "user-1"))

        assert provider.calls == 2
        assert second.from_cache
        assert second.source == "cache"
        assert second.character_card is None
        assert second.seed == first.seed
        assert second.storyboard.to_list() == first.storyboard.to_list()

    @pytest.mark.asyncio
    async def test_without_scope_cache_is_bypassed(self, memory_store, clock):
        cache = StoryboardCache(memory_store, clock=clock)
        generator = make_generator(cache=cache)

        await generator.generate(LIBRARY_DIARY)

        assert await memory_store.query("storyboard_cache") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n"])
    async def test_empty_text_is_rejected(self, text):
        provider = MockProvider(chat_response(CARD))
        generator = make_generator(provider)

        with pytest.raises(GenerationFailed) as exc_info:
            await generator.generate(text)

        assert exc_info.value.message == "日记内容不能为空"
        assert provider.calls == 0
