"""
Tests for batch image generation and image scoring.
"""
import asyncio
import random

import httpx
import pytest

from conftest import MockProvider, image_response
from storyframe.config import PipelineConfig
from storyframe.persistence import IMAGE_GENERATION_RESULTS
from storyframe.providers.exceptions import UpstreamPermanent, UpstreamTransient, ValidationFailed
from storyframe.providers.images import ImageGenerationClient
from storyframe.services.batch_image_generator import BatchImageGenerator
from storyframe.services.scoring import (
    PLACEHOLDER_URL,
    placeholder_images,
    quality_score,
    score_images,
    style_consistency,
)


class SlowFirstClient:
    """Image client where earlier scenes finish later."""

    def __init__(self):
        self.finished = []

    async def generate(self, prompt, size="576x1024", n=4, quality="standard", seed=None):
        scene_id = int(prompt.split("#")[1])
        await asyncio.sleep(0.01 * (5 - scene_id))
        self.finished.append(scene_id)
        return [f"https://img.example.com/{scene_id}/{i}.png" for i in range(n)]


def make_generator(client, store=None, sleep=None, batch_size=2):
    config = PipelineConfig(image_batch_size=batch_size, image_batch_cooldown=2.0)
    return BatchImageGenerator(client, store=store, config=config, sleep=sleep, rng=random.Random(0))


def ark_client(provider):
    return ImageGenerationClient(api_key="ark-test", client=provider.client())


class TestScoring:
    """Tests for score heuristics and placeholders."""

    def test_quality_score_favours_portrait(self):
        rng = random.Random(3)
        assert 85 <= quality_score(576, 1024, rng) <= 95
        assert 75 <= quality_score(1024, 1024, rng) <= 85

    def test_style_consistency_counts_keywords(self):
        assert 88 <= style_consistency("韩式动漫3D风格，9:16竖版", random.Random(3)) <= 98
        assert 80 <= style_consistency("a photo", random.Random(3)) <= 90

    def test_score_images_sorted_best_first(self):
        urls = [f"https://img.example.com/{i}.png" for i in range(4)]
        images = score_images(2, urls, "韩式", 11, random.Random(5))

        scores = [img.quality_score for img in images]
        assert scores == sorted(scores, reverse=True)
        assert {img.id for img in images} == {f"scene_2_img_{i}" for i in range(1, 5)}
        assert all(img.seed == 11 for img in images)

    def test_empty_url_list_gives_one_placeholder(self):
        images = score_images(3, [], "prompt", 1)

        assert len(images) == 1
        assert images[0].url == PLACEHOLDER_URL
        assert images[0].quality_score == 75
        assert images[0].style_consistency == 80

    def test_placeholder_images(self):
        images = placeholder_images(4, seed=9)

        assert len(images) == 4
        assert all(img.is_fallback for img in images)
        assert images[0].id == "default_scene_4_img_1"
        assert images[0].url.startswith("data:image/svg+xml;base64,")
        assert images[0].quality_score == 60


class TestGenerateOne:
    """Tests for per-scene generation with retry."""

    @pytest.mark.asyncio
    async def test_rate_limit_retries_with_backoff(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(429), httpx.Response(429), image_response())
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        image_set = await generator.generate_one(sample_scenes()[0])

        assert provider.calls == 3
        assert recording_sleep.delays == [1.0, 6.0, 12.0]
        assert len(image_set.images) == 4
        assert image_set.success

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(401, text="invalid key"))
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        with pytest.raises(UpstreamPermanent):
            await generator.generate_one(sample_scenes()[0])

        assert provider.calls == 1
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(503))
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        with pytest.raises(UpstreamTransient):
            await generator.generate_one(sample_scenes()[0])

        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_request_carries_scene_seed(self, sample_scenes, recording_sleep):
        provider = MockProvider(image_response())
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        await generator.generate_one(sample_scenes(seed=4242)[1])

        body = provider.json_body()
        assert body["seed"] == 4242
        assert body["n"] == 4
        assert body["size"] == "576x1024"
        assert provider.requests[0].headers["Authorization"] == "Bearer ark-test"

    @pytest.mark.asyncio
    async def test_malformed_response_is_permanent(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(200, json={"error": "nope"}))
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        with pytest.raises(UpstreamPermanent, match="API响应格式错误"):
            await generator.generate_one(sample_scenes()[0])

    @pytest.mark.asyncio
    async def test_empty_data_gives_single_placeholder(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(200, json={"data": []}))
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        image_set = await generator.generate_one(sample_scenes()[0])

        assert [img.url for img in image_set.images] == [PLACEHOLDER_URL]


class TestGenerateAll:
    """Tests for batched generation of all four scenes."""

    @pytest.mark.asyncio
    async def test_results_sorted_despite_completion_order(self, recording_sleep):
        from storyframe.services.models import Scene

        client = SlowFirstClient()
        scenes = [Scene(scene_id=i, prompt=f"scene #{i}", video_prompt="v", seed=1) for i in range(1, 5)]
        generator = make_generator(client, sleep=recording_sleep, batch_size=4)

        result = await generator.generate_all(scenes)

        assert client.finished == [4, 3, 2, 1]
        assert [r.scene_id for r in result.results] == [1, 2, 3, 4]
        assert result.all_succeeded

    @pytest.mark.asyncio
    async def test_batches_are_separated_by_cooldown(self, sample_scenes, recording_sleep):
        provider = MockProvider(image_response())
        generator = make_generator(ark_client(provider), sleep=recording_sleep, batch_size=2)

        result = await generator.generate_all(sample_scenes())

        assert provider.calls == 4
        assert recording_sleep.delays == [1.0, 1.0, 2.0, 1.0, 1.0]
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_total_failure_returns_placeholders(self, sample_scenes, recording_sleep):
        provider = MockProvider(httpx.Response(401, text="invalid key"))
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        result = await generator.generate_all(sample_scenes())

        assert len(result.results) == 4
        assert len(result.errors) == 4
        assert result.errors[0].startswith("场景1: ")
        for image_set in result.results:
            assert not image_set.success
            assert len(image_set.images) == 4
            assert all(img.is_fallback for img in image_set.images)

    @pytest.mark.asyncio
    async def test_without_client_every_scene_is_placeholder(self, sample_scenes, recording_sleep):
        generator = make_generator(None, sleep=recording_sleep)

        result = await generator.generate_all(sample_scenes())

        assert all(not r.success for r in result.results)
        assert "图片生成服务未配置" in result.errors[0]

    @pytest.mark.asyncio
    async def test_partial_failure(self, sample_scenes, recording_sleep):
        def by_prompt(request):
            if b"broken" in request.content:
                return httpx.Response(400, text="content policy")
            return image_response()

        scenes = sample_scenes()
        scenes[2].prompt = "broken prompt"
        provider = MockProvider(by_prompt)
        generator = make_generator(ark_client(provider), sleep=recording_sleep)

        result = await generator.generate_all(scenes)

        assert [r.success for r in result.results] == [True, True, False, True]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("场景3: ")

    @pytest.mark.asyncio
    async def test_results_are_persisted_with_scope(self, sample_scenes, recording_sleep, memory_store):
        provider = MockProvider(image_response())
        generator = make_generator(ark_client(provider), store=memory_store, sleep=recording_sleep)

        await generator.generate_all(sample_scenes(), scope=("diary-1", "user-1"))

        records = await memory_store.query(IMAGE_GENERATION_RESULTS, {"diary_id": "diary-1"})
        assert len(records) == 1
        assert records[0]["owner_id"] == "user-1"
        assert records[0]["status"] == "completed"
        assert [r["scene_id"] for r in records[0]["results"]] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 3, 5])
    async def test_scene_count_must_be_four(self, sample_scenes, recording_sleep, count):
        provider = MockProvider(image_response())
        generator = make_generator(ark_client(provider), sleep=recording_sleep)
        scenes = (sample_scenes() * 2)[:count]

        with pytest.raises(ValidationFailed, match="分镜数量必须为4个"):
            await generator.generate_all(scenes)

        assert provider.calls == 0


class BuggyClient:
    """Image client with a programming error."""

    async def generate(self, prompt, size="576x1024", n=4, quality="standard", seed=None):
        return prompt.missing_attribute


class TestUnexpectedErrors:
    """Errors outside the pipeline taxonomy are not masked by placeholders."""

    @pytest.mark.asyncio
    async def test_programming_error_propagates(self, sample_scenes, recording_sleep):
        generator = make_generator(BuggyClient(), sleep=recording_sleep)

        with pytest.raises(AttributeError):
            await generator.generate_all(sample_scenes())
