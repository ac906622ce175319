"""
Pytest configuration and fixtures for storyframe tests.
"""
import json
import os
import pytest
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List

import httpx

# Set test environment before importing storyframe modules
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DEBUG"] = "true"
for _key in ("DEEPSEEK_API_KEY", "VOLC_SECRETKEY", "JIMENG_ACCESS_KEY", "JIMENG_SECRET_KEY"):
    os.environ.pop(_key, None)

FIXED_NOW = datetime(2024, 1, 31, 8, 9, 10, tzinfo=timezone.utc)


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Settable clock for TTL and timestamp tests."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class MockProvider:
    """
    httpx.MockTransport wrapper that counts calls and serves queued handlers.

    Each queued item is either an httpx.Response, an exception instance to
    raise, or a callable(request) -> httpx.Response. The last item repeats.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def chat_response(content) -> httpx.Response:
    """OpenAI-style chat completion response wrapping `content`."""
    if not isinstance(content, str):
        content = json.dumps(content, ensure_ascii=False)
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def image_response(count: int = 4) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"url": f"https://img.example.com/{i}.png"} for i in range(count)]})


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store():
    from storyframe.persistence import MemoryRecordStore
    return MemoryRecordStore()


@pytest.fixture
def blob_store(temp_dir):
    from storyframe.persistence import LocalBlobStore
    return LocalBlobStore(
        root_dir=temp_dir / "blobs",
        url_base="http://testserver/blobs",
        secret="test-blob-secret",
        ttl=600,
        clock=lambda: 1_700_000_000.0,
    )


@pytest.fixture
def app_config(temp_dir):
    """AppConfig with no provider keys and in-memory storage."""
    from storyframe.config import AppConfig, PipelineConfig, ProviderConfig, StorageConfig
    return AppConfig(
        providers=ProviderConfig(),
        pipeline=PipelineConfig(image_batch_cooldown=0.0),
        storage=StorageConfig(
            backend="memory",
            database_path=str(temp_dir / "test.db"),
            blob_dir=temp_dir / "blobs",
            blob_url_base="http://testserver/blobs",
            blob_url_secret="test-blob-secret",
        ),
        debug=True,
    )


# FastAPI test client fixture
@pytest.fixture
def test_client(app_config):
    """Test client over an app with no provider keys and in-memory storage."""
    from fastapi.testclient import TestClient
    from storyframe.api.main import create_app
    with TestClient(create_app(app_config)) as client:
        yield client


@pytest.fixture
def sample_scenes() -> Callable:
    """Factory for four valid scenes sharing one seed."""
    from storyframe.services.models import Scene

    def make(seed: int = 42, prompt: str = "一个可爱的小女孩，韩式动漫3D风格，9:16竖版"):
        return [Scene(scene_id=i, prompt=prompt, video_prompt="特写镜头", seed=seed) for i in range(1, 5)]

    return make
