"""
Video Task Manager - image-to-video submission and status polling.

A task is persisted as soon as the provider accepts it and is then advanced
by explicit poll() calls from the caller. There is no background scheduler.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from storyframe.config import PipelineConfig, is_configured
from storyframe.persistence import VIDEO_TASKS, BlobStore, RecordStore, blob_id_from_ref, is_blob_ref
from storyframe.providers.exceptions import (
    MissingExternalReference,
    PersistenceFailed,
    TaskNotFound,
    UpstreamPermanent,
    ValidationFailed,
)
from storyframe.providers.video import REQ_KEY, VideoGenerationClient

from .models import VideoTask, VideoTaskStatus
from .retry import Sleep
from .video_status import apply_provider_status

logger = logging.getLogger(__name__)

Credentials = Tuple[str, str]  # (access_key, secret_key)

DEFAULT_VIDEO_PROMPT = "根据图片内容生成一个精美的视频，展现画面中的美好时光"
DEFAULT_SUBMIT_PARAMS: Dict[str, Any] = {
    "seed": -1,
    "aspect_ratio": "16:9",
    "image_strength": 0.8,
    "motion_strength": 0.6,
}
CREDENTIALS_MISSING = "视频生成服务未配置，请检查密钥配置"


def build_submit_payload(image_url: str, video_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Provider submit body; known keys in video_params override the defaults."""
    params = video_params or {}
    payload: Dict[str, Any] = {
        "req_key": REQ_KEY,
        "prompt": params.get("prompt") or DEFAULT_VIDEO_PROMPT,
        "image_url": image_url,
    }
    for key, default in DEFAULT_SUBMIT_PARAMS.items():
        value = params.get(key)
        payload[key] = default if value is None or value == "" else value
    return payload


class VideoTaskManager:
    """Submits, persists and polls image-to-video tasks."""

    def __init__(
        self,
        store: RecordStore,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        blob_store: Optional[BlobStore] = None,
        config: Optional[PipelineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.access_key = access_key
        self.secret_key = secret_key
        self.blob_store = blob_store
        self.config = config or PipelineConfig()
        self.http_client = http_client or httpx.AsyncClient()
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _client(self, credentials: Optional[Credentials] = None) -> VideoGenerationClient:
        access_key, secret_key = credentials or (self.access_key, self.secret_key)
        if not (is_configured(access_key) and is_configured(secret_key)):
            raise UpstreamPermanent(CREDENTIALS_MISSING, VideoGenerationClient.PROVIDER)

        return VideoGenerationClient(
            access_key,
            secret_key,
            submit_timeout=self.config.video_submit_timeout,
            poll_timeout=self.config.video_poll_timeout,
            client=self.http_client,
            clock=self.clock,
        )

    async def _resolve_image(self, ref: str) -> str:
        if not is_blob_ref(ref):
            return ref
        if self.blob_store is None:
            raise ValidationFailed(f"无法解析图片引用: {ref}")
        return await self.blob_store.get_temp_url(blob_id_from_ref(ref))

    async def submit(
        self,
        selected_images: List[str],
        video_params: Optional[Dict[str, Any]] = None,
        credentials: Optional[Credentials] = None,
        *,
        owner_id: str,
        diary_ref: str,
        scene_ref: str = "batch",
    ) -> VideoTask:
        """
        Submit an image-to-video task and persist it as processing.

        Nothing is sent when validation fails or credentials are missing,
        and nothing is persisted when the provider rejects the task.
        """
        if not isinstance(selected_images, list) or not selected_images:
            raise ValidationFailed("请选择至少一张图片")
        if not diary_ref:
            raise ValidationFailed("缺少日记ID")

        client = self._client(credentials)
        video_params = dict(video_params or {})

        image_url = await self._resolve_image(selected_images[0])
        payload = build_submit_payload(image_url, video_params)

        external_id = await client.submit_task(payload)

        now = self.clock()
        task = VideoTask(
            internal_id=None,
            external_task_id=external_id,
            owner_id=owner_id,
            diary_ref=diary_ref,
            scene_ref=scene_ref or "batch",
            selected_images=list(selected_images),
            status=VideoTaskStatus.PROCESSING,
            video_params=video_params,
            created_at=now,
            updated_at=now,
        )
        task.internal_id = await self.store.add(VIDEO_TASKS, task.to_record())

        logger.info(f"[VIDEO] Task {task.internal_id} created (provider task {external_id})")
        return task

    async def get(self, internal_id: str) -> VideoTask:
        record = await self.store.get(VIDEO_TASKS, internal_id)
        if record is None:
            raise TaskNotFound(internal_id)
        return VideoTask.from_record(internal_id, record)

    async def poll(self, internal_id: str) -> VideoTask:
        """
        Query the provider once and advance the task.

        Terminal tasks are returned as stored. Only the transition to
        completed is written back.
        """
        task = await self.get(internal_id)
        if task.status.is_terminal:
            return task
        if not task.external_task_id:
            raise MissingExternalReference(f"任务缺少外部任务ID: {internal_id}")

        payload = await self._client().query_task(task.external_task_id)
        now = self.clock()
        updated, changed = apply_provider_status(task, payload, now)

        if changed:
            logger.info(f"[VIDEO] Task {internal_id}: {task.status.value} -> {updated.status.value}")

        if changed and updated.status is VideoTaskStatus.COMPLETED:
            try:
                await self.store.update(VIDEO_TASKS, {"_id": internal_id}, {
                    "status": updated.status.value,
                    "video_url": updated.video_url,
                    "updated_at": now.isoformat(),
                    "completed_at": now.isoformat(),
                })
            except PersistenceFailed as e:
                logger.error(f"[VIDEO] Failed to persist completion of {internal_id}: {e.message}")

        return updated

    async def wait_for_completion(
        self,
        internal_id: str,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> VideoTask:
        """Poll until the task is terminal or the deadline passes; returns the last snapshot."""
        interval = interval if interval is not None else self.config.video_poll_interval
        timeout = timeout if timeout is not None else self.config.video_poll_deadline

        waited = 0.0
        task = await self.poll(internal_id)
        while not task.status.is_terminal and waited < timeout:
            await self.sleep(interval)
            waited += interval
            task = await self.poll(internal_id)

        if not task.status.is_terminal:
            logger.warning(f"[VIDEO] Task {internal_id} still {task.status.value} after {waited:.0f}s")
        return task

    async def close(self):
        await self.http_client.aclose()
