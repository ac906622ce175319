"""
Video task state transitions.

processing -> completed | failed. Terminal states never change.
"""
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .models import VideoTask, VideoTaskStatus

MISSING_VIDEO_URL = "视频生成完成但未获取到视频URL"
PROVIDER_FAILED = "视频生成失败"

PROCESSING_STATES = ("processing", "in_queue")


def map_provider_status(payload: Dict[str, Any]) -> Tuple[VideoTaskStatus, Optional[str], Optional[str]]:
    """
    Map a provider result payload to (status, video_url, error).

    done + video_url -> completed; done without url -> failed;
    failed -> failed; processing / in_queue / anything else -> processing.
    """
    provider_status = payload.get("status")
    video_url = payload.get("video_url")

    if provider_status == "done":
        if video_url:
            return VideoTaskStatus.COMPLETED, video_url, None
        return VideoTaskStatus.FAILED, None, MISSING_VIDEO_URL

    if provider_status == "failed":
        error = payload.get("error_message") or payload.get("message") or PROVIDER_FAILED
        return VideoTaskStatus.FAILED, None, error

    return VideoTaskStatus.PROCESSING, None, None


def apply_provider_status(task: VideoTask, payload: Dict[str, Any], now: datetime) -> Tuple[VideoTask, bool]:
    """
    Apply a provider payload to a task without side effects.

    Returns:
        (new task snapshot, whether the status changed)
    """
    if task.status.is_terminal:
        return task, False

    status, video_url, error = map_provider_status(payload or {})
    if status is task.status:
        return task, False

    updated = replace(
        task,
        status=status,
        video_url=video_url if status is VideoTaskStatus.COMPLETED else task.video_url,
        error=error,
        updated_at=now,
    )
    return updated, True
