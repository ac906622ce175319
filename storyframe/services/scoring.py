"""
Image scoring and placeholder images.

Scores are heuristics: a base value, deterministic bonuses and a small
random jitter, clamped to [0, 100].
"""
import base64
import random
from datetime import datetime, timezone
from typing import List, Optional

from .models import Image

TARGET_RATIO = 9 / 16
IMAGE_WIDTH = 576
IMAGE_HEIGHT = 1024

QUALITY_BASE = 80
STYLE_BASE = 85
STYLE_KEYWORDS = ["韩式", "动漫", "3D", "浅蓝", "竖版"]
STYLE_KEYWORD_BONUS = 2
JITTER = 5

EMPTY_RESPONSE_QUALITY = 75
EMPTY_RESPONSE_CONSISTENCY = 80
PLACEHOLDER_QUALITY = 60
PLACEHOLDER_CONSISTENCY = 70
PLACEHOLDER_COUNT = 4
PLACEHOLDER_URL = f"https://via.placeholder.com/{IMAGE_WIDTH}x{IMAGE_HEIGHT}"


def _clamp(score: float) -> int:
    return max(0, min(100, round(score)))


def _jitter(rng: Optional[random.Random]) -> float:
    return (rng or random).uniform(-JITTER, JITTER)


def quality_score(width: int, height: int, rng: Optional[random.Random] = None) -> int:
    """Base 80, +10 / +5 for aspect ratio within 0.1 / 0.2 of 9:16, +-5 jitter."""
    score = QUALITY_BASE
    if width and height:
        diff = abs(width / height - TARGET_RATIO)
        if diff < 0.1:
            score += 10
        elif diff < 0.2:
            score += 5
    return _clamp(score + _jitter(rng))


def style_consistency(prompt: str, rng: Optional[random.Random] = None) -> int:
    """Base 85, +2 per style keyword present in the prompt, +-5 jitter."""
    lowered = (prompt or "").lower()
    score = STYLE_BASE + STYLE_KEYWORD_BONUS * sum(1 for k in STYLE_KEYWORDS if k.lower() in lowered)
    return _clamp(score + _jitter(rng))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def score_images(
    scene_id: int,
    urls: List[str],
    prompt: str,
    seed: int,
    rng: Optional[random.Random] = None,
) -> List[Image]:
    """Wrap provider URLs into scored Images, best quality first. Never empty."""
    created_at = _now()
    images = [
        Image(
            id=f"scene_{scene_id}_img_{index}",
            url=url,
            width=IMAGE_WIDTH,
            height=IMAGE_HEIGHT,
            quality_score=quality_score(IMAGE_WIDTH, IMAGE_HEIGHT, rng),
            style_consistency=style_consistency(prompt, rng),
            seed=seed,
            created_at=created_at,
        )
        for index, url in enumerate(urls, start=1)
    ]

    if not images:
        images.append(Image(
            id=f"scene_{scene_id}_img_1",
            url=PLACEHOLDER_URL,
            width=IMAGE_WIDTH,
            height=IMAGE_HEIGHT,
            quality_score=EMPTY_RESPONSE_QUALITY,
            style_consistency=EMPTY_RESPONSE_CONSISTENCY,
            seed=seed,
            created_at=created_at,
        ))

    images.sort(key=lambda img: img.quality_score, reverse=True)
    return images


def placeholder_svg_url(scene_id: int) -> str:
    svg = (
        f'<svg width="{IMAGE_WIDTH}" height="{IMAGE_HEIGHT}" xmlns="http://www.w3.org/2000/svg">'
        '<rect width="100%" height="100%" fill="#87CEEB"/>'
        '<text x="50%" y="50%" font-family="Arial, sans-serif" font-size="36" fill="white" '
        f'text-anchor="middle" dy=".3em">Scene {scene_id}</text>'
        '</svg>'
    )
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


def placeholder_images(scene_id: int, seed: int = 0) -> List[Image]:
    """Four flagged placeholders used when a scene could not be generated."""
    url = placeholder_svg_url(scene_id)
    created_at = _now()
    return [
        Image(
            id=f"default_scene_{scene_id}_img_{index}",
            url=url,
            width=IMAGE_WIDTH,
            height=IMAGE_HEIGHT,
            quality_score=PLACEHOLDER_QUALITY,
            style_consistency=PLACEHOLDER_CONSISTENCY,
            seed=seed,
            is_fallback=True,
            created_at=created_at,
        )
        for index in range(1, PLACEHOLDER_COUNT + 1)
    ]
