"""
Local Storyboard Generator - template storyboards without an LLM.

Used when the model is not configured or every model attempt failed. Scenes
are assembled from keyword dictionaries and per-beat template fragments, so
output is deterministic for a given text, character and seed.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List

from .models import (
    DEFAULT_CHARACTER,
    SCENE_COUNT,
    Scene,
    SceneStyle,
    Storyboard,
    truncate_prompt,
)

logger = logging.getLogger(__name__)

# =============================================================================
# DICTIONARIES
# =============================================================================

# Bilingual keys -> canonical Chinese token (insertion order is match order)
KEYWORD_MAP: Dict[str, str] = {
    "学校": "学校", "教室": "教室", "朋友": "朋友", "家里": "家里",
    "公园": "公园", "咖啡厅": "咖啡厅", "图书馆": "图书馆", "操场": "操场",
    "家人": "家人", "学习": "学习", "工作": "工作", "自然": "自然",
    "school": "学校", "classroom": "教室", "friends": "朋友", "home": "家里",
    "park": "公园", "cafe": "咖啡厅", "library": "图书馆", "playground": "操场",
    "family": "家人", "study": "学习", "work": "工作", "nature": "自然",
}
DEFAULT_KEYWORDS = ["日常生活", "宁静场景"]
MAX_KEYWORDS = 4

EMOTION_KEYWORDS: Dict[str, List[str]] = {
    "peaceful": ["平静", "安静", "舒适", "peaceful", "calm", "quiet"],
    "engaged": ["忙碌", "活跃", "专注", "busy", "active", "focused"],
    "emotional": ["激动", "感动", "难过", "excited", "moved", "emotional"],
    "reflective": ["思考", "回忆", "总结", "thinking", "reflecting", "remembering"],
}

LOCATION_KEYWORDS: Dict[str, List[str]] = {
    "日常环境": ["家", "房间", "home", "room"],
    "主要场景": ["学校", "公司", "school", "office"],
    "关键地点": ["公园", "咖啡厅", "park", "cafe"],
    "宁静场所": ["图书馆", "花园", "library", "garden"],
}

ACTIVITY_KEYWORDS: Dict[str, List[str]] = {
    "日常起居": ["起床", "吃饭", "waking up", "eating"],
    "主要活动": ["学习", "工作", "studying", "working"],
    "情感时刻": ["聊天", "玩耍", "chatting", "playing"],
    "思考反省": ["思考", "写作", "thinking", "writing"],
}

DEFAULT_VIDEO_PROMPTS = {
    1: "特写镜头，画面稳定",
    2: "中景镜头，轻微左摇",
    3: "广角镜头，缓慢拉远",
    4: "特写镜头，聚焦于细节",
}

# =============================================================================
# TEMPLATE FRAGMENTS
# =============================================================================

BASE_STYLE = "韩式动漫3D风格"

LIGHTING = {
    "opening": "柔和的晨光",
    "development": "明亮的自然光",
    "climax": "戏剧性的电影光效",
    "ending": "温暖的黄金时刻光线",
}

CAMERA_BY_EMOTION = {
    "peaceful": "中景, 平视角度",
    "engaged": "特写镜头, 轻微低角度",
    "emotional": "戏剧性特写, 高对比度",
    "reflective": "远景, 鸟瞰视角",
}

PALETTE_BY_LOCATION = {
    "日常环境": "暖色调, 柔和阴影",
    "主要场景": "鲜艳的色彩, 均衡曝光",
    "关键地点": "丰富的色彩深度, 选择性对焦",
    "宁静场所": "柔和的色调, 平缓的渐变",
}

MOOD_BY_EMOTION = {
    "peaceful": "宁静祥和的氛围",
    "engaged": "充满活力和专注的氛围",
    "emotional": "紧张而富有戏剧性的感觉",
    "reflective": "沉思和怀旧的氛围",
}

TECHNICAL_SPECS = "9:16竖版，高画质，细节丰富"


def default_video_prompt(scene_id: int) -> str:
    return DEFAULT_VIDEO_PROMPTS.get(scene_id, "镜头缓慢移动")


def default_scene_prompt(character: str, scene_id: int) -> str:
    """Prompt used when the model left a scene's prompt empty."""
    return f"{character}，韩式动漫3D风格，场景{scene_id}的日常生活描述，中景镜头，柔和光线，温馨氛围，9:16竖版，高画质"


# =============================================================================
# EXTRACTION
# =============================================================================

def extract_keywords(text: str) -> List[str]:
    found: List[str] = []
    for key, token in KEYWORD_MAP.items():
        if key in text and token not in found:
            found.append(token)
    return found[:MAX_KEYWORDS] if found else list(DEFAULT_KEYWORDS)


def _match_categories(text: str, table: Dict[str, List[str]]) -> List[str]:
    """Categories with at least one key present in text; all categories when none match."""
    found = [category for category, keys in table.items() if any(k in text for k in keys)]
    return found or list(table)


def extract_emotions(text: str) -> List[str]:
    return _match_categories(text, EMOTION_KEYWORDS)


def extract_locations(text: str) -> List[str]:
    return _match_categories(text, LOCATION_KEYWORDS)


def extract_activities(text: str) -> List[str]:
    return _match_categories(text, ACTIVITY_KEYWORDS)


# =============================================================================
# SCENE ANALYSIS
# =============================================================================

@dataclass
class Beat:
    """One narrative beat's extracted ingredients."""
    type: str
    keywords: List[str]
    emotion: str
    location: str
    activity: str


def _pick(items: List[str], *indexes: int, default: str) -> str:
    for i in indexes:
        if i < len(items) and items[i]:
            return items[i]
    return default


def analyze_beats(text: str) -> List[Beat]:
    """Map the text onto opening / development / climax / ending."""
    keywords = extract_keywords(text)
    emotions = extract_emotions(text)
    locations = extract_locations(text)
    activities = extract_activities(text)

    return [
        Beat(
            type="opening",
            keywords=keywords[0:2],
            emotion=_pick(emotions, 0, default="peaceful"),
            location=_pick(locations, 0, default="日常环境"),
            activity=_pick(activities, 0, default="日常起居"),
        ),
        Beat(
            type="development",
            keywords=keywords[1:3],
            emotion=_pick(emotions, 1, default="engaged"),
            location=_pick(locations, 1, 0, default="主要场景"),
            activity=_pick(activities, 1, 0, default="主要活动"),
        ),
        Beat(
            type="climax",
            keywords=keywords[2:4],
            emotion=_pick(emotions, 2, 0, default="emotional"),
            location=_pick(locations, 2, 0, default="关键地点"),
            activity=_pick(activities, 2, default="情感时刻"),
        ),
        Beat(
            type="ending",
            keywords=keywords[0:2],
            emotion=_pick(emotions, 3, default="reflective"),
            location=_pick(locations, 3, default="宁静场所"),
            activity=_pick(activities, 3, default="思考反省"),
        ),
    ]


# =============================================================================
# PROMPT ASSEMBLY
# =============================================================================

def style_fragment(beat_type: str) -> str:
    lighting = LIGHTING.get(beat_type, "柔和光线")
    return f"{BASE_STYLE}, {lighting}, 电影感构图"


def subject_fragment(beat_type: str, activity: str, keywords: List[str]) -> str:
    keyword_str = ", ".join(keywords[:3]) if keywords else "日常生活元素"
    templates = {
        "opening": f"一个年轻人开始新的一天，正在{activity}，周围环境包含{keyword_str}，展现日常生活的开始",
        "development": f"主角专注地进行{activity}，身处充满{keyword_str}的环境中，展现积极投入的状态",
        "climax": f"情感高潮时刻，主角深度体验{activity}，{keyword_str}成为画面的重要元素，突出内心感受",
        "ending": f"宁静的结尾场景，主角在{activity}后进行反思，{keyword_str}作为背景元素营造温馨氛围",
    }
    return templates.get(beat_type, f"展现{activity}的场景，包含{keyword_str}元素")


def aesthetic_fragment(emotion: str, location: str) -> str:
    camera = CAMERA_BY_EMOTION.get(emotion, "中景, 平衡构图")
    palette = PALETTE_BY_LOCATION.get(location, "和谐的色调")
    return f"{camera}, {palette}, 景深, 专业摄影"


def atmosphere_fragment(emotion: str) -> str:
    mood = MOOD_BY_EMOTION.get(emotion, "均衡的情感基调")
    return f"{mood}, {TECHNICAL_SPECS}, 梦幻空灵的质感"


def compose_prompt(beat: Beat, character: str) -> str:
    """character, style, subject, aesthetics, atmosphere; truncated to the prompt limit."""
    prompt = ", ".join([
        character,
        style_fragment(beat.type),
        subject_fragment(beat.type, beat.activity, beat.keywords),
        aesthetic_fragment(beat.emotion, beat.location),
        atmosphere_fragment(beat.emotion),
    ])
    return truncate_prompt(prompt)


def generate_local_storyboard(text: str, character: str, seed: int) -> Storyboard:
    """Build the four-scene template storyboard. Never fails."""
    character = character or DEFAULT_CHARACTER
    beats = analyze_beats(text or "")

    scenes = [
        Scene(
            scene_id=index,
            prompt=compose_prompt(beat, character),
            video_prompt=default_video_prompt(index),
            seed=seed,
            style=SceneStyle(),
        )
        for index, beat in enumerate(beats[:SCENE_COUNT], start=1)
    ]

    logger.info(f"[STORYBOARD] Local template storyboard built (seed={seed})")
    return Storyboard(scenes=scenes)
