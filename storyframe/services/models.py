"""
Pipeline Models - Data structures shared by the storyboard, image and video stages.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

SCENE_COUNT = 4
MAX_PROMPT_LENGTH = 280
DEFAULT_CHARACTER = "一个可爱的小女孩"


def truncate_prompt(prompt: str, limit: int = MAX_PROMPT_LENGTH) -> str:
    return prompt[:limit]


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class GenerationRequest:
    """One caller request. Immutable once submitted."""
    source_text: str
    owner_id: str
    job_id: Optional[str] = None  # diary id; scopes the cache when present

    @property
    def scope(self) -> Optional[Tuple[str, str]]:
        """(diary_id, owner_id) when the request is tied to a diary."""
        return (self.job_id, self.owner_id) if self.job_id else None



@dataclass
class CharacterCard:
    """Recurring subject description injected into every scene prompt."""
    short_description: str = DEFAULT_CHARACTER
    hair_style: str = ""
    eye_color: str = ""
    outfit: str = ""
    accessories: str = ""

    @property
    def full_description(self) -> str:
        parts = [self.short_description, self.hair_style, self.eye_color, self.outfit, self.accessories]
        return "，".join(p for p in parts if p) or DEFAULT_CHARACTER

    @classmethod
    def default(cls) -> "CharacterCard":
        return cls()

    @classmethod
    def from_model_output(cls, data: Dict[str, Any]) -> "CharacterCard":
        """Build from the LLM's {description, hair_style, ...} object."""
        def text(key: str) -> str:
            value = data.get(key)
            return str(value).strip() if value else ""

        return cls(
            short_description=text("description") or text("short_description") or DEFAULT_CHARACTER,
            hair_style=text("hair_style"),
            eye_color=text("eye_color"),
            outfit=text("outfit"),
            accessories=text("accessories"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["full_description"] = self.full_description
        return data


@dataclass
class SceneStyle:
    """Rendering style shared by every scene of a storyboard."""
    model: str = "dmx-3.0"
    preset: str = "korean_anime"
    color: str = "light_blue"
    aspect_ratio: str = "9:16"

    @classmethod
    def merged(cls, overrides: Optional[Dict[str, Any]]) -> "SceneStyle":
        """Defaults, overridden key by key by whatever the model supplied."""
        style = cls()
        if isinstance(overrides, dict):
            for key in ("model", "preset", "color", "aspect_ratio"):
                if overrides.get(key):
                    setattr(style, key, str(overrides[key]))
        return style

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class Scene:
    """One of the four narrative beats."""
    scene_id: int
    prompt: str
    video_prompt: str
    seed: int
    style: SceneStyle = field(default_factory=SceneStyle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "prompt": self.prompt,
            "video_prompt": self.video_prompt,
            "seed": self.seed,
            "style": self.style.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scene":
        return cls(
            scene_id=int(data["scene_id"]),
            prompt=data.get("prompt", ""),
            video_prompt=data.get("video_prompt", ""),
            seed=int(data["seed"]),
            style=SceneStyle.merged(data.get("style")),
        )


@dataclass
class Storyboard:
    """Exactly four scenes sharing one seed."""
    scenes: List[Scene]

    @property
    def seed(self) -> int:
        return self.scenes[0].seed

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.scenes]

    @classmethod
    def from_list(cls, items: List[Dict[str, Any]]) -> "Storyboard":
        """Raises ValueError unless the items are scenes 1..4 sharing one seed."""
        scenes = sorted((Scene.from_dict(item) for item in items), key=lambda s: s.scene_id)
        if [s.scene_id for s in scenes] != [1, 2, 3, 4]:
            raise ValueError(f"expected scenes 1-4, got {[s.scene_id for s in scenes]}")
        if len({s.seed for s in scenes}) != 1:
            raise ValueError("scenes do not share one seed")
        return cls(scenes=scenes)


@dataclass
class StoryboardGeneration:
    """Output of the storyboard stage."""
    storyboard: Storyboard
    seed: int
    character_card: Optional[CharacterCard] = None  # None on cache hits
    from_cache: bool = False
    source: str = "model"  # cache | model | fallback

    def to_dict(self) -> Dict[str, Any]:
        return {
            "storyboards": self.storyboard.to_list(),
            "character_card": self.character_card.to_dict() if self.character_card else None,
            "global_seed": self.seed,
            "from_cache": self.from_cache,
            "source": self.source,
        }


@dataclass
class Image:
    """One candidate image for a scene."""
    id: str
    url: str
    width: int
    height: int
    quality_score: int
    style_consistency: int
    seed: int
    is_fallback: bool = False
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Image":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


@dataclass
class SceneImageSet:
    """Candidate images for one scene, best first."""
    scene_id: int
    images: List[Image]
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "images": [img.to_dict() for img in self.images],
            "success": self.success,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneImageSet":
        return cls(
            scene_id=int(data["scene_id"]),
            images=[Image.from_dict(i) for i in data.get("images", [])],
            success=data.get("success", True),
            error=data.get("error"),
        )


@dataclass
class BatchImageResult:
    """All four scene image sets plus the per-scene failures that were absorbed."""
    results: List[SceneImageSet]
    errors: List[str] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [r.to_dict() for r in self.results],
            "errors": self.errors or None,
        }


class VideoTaskStatus(str, Enum):
    """Video task lifecycle."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoTaskStatus.COMPLETED, VideoTaskStatus.FAILED)


@dataclass
class VideoTask:
    """Persisted image-to-video job."""
    internal_id: Optional[str]
    external_task_id: Optional[str]
    owner_id: str
    diary_ref: str
    scene_ref: str
    selected_images: List[str]
    status: VideoTaskStatus = VideoTaskStatus.PROCESSING
    video_url: Optional[str] = None
    error: Optional[str] = None
    video_params: Dict[str, Any] = field(default_factory=dict)
    service_type: str = "jimeng"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        """Record Store document (internal_id is the record key, not a field)."""
        return {
            "external_task_id": self.external_task_id,
            "owner_id": self.owner_id,
            "diary_ref": self.diary_ref,
            "scene_ref": self.scene_ref,
            "selected_images": list(self.selected_images),
            "video_params": dict(self.video_params),
            "service_type": self.service_type,
            "status": self.status.value,
            "video_url": self.video_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_record(cls, internal_id: str, data: Dict[str, Any]) -> "VideoTask":
        return cls(
            internal_id=internal_id,
            external_task_id=data.get("external_task_id"),
            owner_id=data.get("owner_id", ""),
            diary_ref=data.get("diary_ref", ""),
            scene_ref=data.get("scene_ref", "batch"),
            selected_images=list(data.get("selected_images") or []),
            status=VideoTaskStatus(data.get("status", VideoTaskStatus.PROCESSING.value)),
            video_url=data.get("video_url"),
            error=data.get("error"),
            video_params=dict(data.get("video_params") or {}),
            service_type=data.get("service_type", "jimeng"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_record()
        data["task_id"] = self.internal_id
        data["error"] = self.error
        return data


@dataclass
class PipelineResult:
    """Tagged result returned across the pipeline boundary."""
    success: bool
    data: Any = None
    message: str = ""
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "PipelineResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, message: str, error_code: str, data: Any = None) -> "PipelineResult":
        return cls(success=False, data=data, message=message, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "message": self.message,
            "error_code": self.error_code,
        }
