"""
Application Configuration - Environment Variable Management.
Loads and validates configuration from .env file.

Nothing here is a module-level singleton: call load_config() and hand the
resulting AppConfig to each component at construction time.
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

PLACEHOLDER_PREFIXES = ("PASTE_", "YOUR_")


def is_configured(value: Optional[str]) -> bool:
    """A key counts as configured when it is non-empty and not a placeholder."""
    return bool(value and not value.startswith(PLACEHOLDER_PREFIXES))


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for logging (first 8 chars + last 4)."""
    if not value:
        return "NOT SET"
    if len(value) <= 12:
        return "***"
    return value[:8] + "..." + value[-4:]


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid float for {name}={raw!r}, using {default}")
        return default


def _read_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid int for {name}={raw!r}, using {default}")
        return default
    return max(value, minimum)


@dataclass
class ProviderConfig:
    """Credentials and endpoints for the three generative services."""
    deepseek_api_key: Optional[str] = None
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    deepseek_model: str = "deepseek-chat"
    ark_api_key: Optional[str] = None  # Image generation (Volcengine Ark)
    ark_image_url: str = "https://ark.cn-beijing.volces.com/api/v3/images/generations"
    ark_image_model: str = "doubao-seedream-3-0-t2i-250415"
    jimeng_access_key: Optional[str] = None  # Image-to-video (Jimeng, signed requests)
    jimeng_secret_key: Optional[str] = None

    @property
    def has_llm(self) -> bool:
        return is_configured(self.deepseek_api_key)

    @property
    def has_image(self) -> bool:
        return is_configured(self.ark_api_key)

    @property
    def has_video(self) -> bool:
        return is_configured(self.jimeng_access_key) and is_configured(self.jimeng_secret_key)


@dataclass
class PipelineConfig:
    """Tuning knobs for the generation pipeline."""
    cache_ttl_hours: float = 24.0
    image_batch_size: int = 2
    image_batch_cooldown: float = 2.0  # seconds between batches
    images_per_scene: int = 4
    image_size: str = "576x1024"

    # Per-call deadlines (seconds)
    text_timeout: float = 30.0
    image_timeout: float = 60.0
    video_submit_timeout: float = 60.0
    video_poll_timeout: float = 30.0

    # Retry policies
    llm_max_retries: int = 3
    llm_retry_base: float = 1.0
    character_card_retries: int = 2
    image_max_retries: int = 5
    image_retry_base: float = 3.0
    image_retry_cap: float = 30.0
    image_warmup_delay: float = 1.0

    # Caller-side polling helper
    video_poll_interval: float = 5.0
    video_poll_deadline: float = 180.0


@dataclass
class StorageConfig:
    """Record Store / Blob Store configuration."""
    backend: str = "sqlite"
    database_path: str = "data/storyframe.db"
    blob_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "blobs")
    blob_url_base: str = "http://localhost:8000/blobs"
    blob_url_secret: str = "change-me-blob-url-secret"
    blob_url_ttl: int = 3600  # seconds


@dataclass
class AppConfig:
    """Main Application Configuration."""
    providers: ProviderConfig
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    debug: bool = False

    def validate(self) -> dict:
        """Validate configuration and return status."""
        return {
            "providers": {
                "llm_configured": self.providers.has_llm,
                "image_configured": self.providers.has_image,
                "video_configured": self.providers.has_video,
            },
            "storage": {
                "backend": self.storage.backend,
                "path": self.storage.database_path,
            },
            # Storyboards and images degrade to local fallbacks
            "ready_for_storyboards": True,
            "ready_for_video": self.providers.has_video,
        }

    def log_status(self):
        """Log configuration status (without exposing keys)."""
        status = self.validate()

        logger.info("=" * 50)
        logger.info("Configuration Status:")
        logger.info(f"  DeepSeek API: {mask_secret(self.providers.deepseek_api_key) if status['providers']['llm_configured'] else 'NOT CONFIGURED'}")
        logger.info(f"  Image API: {'OK' if status['providers']['image_configured'] else 'NOT CONFIGURED'}")
        logger.info(f"  Video API: {'OK' if status['providers']['video_configured'] else 'NOT CONFIGURED'}")
        logger.info(f"  Storage: {status['storage']['backend']}")
        logger.info(f"  Cache TTL: {self.pipeline.cache_ttl_hours}h, image batch size: {self.pipeline.image_batch_size}")
        logger.info("=" * 50)

        if not status['providers']['llm_configured']:
            logger.warning("No LLM configured - storyboards will use the local template generator")
        if not status['providers']['image_configured']:
            logger.warning("No image API configured - scenes will receive placeholder images")


def load_config(env_file: Optional[Path] = ENV_FILE) -> AppConfig:
    """Load configuration from environment variables."""
    if env_file is not None and env_file.exists():
        load_dotenv(env_file)
        logger.info(f"Loaded environment from {env_file}")

    providers = ProviderConfig(
        deepseek_api_key=os.getenv("DEEPSEEK_API_KEY"),
        deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1"),
        deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
        ark_api_key=os.getenv("VOLC_SECRETKEY"),
        jimeng_access_key=os.getenv("JIMENG_ACCESS_KEY"),
        jimeng_secret_key=os.getenv("JIMENG_SECRET_KEY"),
    )

    pipeline = PipelineConfig(
        cache_ttl_hours=_read_float("CACHE_TTL_HOURS", 24.0),
        image_batch_size=_read_int("IMAGE_BATCH_SIZE", 2),
        image_batch_cooldown=_read_float("IMAGE_BATCH_COOLDOWN", 2.0),
    )

    storage = StorageConfig(
        backend=os.getenv("STORAGE_BACKEND", "sqlite").lower(),
        database_path=os.getenv("DATABASE_PATH", "data/storyframe.db"),
        blob_dir=Path(os.getenv("BLOB_DIR", str(PROJECT_ROOT / "data" / "blobs"))),
        blob_url_base=os.getenv("BLOB_URL_BASE", "http://localhost:8000/blobs"),
        blob_url_secret=os.getenv("BLOB_URL_SECRET", "change-me-blob-url-secret"),
    )

    return AppConfig(
        providers=providers,
        pipeline=pipeline,
        storage=storage,
        debug=os.getenv("DEBUG", "false").lower() == "true",
    )
