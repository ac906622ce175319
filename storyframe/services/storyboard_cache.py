"""
Storyboard Cache - per (diary, owner) storyboards with a soft TTL.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from storyframe.persistence import DESC, STORYBOARD_CACHE, RecordStore
from storyframe.providers.exceptions import PersistenceFailed

from .models import Storyboard

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoryboardCache:
    """
    Read-through cache over the `storyboard_cache` collection.

    Entries are appended, never overwritten; the newest entry wins. An entry
    whose age is >= ttl is treated as absent. Lookup failures count as misses.
    """

    def __init__(self, store: RecordStore, ttl_hours: float = 24.0, clock: Optional[Clock] = None):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock or utc_now

    async def get(self, diary_id: str, owner_id: str) -> Optional[Storyboard]:
        try:
            records = await self.store.query(
                STORYBOARD_CACHE,
                {"diary_id": diary_id, "owner_id": owner_id},
                order_by=("created_at", DESC),
                limit=1,
            )
        except Exception as e:
            logger.warning(f"[CACHE] Lookup failed for diary {diary_id}, treating as miss: {e}")
            return None

        if not records:
            logger.debug(f"[CACHE] Miss for diary {diary_id}")
            return None

        record = records[0]
        try:
            created_at = datetime.fromisoformat(record["created_at"])
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            storyboard = Storyboard.from_list(record["storyboards"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[CACHE] Corrupt entry for diary {diary_id}, treating as miss: {e}")
            return None

        age = self.clock() - created_at
        if age >= self.ttl:
            logger.info(f"[CACHE] Expired entry for diary {diary_id} (age {age})")
            return None

        logger.info(f"[CACHE] Hit for diary {diary_id}")
        return storyboard

    async def put(self, diary_id: str, owner_id: str, storyboard: Storyboard) -> str:
        """Append a new entry. Raises PersistenceFailed when the store rejects it."""
        try:
            return await self.store.add(STORYBOARD_CACHE, {
                "diary_id": diary_id,
                "owner_id": owner_id,
                "storyboards": storyboard.to_list(),
                "created_at": self.clock().isoformat(),
            })
        except PersistenceFailed:
            raise
        except Exception as e:
            raise PersistenceFailed(f"缓存写入失败: {e}") from e
