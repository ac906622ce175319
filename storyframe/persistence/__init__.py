"""
Persistence Module.
Provides the Record Store (SQLite or in-memory) and the Blob Store.
"""
import logging

from .database import connect, transaction, init_schema
from .record_store import (
    RecordStore,
    MemoryRecordStore,
    SQLiteRecordStore,
    ASC,
    DESC,
    ID_FIELD,
)
from .blob_store import BlobStore, LocalBlobStore, is_blob_ref, blob_id_from_ref

logger = logging.getLogger(__name__)

STORAGE_BACKEND_SQLITE = "sqlite"
STORAGE_BACKEND_MEMORY = "memory"

# Collections written by the pipeline
STORYBOARD_CACHE = "storyboard_cache"
IMAGE_GENERATION_RESULTS = "image_generation_results"
VIDEO_TASKS = "video_tasks"


def get_record_store(config) -> RecordStore:
    """Build the Record Store selected by config.storage.backend."""
    backend = config.storage.backend
    if backend == STORAGE_BACKEND_MEMORY:
        logger.info("Using in-memory record store")
        return MemoryRecordStore()
    if backend != STORAGE_BACKEND_SQLITE:
        logger.warning(f"Unknown STORAGE_BACKEND={backend!r}, falling back to sqlite")
    return SQLiteRecordStore(config.storage.database_path)


def get_blob_store(config) -> BlobStore:
    """Build the local Blob Store from config.storage."""
    return LocalBlobStore(
        root_dir=config.storage.blob_dir,
        url_base=config.storage.blob_url_base,
        secret=config.storage.blob_url_secret,
        ttl=config.storage.blob_url_ttl,
    )


__all__ = [
    "connect",
    "transaction",
    "init_schema",
    "RecordStore",
    "MemoryRecordStore",
    "SQLiteRecordStore",
    "ASC",
    "DESC",
    "ID_FIELD",
    "BlobStore",
    "LocalBlobStore",
    "is_blob_ref",
    "blob_id_from_ref",
    "get_record_store",
    "get_blob_store",
    "STORAGE_BACKEND_SQLITE",
    "STORAGE_BACKEND_MEMORY",
    "STORYBOARD_CACHE",
    "IMAGE_GENERATION_RESULTS",
    "VIDEO_TASKS",
]
