"""
Record Store - document storage consumed by the pipeline.

Records are JSON-serialisable dicts grouped into collections. Every record
returned by the store carries its key under "_id"; filters may use "_id" too.
"""
import copy
import json
import logging
import re
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from storyframe.providers.exceptions import PersistenceFailed

from .database import connect

logger = logging.getLogger(__name__)

ID_FIELD = "_id"
ASC = "asc"
DESC = "desc"

OrderBy = Tuple[str, str]

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _new_id() -> str:
    return uuid.uuid4().hex


def _check_field(name: str) -> str:
    if not _FIELD_NAME.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


def _check_order(order_by: Optional[OrderBy]) -> Optional[OrderBy]:
    if order_by is None:
        return None
    field_name, direction = order_by
    direction = direction.lower()
    if direction not in (ASC, DESC):
        raise ValueError(f"Invalid sort direction: {direction!r}")
    return _check_field(field_name), direction


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class RecordStore(ABC):
    """Abstract record store: add / get / query / update / remove."""

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a record and return its id."""

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one record by id, or None."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Records whose fields equal every filter value, optionally ordered and paginated."""

    @abstractmethod
    async def update(self, collection: str, filter: Dict[str, Any], data: Dict[str, Any]) -> int:
        """Merge `data` into every matching record. Returns the number updated."""

    @abstractmethod
    async def remove(self, collection: str, filter: Dict[str, Any]) -> int:
        """Delete every matching record. Returns the number removed."""

    async def close(self) -> None:
        return None


def _sort_key(pair, field_name: str):
    # Ties fall back to insertion order, like rowid
    position, (_, data) = pair
    value = data.get(field_name)
    return value is not None, value if value is not None else 0, position


class MemoryRecordStore(RecordStore):
    """In-process store for tests and STORAGE_BACKEND=memory."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _rows(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _matches(record_id: str, data: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
        for key, value in (filter or {}).items():
            actual = record_id if key == ID_FIELD else data.get(key)
            if actual != value:
                return False
        return True

    @staticmethod
    def _out(record_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(data)
        record[ID_FIELD] = record_id
        return record

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        record_id = _new_id()
        # Round-trip through JSON so both backends see the same values
        self._rows(collection)[record_id] = json.loads(json.dumps(data, default=_json_default))
        return record_id

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        data = self._rows(collection).get(record_id)
        return self._out(record_id, data) if data is not None else None

    async def query(self, collection, filter=None, order_by=None, skip=0, limit=None):
        order_by = _check_order(order_by)
        matches = [
            (record_id, data)
            for record_id, data in self._rows(collection).items()
            if self._matches(record_id, data, filter)
        ]

        if order_by:
            field_name, direction = order_by
            # None sorts first ascending, last descending (as in SQLite)
            indexed = list(enumerate(matches))
            indexed.sort(key=lambda pair: _sort_key(pair, field_name), reverse=direction == DESC)
            matches = [item for _, item in indexed]

        end = skip + limit if limit is not None else None
        return [self._out(record_id, data) for record_id, data in matches[skip:end]]

    async def update(self, collection, filter, data):
        patch = json.loads(json.dumps(data, default=_json_default))
        count = 0
        for record_id, existing in self._rows(collection).items():
            if self._matches(record_id, existing, filter):
                existing.update(copy.deepcopy(patch))
                count += 1
        return count

    async def remove(self, collection, filter):
        rows = self._rows(collection)
        doomed = [record_id for record_id, data in rows.items() if self._matches(record_id, data, filter)]
        for record_id in doomed:
            del rows[record_id]
        return len(doomed)


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed store: one `records` table holding JSON documents.

    Filters and ordering use json_extract on the document body.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = connect(self.db_path)
        return self._conn

    @staticmethod
    def _where(collection: str, filter: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        clauses = ["collection = ?"]
        params: List[Any] = [collection]
        for key, value in (filter or {}).items():
            if key == ID_FIELD:
                clauses.append("id = ?")
                params.append(value)
                continue
            path = f"$.{_check_field(key)}"
            if value is None:
                clauses.append("json_extract(data, ?) IS NULL")
                params.append(path)
            elif isinstance(value, bool):
                clauses.append("json_extract(data, ?) = ?")
                params.extend([path, 1 if value else 0])
            elif isinstance(value, (dict, list)):
                clauses.append("json(json_extract(data, ?)) = json(?)")
                params.extend([path, json.dumps(value, ensure_ascii=False)])
            else:
                clauses.append("json_extract(data, ?) = ?")
                params.extend([path, value])
        return " AND ".join(clauses), params

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Dict[str, Any]:
        record = json.loads(row["data"])
        record[ID_FIELD] = row["id"]
        return record

    async def add(self, collection, data):
        record_id = _new_id()
        try:
            self.conn.execute(
                "INSERT INTO records (id, collection, data) VALUES (?, ?, ?)",
                (record_id, collection, json.dumps(data, ensure_ascii=False, default=_json_default)),
            )
        except sqlite3.Error as e:
            logger.error(f"[STORE] Insert into {collection} failed: {e}")
            raise PersistenceFailed(f"写入失败: {e}") from e
        return record_id

    async def get(self, collection, record_id):
        row = self.conn.execute(
            "SELECT id, data FROM records WHERE collection = ? AND id = ?",
            (collection, record_id),
        ).fetchone()
        return self._row_to_record(row) if row else None

    async def query(self, collection, filter=None, order_by=None, skip=0, limit=None):
        order_by = _check_order(order_by)
        where, params = self._where(collection, filter)
        sql = f"SELECT id, data FROM records WHERE {where}"

        if order_by:
            field_name, direction = order_by
            sql += f" ORDER BY json_extract(data, '$.{field_name}') {direction.upper()}, rowid {direction.upper()}"
        else:
            sql += " ORDER BY rowid"

        if limit is not None or skip:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit if limit is not None else -1, skip])

        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailed(f"查询失败: {e}") from e
        return [self._row_to_record(row) for row in rows]

    async def update(self, collection, filter, data):
        if not data:
            return 0
        where, params = self._where(collection, filter)
        assignments = []
        values: List[Any] = []
        for key, value in data.items():
            assignments.append("?, json(?)")
            values.extend([f"$.{_check_field(key)}", json.dumps(value, ensure_ascii=False, default=_json_default)])
        try:
            cursor = self.conn.execute(
                f"UPDATE records SET data = json_set(data, {', '.join(assignments)}) WHERE {where}",
                [*values, *params],
            )
        except sqlite3.Error as e:
            logger.error(f"[STORE] Update of {collection} failed: {e}")
            raise PersistenceFailed(f"更新失败: {e}") from e
        return cursor.rowcount

    async def remove(self, collection, filter):
        where, params = self._where(collection, filter)
        try:
            cursor = self.conn.execute(f"DELETE FROM records WHERE {where}", params)
        except sqlite3.Error as e:
            raise PersistenceFailed(f"删除失败: {e}") from e
        return cursor.rowcount

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("SQLite connection closed")
