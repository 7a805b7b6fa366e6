"""Property store contract and reference implementations.

The engine only depends on :class:`PropertyStore`. Two stores ship with the
package: an in-memory one for tests and one-off runs, and a SQLite one that
enforces the unique source URL constraint the way a production database does.
"""
from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Protocol

import structlog

from propscrape.orchestrator.errors import DuplicateSourceUrl, PersistenceError, PropertyNotFound
from propscrape.storage.models import CandidateRecord, Property

LOGGER = structlog.get_logger(__name__)


class PropertyStore(Protocol):
    """Keyed repository of persisted listings."""

    async def create(self, record: CandidateRecord) -> Property:
        """Persist a record, raising DuplicateSourceUrl or PersistenceError."""

    async def find_all(self) -> List[Property]:
        ...

    async def find_by_id(self, property_id: str) -> Property:
        """Return the entity or raise PropertyNotFound."""


class InMemoryPropertyStore:
    """Dict-backed store with a unique index on ``source_url``."""

    def __init__(self) -> None:
        self._by_id: Dict[str, Property] = {}
        self._by_url: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: CandidateRecord) -> Property:
        async with self._lock:
            if record.source_url in self._by_url:
                raise DuplicateSourceUrl(record.source_url)
            entity = Property.from_candidate(record)
            self._by_id[entity.id] = entity
            self._by_url[entity.source_url] = entity.id
        return entity

    async def find_all(self) -> List[Property]:
        async with self._lock:
            return list(self._by_id.values())

    async def find_by_id(self, property_id: str) -> Property:
        async with self._lock:
            try:
                return self._by_id[property_id]
            except KeyError:
                raise PropertyNotFound(property_id) from None


_COLUMNS = [
    "id TEXT PRIMARY KEY",
    "title TEXT NOT NULL",
    "price INTEGER",
    "address TEXT NOT NULL",
    "province TEXT NOT NULL",
    "city TEXT NOT NULL",
    "suburb TEXT",
    "property_type TEXT NOT NULL",
    "bedrooms INTEGER",
    "bathrooms INTEGER",
    "garage_spaces INTEGER",
    "land_size REAL",
    "floor_size REAL",
    "scraped_at TEXT NOT NULL",
    "source_url TEXT NOT NULL",
    "latitude REAL",
    "longitude REAL",
    "CONSTRAINT unique_property_url UNIQUE (source_url)",
]
_FIELDS = [column.split()[0] for column in _COLUMNS if not column.startswith("CONSTRAINT")]


class SqlitePropertyStore:
    """SQLite-backed store; blocking calls run on worker threads."""

    def __init__(self, path: Path) -> None:
        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(path)
        try:
            connection.execute(f"CREATE TABLE IF NOT EXISTS properties ({', '.join(_COLUMNS)})")
            connection.commit()
        finally:
            connection.close()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._path)
        connection.row_factory = sqlite3.Row
        return connection

    def _insert(self, entity: Property) -> None:
        row = entity.model_dump()
        row["scraped_at"] = entity.scraped_at.isoformat()
        placeholders = ", ".join(f":{name}" for name in _FIELDS)
        connection = self._connect()
        try:
            connection.execute(
                f"INSERT INTO properties ({', '.join(_FIELDS)}) VALUES ({placeholders})",
                row,
            )
            connection.commit()
        except sqlite3.IntegrityError as exc:
            if "source_url" in str(exc):
                raise DuplicateSourceUrl(entity.source_url) from exc
            raise PersistenceError(f"Database error: {exc}") from exc
        except (sqlite3.Error, OverflowError, ValueError) as exc:
            raise PersistenceError(f"Database error: {exc}") from exc
        finally:
            connection.close()

    def _select(self, where: str = "", params: tuple = ()) -> List[Property]:
        connection = self._connect()
        try:
            rows = connection.execute(f"SELECT * FROM properties {where}", params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database error: {exc}") from exc
        finally:
            connection.close()
        return [_row_to_property(row) for row in rows]

    async def create(self, record: CandidateRecord) -> Property:
        entity = Property.from_candidate(record)
        await asyncio.to_thread(self._insert, entity)
        return entity

    async def find_all(self) -> List[Property]:
        return await asyncio.to_thread(self._select, "ORDER BY scraped_at")

    async def find_by_id(self, property_id: str) -> Property:
        rows = await asyncio.to_thread(self._select, "WHERE id = ?", (property_id,))
        if not rows:
            raise PropertyNotFound(property_id)
        return rows[0]


def _row_to_property(row: sqlite3.Row) -> Property:
    payload = dict(row)
    payload["scraped_at"] = datetime.fromisoformat(payload["scraped_at"])
    return Property.model_validate(payload)


def create_store(kind: str, *, database_path: Path) -> PropertyStore:
    """Build the store named in settings (``memory`` or ``sqlite``)."""
    if kind == "memory":
        return InMemoryPropertyStore()
    if kind == "sqlite":
        LOGGER.info("store_open", path=str(database_path))
        return SqlitePropertyStore(database_path)
    raise ValueError(f"Unknown store kind: {kind}")
