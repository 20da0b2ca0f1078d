"""SQLite storage backend implementation."""

import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional

import aiosqlite
import structlog

from quotapool.api.meta import Resource
from quotapool.api.registry import Scheme
from quotapool.storage.interface import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StorageError,
    VersionedStore,
    describe,
)


logger = structlog.get_logger(__name__)


class SQLiteStore(VersionedStore):
    """SQLite implementation of the versioned store.

    Objects are stored as JSON documents next to an integer version; an
    update is a conditional ``UPDATE ... WHERE version = ?`` so concurrent
    writers sharing the database file get the same conflict semantics as
    the in-memory store.
    """

    def __init__(self, database_url: str, scheme: Scheme):
        self.database_url = database_url
        self.db_path = self._parse_database_url(database_url)
        self.scheme = scheme
        self._connection: Optional[aiosqlite.Connection] = None
        # Writes share one connection and so one transaction; serialize them
        self._write_lock = asyncio.Lock()

    def _parse_database_url(self, database_url: str) -> str:
        """Parse database URL to get file path."""
        if database_url.startswith("sqlite+aiosqlite:///"):
            return database_url.replace("sqlite+aiosqlite:///", "")
        elif database_url.startswith("sqlite:///"):
            return database_url.replace("sqlite:///", "")
        elif database_url.startswith("sqlite://"):
            return database_url.replace("sqlite://", "")
        else:
            # Assume it's already a file path
            return database_url

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        if self.db_path != ":memory:":
            if not os.path.isabs(self.db_path):
                self.db_path = os.path.abspath(self.db_path)
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self.db_path)
            await self._create_tables()
        except aiosqlite.Error as e:
            logger.error("sqlite_initialize_failed", path=self.db_path, error=str(e))
            raise StorageError(f"failed to initialize SQLite store at {self.db_path}: {e}") from e

        logger.info("sqlite_store_initialized", path=self.db_path)

    async def _create_tables(self) -> None:
        await self._connection.executescript("""
            CREATE TABLE IF NOT EXISTS objects (
                kind TEXT NOT NULL,
                namespace TEXT NOT NULL DEFAULT '',
                name TEXT NOT NULL,
                version INTEGER NOT NULL,
                data TEXT NOT NULL,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (kind, namespace, name)
            );

            CREATE TABLE IF NOT EXISTS revision (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                value INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO revision (id, value) VALUES (1, 0);
        """)
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Storage backend not initialized")
        return self._connection

    async def _next_version(self, connection: aiosqlite.Connection) -> int:
        await connection.execute("UPDATE revision SET value = value + 1 WHERE id = 1")
        async with connection.execute("SELECT value FROM revision WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        return int(row[0])

    def _decode(self, data: str, version: int) -> Resource:
        obj = self.scheme.decode(json.loads(data))
        obj.metadata.resource_version = str(version)
        return obj

    def _encode(self, obj: Resource) -> str:
        data = self.scheme.encode(obj)
        data["metadata"].pop("resourceVersion", None)
        return json.dumps(data, sort_keys=True)

    async def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT data, version FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
            (kind, namespace or "", name),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            raise NotFoundError(f"{describe(kind, name, namespace)} not found")
        return self._decode(row[0], row[1])

    async def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        connection = self._require_connection()
        query = "SELECT data, version FROM objects WHERE kind = ?"
        params: tuple = (kind,)
        if namespace is not None:
            query += " AND namespace = ?"
            params += (namespace,)
        query += " ORDER BY namespace, name"

        async with connection.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [self._decode(data, version) for data, version in rows]

    async def create(self, obj: Resource) -> Resource:
        connection = self._require_connection()
        async with self._write_lock:
            version = await self._next_version(connection)
            try:
                await connection.execute(
                    "INSERT INTO objects (kind, namespace, name, version, data) VALUES (?, ?, ?, ?, ?)",
                    (obj.kind, obj.metadata.namespace or "", obj.metadata.name, version, self._encode(obj)),
                )
            except aiosqlite.IntegrityError as e:
                await connection.rollback()
                raise AlreadyExistsError(
                    f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} already exists"
                ) from e
            await connection.commit()

        stored = obj.model_copy(deep=True)
        stored.metadata.resource_version = str(version)
        return stored

    async def update(self, obj: Resource) -> Resource:
        connection = self._require_connection()
        if obj.metadata.resource_version is None:
            raise ConflictError(
                f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} has no resource version"
            )

        async with self._write_lock:
            version = await self._next_version(connection)
            cursor = await connection.execute(
                """
                UPDATE objects
                SET data = ?, version = ?, updated_at = CURRENT_TIMESTAMP
                WHERE kind = ? AND namespace = ? AND name = ? AND version = ?
                """,
                (
                    self._encode(obj),
                    version,
                    obj.kind,
                    obj.metadata.namespace or "",
                    obj.metadata.name,
                    int(obj.metadata.resource_version),
                ),
            )
            updated = cursor.rowcount
            await cursor.close()

            if updated == 0:
                await connection.rollback()
                # Distinguish a missing object from a stale version
                await self.get(obj.kind, obj.metadata.name, obj.metadata.namespace)
                raise ConflictError(
                    f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} was modified: "
                    f"expected version {obj.metadata.resource_version}"
                )
            await connection.commit()

        stored = obj.model_copy(deep=True)
        stored.metadata.resource_version = str(version)
        return stored

    async def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        connection = self._require_connection()
        async with self._write_lock:
            cursor = await connection.execute(
                "DELETE FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
                (kind, namespace or "", name),
            )
            deleted = cursor.rowcount
            await cursor.close()
            await connection.commit()

        if deleted == 0:
            raise NotFoundError(f"{describe(kind, name, namespace)} not found")
