import sqlite3
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from database.helpers import (
    DatabaseError,
    RecordNotFoundError,
    KEY_FIELD,
    _serialize_payload,
    _deserialize_document_row,
)

logger = logging.getLogger(__name__)


def _new_key() -> str:
    return uuid.uuid4().hex


class DocumentsMixin:
    """Collection CRUD operations mixin.

    The store owns document keys: ``add_document`` assigns one and every
    loaded record exposes it under ``_key``. Payload fields are stored as
    given, including any legacy embedded ``id``.
    """

    async def add_document(self, collection: str, record: Dict[str, Any]) -> str:
        """Insert a record and return its store-assigned key."""
        key = _new_key()
        now = datetime.now().isoformat()
        try:
            async with self._get_connection() as conn:
                await conn.execute(
                    "INSERT INTO documents (collection, key, data, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (collection, key, _serialize_payload(record), now, now)
                )
                await conn.commit()
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error adding document to {collection}: {e}")
            raise DatabaseError(f"Failed to add document: {e}") from e
        await self._notify(collection)
        return key

    async def get_document(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            async with self._get_connection() as conn:
                async with conn.execute(
                    "SELECT * FROM documents WHERE collection=? AND key=?",
                    (collection, str(key))
                ) as cursor:
                    row = await cursor.fetchone()
                    return _deserialize_document_row(row) if row else None
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading {collection}/{key}: {e}")
            raise DatabaseError(f"Failed to load document: {e}") from e

    async def load_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Load every record of a collection, optionally ordered by a payload field."""
        query = "SELECT * FROM documents WHERE collection=?"
        params: List[Any] = [collection]
        if order_by:
            direction = "DESC" if descending else "ASC"
            query += f" ORDER BY json_extract(data, ?) {direction}, created_at {direction}"
            params.append(f"$.{order_by}")
        else:
            query += " ORDER BY created_at ASC"
        try:
            async with self._get_connection() as conn:
                async with conn.execute(query, params) as cursor:
                    return [_deserialize_document_row(r) async for r in cursor]
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading {collection}: {e}")
            raise DatabaseError(f"Failed to load documents: {e}") from e

    async def query_range(
        self,
        collection: str,
        field: str,
        start: str,
        end: str,
    ) -> List[Dict[str, Any]]:
        """Load records whose string field lies in [start, end] inclusive."""
        path = f"$.{field}"
        try:
            async with self._get_connection() as conn:
                async with conn.execute(
                    "SELECT * FROM documents WHERE collection=? "
                    "AND json_extract(data, ?) >= ? AND json_extract(data, ?) <= ? "
                    "ORDER BY json_extract(data, ?) ASC, created_at ASC",
                    (collection, path, start, path, end, path)
                ) as cursor:
                    return [_deserialize_document_row(r) async for r in cursor]
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error querying {collection} by {field}: {e}")
            raise DatabaseError(f"Failed to query documents: {e}") from e

    async def _merge_fields(self, conn, collection: str, key: str, fields: Dict[str, Any]) -> None:
        async with conn.execute(
            "SELECT * FROM documents WHERE collection=? AND key=?",
            (collection, key)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(collection, key)
        merged = _deserialize_document_row(row)
        merged.update(fields)
        merged.pop(KEY_FIELD, None)
        await conn.execute(
            "UPDATE documents SET data=?, updated_at=? WHERE collection=? AND key=?",
            (_serialize_payload(merged), datetime.now().isoformat(), collection, key)
        )

    async def update_document(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        """Shallow-merge fields into an existing record."""
        try:
            async with self._get_connection() as conn:
                await self._merge_fields(conn, collection, str(key), fields)
                await conn.commit()
        except RecordNotFoundError:
            raise
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error updating {collection}/{key}: {e}")
            raise DatabaseError(f"Failed to update document: {e}") from e
        await self._notify(collection)

    async def batch_update(self, collection: str, updates: Dict[str, Dict[str, Any]]) -> int:
        """Apply several updates in one transaction. All or nothing.

        Returns the number of records written.
        """
        if not updates:
            return 0
        try:
            async with self._get_connection() as conn:
                try:
                    for key, fields in updates.items():
                        await self._merge_fields(conn, collection, str(key), fields)
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    raise
        except RecordNotFoundError:
            raise
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error in batch update of {collection}: {e}")
            raise DatabaseError(f"Failed to apply batch update: {e}") from e
        await self._notify(collection)
        return len(updates)

    async def delete_document(self, collection: str, key: str) -> None:
        """Hard delete a record. Raises RecordNotFoundError if it does not exist."""
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    "DELETE FROM documents WHERE collection=? AND key=?",
                    (collection, str(key))
                )
                deleted = cursor.rowcount
                await conn.commit()
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error deleting {collection}/{key}: {e}")
            raise DatabaseError(f"Failed to delete document: {e}") from e
        if deleted == 0:
            raise RecordNotFoundError(collection, str(key))
        await self._notify(collection)
