import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Key under which every loaded record carries its authoritative store key.
# The payload's own "id" field, if any, is legacy data and never overwritten here.
KEY_FIELD = "_key"


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


class RecordNotFoundError(DatabaseError):
    """Raised when an update or delete targets a key that does not exist."""

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"not found: {collection}/{key}")
        self.collection = collection
        self.key = key


def _serialize_payload(record: Dict[str, Any]) -> str:
    """Encode a record payload for storage, dropping the store-owned key."""
    payload = {k: v for k, v in record.items() if k != KEY_FIELD}
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def _deserialize_document_row(row) -> Dict[str, Any]:
    """Convert a documents row into ``{"_key": key, **payload}``."""
    payload = json.loads(row["data"]) if row["data"] else {}
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring non-object payload for {row['collection']}/{row['key']}")
        payload = {}
    return {KEY_FIELD: row["key"], **payload}
