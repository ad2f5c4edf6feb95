import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database.helpers import DatabaseError
from events import AppEvent, event_bus

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """One push from a collection subscription."""
    success: bool
    data: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


_CLOSED = object()


class StoreSubscription:
    """Async iterator over collection snapshots.

    Receives one snapshot on subscribe and one after every committed write.
    Iteration ends after ``close()``.
    """

    def __init__(self, store: "SubscriptionsMixin", collection: str) -> None:
        self._store = store
        self.collection = collection
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, snapshot: Snapshot) -> None:
        if not self._closed:
            self._queue.put_nowait(snapshot)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._remove_watcher(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "StoreSubscription":
        return self

    async def __anext__(self) -> Snapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class SubscriptionsMixin:
    """Push-based change notification for collections."""

    async def subscribe(self, collection: str) -> StoreSubscription:
        """Subscribe to a collection. The current snapshot is queued immediately."""
        sub = StoreSubscription(self, collection)
        self._watchers.setdefault(collection, set()).add(sub)
        sub._push(await self._snapshot(collection))
        return sub

    def _remove_watcher(self, sub: StoreSubscription) -> None:
        watchers = self._watchers.get(sub.collection)
        if watchers is not None:
            watchers.discard(sub)

    async def _snapshot(self, collection: str) -> Snapshot:
        try:
            data = await self.load_documents(collection, order_by="date", descending=True)
            return Snapshot(success=True, data=data)
        except DatabaseError as e:
            logger.warning(f"Snapshot of {collection} failed: {e}")
            return Snapshot(success=False, error=str(e))

    async def _notify(self, collection: str) -> None:
        event_bus.emit(AppEvent.COLLECTION_CHANGED, collection)
        watchers = list(self._watchers.get(collection, ()))
        if not watchers:
            return
        snapshot = await self._snapshot(collection)
        for sub in watchers:
            sub._push(snapshot)
