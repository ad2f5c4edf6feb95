import logging
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

from config import BULK_LOCK_COOLDOWN_SECONDS

logger = logging.getLogger(__name__)


def bulk_lock_key(month: str, days: Iterable[int]) -> str:
    """Key of a bulk submission: month plus the sorted day list."""
    day_list = "_".join(str(d) for d in sorted(set(days)))
    return f"bulk_submission_{month}_{day_list}"


class BulkSubmissionLock:
    """Process-local, time-boxed marker against duplicate bulk submissions.

    A marker is stamped when a batch starts. While it is younger than the
    cooldown, an identical batch cannot start, whether the first one is
    still running or already released. Markers older than the cooldown are
    ignored, so an abandoned batch never wedges later submissions.
    """

    def __init__(
        self,
        cooldown_seconds: float = BULK_LOCK_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (acquired_at, in_flight)
        self._markers: Dict[str, Tuple[float, bool]] = {}

    def _expire(self, now: float) -> None:
        expired = [
            key for key, (stamp, _) in self._markers.items()
            if now - stamp >= self.cooldown_seconds
        ]
        for key in expired:
            del self._markers[key]

    def acquire(self, key: str) -> bool:
        """Stamp the marker for key. Returns False if an unexpired one exists."""
        with self._lock:
            now = self._clock()
            self._expire(now)
            if key in self._markers:
                age = now - self._markers[key][0]
                logger.info(f"Bulk submission {key} locked, last submission {age:.1f}s ago")
                return False
            self._markers[key] = (now, True)
            return True

    def release(self, key: str) -> None:
        """Mark the batch finished. The cooldown still runs from acquisition."""
        with self._lock:
            marker = self._markers.get(key)
            if marker is not None:
                self._markers[key] = (marker[0], False)

    def in_flight(self, key: str) -> bool:
        with self._lock:
            self._expire(self._clock())
            marker = self._markers.get(key)
            return bool(marker and marker[1])

    def is_locked(self, key: str) -> bool:
        with self._lock:
            self._expire(self._clock())
            return key in self._markers

    def retry_after(self, key: str) -> Optional[float]:
        """Seconds until key can be submitted again, or None if it already can."""
        with self._lock:
            now = self._clock()
            self._expire(now)
            marker = self._markers.get(key)
            if marker is None:
                return None
            return max(0.0, self.cooldown_seconds - (now - marker[0]))

    def clear(self) -> None:
        with self._lock:
            self._markers.clear()
