import logging
import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from config import DEFAULT_HOURLY_RATE, Collection, EntryStatus, EntryType
from database import db, DatabaseError, RecordNotFoundError, KEY_FIELD
from errors import ConcurrencyRejection, NotFoundError, RemoteError, ValidationError
from events import AppEvent, event_bus
from models.entities import (
    BulkResult,
    BulkTemplate,
    DeleteResult,
    RepairResult,
    SubmitResult,
    TimeEntry,
)
from services.bulk_lock import BulkSubmissionLock, bulk_lock_key
from services.earnings import earnings, round_currency, round_hours
from services.schedule import BulkScheduleGenerator, parse_month
from services.throttle import SubmissionThrottle
from services.time_math import is_valid_time, working_hours

logger = logging.getLogger(__name__)

COLLECTION = Collection.TIME_ENTRIES.value

# Fields whose change forces the entry to be revalidated and total_hours/earnings recomputed
DERIVED_INPUTS = frozenset({"date", "start_time", "end_time", "break_duration", "extra_hours", "type"})
# Never changed through update_entry
PROTECTED_FIELDS = frozenset({"id", "legacy_id", "earnings"})

Draft = Union[TimeEntry, Dict[str, Any]]

NUMERIC_CHANGES = {"break_duration": "Break duration", "extra_hours": "Extra hours", "total_hours": "Total hours"}
TEXT_CHANGES = frozenset({"date", "start_time", "end_time", "project", "project_id", "task", "description"})


def _check_number(raw: Dict[str, Any], key: str, label: str) -> None:
    value = raw.get(key)
    if value in (None, ""):
        return
    try:
        float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number", draft=dict(raw))


def _to_entry(draft: Draft) -> TimeEntry:
    if isinstance(draft, TimeEntry):
        return draft
    if not isinstance(draft, dict):
        raise ValidationError("Entry data must be a mapping")
    _check_number(draft, "breakDuration", "Break duration")
    _check_number(draft, "extraHours", "Extra hours")
    if draft.get("type") not in (None, "") and draft["type"] not in {t.value for t in EntryType}:
        raise ValidationError(f"Unknown entry type: {draft['type']}", draft=dict(draft))
    return TimeEntry.from_dict(draft)


def _coerce_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize update values to the types TimeEntry stores.

    Raises ValidationError for non-numeric or negative amounts and unknown
    enum values.
    """
    coerced = dict(changes)
    for field_name, label in NUMERIC_CHANGES.items():
        if field_name not in coerced:
            continue
        value = coerced[field_name]
        try:
            number = float(value) if value not in (None, "") else 0.0
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be a number", draft=dict(changes))
        if number < 0:
            raise ValidationError(f"{label} cannot be negative", draft=dict(changes))
        coerced[field_name] = int(number) if field_name == "break_duration" else number
    for field_name in TEXT_CHANGES & set(coerced):
        value = coerced[field_name]
        coerced[field_name] = str(value) if value is not None else ""
    try:
        if "type" in coerced:
            coerced["type"] = EntryType(coerced["type"])
        if "status" in coerced:
            coerced["status"] = EntryStatus(coerced["status"])
    except ValueError as e:
        raise ValidationError(str(e), draft=dict(changes))
    return coerced


class EntryReconciler:
    """Validates, derives and persists time entries against the document store.

    The store-assigned key is the only identity. Payloads written by older
    clients may embed their own ``id``; lookups fall back to scanning for it,
    and ``repair_id_mismatches`` rewrites those fields once.

    Operations that talk to the store return result objects carrying a
    success flag and an error from ``errors`` instead of raising, so bulk
    loops can tally failures and keep going.
    """

    def __init__(
        self,
        store=None,
        settings=None,
        lock: Optional[BulkSubmissionLock] = None,
        throttle: Optional[SubmissionThrottle] = None,
        generator: Optional[BulkScheduleGenerator] = None,
    ) -> None:
        self._store = store if store is not None else db
        self._settings = settings
        self.lock = lock or BulkSubmissionLock()
        self.throttle = throttle or SubmissionThrottle()
        self.generator = generator or BulkScheduleGenerator()
        self._active_batch: Optional[str] = None
        self._cancel_requested = False

    async def _hourly_rate(self) -> float:
        if self._settings is None:
            return DEFAULT_HOURLY_RATE
        return await self._settings.get_hourly_rate()

    # ========================================================================
    # Drafted -> Validated
    # ========================================================================

    def compute_entry(self, draft: Draft, hourly_rate: float = DEFAULT_HOURLY_RATE) -> TimeEntry:
        """Validate a draft and fill in its derived fields.

        Any client-side identifier is discarded; the result has no id until
        the store assigns one.

        Raises:
            ValidationError: If date/start/end are missing or malformed, or a
                numeric input is negative.
        """
        entry = _to_entry(draft)
        raw = entry.to_dict()
        if not entry.date or not entry.start_time or not entry.end_time:
            raise ValidationError("Date, start time, and end time are required", draft=raw)
        try:
            date.fromisoformat(entry.date)
        except ValueError:
            raise ValidationError(f"Invalid date: {entry.date}", draft=raw)
        if not is_valid_time(entry.start_time) or not is_valid_time(entry.end_time):
            raise ValidationError("Start and end times must be HH:mm", draft=raw)
        if entry.break_duration < 0:
            raise ValidationError("Break duration cannot be negative", draft=raw)
        if entry.extra_hours < 0:
            raise ValidationError("Extra hours cannot be negative", draft=raw)
        if hourly_rate is None or hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative", draft=raw)

        total = round_hours(working_hours(entry.start_time, entry.end_time, entry.break_duration) + entry.extra_hours)
        amount = round_currency(earnings(total, hourly_rate)) if entry.is_work else 0.0
        return entry.with_changes(id=None, legacy_id=None, total_hours=total, earnings=amount)

    # ========================================================================
    # Single entry operations
    # ========================================================================

    async def add_entry(self, draft: Draft, hourly_rate: Optional[float] = None) -> SubmitResult:
        """Validate and persist one entry, adopting the store-assigned key.

        A store failure is reported as RemoteError with the validated draft
        attached; it is never retried here.
        """
        rate = hourly_rate if hourly_rate is not None else await self._hourly_rate()
        try:
            entry = self.compute_entry(draft, rate)
        except ValidationError as e:
            return SubmitResult(success=False, error=e)

        try:
            key = await self._store.add_document(COLLECTION, entry.to_dict())
        except DatabaseError as e:
            logger.warning(f"Failed to add entry for {entry.date}: {e}")
            return SubmitResult(success=False, entry=entry, error=RemoteError(str(e), draft=entry.to_dict()))

        persisted = entry.with_changes(id=key)
        logger.debug(f"Entry {key} created for {persisted.date}")
        event_bus.emit(AppEvent.ENTRY_CREATED, persisted)
        return SubmitResult(success=True, entry=persisted)

    async def _resolve(self, key: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Find a record by authoritative key, then by legacy embedded id."""
        record = await self._store.get_document(COLLECTION, key)
        if record is not None:
            return record[KEY_FIELD], record

        for candidate in await self._store.load_documents(COLLECTION):
            legacy = candidate.get("id")
            if legacy is not None and str(legacy) == str(key):
                logger.info(f"Resolved legacy id {key} -> {candidate[KEY_FIELD]}")
                return candidate[KEY_FIELD], candidate
        return None

    async def find_entry(self, key: str) -> Optional[TimeEntry]:
        """Look up an entry by either its store key or its legacy id."""
        if not key:
            return None
        resolved = await self._resolve(str(key))
        return TimeEntry.from_dict(resolved[1]) if resolved else None

    async def update_entry(
        self,
        key: str,
        changes: Dict[str, Any],
        hourly_rate: Optional[float] = None,
    ) -> SubmitResult:
        """Apply field changes to an entry as a new object.

        Changing the date, start, end, break, extra hours or type revalidates
        the entry and recomputes total hours and earnings. Passing ``total_hours`` alone is an explicit
        correction and only earnings are recomputed.
        """
        unknown = set(changes) - set(TimeEntry.__dataclass_fields__)
        if unknown or PROTECTED_FIELDS & set(changes):
            bad = ", ".join(sorted(unknown | (PROTECTED_FIELDS & set(changes))))
            return SubmitResult(success=False, error=ValidationError(f"Cannot update field(s): {bad}"))
        if not key:
            return SubmitResult(success=False, error=ValidationError("Entry ID is required"))
        try:
            changes = _coerce_changes(changes)
        except ValidationError as e:
            return SubmitResult(success=False, error=e)

        try:
            resolved = await self._resolve(str(key))
        except DatabaseError as e:
            return SubmitResult(success=False, error=RemoteError(str(e)))
        if resolved is None:
            logger.warning(f"Update target {key} not found")
            return SubmitResult(success=False, error=NotFoundError(str(key)))
        store_key, record = resolved

        current = TimeEntry.from_dict(record)
        updated = current.with_changes(**changes)
        rate = hourly_rate if hourly_rate is not None else await self._hourly_rate()
        if DERIVED_INPUTS & set(changes):
            try:
                updated = self.compute_entry(updated, rate)
            except ValidationError as e:
                return SubmitResult(success=False, entry=current, error=e)
        elif "total_hours" in changes:
            hours = changes["total_hours"]
            amount = round_currency(earnings(hours, rate)) if updated.is_work else 0.0
            updated = updated.with_changes(total_hours=round_hours(hours), earnings=amount)
        updated = updated.with_changes(id=store_key, legacy_id=current.legacy_id)

        try:
            await self._store.update_document(COLLECTION, store_key, updated.to_dict())
        except RecordNotFoundError:
            return SubmitResult(success=False, error=NotFoundError(str(key)))
        except DatabaseError as e:
            logger.warning(f"Failed to update entry {store_key}: {e}")
            return SubmitResult(success=False, entry=updated, error=RemoteError(str(e), draft=updated.to_dict()))

        event_bus.emit(AppEvent.ENTRY_UPDATED, updated)
        return SubmitResult(success=True, entry=updated)

    async def delete_entry(self, key: str) -> DeleteResult:
        """Hard delete by store key or legacy id.

        A record missing under both is reported as NotFoundError so the
        caller can decide whether "already gone" counts as success.
        """
        if not key:
            return DeleteResult(success=False, error=ValidationError("Entry ID is required for deletion"))
        try:
            resolved = await self._resolve(str(key))
            if resolved is None:
                logger.warning(f"Entry {key} does not exist under any id")
                return DeleteResult(success=False, key=str(key), error=NotFoundError(str(key)))
            store_key = resolved[0]
            await self._store.delete_document(COLLECTION, store_key)
        except RecordNotFoundError:
            return DeleteResult(success=False, key=str(key), error=NotFoundError(str(key)))
        except DatabaseError as e:
            logger.warning(f"Failed to delete entry {key}: {e}")
            return DeleteResult(success=False, key=str(key), error=RemoteError(str(e)))

        logger.info(f"Entry {store_key} deleted (requested as {key})")
        event_bus.emit(AppEvent.ENTRY_DELETED, store_key)
        return DeleteResult(success=True, key=store_key)

    async def load_entries(self, start: Optional[str] = None, end: Optional[str] = None) -> List[TimeEntry]:
        """Load entries, newest first, optionally limited to an inclusive date range."""
        if start is not None or end is not None:
            records = await self._store.query_range(COLLECTION, "date", start or "", end or "9999-12-31")
            records.reverse()
        else:
            records = await self._store.load_documents(COLLECTION, order_by="date", descending=True)
        return [TimeEntry.from_dict(r) for r in records]

    # ========================================================================
    # Legacy id maintenance
    # ========================================================================

    async def find_id_mismatches(self) -> List[Tuple[str, str]]:
        """(store key, embedded id) pairs that disagree."""
        mismatches = []
        for record in await self._store.load_documents(COLLECTION):
            legacy = record.get("id")
            if legacy not in (None, "") and str(legacy) != record[KEY_FIELD]:
                mismatches.append((record[KEY_FIELD], str(legacy)))
        return mismatches

    async def repair_id_mismatches(self) -> RepairResult:
        """Rewrite embedded ids to match store keys in one atomic batch."""
        try:
            mismatches = await self.find_id_mismatches()
            if not mismatches:
                logger.info("No ID mismatches found")
                return RepairResult(success=True)
            await self._store.batch_update(COLLECTION, {key: {"id": key} for key, _ in mismatches})
        except DatabaseError as e:
            logger.error(f"Error fixing ID mismatches: {e}")
            return RepairResult(success=False, error=RemoteError(str(e)))

        keys = [key for key, _ in mismatches]
        logger.info(f"Fixed {len(keys)} ID mismatches")
        event_bus.emit(AppEvent.IDS_REPAIRED, keys)
        return RepairResult(success=True, fixed_count=len(keys), keys=keys)

    # ========================================================================
    # Bulk submission
    # ========================================================================

    @property
    def bulk_in_progress(self) -> bool:
        return self._active_batch is not None

    def cancel_bulk(self) -> bool:
        """Stop the running bulk submission from starting further entries.

        Entries already submitted stay. Returns False if nothing is running.
        """
        if self._active_batch is None:
            return False
        self._cancel_requested = True
        logger.info(f"Cancellation requested for {self._active_batch}")
        return True

    async def submit_bulk(
        self,
        month: str,
        days: Iterable[int],
        exclude_weekends: bool = True,
        template: Optional[BulkTemplate] = None,
    ) -> BulkResult:
        """Expand a month template and submit the drafts one at a time.

        Identical parameters (month and resulting day list) cannot be
        submitted again within the lock cooldown; such an attempt returns a
        ConcurrencyRejection and persists nothing. Individual failures are
        tallied and the loop continues.
        """
        template = template or BulkTemplate()
        if parse_month(month) is None:
            return BulkResult(error=ValidationError(f"Invalid month: {month!r}, expected yyyy-MM"))

        drafts = self.generator.expand(month, days, exclude_weekends, template)
        if not drafts:
            return BulkResult(error=ValidationError("Please select at least one day."))

        valid_days = [int(d.date[8:10]) for d in drafts]
        lock_key = bulk_lock_key(month, valid_days)
        if not self.lock.acquire(lock_key):
            retry_after = self.lock.retry_after(lock_key) or 0.0
            return BulkResult(error=ConcurrencyRejection(lock_key, retry_after))

        batch_id = uuid.uuid4().hex[:12]
        result = BulkResult()
        unique: List[TimeEntry] = []
        seen = set()
        for draft in drafts:
            tagged = draft.with_changes(batch_id=batch_id, status=EntryStatus.COMPLETED)
            if tagged.fingerprint() in seen:
                result.skipped_count += 1
                continue
            seen.add(tagged.fingerprint())
            unique.append(tagged)

        self._active_batch = lock_key
        self._cancel_requested = False
        logger.info(f"Bulk submission {batch_id} started: {len(unique)} entries for {month}")
        event_bus.emit(AppEvent.BULK_STARTED, {"month": month, "total": len(unique)})

        try:
            rate = await self._hourly_rate()

            async def _submit(draft: TimeEntry) -> SubmitResult:
                try:
                    item = await self.add_entry(draft, rate)
                except Exception as e:
                    logger.exception(f"Unexpected error submitting bulk entry for {draft.date}")
                    item = SubmitResult(
                        success=False, entry=draft, error=RemoteError(str(e), draft=draft.to_dict()),
                    )
                if item.success:
                    result.success_count += 1
                    result.entries.append(item.entry)
                else:
                    result.error_count += 1
                    result.failures.append(item)
                    logger.warning(f"Bulk entry for {draft.date} failed: {item.error}")
                event_bus.emit(AppEvent.BULK_PROGRESS, {
                    "done": result.success_count + result.error_count,
                    "total": len(unique),
                })
                return item

            started = await self.throttle.run(unique, _submit, should_continue=lambda: not self._cancel_requested)
            result.cancelled = len(started) < len(unique)
        finally:
            self.lock.release(lock_key)
            self._active_batch = None
            self._cancel_requested = False

        logger.info(
            f"Bulk submission {batch_id} completed: "
            f"{result.success_count} success, {result.error_count} errors"
        )
        event_bus.emit(AppEvent.BULK_FINISHED, result)
        return result
