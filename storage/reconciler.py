"""Reconciles freshly resolved events against persisted event records."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from processor.diagnostics import Diagnostic, DiagnosticKind, LoggingObserver
from processor.models import (
    FeedStatus,
    FetchWindow,
    PersistedEventRecord,
    PersistedStatus,
    ResolvedEvent,
    SyncResult,
)
from storage.event_store import EventStoreError

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Writes needed to converge the store with one fetch."""
    creates: List[PersistedEventRecord] = field(default_factory=list)
    updates: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    cancellations: List[str] = field(default_factory=list)
    removals: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    outside_window: List[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.cancellations or self.removals)


def changed_fields(record: PersistedEventRecord, event: ResolvedEvent) -> Dict[str, Any]:
    """Return the record fields whose value differs from the resolved event."""
    changes = {}
    if record.title != event.title:
        changes['title'] = event.title
    if record.start != event.start:
        changes['start'] = event.start
    if record.category != event.category:
        changes['category'] = event.category
    if record.unit_id != event.unit_id:
        changes['unit_id'] = event.unit_id
    return changes


def build_plan(
    events: List[ResolvedEvent],
    existing: Dict[str, PersistedEventRecord],
    include_creates: bool = True,
    window: Optional[FetchWindow] = None
) -> ReconciliationPlan:
    """
    Compute the writes for one fetch from a single snapshot of both sides.

    Each persisted record gets at most one transition. Terminal records
    (cancelled, removed) are never touched.

    Args:
        events: Every event of the current fetch
        existing: Snapshot of all persisted records keyed by feed id
        include_creates: Plan inserts for feed ids seen for the first time
        window: Range the fetch covered; active records starting outside it
            are kept as they are instead of being removed. None judges every
            record against the fetch.

    Returns:
        ReconciliationPlan
    """
    plan = ReconciliationPlan()
    fetched = {event.feed_id: event for event in events}

    if include_creates:
        for feed_id, event in fetched.items():
            if feed_id not in existing and event.status is not FeedStatus.CANCELLED:
                plan.creates.append(PersistedEventRecord.from_event(event))

    for feed_id, record in existing.items():
        event = fetched.get(feed_id)

        if record.status.is_terminal:
            if event is not None and event.status is not FeedStatus.CANCELLED:
                plan.ignored.append(feed_id)
            continue

        if event is None:
            if window is None or window.contains(record.start):
                plan.removals.append(feed_id)
            else:
                plan.outside_window.append(feed_id)
        elif event.status is FeedStatus.CANCELLED:
            plan.cancellations.append(feed_id)
        else:
            changes = changed_fields(record, event)
            if changes:
                plan.updates[feed_id] = changes
            else:
                plan.unchanged += 1

    return plan


class EventReconciler:
    """Applies reconciliation plans to an event store, one record at a time."""

    def __init__(self, store, observer=None):
        self.store = store
        self.observer = observer or LoggingObserver()

    def sync(self, events: List[ResolvedEvent], window: Optional[FetchWindow] = None) -> SyncResult:
        """
        Insert first-seen events and reconcile the rest from one snapshot.

        Args:
            events: Every event of the current fetch
            window: Range the fetch covered, see ``build_plan``

        Returns:
            SyncResult with counts and per-record errors
        """
        existing = self.store.get_all_events()
        return self._apply(build_plan(events, existing, include_creates=True, window=window))

    def create_missing(
        self,
        events: List[ResolvedEvent],
        existing: Optional[Dict[str, PersistedEventRecord]] = None
    ) -> SyncResult:
        """Insert an active record for each live feed id not yet stored."""
        if existing is None:
            existing = self.store.get_all_events()
        plan = build_plan(events, existing, include_creates=True)
        return self._apply(ReconciliationPlan(creates=plan.creates))

    def reconcile(
        self,
        events: List[ResolvedEvent],
        existing: Optional[Dict[str, PersistedEventRecord]] = None,
        window: Optional[FetchWindow] = None
    ) -> SyncResult:
        """
        Update, cancel or remove stored records to match the fetch.

        Does not create records; see ``create_missing``.
        """
        if existing is None:
            existing = self.store.get_all_events()
        return self._apply(build_plan(events, existing, include_creates=False, window=window))

    def _apply(self, plan: ReconciliationPlan) -> SyncResult:
        logger.info(
            f"Sync plan: {len(plan.creates)} to create, "
            f"{len(plan.updates)} to update, "
            f"{len(plan.cancellations)} to cancel, "
            f"{len(plan.removals)} to remove, "
            f"{len(plan.outside_window)} outside the fetch window"
        )
        result = SyncResult(unchanged=plan.unchanged)

        for feed_id in plan.ignored:
            self.observer.emit(Diagnostic(
                kind=DiagnosticKind.RESURRECTION_IGNORED,
                message=f"Event {feed_id} is live in the feed but terminal in the store; not reactivated",
                feed_id=feed_id
            ))

        for record in plan.creates:
            if self._write(record.feed_id, 'create', self.store.insert_event, record, result=result):
                result.created += 1

        for feed_id, changes in plan.updates.items():
            if self._write(feed_id, 'update', self.store.update_event, feed_id, changes, result=result):
                result.updated += 1

        for feed_id in plan.cancellations:
            if self._write(feed_id, 'cancel', self.store.transition_status, feed_id,
                           PersistedStatus.CANCELLED, result=result):
                result.cancelled += 1

        for feed_id in plan.removals:
            if self._write(feed_id, 'remove', self.store.transition_status, feed_id,
                           PersistedStatus.REMOVED, result=result):
                result.removed += 1

        logger.info(
            f"Sync complete: {result.created} created, {result.updated} updated, "
            f"{result.cancelled} cancelled, {result.removed} removed, "
            f"{len(result.errors)} errors"
        )
        return result

    def _write(self, feed_id: str, operation: str, write, *args, result: SyncResult) -> bool:
        try:
            write(*args)
            return True
        except EventStoreError as e:
            error_msg = f"Failed to {operation} event {feed_id}: {e}"
            result.errors.append(error_msg)
            self.observer.emit(Diagnostic(
                kind=DiagnosticKind.WRITE_FAILED,
                message=error_msg,
                feed_id=feed_id,
                details={'operation': operation}
            ))
            return False
