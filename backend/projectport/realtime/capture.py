"""Turn committed ORM writes on realtime tables into ChangeEvents.

Models opt in with a class attribute `__realtime__ = True`. Changes are snapshotted in
after_flush (attribute history still holds the pre-flush values there), held on the session
until the transaction commits, and dropped on rollback.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List
from sqlalchemy import event, inspect
from projectport.realtime.feed import ChangeEvent, ChangeFeed, EventType

log = logging.getLogger(__name__)

_PENDING_KEY = 'realtime_pending'


def _is_realtime(obj) -> bool:
    return bool(getattr(type(obj), '__realtime__', False))


def _column_keys(obj) -> List[str]:
    return [attr.key for attr in inspect(type(obj)).column_attrs]


def snapshot_new(obj) -> Dict[str, Any]:
    # Only loaded values: expired attributes would need SQL mid-flush.
    state = inspect(obj)
    return {k: state.dict[k] for k in _column_keys(obj) if k in state.dict}


def snapshot_old(obj) -> Dict[str, Any]:
    state = inspect(obj)
    old: Dict[str, Any] = {}
    for key in _column_keys(obj):
        hist = state.attrs[key].history
        if hist.deleted:
            old[key] = hist.deleted[0]
        elif hist.unchanged:
            old[key] = hist.unchanged[0]
        elif key in state.dict and not hist.added:
            old[key] = state.dict[key]
    return old


def _collect(session, flush_context) -> None:
    events: List[ChangeEvent] = session.info.setdefault(_PENDING_KEY, [])
    for obj in session.new:
        if _is_realtime(obj):
            events.append(ChangeEvent(type(obj).__tablename__, EventType.INSERT, new=snapshot_new(obj)))
    for obj in session.dirty:
        if _is_realtime(obj) and session.is_modified(obj, include_collections=False):
            events.append(ChangeEvent(type(obj).__tablename__, EventType.UPDATE, new=snapshot_new(obj), old=snapshot_old(obj)))
    for obj in session.deleted:
        if _is_realtime(obj):
            events.append(ChangeEvent(type(obj).__tablename__, EventType.DELETE, old=snapshot_new(obj)))


def stage_change(session, change: ChangeEvent) -> None:
    """Queue an event for a write the flush listeners cannot see (bulk UPDATE statements)."""
    session.info.setdefault(_PENDING_KEY, []).append(change)


def install_change_capture(session_factory, feed: ChangeFeed) -> None:
    """Register flush/commit/rollback listeners on a sessionmaker (or scoped_session)."""

    def after_flush(session, flush_context):
        _collect(session, flush_context)

    def after_commit(session):
        events = session.info.pop(_PENDING_KEY, None)
        if events:
            log.debug('Publishing %d row change(s)', len(events))
            feed.publish(events)

    def after_soft_rollback(session, previous_transaction):
        dropped = session.info.pop(_PENDING_KEY, None)
        if dropped:
            log.debug('Discarding %d uncommitted row change(s)', len(dropped))

    event.listen(session_factory, 'after_flush', after_flush)
    event.listen(session_factory, 'after_commit', after_commit)
    event.listen(session_factory, 'after_soft_rollback', after_soft_rollback)


__all__ = ['install_change_capture', 'snapshot_new', 'snapshot_old', 'stage_change']
