"""In-process row change feed.

Producers publish committed row changes; consumers hold a Subscription scoped to one table,
optionally to a set of event types and a `column=eq.value` row filter.

Delivery model:
  publish() only enqueues. dispatch() drains the queue in arrival order and hands every
  event to each matching subscription. A handler runs to completion before the next event is
  delivered; events published from inside a handler are appended to the same queue and
  delivered later in the same dispatch pass. Subscriptions without a handler buffer events
  and are consumed by iterating them.

Usage:
    feed = ChangeFeed()
    with feed.subscribe('messages', events={'INSERT'}) as sub:
        ...
        feed.dispatch()
        for event in sub:
            print(event.new['id'])
"""
from __future__ import annotations
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional, Set, Tuple

log = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: EventType
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    committed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def row(self) -> Dict[str, Any]:
        """Row the event is about: the new snapshot, or the old one for deletes."""
        return self.old if self.type is EventType.DELETE else self.new


_FILTER_OPS = {
    'eq': lambda actual, expected: _as_text(actual) == expected,
    'neq': lambda actual, expected: _as_text(actual) != expected,
}


def _as_text(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return 'null'
    return str(value)


def parse_row_filter(expr: Optional[str]) -> Optional[Tuple[str, str, str]]:
    """Parse `column=op.value` into (column, op, value). Raises ValueError on bad syntax."""
    if not expr:
        return None
    column, sep, rest = expr.partition('=')
    op, dot, value = rest.partition('.')
    if not sep or not dot or not column.strip():
        raise ValueError(f'Invalid row filter {expr!r}')
    op = op.strip()
    if op not in _FILTER_OPS:
        raise ValueError(f'Unsupported row filter operator {op!r}')
    return column.strip(), op, value


Handler = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(
        self,
        feed: 'ChangeFeed',
        table: str,
        events: Optional[Iterable[str]] = None,
        row_filter: Optional[str] = None,
        handler: Optional[Handler] = None,
        max_buffer: int = 1000,
    ):
        self.feed = feed
        self.table = table
        self.events: Optional[Set[EventType]] = {EventType(e) for e in events} if events else None
        self.row_filter = parse_row_filter(row_filter)
        self.handler = handler
        self._buffer: Deque[ChangeEvent] = deque(maxlen=max_buffer)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.events is not None and event.type not in self.events:
            return False
        if self.row_filter:
            column, op, expected = self.row_filter
            if not _FILTER_OPS[op](event.row.get(column), expected):
                return False
        return True

    def deliver(self, event: ChangeEvent) -> None:
        if not self._active:
            return
        if self.handler is None:
            self._buffer.append(event)
            return
        try:
            self.handler(event)
        except Exception:
            log.exception('Realtime handler failed for %s %s', event.table, event.type.value)

    def __iter__(self) -> Iterator[ChangeEvent]:
        # Lazily drains whatever is buffered; iterate again later for newer events.
        while self._buffer:
            yield self._buffer.popleft()

    def drain(self) -> List[ChangeEvent]:
        return list(self)

    def pending(self) -> int:
        return len(self._buffer)

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._buffer.clear()
        self.feed._remove(self)

    close = unsubscribe

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()
        return False

    def __repr__(self):
        return f'<Subscription table={self.table} active={self._active}>'


class ChangeFeed:
    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._queue: Deque[ChangeEvent] = deque()
        self._dispatching = False

    def subscribe(
        self,
        table: str,
        events: Optional[Iterable[str]] = None,
        row_filter: Optional[str] = None,
        handler: Optional[Handler] = None,
    ) -> Subscription:
        sub = Subscription(self, table, events=events, row_filter=row_filter, handler=handler)
        self._subscriptions.append(sub)
        log.debug('Realtime subscribe table=%s events=%s filter=%s', table, events, row_filter)
        return sub

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            self._queue.append(event)

    def dispatch(self) -> int:
        """Deliver queued events. Returns the number of events processed."""
        if self._dispatching:
            return 0
        self._dispatching = True
        processed = 0
        try:
            while self._queue:
                event = self._queue.popleft()
                processed += 1
                for sub in list(self._subscriptions):
                    if sub.active and sub.matches(event):
                        sub.deliver(event)
        finally:
            self._dispatching = False
        return processed

    def pending(self) -> int:
        return len(self._queue)

    def drop_connections(self) -> None:
        """Simulate the connection going away: every subscription stops receiving events."""
        for sub in list(self._subscriptions):
            sub.unsubscribe()
        log.warning('Realtime connections dropped')

    def clear(self) -> None:
        self._queue.clear()


__all__ = ['ChangeFeed', 'ChangeEvent', 'EventType', 'Subscription', 'parse_row_filter']
