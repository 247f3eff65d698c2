from __future__ import annotations
import logging
from typing import Callable, Optional
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from projectport.models.message import Message
from projectport.realtime.feed import ChangeEvent, ChangeFeed, EventType, Subscription

log = logging.getLogger(__name__)


def fetch_unread_messages_count(session, user_id: Optional[int]) -> int:
    if not user_id:
        return 0
    try:
        stmt = select(func.count(Message.id)).where(Message.recipient_id == user_id, Message.is_read.is_(False))
        return int(session.execute(stmt).scalar_one() or 0)
    except SQLAlchemyError:
        log.exception('Error loading unread messages count for user %s', user_id)
        return 0


def subscribe_to_message_updates(
    feed: ChangeFeed,
    user_id: Optional[int],
    on_new_message: Callable[[], None],
    on_message_read: Callable[[], None],
) -> Optional[Subscription]:
    """Watch the messages table and call back for the viewer's unread transitions.

    Recipient filtering happens here, against each pushed row.
    """
    if not user_id:
        return None

    def handle(event: ChangeEvent):
        new = event.new
        if new.get('recipient_id') != user_id:
            return
        if event.type is EventType.INSERT:
            if not new.get('is_read'):
                on_new_message()
            return
        was_read = bool(event.old.get('is_read'))
        is_read = bool(new.get('is_read'))
        if was_read and not is_read:
            on_new_message()
        elif is_read and not was_read:
            on_message_read()

    return feed.subscribe('messages', events={'INSERT', 'UPDATE'}, handler=handle)


class UnreadMessagesCounter:
    """Optimistic client-side mirror of the viewer's unread message count."""

    def __init__(self, session, feed: ChangeFeed, user_id: Optional[int], on_change: Optional[Callable[[int], None]] = None):
        self.session = session
        self.feed = feed
        self.user_id = user_id
        self.on_change = on_change
        self.count = 0
        self._subscription: Optional[Subscription] = None

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> int:
        self.refresh()
        if not self.subscribed:
            self._subscription = subscribe_to_message_updates(self.feed, self.user_id, self._increment, self._decrement)
        return self.count

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def reconnect(self) -> int:
        self.stop()
        return self.start()

    def refresh(self) -> int:
        self._set(fetch_unread_messages_count(self.session, self.user_id))
        return self.count

    def _increment(self):
        self._set(self.count + 1)

    def _decrement(self):
        self._set(max(0, self.count - 1))

    def _set(self, value: int):
        changed = value != self.count
        self.count = value
        if changed and self.on_change:
            self.on_change(value)
