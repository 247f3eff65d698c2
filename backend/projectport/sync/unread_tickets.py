from __future__ import annotations
import logging
from typing import Callable, List, Optional
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from projectport.constants.roles import Role
from projectport.models.profile import Profile
from projectport.models.support_ticket import SupportTicket
from projectport.realtime.feed import ChangeFeed, Subscription

log = logging.getLogger(__name__)


def fetch_unread_tickets_count(session, user_id: Optional[int]) -> int:
    """Open tickets relevant to the viewer: every open ticket for staff, own open tickets otherwise."""
    if not user_id:
        return 0
    try:
        role = session.execute(select(Profile.role).where(Profile.id == user_id)).scalar_one_or_none()
        stmt = select(func.count(SupportTicket.id)).where(SupportTicket.status == SupportTicket.STATUS_OPEN)
        if not Role.parse(role).is_staff:
            stmt = stmt.where(SupportTicket.creator_id == user_id)
        return int(session.execute(stmt).scalar_one() or 0)
    except SQLAlchemyError:
        log.exception('Error loading unread tickets count for user %s', user_id)
        return 0


def subscribe_to_ticket_updates(feed: ChangeFeed, user_id: Optional[int], on_update: Callable[[], None]) -> List[Subscription]:
    if not user_id:
        return []
    handler = lambda event: on_update()
    return [
        feed.subscribe('support_tickets', handler=handler),
        feed.subscribe('ticket_messages', handler=handler),
    ]


class UnreadTicketsCounter:
    """Refetches the open ticket count whenever anything ticket related changes."""

    def __init__(self, session, feed: ChangeFeed, user_id: Optional[int]):
        self.session = session
        self.feed = feed
        self.user_id = user_id
        self.count = 0
        self._subscriptions: List[Subscription] = []

    def start(self) -> int:
        self.refresh()
        if not self._subscriptions or not all(s.active for s in self._subscriptions):
            self.stop()
            self._subscriptions = subscribe_to_ticket_updates(self.feed, self.user_id, self.refresh)
        return self.count

    def refresh(self) -> int:
        self.count = fetch_unread_tickets_count(self.session, self.user_id)
        return self.count

    def stop(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []
