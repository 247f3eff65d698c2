"""Pending support ticket queue for staff viewers.

New open tickets are pushed by the change feed, resolved to a display name and queued in
arrival order. Accepting a ticket writes first and only then drops it from the queue; a failed
write leaves the queue exactly as it was. Dismissing never touches the server.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from projectport.models.profile import Profile
from projectport.models.support_ticket import SupportTicket
from projectport.realtime.capture import snapshot_new, stage_change
from projectport.realtime.feed import ChangeEvent, ChangeFeed, EventType, Subscription
from projectport.services.policy import ViewerPermissions
from projectport.services.session import AuthContext
from projectport.sync.toasts import ToastAction, ToastQueue

log = logging.getLogger(__name__)

UNKNOWN_CREATOR = 'Unknown User'
VISIBLE_LIMIT = 3


class TicketAcceptError(Exception):
    pass


@dataclass(frozen=True)
class PendingTicket:
    id: int
    title: str
    creator_name: str
    created_at: Optional[datetime]
    priority: str


def assign_open_ticket(session, ticket_id: int, assignee_id: int) -> SupportTicket:
    """Move an open ticket to in_progress under assignee_id and commit.

    The write itself is conditional on status = open, so of two concurrent accepts exactly one
    matches a row. Raises TicketAcceptError when the ticket was accepted or closed meanwhile.
    """
    current = _fresh_ticket(session, ticket_id)
    if current is None or current.status != SupportTicket.STATUS_OPEN:
        raise TicketAcceptError(f'Ticket {ticket_id} is no longer open')
    old = snapshot_new(current)
    result = session.execute(
        update(SupportTicket)
        .where(SupportTicket.id == ticket_id, SupportTicket.status == SupportTicket.STATUS_OPEN)
        .values(assigned_to=assignee_id, status=SupportTicket.STATUS_IN_PROGRESS)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise TicketAcceptError(f'Ticket {ticket_id} is no longer open')
    ticket = _fresh_ticket(session, ticket_id)
    stage_change(session, ChangeEvent(SupportTicket.__tablename__, EventType.UPDATE, new=snapshot_new(ticket), old=old))
    session.commit()
    return ticket


def _fresh_ticket(session, ticket_id: int) -> Optional[SupportTicket]:
    return session.execute(
        select(SupportTicket).where(SupportTicket.id == ticket_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()


class TicketAlert:
    def __init__(self, session, feed: ChangeFeed, ctx: Optional[AuthContext], permissions: ViewerPermissions, toasts: Optional[ToastQueue] = None):
        self.session = session
        self.feed = feed
        self.ctx = ctx
        self.permissions = permissions
        self.toasts = toasts or ToastQueue()
        self.pending: List[PendingTicket] = []
        self.show_alert = False
        self._subscription: Optional[Subscription] = None

    @property
    def enabled(self) -> bool:
        return self.ctx is not None and self.permissions.is_staff

    @property
    def visible(self) -> bool:
        return self.enabled and self.show_alert and bool(self.pending)

    @property
    def visible_tickets(self) -> List[PendingTicket]:
        return self.pending[:VISIBLE_LIMIT]

    @property
    def overflow_count(self) -> int:
        return max(0, len(self.pending) - VISIBLE_LIMIT)

    def start(self) -> bool:
        """Subscribe unless already live; a subscription cut by a dropped connection is replaced."""
        if not self.enabled:
            return False
        if self._subscription is not None and self._subscription.active:
            return True
        self._subscription = self.feed.subscribe(
            'support_tickets', events={'INSERT'}, row_filter='status=eq.open', handler=self._on_ticket_created,
        )
        return True

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _creator_name(self, creator_id) -> str:
        if creator_id is None:
            return UNKNOWN_CREATOR
        name = self.session.execute(select(Profile.name).where(Profile.id == creator_id)).scalar_one_or_none()
        return name or UNKNOWN_CREATOR

    def _on_ticket_created(self, event: ChangeEvent) -> None:
        row = event.new
        try:
            creator_name = self._creator_name(row.get('creator_id'))
        except SQLAlchemyError:
            log.exception('Error resolving creator for ticket %s', row.get('id'))
            self.session.rollback()
            self.toasts.error('Failed to load new support ticket')
            return
        ticket = PendingTicket(
            id=row['id'],
            title=row.get('title') or '',
            creator_name=creator_name,
            created_at=row.get('created_at'),
            priority=row.get('priority') or 'medium',
        )
        self.pending.append(ticket)
        self.show_alert = True
        self.toasts.info(f'New support ticket: {ticket.title}', action=ToastAction('View', self.open))

    def open(self) -> None:
        self.show_alert = True

    def _assign(self, ticket_id: int) -> None:
        assign_open_ticket(self.session, ticket_id, self.ctx.user_id)

    def accept(self, ticket_id: int) -> bool:
        if not self.enabled:
            return False
        try:
            self._assign(ticket_id)
        except (SQLAlchemyError, TicketAcceptError):
            log.exception('Error accepting ticket %s', ticket_id)
            self.session.rollback()
            self.toasts.error('Failed to accept ticket')
            return False
        self.pending = [t for t in self.pending if t.id != ticket_id]
        self.toasts.success('Ticket accepted and assigned to you')
        if not self.pending:
            self.show_alert = False
        return True

    def dismiss(self, ticket_id: int) -> None:
        self.pending = [t for t in self.pending if t.id != ticket_id]
        if not self.pending:
            self.show_alert = False

    def dismiss_all(self) -> None:
        self.pending = []
        self.show_alert = False
