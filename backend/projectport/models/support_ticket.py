from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, DateTime, func
from projectport.models.profile import Base, utcnow


class SupportTicket(Base):
    __tablename__ = 'support_tickets'
    __realtime__ = True
    # Status constants
    STATUS_OPEN = 'open'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_CLOSED = 'closed'
    ALL_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_CLOSED)
    PRIORITIES = ('low', 'medium', 'high')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    creator_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default='medium')
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class TicketMessage(Base):
    __tablename__ = 'ticket_messages'
    __realtime__ = True
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('support_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_from_support: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())

# Status flow: open -> in_progress -> closed (open -> closed when resolved without assignment).
