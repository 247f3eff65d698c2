from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey, JSON, DateTime, func
from projectport.models.profile import Base, utcnow


class Job(Base):
    __tablename__ = 'jobs'
    __realtime__ = True
    # Status constants
    STATUS_PENDING = 'pending'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_ON_HOLD = 'on-hold'
    STATUS_COMPLETED = 'completed'
    STATUS_CLOSED = 'closed'  # system-generated jobs arrive already closed
    ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_ON_HOLD, STATUS_COMPLETED, STATUS_CLOSED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    shop_id: Mapped[Optional[str]] = mapped_column(ForeignKey('shops.id', ondelete='SET NULL'), nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    customer: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    motorcycle: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    service_type: Mapped[str] = mapped_column(String(80), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    tracking_code: Mapped[Optional[str]] = mapped_column(String(8), unique=True, nullable=True)
    notes: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    photos: Mapped[Dict[str, Any]] = mapped_column(JSON, default=lambda: {'start': [], 'completion': []})
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    date_completed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

# Status flow: pending -> in-progress -> completed, with on-hold as a pause from pending/in-progress.
