from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, DateTime, func
from projectport.models.profile import Base, utcnow


class Message(Base):
    __tablename__ = 'messages'
    __realtime__ = True
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sender_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    recipient_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)
