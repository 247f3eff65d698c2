"""Transient user-facing notices raised by the sync clients.

Bounded: only the most recent toasts are kept. Every toast is also logged so failures that
the user only saw briefly still leave a trace.
"""
from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional

log = logging.getLogger(__name__)

_LEVELS = {'info': logging.INFO, 'success': logging.INFO, 'error': logging.ERROR}


@dataclass(frozen=True)
class ToastAction:
    label: str
    on_click: Optional[Callable[[], None]] = None


@dataclass(frozen=True)
class Toast:
    level: str
    message: str
    action: Optional[ToastAction] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ToastQueue:
    def __init__(self, limit: int = 20):
        self._items: Deque[Toast] = deque(maxlen=limit)

    def push(self, level: str, message: str, action: Optional[ToastAction] = None) -> Toast:
        toast = Toast(level, message, action)
        self._items.append(toast)
        log.log(_LEVELS.get(level, logging.INFO), 'toast[%s] %s', level, message)
        return toast

    def info(self, message: str, action: Optional[ToastAction] = None) -> Toast:
        return self.push('info', message, action)

    def success(self, message: str) -> Toast:
        return self.push('success', message)

    def error(self, message: str) -> Toast:
        return self.push('error', message)

    @property
    def items(self) -> List[Toast]:
        return list(self._items)

    @property
    def last(self) -> Optional[Toast]:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def __len__(self):
        return len(self._items)
