"""Closed set of viewer roles.
Profiles store the role as a plain string; always go through Role.parse() so an unknown or
missing value lands on the least privileged role.
"""
from __future__ import annotations
import enum
from typing import FrozenSet


class Role(str, enum.Enum):
    ADMIN = 'admin'
    SUPPORT = 'support'
    MECHANIC = 'mechanic'

    @classmethod
    def parse(cls, raw) -> 'Role':
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw or '').strip().lower())
        except ValueError:
            return cls.MECHANIC

    @property
    def is_staff(self) -> bool:
        # admin and support are equally privileged for job visibility and ticket handling
        return self in STAFF_ROLES


STAFF_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPPORT})
ALL_ROLES = tuple(r.value for r in Role)

SUPPORTED_LOCALES = ('en', 'ko')
DEFAULT_LOCALE = 'en'
