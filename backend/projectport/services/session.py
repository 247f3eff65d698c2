"""Explicit viewer context handed to every collaborator.

Routes build it from the verified JWT; background consumers (sync clients, scripts) build it
directly. Nothing downstream reads the token or any global auth state on its own.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    email: Optional[str] = None


def current_context(optional: bool = False) -> Optional[AuthContext]:
    """Return the AuthContext for the current request.

    With optional=True a missing token yields None instead of a 401.
    """
    verify_jwt_in_request(optional=optional)
    ident = get_jwt_identity()
    if ident is None:
        return None
    claims = get_jwt() or {}
    return AuthContext(user_id=int(ident), email=claims.get('email'))


__all__ = ['AuthContext', 'current_context']
