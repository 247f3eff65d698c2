"""Request body helpers with consistent 400 semantics."""
from __future__ import annotations
from typing import Any, Dict, Iterable, Optional
from flask import abort, request


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='JSON object body required')
    return data


def require_fields(data: Dict[str, Any], *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def validate_choice(value: Optional[str], allowed: Iterable[str], field_name: str = 'status') -> str:
    """Return value when it is one of allowed, else abort 400."""
    if value not in tuple(allowed):
        abort(400, description=f"{field_name} invalid")
    return value

__all__ = ['json_body', 'require_fields', 'validate_choice']
