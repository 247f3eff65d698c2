from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt
from projectport import get_db
from projectport.models.audit import AuditLog
from projectport.services.session import current_context

SYSTEM_ACTOR = 0


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit row for the acting viewer; the caller commits.

    action is a dotted code such as JOB.STATUS or TICKET.ACCEPT. Requests without a token
    (system intake) are recorded against SYSTEM_ACTOR with an empty role snapshot.
    """
    ctx = current_context(optional=True)
    role = get_jwt().get('role') if ctx else None
    entry = AuditLog(
        actor_user_id=ctx.user_id if ctx else SYSTEM_ACTOR,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        role_snapshot={'role': role},
        meta=dict(meta or {}),
    )
    get_db().add(entry)
    return entry
