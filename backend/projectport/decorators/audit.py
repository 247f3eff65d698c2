"""Audit logging decorator for mutating route handlers.

Usage examples:

@audit_log('JOB.CREATE', entity='Job', entity_id_key='job_id', meta_keys=['shop_id', 'service_type'])
def create_job():
    ... return _job_json(job), 201

@audit_log('JOB.STATUS', entity='Job', entity_id_key='job_id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_job(kw.get('job_id')))
def change_status(job_id): ...

Parameters:
  action: audit action code (JOB.CREATE, TICKET.ACCEPT, ...)
  entity: optional entity label
  entity_id_key: key of the returned JSON object used as entity_id
  entity_id_arg: view keyword argument used as entity_id when the key is absent
  meta_keys: keys projected from the returned JSON into meta
  meta_builder: callable(data, rv, args, kwargs) -> dict, overrides meta_keys
  diff_keys / pre_fetch: snapshot taken before the handler runs; changed keys end up in meta['changes']

Only successful responses (status < 400) are audited. Audit problems are logged and never
change the handler's response.
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from projectport.services.audit import add_audit
from projectport import get_db

log = logging.getLogger(__name__)


def _split_response(rv: Any):
    """Return (payload, status) for the usual Flask return shapes."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, getattr(rv, 'status_code', 200)


def _changes(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    out = {}
    for k in keys:
        if k in before and k in after and before[k] != after[k]:
            out[k] = {'before': before[k], 'after': after[k]}
    return out


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = None
            if diff_keys and pre_fetch:
                try:
                    before = pre_fetch(args, kwargs)
                except Exception:
                    log.exception('Audit pre_fetch failed for %s', action)
            rv = fn(*args, **kwargs)
            try:
                data, status = _split_response(rv)
                if status >= 400:
                    return rv
                if not isinstance(data, dict):
                    add_audit(action, entity, kwargs.get(entity_id_arg) if entity_id_arg else None, None)
                    get_db().commit()
                    return rv
                entity_id = data.get(entity_id_key) if entity_id_key else None
                if entity_id is None and entity_id_arg:
                    entity_id = kwargs.get(entity_id_arg)
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs)
                else:
                    meta = {k: data.get(k) for k in (meta_keys or []) if k in data}
                if diff_keys and isinstance(before, dict):
                    changes = _changes(before, data, diff_keys)
                    if changes:
                        meta = dict(meta or {})
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except Exception:
                # audit must not interfere with the main response
                log.exception('Audit logging failed for %s', action)
            return rv
        return wrapper
    return outer
