"""List endpoint plumbing: pagination, multi-field sort, ETag / Last-Modified and 304 handling.

Every list route ends in list_response(); HEAD requests get the same headers with an empty body.
"""
from __future__ import annotations
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
from flask import request, abort, make_response
from sqlalchemy.orm import Query

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """UTC, tz-aware, whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def iso_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return canonicalize_timestamp(dt).isoformat().replace('+00:00', 'Z')


def http_date(dt: datetime) -> str:
    return format_datetime(canonicalize_timestamp(dt), usegmt=True)


def apply_sort(query, sort_expr: Optional[str], allowed: Dict[str, Any], tie_breaker):
    """`sort=-date_created,status`: comma separated keys, '-' for descending."""
    if not sort_expr:
        return query.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token.lstrip('-')
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[Any], total: int, limit: int, offset: int, latest_iso: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_iso or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _stamp(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest_ts:
        resp.headers['Last-Modified'] = http_date(latest_ts)
        resp.headers['X-Last-Modified-ISO'] = iso_z(latest_ts)
    return resp


def handle_conditional(etag: str, latest_ts: Optional[datetime]):
    """304 response when If-None-Match (preferred) or If-Modified-Since is satisfied, else None."""
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag:
            return _stamp(make_response('', 304), etag, latest_ts)
        return None
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest_ts:
        ims = _parse_if_modified_since(ims_raw)
        if ims and canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims) + TIMESTAMP_TOLERANCE:
            return _stamp(make_response('', 304), etag, latest_ts)
    return None


def _latest(rows, field: Optional[str]) -> Optional[datetime]:
    if not field:
        return None
    stamps = [canonicalize_timestamp(v) for v in (getattr(r, field, None) for r in rows) if isinstance(v, datetime)]
    return max(stamps) if stamps else None


def list_response(
    query,
    serialize: Callable[[Any], Dict[str, Any]],
    *,
    sort_fields: Optional[Dict[str, Any]] = None,
    tie_breaker=None,
    latest_field: Optional[str] = 'updated_at',
):
    """Sort, paginate, serialize and wrap a query as a cacheable list response."""
    if tie_breaker is not None:
        query = apply_sort(query, request.args.get('sort'), sort_fields or {}, tie_breaker)
    paged, total, limit, offset = apply_pagination(query)
    rows = paged.all()
    data = [serialize(r) for r in rows]
    latest_ts = _latest(rows, latest_field)
    etag = compute_etag([d.get('id') for d in data], total, limit, offset, iso_z(latest_ts))
    cond = handle_conditional(etag, latest_ts)
    if cond is not None:
        return cond
    resp = make_response({
        'data': data,
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(data)},
    })
    _stamp(resp, etag, latest_ts)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def single_response(body: Dict[str, Any], latest_ts: Optional[datetime]):
    etag = compute_etag([body.get('id')], 1, 1, 0, iso_z(latest_ts))
    cond = handle_conditional(etag, latest_ts)
    if cond is not None:
        return cond
    resp = _stamp(make_response(body), etag, latest_ts)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
