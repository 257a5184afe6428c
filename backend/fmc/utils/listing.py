"""List-endpoint helpers: pagination, ETag / Last-Modified caching and conditional GET."""
from __future__ import annotations
from typing import Iterable, Optional, Tuple
from flask import request, make_response
from sqlalchemy.orm import Query
from fmc.config.pagination import normalize_pagination
from fmc.errors import ValidationError
from fmc.utils.clock import as_utc
import hashlib
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)

def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    return as_utc(dt).replace(microsecond=0)

def _iso(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')

def _http_date(dt: datetime) -> str:
    """Return RFC1123 HTTP-date string in GMT."""
    return format_datetime(as_utc(dt), usegmt=True)

def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise ValidationError(str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset

def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]

def _stamp(resp, etag: str, latest: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest is not None:
        resp.headers['Last-Modified'] = _http_date(latest)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest)
    return resp

def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, _iso(latest) if latest else '')
    payload = {
        'data': rows,
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }
    return _stamp(make_response(payload), etag, latest), etag

def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    # ISO 8601 first, then HTTP-date
    try:
        return as_utc(datetime.fromisoformat(header_val.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return as_utc(parsedate_to_datetime(header_val))
    except (TypeError, ValueError):
        return None

def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Return a 304 response when If-None-Match (preferred) or If-Modified-Since matches, else None."""
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag_value:
        return _stamp(make_response('', 304), etag_value, latest)
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest is not None:
        ims_dt = _parse_if_modified_since(ims_raw)
        if ims_dt and latest <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
            return _stamp(make_response('', 304), etag_value, latest)
    return None
