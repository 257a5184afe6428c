from __future__ import annotations
from flask import Blueprint, request, make_response, jsonify
from fmc.decorators.auth import require_caller
from fmc.utils.listing import make_cached_list_response, handle_conditional, apply_pagination, compute_etag, canonicalize_timestamp, _http_date
from fmc.utils.sorting import apply_multi_sort
from fmc.utils.filters import apply_filters
from fmc.utils.validation import isoformat
from fmc.constants.roles import CATEGORIES, PRIORITIES
from fmc.models.maintenance_request import MaintenanceRequest
from fmc.errors import ValidationError
from fmc.services import lifecycle_service

req_bp = Blueprint('requests', __name__)

@req_bp.get('')
@require_caller
def list_requests(caller):
    q = lifecycle_service().scoped_query(caller)
    filter_specs = {
        'status': {'op': lambda qu, v: qu.filter(MaintenanceRequest.status==v), 'validate': lambda v: v in MaintenanceRequest.ALL_STATUSES},
        'priority': {'op': lambda qu, v: qu.filter(MaintenanceRequest.priority==v), 'validate': lambda v: v in PRIORITIES},
        'category': {'op': lambda qu, v: qu.filter(MaintenanceRequest.category==v), 'validate': lambda v: v in CATEGORIES},
        'property_id': {'coerce': int, 'op': lambda qu, v: qu.filter(MaintenanceRequest.property_id==v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'request_number': MaintenanceRequest.request_number,
        'status': MaintenanceRequest.status,
        'priority': MaintenanceRequest.priority,
        'created_at': MaintenanceRequest.created_at,
        'updated_at': MaintenanceRequest.updated_at,
        'id': MaintenanceRequest.id
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, MaintenanceRequest.id)
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    rows_json = [request_json(r) for r in rows]
    latest_ts = max((r.updated_at for r in rows), default=None)
    resp, etag = make_cached_list_response(rows_json, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    return resp


@req_bp.post('')
@require_caller
def create_request(caller):
    req = lifecycle_service().create(caller, request.get_json(silent=True) or {})
    return request_json(req), 201


@req_bp.route('/<int:request_id>', methods=['GET', 'HEAD'])
@require_caller
def get_request(request_id: int, caller):
    req = lifecycle_service().get(caller, request_id)
    latest_ts = req.updated_at
    etag = compute_etag([req.id], 1, 1, 0, f'{req.status}|{isoformat(latest_ts)}')
    cond = handle_conditional(etag, latest_ts)
    if cond:
        cond.set_data(b'')
        return cond
    resp = make_response(jsonify(request_json(req)))
    resp.headers['ETag'] = etag
    lt = canonicalize_timestamp(latest_ts)
    resp.headers['Last-Modified'] = _http_date(lt)
    resp.headers['X-Last-Modified-ISO'] = lt.isoformat().replace('+00:00', 'Z')
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@req_bp.post('/<int:request_id>/assign')
@require_caller
def assign_request(request_id: int, caller):
    data = request.get_json(silent=True) or {}
    req = lifecycle_service().assign(caller, request_id, data.get('technician_id'), data.get('supervisor_id'))
    return request_json(req)


@req_bp.post('/<int:request_id>/start')
@require_caller
def start_work(request_id: int, caller):
    return request_json(lifecycle_service().start_work(caller, request_id))


@req_bp.post('/<int:request_id>/complete')
@require_caller
def mark_completed(request_id: int, caller):
    return request_json(lifecycle_service().mark_completed(caller, request_id))


@req_bp.post('/<int:request_id>/close')
@require_caller
def close_request(request_id: int, caller):
    data = request.get_json(silent=True) or {}
    via_approval = data.get('via_approval', True)
    if not isinstance(via_approval, bool):
        raise ValidationError('via_approval must be boolean')
    return request_json(lifecycle_service().close(caller, request_id, via_approval))


@req_bp.post('/<int:request_id>/cancel')
@require_caller
def cancel_request(request_id: int, caller):
    data = request.get_json(silent=True) or {}
    return request_json(lifecycle_service().cancel(caller, request_id, data.get('reason')))


@req_bp.get('/<int:request_id>/timeline')
@require_caller
def get_timeline(request_id: int, caller):
    entries = lifecycle_service().timeline_for(caller, request_id)
    return {'data': [timeline_json(e) for e in entries]}


def request_json(r: MaintenanceRequest):
    return {
        'id': r.id,
        'request_number': r.request_number,
        'title': r.title,
        'description': r.description,
        'category': r.category,
        'priority': r.priority,
        'status': r.status,
        'property_id': r.property_id,
        'organization_id': r.organization_id,
        'created_by': r.created_by,
        'assigned_technician_id': r.assigned_technician_id,
        'supervisor_id': r.supervisor_id,
        'preferred_date': isoformat(r.preferred_date),
        'preferred_time_slot': r.preferred_time_slot,
        'scheduling_notes': r.scheduling_notes,
        'is_customer_approved': r.is_customer_approved,
        'cancel_reason': r.cancel_reason,
        'actual_completion_date': isoformat(r.actual_completion_date),
        'closed_at': isoformat(r.closed_at),
        'created_at': isoformat(r.created_at),
        'updated_at': isoformat(r.updated_at),
    }


def timeline_json(e):
    return {
        'id': e.id,
        'action': e.action,
        'description': e.description,
        'actor_user_id': e.actor_user_id,
        'old_status': e.old_status,
        'new_status': e.new_status,
        'created_at': isoformat(e.created_at),
    }
