"""Reusable test helpers for the request lifecycle to reduce duplication.

Patterns unified:
 - Auth header creation using direct JWT claims (identity is external to this service).
 - Creation + transition sequencing with assertion helpers.
 - Driving a request up to a given status in one call.
"""
from __future__ import annotations
from typing import Dict, Optional
from flask_jwt_extended import create_access_token

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user, role: Optional[str] = None, org_id: Optional[int] = None):
    """Bearer header for ``user``; role / org default to the stored profile values."""
    claims = {
        'role': role if role is not None else user.role,
        'org_id': org_id if org_id is not None else user.organization_id,
    }
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'Authorization': f'Bearer {token}'}

# ---------- Assertion Helpers ---------- #

def assert_transition(client, url: str, headers: Dict[str, str], expected_status: int, payload: dict = None,
                      expected_body_key: str = 'status', expected_body_value: str = None):
    resp = client.post(url, json=payload, headers=headers) if payload is not None else client.post(url, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_body_value is not None:
        body = resp.get_json()
        assert body[expected_body_key] == expected_body_value
    return resp


def assert_error(resp, status: int, code: str = None):
    assert resp.status_code == status, resp.get_json()
    body = resp.get_json()
    assert body['error']['status'] == status
    if code:
        assert body['error']['code'] == code
    return body


def create_request(client, world, headers=None, **overrides):
    payload = {
        'property_id': world['property'].id,
        'category': 'plumbing',
        'priority': 'high',
        'title': 'Leaking sink',
        'description': 'Water under the kitchen sink',
    }
    payload.update(overrides)
    resp = client.post('/requests', json=payload, headers=headers or jwt_headers(world['tenant']))
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'open'
    return body

# ---------- Lifecycle Drivers ---------- #

def drive_to(client, world, status: str) -> int:
    """Create a request as the tenant and move it to ``status`` (assigned, in_progress or completed)."""
    rid = create_request(client, world)['id']
    if status == 'open':
        return rid
    sup = jwt_headers(world['supervisor'])
    tech = jwt_headers(world['technician'])
    assert_transition(client, f'/requests/{rid}/assign', sup, 200, {'technician_id': world['technician'].id}, expected_body_value='assigned')
    if status == 'assigned':
        return rid
    assert_transition(client, f'/requests/{rid}/start', tech, 200, expected_body_value='in_progress')
    if status == 'in_progress':
        return rid
    assert_transition(client, f'/requests/{rid}/complete', tech, 200, expected_body_value='completed')
    return rid

__all__ = ['jwt_headers', 'assert_transition', 'assert_error', 'create_request', 'drive_to']
