from flask import Flask
from fmc.constants.roles import ROLE_FMC_HEAD
from tests.test_utils_seed import seed_world, ensure_user
from tests.test_lifecycle_helpers import jwt_headers, assert_transition, create_request, drive_to


def test_request_full_lifecycle_with_customer_approval(app_context: Flask, notifier):
    client = app_context.test_client()
    w = seed_world()
    tenant, sup, tech = jwt_headers(w['tenant']), jwt_headers(w['supervisor']), jwt_headers(w['technician'])

    body = create_request(client, w)
    rid = body['id']
    assert body['request_number'] == 'REQ-2025-001'
    assert body['is_customer_approved'] is False
    assert notifier.events_for(w['supervisor'].id, 'request_created')

    resp = assert_transition(client, f'/requests/{rid}/assign', sup, 200, {'technician_id': w['technician'].id}, expected_body_value='assigned')
    assert resp.get_json()['assigned_technician_id'] == w['technician'].id
    assert resp.get_json()['supervisor_id'] == w['supervisor'].id
    assert notifier.events_for(w['technician'].id, 'request_assigned')
    assert notifier.events_for(w['tenant'].id, 'technician_assigned')

    assert_transition(client, f'/requests/{rid}/start', tech, 200, expected_body_value='in_progress')
    resp = assert_transition(client, f'/requests/{rid}/complete', tech, 200, expected_body_value='completed')
    assert resp.get_json()['actual_completion_date'] is not None

    resp = client.post(f'/requests/{rid}/otp', headers=tech)
    assert resp.status_code == 201, resp.get_json()
    ack = resp.get_json()
    assert ack == {'request_id': rid, 'issued': True, 'expires_at': '2025-01-01T12:10:00Z'}
    # the value only travels to the tenant
    code = notifier.last_code_for(w['tenant'].id)
    assert code is not None and len(code) == 6 and code.isdigit()
    assert notifier.last_code_for(w['technician'].id) is None

    resp = client.post(f'/requests/{rid}/otp/verify', json={'code': code}, headers=tenant)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['is_customer_approved'] is True
    assert resp.get_json()['status'] == 'completed'

    resp = assert_transition(client, f'/requests/{rid}/close', tenant, 200, {'via_approval': True}, expected_body_value='closed')
    assert resp.get_json()['closed_at'] is not None

    actions = [e['action'] for e in client.get(f'/requests/{rid}/timeline', headers=tenant).get_json()['data']]
    assert actions == ['created', 'assigned', 'work_started', 'work_completed', 'otp_generated', 'otp_verified', 'closed']


def test_request_numbers_are_sequential_per_year(app_context: Flask):
    client = app_context.test_client()
    w = seed_world()
    first = create_request(client, w)
    second = create_request(client, w, title='Broken light', category='electrical')
    assert first['request_number'] == 'REQ-2025-001'
    assert second['request_number'] == 'REQ-2025-002'


def test_owner_can_file_for_own_property(app_context: Flask):
    client = app_context.test_client()
    w = seed_world()
    body = create_request(client, w, headers=jwt_headers(w['owner']))
    assert body['created_by'] == w['owner'].id
    assert body['organization_id'] == w['org'].id
    assert body['priority'] == 'high'


def test_default_priority_is_medium(app_context: Flask):
    client = app_context.test_client()
    w = seed_world()
    body = create_request(client, w, priority=None)
    assert body['priority'] == 'medium'


def test_supervisor_override_close_without_approval(app_context: Flask, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    resp = assert_transition(client, f'/requests/{rid}/close', jwt_headers(w['supervisor']), 200, {'via_approval': False}, expected_body_value='closed')
    assert resp.get_json()['is_customer_approved'] is False
    assert notifier.events_for(w['tenant'].id, 'status_update')


def test_fmc_head_can_assign(app_context: Flask):
    client = app_context.test_client()
    w = seed_world()
    head = ensure_user('head@example.com', ROLE_FMC_HEAD, w['org'])
    rid = create_request(client, w)['id']
    assert_transition(client, f'/requests/{rid}/assign', jwt_headers(head), 200,
                      {'technician_id': w['technician'].id, 'supervisor_id': w['supervisor'].id}, expected_body_value='assigned')


def test_tenant_cancels_open_request(app_context: Flask):
    client = app_context.test_client()
    w = seed_world()
    rid = create_request(client, w)['id']
    resp = assert_transition(client, f'/requests/{rid}/cancel', jwt_headers(w['tenant']), 200, {'reason': 'Fixed it myself'}, expected_body_value='cancelled')
    assert resp.get_json()['cancel_reason'] == 'Fixed it myself'


def test_supervisor_cancels_in_progress_request(app_context: Flask, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'in_progress')
    assert_transition(client, f'/requests/{rid}/cancel', jwt_headers(w['supervisor']), 200, {'reason': 'Duplicate'}, expected_body_value='cancelled')
    assert notifier.events_for(w['technician'].id, 'status_update')
