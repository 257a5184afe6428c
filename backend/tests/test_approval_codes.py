import itertools
from types import SimpleNamespace
import pytest
from flask import Flask
from fmc import get_db
from fmc.errors import AlreadyUsedError, ExpiredError, NotFoundError, StateConflictError, UnauthorizedRoleError, ValidationError
from fmc.models.approval_code import ApprovalCode
from fmc.models.timeline import TimelineEntry
from fmc.services import lifecycle_service
from fmc.services.approval_codes import ApprovalCodeService, random_numeric_code
from tests.test_utils_seed import seed_world, caller_for
from tests.test_lifecycle_helpers import jwt_headers, assert_error, drive_to


def _service(clock, notifier, *codes):
    values = itertools.cycle(codes) if codes else None
    return ApprovalCodeService(clock=clock, notifier=notifier,
                               code_factory=(lambda: next(values)) if values else random_numeric_code)


def test_random_codes_are_six_digits():
    for _ in range(50):
        code = random_numeric_code()
        assert len(code) == 6 and code.isdigit()


def test_approval_scenario_with_known_code(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')

    ack = svc.generate(caller_for(w['technician']), rid)
    assert ack['expires_at'] == '2025-01-01T12:10:00Z'
    assert 'code' not in ack
    assert notifier.last_code_for(w['tenant'].id) == '482913'

    req = svc.verify(caller_for(w['tenant']), rid, '482913')
    assert req.is_customer_approved is True

    closed = lifecycle_service().close(caller_for(w['tenant']), rid, via_approval=True)
    assert closed.status == 'closed'
    row = get_db().query(ApprovalCode).filter_by(request_id=rid).execution_options(populate_existing=True).one()
    assert row.consumed is True and row.consumed_by == w['tenant'].id


def test_new_code_supersedes_previous(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '111111', '222222')
    tech = caller_for(w['technician'])
    svc.generate(tech, rid)
    svc.resend(tech, rid)
    with pytest.raises(ValidationError):
        svc.verify(caller_for(w['tenant']), rid, '111111')
    assert svc.verify(caller_for(w['tenant']), rid, '222222').is_customer_approved is True
    assert get_db().query(ApprovalCode).filter_by(request_id=rid).count() == 1


def test_expired_code_rejected_even_if_correct(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')
    svc.generate(caller_for(w['technician']), rid)
    clock.advance(minutes=11)
    with pytest.raises(ExpiredError):
        svc.verify(caller_for(w['tenant']), rid, '482913')
    status = svc.status(caller_for(w['tenant']), rid)
    assert status == {'has_code': True, 'is_expired': True, 'is_approved': False, 'expires_at': None}


def test_resend_after_expiry_issues_fresh_code(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '123456', '654321')
    svc.generate(caller_for(w['technician']), rid)
    clock.advance(minutes=30)
    ack = svc.resend(caller_for(w['technician']), rid)
    assert ack['expires_at'] == '2025-01-01T12:40:00Z'
    assert svc.verify(caller_for(w['tenant']), rid, '654321').is_customer_approved is True


def test_second_verify_reports_already_used(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')
    svc.generate(caller_for(w['technician']), rid)
    svc.verify(caller_for(w['tenant']), rid, '482913')
    with pytest.raises(AlreadyUsedError):
        svc.verify(caller_for(w['tenant']), rid, '482913')


def test_concurrent_verify_exactly_one_wins(app_context: Flask, clock, notifier, monkeypatch):
    """Both submissions read the code while unconsumed; only one conditional update matches."""
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')
    svc.generate(caller_for(w['technician']), rid)
    row = svc._load_code(rid)
    stale = SimpleNamespace(id=row.id, code=row.code, expires_at=row.expires_at, consumed=False)

    assert svc.verify(caller_for(w['tenant']), rid, '482913').is_customer_approved is True

    real_load = svc._load_code
    reads = []

    def racing_load(request_id):
        reads.append(request_id)
        return stale if len(reads) == 1 else real_load(request_id)

    monkeypatch.setattr(svc, '_load_code', racing_load)
    with pytest.raises(AlreadyUsedError):
        svc.verify(caller_for(w['tenant']), rid, '482913')
    verified = get_db().query(TimelineEntry).filter_by(request_id=rid, action='otp_verified').count()
    assert verified == 1


def test_status_is_read_only(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')
    svc.generate(caller_for(w['technician']), rid)
    session = get_db()
    before = session.query(ApprovalCode).filter_by(request_id=rid).execution_options(populate_existing=True).one()
    snapshot = (before.code, before.expires_at, before.consumed)
    entries = session.query(TimelineEntry).filter_by(request_id=rid).count()
    results = [svc.status(caller_for(w['tenant']), rid) for _ in range(3)]
    assert results[0] == results[1] == results[2] == {
        'has_code': True, 'is_expired': False, 'is_approved': False, 'expires_at': '2025-01-01T12:10:00Z',
    }
    after = session.query(ApprovalCode).filter_by(request_id=rid).execution_options(populate_existing=True).one()
    assert (after.code, after.expires_at, after.consumed) == snapshot
    assert session.query(TimelineEntry).filter_by(request_id=rid).count() == entries


def test_generate_requires_completed_status(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'in_progress')
    with pytest.raises(StateConflictError):
        _service(clock, notifier).generate(caller_for(w['technician']), rid)


def test_resend_without_code_not_found(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    with pytest.raises(NotFoundError):
        _service(clock, notifier).resend(caller_for(w['technician']), rid)


def test_verify_without_code_not_found(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    with pytest.raises(NotFoundError):
        _service(clock, notifier).verify(caller_for(w['tenant']), rid, '123456')


def test_only_tenant_may_verify(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    svc = _service(clock, notifier, '482913')
    svc.generate(caller_for(w['technician']), rid)
    with pytest.raises(UnauthorizedRoleError):
        svc.verify(caller_for(w['owner']), rid, '482913')
    with pytest.raises(UnauthorizedRoleError):
        svc.verify(caller_for(w['technician']), rid, '482913')


def test_http_otp_endpoints(app_context: Flask, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    tech, tenant = jwt_headers(w['technician']), jwt_headers(w['tenant'])

    assert client.get(f'/requests/{rid}/otp', headers=tenant).get_json()['has_code'] is False
    assert_error(client.post(f'/requests/{rid}/otp/resend', headers=tech), 404, 'NOT_FOUND')
    assert client.post(f'/requests/{rid}/otp', headers=tech).status_code == 201
    status = client.get(f'/requests/{rid}/otp', headers=jwt_headers(w['supervisor'])).get_json()
    assert status['has_code'] is True and status['expires_at'] == '2025-01-01T12:10:00Z'

    assert client.post(f'/requests/{rid}/otp/resend', headers=tech).status_code == 200
    actions = [e['action'] for e in client.get(f'/requests/{rid}/timeline', headers=tenant).get_json()['data']]
    assert actions[-2:] == ['otp_generated', 'otp_resent']

    assert_error(client.post(f'/requests/{rid}/otp/verify', json={'code': 'abc'}, headers=tenant), 400, 'VALIDATION_ERROR')
    assert_error(client.post(f'/requests/{rid}/otp/verify', json={}, headers=tenant), 400, 'VALIDATION_ERROR')
    code = notifier.last_code_for(w['tenant'].id)
    resp = client.post(f'/requests/{rid}/otp/verify', json={'code': code}, headers=tenant)
    assert resp.status_code == 200
    assert client.get(f'/requests/{rid}/otp', headers=tenant).get_json() == {
        'has_code': False, 'is_expired': False, 'is_approved': True, 'expires_at': None,
    }
    assert notifier.events_for(w['technician'].id, 'work_approved')
    assert_error(client.post(f'/requests/{rid}/otp/verify', json={'code': code}, headers=tenant), 409, 'ALREADY_USED')


def test_http_expired_code_returns_gone(app_context: Flask, clock, notifier):
    client = app_context.test_client()
    w = seed_world()
    rid = drive_to(client, w, 'completed')
    client.post(f'/requests/{rid}/otp', headers=jwt_headers(w['technician']))
    clock.advance(minutes=11)
    code = notifier.last_code_for(w['tenant'].id)
    assert_error(client.post(f'/requests/{rid}/otp/verify', json={'code': code}, headers=jwt_headers(w['tenant'])), 410, 'EXPIRED')
