from flask import Flask
from fmc import get_db
from fmc.models.maintenance_request import MaintenanceRequest
from fmc.services.store import compare_and_set, reload
from fmc.services import lifecycle_service
from tests.test_utils_seed import seed_world, caller_for


def _request(w):
    return lifecycle_service().create(caller_for(w['tenant']), {
        'property_id': w['property'].id, 'category': 'general', 'title': 'Door', 'description': 'Door sticks',
    })


def test_compare_and_set_applies_once(app_context: Flask):
    w = seed_world()
    req = _request(w)
    session = get_db()
    assert compare_and_set(session, MaintenanceRequest, req.id, {'status': 'open'}, {'status': 'assigned'}) is True
    assert compare_and_set(session, MaintenanceRequest, req.id, {'status': 'open'}, {'status': 'cancelled'}) is False
    session.commit()
    assert reload(session, MaintenanceRequest, req.id).status == 'assigned'


def test_compare_and_set_none_expectation(app_context: Flask):
    w = seed_world()
    req = _request(w)
    session = get_db()
    tech_id = w['technician'].id
    assert compare_and_set(session, MaintenanceRequest, req.id, {'assigned_technician_id': None}, {'assigned_technician_id': tech_id})
    assert not compare_and_set(session, MaintenanceRequest, req.id, {'assigned_technician_id': None}, {'assigned_technician_id': tech_id})
    session.commit()
    assert reload(session, MaintenanceRequest, req.id).assigned_technician_id == tech_id


def test_compare_and_set_extra_conditions(app_context: Flask):
    w = seed_world()
    req = _request(w)
    session = get_db()
    assert not compare_and_set(session, MaintenanceRequest, req.id, None, {'priority': 'urgent'}, MaintenanceRequest.priority == 'low')
    assert compare_and_set(session, MaintenanceRequest, req.id, None, {'priority': 'urgent'}, MaintenanceRequest.priority == 'medium')
    session.commit()
    assert reload(session, MaintenanceRequest, req.id).priority == 'urgent'


def test_compare_and_set_unknown_row(app_context: Flask):
    assert compare_and_set(get_db(), MaintenanceRequest, 424242, {'status': 'open'}, {'status': 'assigned'}) is False
    get_db().rollback()
