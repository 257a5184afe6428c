import pytest
from datetime import timedelta
from flask import Flask
from fmc import get_db
from fmc.errors import NotFoundError
from fmc.services import lifecycle_service, timeline_service
from fmc.services.timeline import TimelineView
from tests.test_utils_seed import seed_world, caller_for


def _new_request(w):
    return lifecycle_service().create(caller_for(w['tenant']), {
        'property_id': w['property'].id, 'category': 'hvac', 'title': 'No cooling', 'description': 'AC blows warm air',
    })


def test_append_to_missing_request_not_found(app_context: Flask):
    w = seed_world()
    with pytest.raises(NotFoundError):
        timeline_service().append(9999, w['tenant'].id, 'note')
    with pytest.raises(NotFoundError):
        timeline_service().list_for(9999)


def test_view_is_lazy_and_restartable(app_context: Flask, clock):
    w = seed_world()
    req = _new_request(w)
    recorder = timeline_service()
    view = recorder.list_for(req.id)
    assert isinstance(view, TimelineView)
    assert [e.action for e in view] == ['created']

    clock.advance(seconds=5)
    recorder.append(req.id, w['supervisor'].id, 'note', 'Called the tenant')
    get_db().commit()
    # same view, second pass sees the new entry
    assert [e.action for e in view] == ['created', 'note']
    assert [e.action for e in view] == ['created', 'note']


def test_entries_ordered_by_creation_time(app_context: Flask, clock):
    w = seed_world()
    req = _new_request(w)
    recorder = timeline_service()
    base = clock.now()
    clock.set_time(base + timedelta(minutes=10))
    recorder.append(req.id, w['supervisor'].id, 'late')
    clock.set_time(base + timedelta(minutes=5))
    recorder.append(req.id, w['supervisor'].id, 'early')
    get_db().commit()
    assert [e.action for e in recorder.list_for(req.id)] == ['created', 'early', 'late']


def test_same_timestamp_falls_back_to_insertion_order(app_context: Flask):
    w = seed_world()
    req = _new_request(w)
    recorder = timeline_service()
    for label in ('first', 'second', 'third'):
        recorder.append(req.id, w['tenant'].id, label)
    get_db().commit()
    view = recorder.list_for(req.id)
    assert [e.action for e in view] == ['created', 'first', 'second', 'third']


def test_append_leaves_commit_to_caller(app_context: Flask):
    w = seed_world()
    req = _new_request(w)
    recorder = timeline_service()
    recorder.append(req.id, w['tenant'].id, 'draft')
    get_db().rollback()
    assert [e.action for e in recorder.list_for(req.id)] == ['created']
