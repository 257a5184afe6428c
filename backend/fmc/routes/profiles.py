from __future__ import annotations
from flask import Blueprint, request
from fmc import get_db
from fmc.decorators.auth import require_caller
from fmc.errors import NotFoundError
from fmc.models.identity import UserProfile
from fmc.services import invite_service
from fmc.services.store import reload

prof_bp = Blueprint('profiles', __name__)


@prof_bp.get('/me')
@require_caller
def get_me(caller):
    user = reload(get_db(), UserProfile, caller.user_id)
    if user is None:
        raise NotFoundError('User', caller.user_id)
    return profile_json(user)


@prof_bp.post('/complete')
@require_caller
def complete_profile(caller):
    data = request.get_json(silent=True) or {}
    return profile_json(invite_service().complete_profile(caller, data.get('role'), data.get('invite_code')))


def profile_json(u: UserProfile):
    return {
        'id': u.id,
        'email': u.email,
        'name': u.name,
        'role': u.role,
        'organization_id': u.organization_id,
        'phone': u.phone,
        'is_active': u.is_active,
    }
