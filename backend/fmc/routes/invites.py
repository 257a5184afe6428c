from __future__ import annotations
from flask import Blueprint, request
from fmc.decorators.auth import require_caller
from fmc.models.invite_code import InviteCode
from fmc.services import invite_service
from fmc.routes.profiles import profile_json
from fmc.utils.validation import isoformat

inv_bp = Blueprint('invites', __name__)


@inv_bp.post('')
@require_caller
def create_invite(caller):
    data = request.get_json(silent=True) or {}
    invite = invite_service().create(caller, data.get('role'), data.get('expires_in_days'))
    return invite_json(invite), 201


@inv_bp.get('')
@require_caller
def list_invites(caller):
    return {'data': [invite_json(i) for i in invite_service().list_for_organization(caller)]}


@inv_bp.post('/<code>/deactivate')
@require_caller
def deactivate_invite(code: str, caller):
    return invite_json(invite_service().deactivate(caller, code))


# Unauthenticated: a candidate checks a code before signing up
@inv_bp.post('/validate')
def validate_invite():
    data = request.get_json(silent=True) or {}
    return invite_service().validate(data.get('code'))


@inv_bp.post('/redeem')
@require_caller
def redeem_invite(caller):
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id', caller.user_id)
    profile = invite_service().redeem(caller, data.get('code'), user_id)
    return profile_json(profile)


def invite_json(i: InviteCode):
    return {
        'id': i.id,
        'code': i.code,
        'organization_id': i.organization_id,
        'role': i.role,
        'expires_at': isoformat(i.expires_at),
        'is_active': i.is_active,
        'used_by': i.used_by,
        'used_at': isoformat(i.used_at),
        'created_by': i.created_by,
        'created_at': isoformat(i.created_at),
    }
