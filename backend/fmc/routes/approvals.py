from __future__ import annotations
from flask import Blueprint, request
from fmc.decorators.auth import require_caller
from fmc.services import approval_code_service
from fmc.routes.requests import request_json

otp_bp = Blueprint('approvals', __name__)


@otp_bp.post('/<int:request_id>/otp')
@require_caller
def generate_code(request_id: int, caller):
    return approval_code_service().generate(caller, request_id), 201


@otp_bp.post('/<int:request_id>/otp/resend')
@require_caller
def resend_code(request_id: int, caller):
    return approval_code_service().resend(caller, request_id)


@otp_bp.get('/<int:request_id>/otp')
@require_caller
def code_status(request_id: int, caller):
    return approval_code_service().status(caller, request_id)


@otp_bp.post('/<int:request_id>/otp/verify')
@require_caller
def verify_code(request_id: int, caller):
    data = request.get_json(silent=True) or {}
    req = approval_code_service().verify(caller, request_id, data.get('code'))
    return request_json(req)
