from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from flask import current_app
from fmc.constants.roles import OPERATION_ROLES, OCCUPANT_ROLES, SUPERVISORY_ROLES, ROLE_TECHNICIAN
from fmc.errors import UnauthorizedRoleError


@dataclass(frozen=True)
class Caller:
    """Who is calling, as resolved by the identity layer before entering a service."""
    user_id: int
    role: Optional[str] = None
    organization_id: Optional[int] = None


def caller_from_claims(identity: Any, claims: Mapping[str, Any]) -> Caller:
    """Build a Caller from a verified JWT: ``sub`` plus ``role`` / ``org_id`` claims."""
    org_id = claims.get('org_id')
    return Caller(
        user_id=int(identity),
        role=claims.get('role'),
        organization_id=int(org_id) if org_id is not None else None,
    )


def deny(caller: Caller, operation: str, detail: str):
    current_app.logger.warning('Policy violation: user=%s role=%s op=%s (%s)', caller.user_id, caller.role, operation, detail)
    raise UnauthorizedRoleError(detail, operation=operation)


def assert_capability(caller: Caller, operation: str) -> None:
    """Check the role-capability table once at the entry of an operation."""
    allowed = OPERATION_ROLES.get(operation)
    if allowed is None:
        raise KeyError(f'Unknown operation {operation}')
    if caller.role not in allowed:
        deny(caller, operation, f'Role {caller.role!r} may not perform {operation}')


def is_participant(caller: Caller, req, prop) -> bool:
    """Tenant/owner of the property, the assigned technician, or a supervisor of the organization."""
    if caller.role in OCCUPANT_ROLES:
        return prop is not None and prop.is_occupant(caller.user_id)
    if caller.role == ROLE_TECHNICIAN:
        return req.assigned_technician_id == caller.user_id
    if caller.role in SUPERVISORY_ROLES:
        return caller.organization_id is not None and caller.organization_id == req.organization_id
    return False


def assert_participant(caller: Caller, req, prop, operation: str) -> None:
    if not is_participant(caller, req, prop):
        deny(caller, operation, f'Not a participant on request {req.id}')


def assert_assigned_technician(caller: Caller, req, operation: str) -> None:
    if req.assigned_technician_id is None or req.assigned_technician_id != caller.user_id:
        deny(caller, operation, 'Only the assigned technician may perform this action')


def assert_same_organization(caller: Caller, organization_id: int, operation: str) -> None:
    if caller.organization_id is None or caller.organization_id != organization_id:
        deny(caller, operation, 'Organization access denied')


def assert_approver(caller: Caller, prop, operation: str) -> None:
    if prop is None or prop.approver_id is None or prop.approver_id != caller.user_id:
        deny(caller, operation, 'Only the tenant of the property may approve this work')

__all__ = [
    'Caller', 'caller_from_claims', 'deny', 'assert_capability', 'is_participant', 'assert_participant',
    'assert_assigned_technician', 'assert_same_organization', 'assert_approver',
]
