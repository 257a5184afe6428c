"""Central role, status and capability definitions to avoid typos in role/operation strings.
Extend cautiously; never rename codes silently since they are persisted in profiles and tokens.
"""
from __future__ import annotations
from typing import Dict, FrozenSet

ROLE_TENANT = 'tenant'
ROLE_BUILDING_OWNER = 'building_owner'
ROLE_FMC_HEAD = 'fmc_head'
ROLE_SUPERVISOR = 'fmc_supervisor'
ROLE_TECHNICIAN = 'fmc_technician'
ROLE_PROCUREMENT = 'fmc_procurement'
ROLE_THIRD_PARTY = 'third_party_support'

ALL_ROLES = (
    ROLE_TENANT, ROLE_BUILDING_OWNER, ROLE_FMC_HEAD, ROLE_SUPERVISOR,
    ROLE_TECHNICIAN, ROLE_PROCUREMENT, ROLE_THIRD_PARTY,
)

# Privileged roles are only granted through a redeemed invite code
INVITE_REQUIRED_ROLES: FrozenSet[str] = frozenset({
    ROLE_FMC_HEAD, ROLE_SUPERVISOR, ROLE_TECHNICIAN, ROLE_PROCUREMENT, ROLE_THIRD_PARTY,
})
SELF_ASSIGNABLE_ROLES: FrozenSet[str] = frozenset({ROLE_TENANT, ROLE_BUILDING_OWNER})

OCCUPANT_ROLES: FrozenSet[str] = frozenset({ROLE_TENANT, ROLE_BUILDING_OWNER})
SUPERVISORY_ROLES: FrozenSet[str] = frozenset({ROLE_SUPERVISOR, ROLE_FMC_HEAD})
PARTICIPANT_ROLES: FrozenSet[str] = OCCUPANT_ROLES | SUPERVISORY_ROLES | {ROLE_TECHNICIAN}

CATEGORIES = ('hvac', 'plumbing', 'electrical', 'general', 'appliances', 'elevator', 'security', 'cleaning', 'other')
PRIORITIES = ('low', 'medium', 'high', 'urgent')
DEFAULT_PRIORITY = 'medium'

# Operation -> roles permitted to invoke it. Checked once on entry of each service operation.
OPERATION_ROLES: Dict[str, FrozenSet[str]] = {
    'request.create': OCCUPANT_ROLES,
    'request.read': PARTICIPANT_ROLES,
    'request.assign': SUPERVISORY_ROLES,
    'request.start': frozenset({ROLE_TECHNICIAN}),
    'request.complete': frozenset({ROLE_TECHNICIAN}),
    'request.close.approved': PARTICIPANT_ROLES,
    'request.close.override': SUPERVISORY_ROLES,
    'request.cancel': OCCUPANT_ROLES | SUPERVISORY_ROLES,
    'timeline.read': PARTICIPANT_ROLES,
    'otp.generate': frozenset({ROLE_TECHNICIAN}),
    'otp.resend': frozenset({ROLE_TECHNICIAN}),
    'otp.status': PARTICIPANT_ROLES,
    'otp.verify': OCCUPANT_ROLES,
    'invite.create': SUPERVISORY_ROLES,
    'invite.list': SUPERVISORY_ROLES,
    'invite.deactivate': SUPERVISORY_ROLES,
}

__all__ = [
    'ROLE_TENANT', 'ROLE_BUILDING_OWNER', 'ROLE_FMC_HEAD', 'ROLE_SUPERVISOR', 'ROLE_TECHNICIAN',
    'ROLE_PROCUREMENT', 'ROLE_THIRD_PARTY', 'ALL_ROLES', 'INVITE_REQUIRED_ROLES', 'SELF_ASSIGNABLE_ROLES',
    'OCCUPANT_ROLES', 'SUPERVISORY_ROLES', 'PARTICIPANT_ROLES', 'CATEGORIES', 'PRIORITIES',
    'DEFAULT_PRIORITY', 'OPERATION_ROLES',
]
