from __future__ import annotations
import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from fmc import get_db
from fmc.config.lifecycle import INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH, INVITE_CODE_TTL_DAYS, INVITE_CODE_MAX_TTL_DAYS
from fmc.constants.roles import INVITE_REQUIRED_ROLES, SELF_ASSIGNABLE_ROLES, ALL_ROLES
from fmc.errors import AlreadyUsedError, ExpiredError, NotFoundError, StateConflictError, ValidationError
from fmc.models.identity import Organization, UserProfile
from fmc.models.invite_code import InviteCode
from fmc.services.policy import Caller, deny, assert_capability, assert_same_organization
from fmc.services.store import compare_and_set, reload
from fmc.utils.clock import Clock, SystemClock, as_utc
from fmc.utils.validation import validate_choice, coerce_int

# Reasons reported by validate() for unusable codes
REASON_NOT_FOUND = 'not_found'
REASON_INACTIVE = 'inactive'
REASON_EXPIRED = 'expired'
REASON_USED = 'used'


def random_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return ''.join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_code(code: Any) -> str:
    return str(code or '').strip().upper()


class InviteProvisioningService:
    """Single-use codes that grant privileged roles within an organization.

    Redemption is a conditional UPDATE keyed on ``used_by IS NULL`` (plus active
    and unexpired), applied in the same transaction as the profile's new role.
    """

    def __init__(self, clock: Optional[Clock] = None, default_ttl_days: int = INVITE_CODE_TTL_DAYS,
                 code_factory: Callable[[], str] = random_invite_code):
        self.clock = clock or SystemClock()
        self.default_ttl_days = default_ttl_days
        self.code_factory = code_factory

    def _find(self, code: str) -> Optional[InviteCode]:
        session = get_db()
        return session.execute(
            select(InviteCode).where(InviteCode.code == code).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _unusable_reason(self, invite: Optional[InviteCode]) -> Optional[str]:
        if invite is None:
            return REASON_NOT_FOUND
        if not invite.is_active:
            return REASON_INACTIVE
        if self.clock.now() >= as_utc(invite.expires_at):
            return REASON_EXPIRED
        if invite.used_by is not None:
            return REASON_USED
        return None

    # ---------------- Administration ---------------- #

    def create(self, caller: Caller, role: str, expires_in_days: Any = None) -> InviteCode:
        assert_capability(caller, 'invite.create')
        if caller.organization_id is None:
            raise ValidationError('caller has no organization')
        validate_choice(role, sorted(INVITE_REQUIRED_ROLES), 'role')
        days = self.default_ttl_days if expires_in_days is None else coerce_int(expires_in_days, 'expires_in_days')
        if days < 1 or days > INVITE_CODE_MAX_TTL_DAYS:
            raise ValidationError(f'expires_in_days must be between 1 and {INVITE_CODE_MAX_TTL_DAYS}')
        session = get_db()
        now = self.clock.now()
        invite = InviteCode(
            code=self.code_factory(),
            organization_id=caller.organization_id,
            role=role,
            expires_at=now + timedelta(days=days),
            is_active=True,
            created_by=caller.user_id,
            created_at=now,
        )
        session.add(invite)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise StateConflictError('Generated invite code collided with an existing one; retry')
        current_app.logger.info('Invite code for role %s created in organization %s by user %s', role, caller.organization_id, caller.user_id)
        return invite

    def list_for_organization(self, caller: Caller) -> List[InviteCode]:
        assert_capability(caller, 'invite.list')
        session = get_db()
        return session.execute(
            select(InviteCode)
            .where(InviteCode.organization_id == caller.organization_id)
            .order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
        ).scalars().all()

    def deactivate(self, caller: Caller, code: Any) -> InviteCode:
        assert_capability(caller, 'invite.deactivate')
        invite = self._find(normalize_code(code))
        if invite is None:
            raise NotFoundError('Invite code')
        assert_same_organization(caller, invite.organization_id, 'invite.deactivate')
        session = get_db()
        try:
            # Used codes keep their history; deactivation only blocks future redemption
            if not compare_and_set(session, InviteCode, invite.id, {'used_by': None}, {'is_active': False}):
                raise AlreadyUsedError('Invite code already redeemed')
            session.commit()
        except Exception:
            session.rollback()
            raise
        current_app.logger.info('Invite code %s deactivated by user %s', invite.id, caller.user_id)
        return reload(session, InviteCode, invite.id)

    # ---------------- Candidate-facing ---------------- #

    def validate(self, code: Any) -> Dict[str, Any]:
        """Read-only check; never mutates state."""
        invite = self._find(normalize_code(code))
        reason = self._unusable_reason(invite)
        if reason:
            return {'valid': False, 'reason': reason}
        org = get_db().get(Organization, invite.organization_id)
        return {
            'valid': True,
            'role': invite.role,
            'organization_id': invite.organization_id,
            'organization_name': org.name if org else None,
        }

    def redeem(self, caller: Caller, code: Any, user_id: Any) -> UserProfile:
        """Consume ``code`` for ``user_id`` and grant its role and organization, atomically."""
        user_id = coerce_int(user_id, 'user_id')
        if user_id != caller.user_id:
            deny(caller, 'invite.redeem', 'Invite codes can only be redeemed for your own profile')
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError('code required')
        return self._redeem(normalized, user_id)

    def _redeem(self, code: str, user_id: int, expected_role: Optional[str] = None) -> UserProfile:
        session = get_db()
        user = reload(session, UserProfile, user_id)
        if user is None or not user.is_active:
            raise NotFoundError('User', user_id)
        invite = self._find(code)
        self._raise_for(self._unusable_reason(invite))
        if expected_role is not None and invite.role != expected_role:
            raise ValidationError('Invite code role mismatch', expected=expected_role)
        now = self.clock.now()
        try:
            claimed = compare_and_set(
                session, InviteCode, invite.id,
                {'used_by': None, 'is_active': True},
                {'used_by': user_id, 'used_at': now},
                InviteCode.expires_at > now,
            )
            if not claimed:
                session.rollback()
                self._raise_for(self._unusable_reason(self._find(code)))
                raise StateConflictError('Invite code changed concurrently; retry')
            compare_and_set(session, UserProfile, user_id, None, {'role': invite.role, 'organization_id': invite.organization_id})
            session.commit()
        except Exception:
            session.rollback()
            raise
        current_app.logger.info('Invite code %s redeemed by user %s for role %s', invite.id, user_id, invite.role)
        return reload(session, UserProfile, user_id)

    @staticmethod
    def _raise_for(reason: Optional[str]) -> None:
        if reason is None:
            return
        if reason == REASON_NOT_FOUND:
            raise NotFoundError('Invite code')
        if reason == REASON_INACTIVE:
            raise ValidationError('Invite code is not active')
        if reason == REASON_EXPIRED:
            raise ExpiredError('Invite code has expired')
        raise AlreadyUsedError('Invite code already used')

    # ---------------- Profile completion ---------------- #

    def complete_profile(self, caller: Caller, role: Any, invite_code: Any = None) -> UserProfile:
        """Give a new user their role: occupants self-assign, privileged roles need a matching invite."""
        validate_choice(role, ALL_ROLES, 'role')
        if role in INVITE_REQUIRED_ROLES:
            normalized = normalize_code(invite_code)
            if not normalized:
                raise ValidationError('Invite code required for this role', role=role)
            return self._redeem(normalized, caller.user_id, expected_role=role)
        if role not in SELF_ASSIGNABLE_ROLES:
            raise ValidationError('role invalid')
        session = get_db()
        user = reload(session, UserProfile, caller.user_id)
        if user is None or not user.is_active:
            raise NotFoundError('User', caller.user_id)
        if user.role in INVITE_REQUIRED_ROLES:
            raise StateConflictError('Profile already holds a privileged role')
        try:
            if not compare_and_set(session, UserProfile, user.id, {'role': user.role}, {'role': role}):
                raise StateConflictError('Profile changed concurrently; retry')
            session.commit()
        except Exception:
            session.rollback()
            raise
        current_app.logger.info('User %s completed profile as %s', user.id, role)
        return reload(session, UserProfile, user.id)

__all__ = ['InviteProvisioningService', 'random_invite_code', 'normalize_code']
