from __future__ import annotations
"""Completion-approval codes: tenant sign-off on finished work.

Protocol:
  1. The assigned technician issues a code once the request is ``completed``.
     The value goes to the approver through the notification dispatcher only;
     the technician gets an acknowledgement, never the digits.
  2. Issuing again (generate or resend) overwrites the single per-request row,
     which supersedes any earlier value.
  3. The approver submits the value. Expiry is evaluated lazily against the
     stored timestamp; there is no background sweep.
  4. Consumption is one conditional UPDATE (still unconsumed, value matches,
     not expired). Of two simultaneous correct submissions exactly one flips the
     row; the other sees zero rows updated and receives AlreadyUsedError.
"""
import hmac
import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, Optional
from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from fmc import get_db
from fmc.config.lifecycle import APPROVAL_CODE_LENGTH, APPROVAL_CODE_TTL
from fmc.errors import (
    AlreadyUsedError, ExpiredError, NotFoundError, StateConflictError, ValidationError,
)
from fmc.models.approval_code import ApprovalCode
from fmc.models.maintenance_request import MaintenanceRequest
from fmc.services.lifecycle import load_request, load_property
from fmc.services.notifications import NotificationDispatcher, LoggingNotificationDispatcher, dispatch
from fmc.services.policy import (
    Caller, assert_capability, assert_participant, assert_assigned_technician, assert_approver,
)
from fmc.services.store import compare_and_set, reload
from fmc.services.timeline import TimelineRecorder
from fmc.utils.clock import Clock, SystemClock, as_utc
from fmc.utils.validation import isoformat


def random_numeric_code(length: int = APPROVAL_CODE_LENGTH) -> str:
    """Uniformly random digits from the OS CSPRNG; leading zeros allowed."""
    return ''.join(secrets.choice('0123456789') for _ in range(length))


class ApprovalCodeService:

    def __init__(self, clock: Optional[Clock] = None, notifier: Optional[NotificationDispatcher] = None,
                 timeline: Optional[TimelineRecorder] = None, ttl: timedelta = APPROVAL_CODE_TTL,
                 code_factory: Callable[[], str] = random_numeric_code):
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.timeline = timeline or TimelineRecorder(self.clock)
        self.ttl = ttl
        self.code_factory = code_factory

    def _load_code(self, request_id: int) -> Optional[ApprovalCode]:
        session = get_db()
        row = session.execute(
            select(ApprovalCode).where(ApprovalCode.request_id == request_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return row

    # ---------------- Issue ---------------- #

    def generate(self, caller: Caller, request_id: int) -> Dict[str, Any]:
        assert_capability(caller, 'otp.generate')
        return self._issue(caller, request_id, 'otp.generate', 'otp_generated', 'Approval code issued to tenant')

    def resend(self, caller: Caller, request_id: int) -> Dict[str, Any]:
        assert_capability(caller, 'otp.resend')
        req = load_request(request_id)
        if self._load_code(req.id) is None:
            raise NotFoundError('Approval code for request', request_id)
        return self._issue(caller, request_id, 'otp.resend', 'otp_resent', 'Approval code re-issued to tenant')

    def _issue(self, caller: Caller, request_id: int, operation: str, action: str, description: str) -> Dict[str, Any]:
        req = load_request(request_id)
        assert_assigned_technician(caller, req, operation)
        if req.status != MaintenanceRequest.STATUS_COMPLETED:
            raise StateConflictError('Request must be completed before issuing an approval code', status=req.status)
        prop = load_property(req)
        approver_id = prop.approver_id if prop else None
        if approver_id is None:
            raise StateConflictError('Property has no tenant to approve the work', request_id=req.id)

        session = get_db()
        value = self.code_factory()
        now = self.clock.now()
        expires_at = now + self.ttl
        fields = {
            'code': value,
            'issued_by': caller.user_id,
            'issued_at': now,
            'expires_at': expires_at,
            'consumed': False,
            'consumed_by': None,
            'consumed_at': None,
        }
        try:
            # Guard: the request must still be completed when the code row is written
            if not compare_and_set(session, MaintenanceRequest, req.id, {'status': MaintenanceRequest.STATUS_COMPLETED}, {'updated_at': now}):
                raise StateConflictError('Request status changed concurrently', request_id=req.id)
            self._write_code(session, req.id, fields)
            self.timeline.append(req.id, caller.user_id, action, description)
            session.commit()
        except Exception:
            session.rollback()
            raise
        current_app.logger.info('Approval code %s for request %s by user %s (expires %s)', action, req.request_number, caller.user_id, isoformat(expires_at))
        dispatch(self.notifier, [approver_id], 'otp_generated', {
            'request_id': req.id,
            'request_number': req.request_number,
            'title': req.title,
            'code': value,
            'expires_at': isoformat(expires_at),
        })
        return {'request_id': req.id, 'issued': True, 'expires_at': isoformat(expires_at)}

    def _write_code(self, session, request_id: int, fields: Dict[str, Any]) -> None:
        """Overwrite the request's code row, inserting it on first issue."""
        result = session.execute(
            update(ApprovalCode).where(ApprovalCode.request_id == request_id).values(**fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return
        session.add(ApprovalCode(request_id=request_id, **fields))
        try:
            session.flush()
        except IntegrityError:
            # a concurrent first issue inserted the row; this issue loses
            raise StateConflictError('Approval code issued concurrently; retry', request_id=request_id)

    # ---------------- Read ---------------- #

    def status(self, caller: Caller, request_id: int) -> Dict[str, Any]:
        """Pure read: expiry is computed from the stored timestamp, nothing is written."""
        assert_capability(caller, 'otp.status')
        req = load_request(request_id)
        assert_participant(caller, req, load_property(req), 'otp.status')
        row = self._load_code(req.id)
        has_code = row is not None and not row.consumed
        is_expired = has_code and self.clock.now() >= as_utc(row.expires_at)
        return {
            'has_code': has_code,
            'is_expired': is_expired,
            'is_approved': bool(req.is_customer_approved),
            'expires_at': isoformat(row.expires_at) if has_code and not is_expired else None,
        }

    # ---------------- Consume ---------------- #

    def verify(self, caller: Caller, request_id: int, submitted: Any) -> MaintenanceRequest:
        assert_capability(caller, 'otp.verify')
        req = load_request(request_id)
        assert_approver(caller, load_property(req), 'otp.verify')
        submitted = '' if submitted is None else str(submitted).strip()
        if len(submitted) != APPROVAL_CODE_LENGTH or not submitted.isdigit():
            raise ValidationError(f'code must be {APPROVAL_CODE_LENGTH} digits')

        now = self.clock.now()
        row = self._load_code(req.id)
        self._check_usable(row, submitted, now, request_id)

        session = get_db()
        try:
            consumed = compare_and_set(
                session, ApprovalCode, row.id,
                {'consumed': False, 'code': submitted},
                {'consumed': True, 'consumed_by': caller.user_id, 'consumed_at': now},
                ApprovalCode.expires_at > now,
            )
            if not consumed:
                # Lost a race (or the row changed since it was read): report what happened
                session.rollback()
                self._check_usable(self._load_code(req.id), submitted, now, request_id)
                raise StateConflictError('Approval code changed concurrently; retry', request_id=req.id)
            approved = compare_and_set(
                session, MaintenanceRequest, req.id,
                {'status': MaintenanceRequest.STATUS_COMPLETED},
                {'is_customer_approved': True, 'updated_at': now},
            )
            if not approved:
                raise StateConflictError('Request is no longer awaiting approval', request_id=req.id)
            self.timeline.append(req.id, caller.user_id, 'otp_verified', 'Customer approved the completed work')
            session.commit()
        except Exception:
            session.rollback()
            raise
        req = reload(session, MaintenanceRequest, req.id)
        current_app.logger.info('Approval code consumed for request %s by user %s', req.request_number, caller.user_id)
        dispatch(self.notifier, [caller.user_id, req.assigned_technician_id, req.supervisor_id], 'work_approved', {
            'request_id': req.id, 'request_number': req.request_number, 'title': req.title,
        })
        return req

    def _check_usable(self, row: Optional[ApprovalCode], submitted: str, now, request_id: int) -> None:
        if row is None:
            raise NotFoundError('Approval code for request', request_id)
        if now >= as_utc(row.expires_at):
            raise ExpiredError('Approval code has expired', expires_at=isoformat(row.expires_at))
        if row.consumed:
            raise AlreadyUsedError('Approval code already used')
        if not hmac.compare_digest(row.code, submitted):
            raise ValidationError('Approval code does not match')

__all__ = ['ApprovalCodeService', 'random_numeric_code']
