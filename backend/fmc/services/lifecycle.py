from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional
from flask import current_app
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from fmc import get_db
from fmc.config.lifecycle import REQUEST_NUMBER_PREFIX, REQUEST_NUMBER_WIDTH, REQUEST_NUMBER_MAX_ATTEMPTS
from fmc.constants.roles import (
    CATEGORIES, PRIORITIES, DEFAULT_PRIORITY, OCCUPANT_ROLES, SUPERVISORY_ROLES, ROLE_TECHNICIAN,
)
from fmc.errors import NotFoundError, StateConflictError, ValidationError
from fmc.models.identity import Property, UserProfile
from fmc.models.maintenance_request import MaintenanceRequest
from fmc.services.notifications import NotificationDispatcher, LoggingNotificationDispatcher, dispatch
from fmc.services.policy import (
    Caller, deny, assert_capability, assert_participant, assert_assigned_technician, assert_same_organization,
)
from fmc.services.store import compare_and_set, reload
from fmc.services.timeline import TimelineRecorder
from fmc.utils.clock import Clock, SystemClock
from fmc.utils.fsm import TransitionValidator
from fmc.utils.validation import validate_choice, require_fields, coerce_int, parse_timestamp

R = MaintenanceRequest

REQUEST_FSM = TransitionValidator({
    R.STATUS_OPEN: {R.STATUS_ASSIGNED, R.STATUS_CANCELLED},
    R.STATUS_ASSIGNED: {R.STATUS_IN_PROGRESS, R.STATUS_CANCELLED},
    R.STATUS_IN_PROGRESS: {R.STATUS_COMPLETED, R.STATUS_CANCELLED},
    R.STATUS_COMPLETED: {R.STATUS_CLOSED, R.STATUS_CANCELLED},
    R.STATUS_CLOSED: set(),
    R.STATUS_CANCELLED: set(),
})


def load_request(request_id: int) -> MaintenanceRequest:
    req = reload(get_db(), MaintenanceRequest, request_id)
    if req is None:
        raise NotFoundError('Request', request_id)
    return req


def load_property(req: MaintenanceRequest) -> Optional[Property]:
    return get_db().get(Property, req.property_id)


class RequestLifecycleManager:
    """The maintenance request state machine.

    Every transition is one transaction: a conditional UPDATE keyed on the
    expected prior status, a timeline entry, then commit. A caller that loses a
    race on the same request sees zero rows updated and gets StateConflictError.
    Notifications go out only after the commit.
    """

    def __init__(self, clock: Optional[Clock] = None, notifier: Optional[NotificationDispatcher] = None,
                 timeline: Optional[TimelineRecorder] = None, number_prefix: str = REQUEST_NUMBER_PREFIX):
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.timeline = timeline or TimelineRecorder(self.clock)
        self.number_prefix = number_prefix

    # ---------------- Reads ---------------- #

    def get(self, caller: Caller, request_id: int) -> MaintenanceRequest:
        assert_capability(caller, 'request.read')
        req = load_request(request_id)
        assert_participant(caller, req, load_property(req), 'request.read')
        return req

    def timeline_for(self, caller: Caller, request_id: int):
        assert_capability(caller, 'timeline.read')
        req = load_request(request_id)
        assert_participant(caller, req, load_property(req), 'timeline.read')
        return self.timeline.list_for(req.id)

    def scoped_query(self, caller: Caller):
        """Query of the requests visible to ``caller`` (filters and sorting applied by the route)."""
        assert_capability(caller, 'request.read')
        session = get_db()
        q = session.query(MaintenanceRequest)
        if caller.role in OCCUPANT_ROLES:
            q = q.join(Property, Property.id == MaintenanceRequest.property_id).filter(
                or_(Property.tenant_id == caller.user_id, Property.owner_id == caller.user_id)
            )
        elif caller.role == ROLE_TECHNICIAN:
            q = q.filter(MaintenanceRequest.assigned_technician_id == caller.user_id)
        else:
            q = q.filter(MaintenanceRequest.organization_id == caller.organization_id)
        return q

    # ---------------- Creation ---------------- #

    def _next_request_number(self, session, now: datetime, attempt: int) -> str:
        prefix = f'{self.number_prefix}-{now.year}-'
        taken = session.execute(
            select(func.count()).select_from(MaintenanceRequest).where(MaintenanceRequest.request_number.like(f'{prefix}%'))
        ).scalar_one()
        return f'{prefix}{taken + 1 + attempt:0{REQUEST_NUMBER_WIDTH}d}'

    def create(self, caller: Caller, data: Mapping[str, Any]) -> MaintenanceRequest:
        assert_capability(caller, 'request.create')
        require_fields(data, 'property_id', 'category', 'title', 'description')
        property_id = coerce_int(data.get('property_id'), 'property_id')
        category = validate_choice(data.get('category'), CATEGORIES, 'category')
        priority = validate_choice(data.get('priority') or DEFAULT_PRIORITY, PRIORITIES, 'priority')
        title = str(data.get('title')).strip()
        if not title or len(title) > 200:
            raise ValidationError('title must be 1-200 characters')
        preferred_date = parse_timestamp(data.get('preferred_date'), 'preferred_date')
        session = get_db()
        prop = session.get(Property, property_id)
        if prop is None or not prop.is_active or not prop.is_occupant(caller.user_id):
            raise ValidationError('property does not belong to caller', field='property_id')

        now = self.clock.now()
        req = None
        for attempt in range(REQUEST_NUMBER_MAX_ATTEMPTS):
            candidate = MaintenanceRequest(
                request_number=self._next_request_number(session, now, attempt),
                title=title,
                description=str(data.get('description')),
                category=category,
                priority=priority,
                status=MaintenanceRequest.STATUS_OPEN,
                property_id=prop.id,
                organization_id=prop.organization_id,
                created_by=caller.user_id,
                preferred_date=preferred_date,
                preferred_time_slot=data.get('preferred_time_slot'),
                scheduling_notes=data.get('scheduling_notes'),
                is_customer_approved=False,
                created_at=now,
                updated_at=now,
            )
            session.add(candidate)
            try:
                session.flush()
            except IntegrityError:
                # request number taken by a concurrent insert
                session.rollback()
                continue
            req = candidate
            break
        if req is None:
            raise StateConflictError('Could not allocate a unique request number; retry')
        try:
            self.timeline.append(req.id, caller.user_id, 'created', 'Request created', None, MaintenanceRequest.STATUS_OPEN)
            session.commit()
        except Exception:
            session.rollback()
            raise
        current_app.logger.info('Request %s created by user %s', req.request_number, caller.user_id)
        dispatch(self.notifier, self._supervisor_ids(req.organization_id), 'request_created', self._payload(req, priority=priority, category=category))
        return req

    # ---------------- Transitions ---------------- #

    def assign(self, caller: Caller, request_id: int, technician_id: Any, supervisor_id: Any = None) -> MaintenanceRequest:
        assert_capability(caller, 'request.assign')
        req = load_request(request_id)
        assert_same_organization(caller, req.organization_id, 'request.assign')
        REQUEST_FSM.assert_can_transition(req.status, R.STATUS_ASSIGNED)
        if technician_id is None:
            raise ValidationError('technician_id required')
        tech = self._staff_member(coerce_int(technician_id, 'technician_id'), req.organization_id, {ROLE_TECHNICIAN}, 'technician_id')
        sup_id = caller.user_id if supervisor_id is None else coerce_int(supervisor_id, 'supervisor_id')
        if sup_id != caller.user_id:
            self._staff_member(sup_id, req.organization_id, SUPERVISORY_ROLES, 'supervisor_id')
        req = self._transition(
            caller, req, R.STATUS_ASSIGNED, 'assigned',
            f'Assigned to technician {tech.name}',
            values={'assigned_technician_id': tech.id, 'supervisor_id': sup_id},
        )
        prop = load_property(req)
        dispatch(self.notifier, [tech.id], 'request_assigned', self._payload(req, priority=req.priority))
        dispatch(self.notifier, [prop.approver_id if prop else None], 'technician_assigned', self._payload(req, technician_name=tech.name))
        return req

    def start_work(self, caller: Caller, request_id: int) -> MaintenanceRequest:
        assert_capability(caller, 'request.start')
        req = load_request(request_id)
        assert_assigned_technician(caller, req, 'request.start')
        req = self._transition(caller, req, R.STATUS_IN_PROGRESS, 'work_started', 'Technician started work')
        self._notify_status(req, [self._approver(req)])
        return req

    def mark_completed(self, caller: Caller, request_id: int) -> MaintenanceRequest:
        assert_capability(caller, 'request.complete')
        req = load_request(request_id)
        assert_assigned_technician(caller, req, 'request.complete')
        req = self._transition(
            caller, req, R.STATUS_COMPLETED, 'work_completed', 'Technician marked the work completed',
            values={'actual_completion_date': self.clock.now()},
        )
        self._notify_status(req, [self._approver(req)])
        dispatch(self.notifier, [req.supervisor_id], 'work_completed', self._payload(req, technician_id=req.assigned_technician_id))
        return req

    def close(self, caller: Caller, request_id: int, via_approval: bool) -> MaintenanceRequest:
        """completed -> closed, either on recorded customer approval or as a supervisor override."""
        if via_approval:
            assert_capability(caller, 'request.close.approved')
            req = load_request(request_id)
            assert_participant(caller, req, load_property(req), 'request.close.approved')
            REQUEST_FSM.assert_can_transition(req.status, R.STATUS_CLOSED)
            if not req.is_customer_approved:
                raise StateConflictError('Customer approval required before closing', request_id=req.id)
            req = self._transition(
                caller, req, R.STATUS_CLOSED, 'closed', 'Closed after customer approval',
                values={'closed_at': self.clock.now()}, expected={'is_customer_approved': True},
            )
        else:
            assert_capability(caller, 'request.close.override')
            req = load_request(request_id)
            assert_same_organization(caller, req.organization_id, 'request.close.override')
            req = self._transition(
                caller, req, R.STATUS_CLOSED, 'closed', 'Closed by supervisor override',
                values={'closed_at': self.clock.now()},
            )
        self._notify_status(req, [self._approver(req), req.assigned_technician_id])
        return req

    def cancel(self, caller: Caller, request_id: int, reason: Optional[str]) -> MaintenanceRequest:
        assert_capability(caller, 'request.cancel')
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError('reason required')
        if len(reason) > 255:
            raise ValidationError('reason must be at most 255 characters')
        req = load_request(request_id)
        if caller.role in OCCUPANT_ROLES:
            prop = load_property(req)
            if prop is None or not prop.is_occupant(caller.user_id):
                deny(caller, 'request.cancel', f'Not a participant on request {req.id}')
            REQUEST_FSM.assert_can_transition(req.status, R.STATUS_CANCELLED)
            if req.status != R.STATUS_OPEN:
                deny(caller, 'request.cancel', 'Tenants may only cancel before assignment')
        else:
            assert_same_organization(caller, req.organization_id, 'request.cancel')
        req = self._transition(
            caller, req, R.STATUS_CANCELLED, 'cancelled', reason, values={'cancel_reason': reason},
        )
        self._notify_status(req, [self._approver(req), req.assigned_technician_id, req.supervisor_id])
        return req

    # ---------------- Internals ---------------- #

    def _transition(self, caller: Caller, req: MaintenanceRequest, target: str, action: str, description: Optional[str],
                    values: Optional[Dict[str, Any]] = None, expected: Optional[Dict[str, Any]] = None) -> MaintenanceRequest:
        REQUEST_FSM.assert_can_transition(req.status, target)
        session = get_db()
        old = req.status
        changes = {'status': target, 'updated_at': self.clock.now()}
        changes.update(values or {})
        try:
            if not compare_and_set(session, MaintenanceRequest, req.id, {'status': old, **(expected or {})}, changes):
                raise StateConflictError(
                    f'Request {req.id} changed concurrently; expected status {old}', request_id=req.id, expected=old,
                )
            self.timeline.append(req.id, caller.user_id, action, description, old, target)
            session.commit()
        except Exception:
            session.rollback()
            raise
        req = reload(session, MaintenanceRequest, req.id)
        current_app.logger.info('Request %s %s -> %s by user %s', req.request_number, old, target, caller.user_id)
        return req

    def _staff_member(self, user_id: int, organization_id: int, roles: Iterable[str], field: str) -> UserProfile:
        user = get_db().get(UserProfile, user_id)
        if user is None or not user.is_active or user.role not in set(roles) or user.organization_id != organization_id:
            raise ValidationError(f'{field} is not an active {"/".join(sorted(roles))} of this organization', field=field)
        return user

    def _supervisor_ids(self, organization_id: int):
        session = get_db()
        rows = session.execute(
            select(UserProfile.id).where(
                UserProfile.organization_id == organization_id,
                UserProfile.role.in_(sorted(SUPERVISORY_ROLES)),
                UserProfile.is_active.is_(True),
            ).order_by(UserProfile.id)
        ).scalars().all()
        return list(rows)

    def _approver(self, req: MaintenanceRequest) -> Optional[int]:
        prop = load_property(req)
        return prop.approver_id if prop else None

    def _notify_status(self, req: MaintenanceRequest, recipients):
        dispatch(self.notifier, recipients, 'status_update', self._payload(req, new_status=req.status))

    @staticmethod
    def _payload(req: MaintenanceRequest, **extra) -> Dict[str, Any]:
        payload = {'request_id': req.id, 'request_number': req.request_number, 'title': req.title}
        payload.update(extra)
        return payload

__all__ = ['RequestLifecycleManager', 'REQUEST_FSM', 'load_request', 'load_property']
