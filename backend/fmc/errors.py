from __future__ import annotations
"""Typed error taxonomy shared by every service operation.

Each service call either returns its result or raises exactly one of the
classes below. The HTTP layer renders them through the unified error handler
registered in ``create_app``; ``status`` and ``code`` are stable and safe to
expose to API clients.

    ServiceError
    +-- ValidationError        400  malformed / missing input, code mismatch
    +-- UnauthorizedRoleError  403  caller role or identity not permitted
    +-- NotFoundError          404  referenced entity absent
    +-- StateConflictError     409  invalid for current status, lost race
    +-- AlreadyUsedError       409  code already consumed / redeemed
    +-- ExpiredError           410  code past its expiry
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    status = 500
    title = 'Service Error'
    code = 'SERVICE_ERROR'

    def __init__(self, detail: str, **data: Any):
        super().__init__(detail)
        self.detail = detail
        self.data: Dict[str, Any] = data

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'status': self.status,
            'title': self.title,
            'detail': self.detail,
            'code': self.code,
        }
        if self.data:
            payload['data'] = self.data
        return {'error': payload}


class ValidationError(ServiceError):
    status = 400
    title = 'Bad Request'
    code = 'VALIDATION_ERROR'


class UnauthorizedRoleError(ServiceError):
    status = 403
    title = 'Forbidden'
    code = 'UNAUTHORIZED_ROLE'


class NotFoundError(ServiceError):
    status = 404
    title = 'Not Found'
    code = 'NOT_FOUND'

    def __init__(self, entity: str, ident: Optional[Any] = None):
        detail = f'{entity} not found' if ident is None else f'{entity} {ident} not found'
        super().__init__(detail)
        self.entity = entity
        self.ident = ident


class StateConflictError(ServiceError):
    """Operation invalid for the current status, including lost conditional-update races.

    Safe to retry after re-reading the current state.
    """
    status = 409
    title = 'Conflict'
    code = 'STATE_CONFLICT'


class AlreadyUsedError(ServiceError):
    status = 409
    title = 'Conflict'
    code = 'ALREADY_USED'


class ExpiredError(ServiceError):
    status = 410
    title = 'Gone'
    code = 'EXPIRED'


__all__ = [
    'ServiceError', 'ValidationError', 'UnauthorizedRoleError', 'NotFoundError',
    'StateConflictError', 'AlreadyUsedError', 'ExpiredError',
]
