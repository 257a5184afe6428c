from __future__ import annotations
"""Outbound notification seam.

Push / email / SMS delivery lives outside this service. The engine only calls
``notify(user_id, event, payload)`` after a transaction commits; delivery is
fire-and-forget, so a failing dispatcher is logged and never undoes a transition.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional
from flask import current_app

# Payload keys that must never reach logs
SECRET_PAYLOAD_KEYS = frozenset({'code'})


class NotificationDispatcher(ABC):

    @abstractmethod
    def notify(self, user_id: int, event: str, payload: Dict[str, Any]) -> None:
        """Deliver ``event`` with ``payload`` to one user."""
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: records the event in the application log."""

    def notify(self, user_id: int, event: str, payload: Dict[str, Any]) -> None:
        safe = {k: v for k, v in payload.items() if k not in SECRET_PAYLOAD_KEYS}
        current_app.logger.info('notify user=%s event=%s payload=%s', user_id, event, safe)


def dispatch(notifier: NotificationDispatcher, recipients: Iterable[Optional[int]], event: str, payload: Dict[str, Any]) -> None:
    """Send ``event`` to each distinct non-empty recipient, swallowing delivery errors."""
    seen = set()
    for user_id in recipients:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        try:
            notifier.notify(user_id, event, dict(payload))
        except Exception:
            current_app.logger.exception('Notification %s to user %s failed', event, user_id)

__all__ = ['NotificationDispatcher', 'LoggingNotificationDispatcher', 'dispatch']
