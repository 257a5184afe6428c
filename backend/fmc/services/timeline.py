from __future__ import annotations
from typing import Iterator, Optional
from sqlalchemy import select
from fmc import get_db
from fmc.errors import NotFoundError
from fmc.models.maintenance_request import MaintenanceRequest
from fmc.models.timeline import TimelineEntry
from fmc.utils.clock import Clock, SystemClock


class TimelineView:
    """Lazy, finite, restartable view over one request's timeline.

    Nothing is read until iteration starts; every ``iter()`` issues a fresh query,
    so a second pass sees entries appended since the first.
    """

    def __init__(self, request_id: int, batch_size: int = 100):
        self.request_id = request_id
        self.batch_size = batch_size

    def _statement(self):
        return (
            select(TimelineEntry)
            .where(TimelineEntry.request_id == self.request_id)
            .order_by(TimelineEntry.created_at.asc(), TimelineEntry.id.asc())
        )

    def __iter__(self) -> Iterator[TimelineEntry]:
        session = get_db()
        result = session.execute(self._statement().execution_options(yield_per=self.batch_size))
        for entry in result.scalars():
            yield entry


class TimelineRecorder:
    """Append-only audit trail of request state changes."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def append(self, request_id: int, actor: int, action: str, description: Optional[str] = None,
               old_status: Optional[str] = None, new_status: Optional[str] = None) -> TimelineEntry:
        """Add an entry to the current DB session.

        Parameters:
          request_id: request the entry documents (must exist)
          actor: user id performing the action
          action: short action label e.g. created, assigned, otp_generated
          description: optional free text
          old_status/new_status: optional status pair for transitions
        """
        session = get_db()
        if session.get(MaintenanceRequest, request_id) is None:
            raise NotFoundError('Request', request_id)
        entry = TimelineEntry(
            request_id=request_id,
            actor_user_id=actor,
            action=action,
            description=description,
            old_status=old_status,
            new_status=new_status,
            created_at=self.clock.now(),
        )
        session.add(entry)
        # No commit here; caller's transaction boundary controls durability.
        return entry

    def list_for(self, request_id: int) -> TimelineView:
        session = get_db()
        if session.get(MaintenanceRequest, request_id) is None:
            raise NotFoundError('Request', request_id)
        return TimelineView(request_id)

__all__ = ['TimelineRecorder', 'TimelineView']
