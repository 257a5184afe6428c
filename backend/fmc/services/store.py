from __future__ import annotations
"""Atomic conditional update ("compare-and-set") on a single row.

Every mutating operation in the engine goes through ``compare_and_set``: the
expected prior values become part of the UPDATE's WHERE clause, so the database
applies the change only if nobody else changed those fields first. Two callers
racing on the same transition both issue the UPDATE; exactly one matches.
"""
from typing import Any, Dict, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session


def _expectation_clauses(model, expected: Dict[str, Any]):
    clauses = []
    for field, value in expected.items():
        col = getattr(model, field)
        clauses.append(col.is_(None) if value is None else col == value)
    return clauses


def compare_and_set(session: Session, model, ident: Any, expected: Optional[Dict[str, Any]], values: Dict[str, Any], *conditions) -> bool:
    """Set ``values`` on row ``ident`` only if ``expected`` (field -> value) still holds.

    Extra SQL ``conditions`` (e.g. ``Model.expires_at > now``) are ANDed in.
    Returns True when exactly one row changed. The caller owns the transaction
    boundary; nothing is committed here.
    """
    stmt = (
        update(model)
        .where(model.id == ident, *_expectation_clauses(model, expected or {}), *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def reload(session: Session, model, ident: Any):
    """Fetch a row bypassing stale identity-map state left by conditional updates."""
    return session.get(model, ident, populate_existing=True)

__all__ = ['compare_and_set', 'reload']
