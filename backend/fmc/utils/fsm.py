from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Usage:
    from fmc.utils.fsm import TransitionValidator
    REQUEST_FSM = TransitionValidator({
        'open': {'assigned', 'cancelled'},
        'assigned': {'in_progress', 'cancelled'},
        'closed': set(),
    })
    REQUEST_FSM.assert_can_transition(current_status, target_status)

Raises StateConflictError if invalid. The check only reads the graph; the
transition itself must still be applied with a conditional update keyed on
``current`` so that a concurrent writer cannot slip in between.
"""
from typing import Dict, Set
from fmc.errors import StateConflictError

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise StateConflictError(
                f"Invalid {self.field_name} transition {current} -> {target}",
                current=current, target=target,
            )
        return True

__all__ = ['TransitionValidator']
