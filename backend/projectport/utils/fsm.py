"""Allowed status transitions for jobs and support tickets.

    JOB_LIFECYCLE.assert_can_transition(job.status, 'completed')

Invalid transitions abort with 400.
"""
from __future__ import annotations
from typing import Dict, Set, Iterable
from flask import abort


class TransitionValidator:
    def __init__(self, graph: Dict[str, Iterable[str]], field_name: str = 'status'):
        self.graph: Dict[str, Set[str]] = {k: set(v) for k, v in graph.items()}
        self.field_name = field_name

    def allowed(self, current: str) -> Set[str]:
        return set(self.graph.get(current, set()))

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True


JOB_LIFECYCLE = TransitionValidator({
    'pending': {'in-progress', 'on-hold'},
    'in-progress': {'on-hold', 'completed'},
    'on-hold': {'in-progress'},
    'completed': set(),
    'closed': set(),
})

TICKET_LIFECYCLE = TransitionValidator({
    'open': {'in_progress', 'closed'},
    'in_progress': {'closed'},
    'closed': set(),
})

__all__ = ['TransitionValidator', 'JOB_LIFECYCLE', 'TICKET_LIFECYCLE']
