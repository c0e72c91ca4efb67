"""Lifecycle of one note submission, from open modal to file attachment.

WHY: A /hubnote submission crosses three systems (Slack, Zapier, HubSpot)
and an optional DM round trip. Each step is only legal after the previous
one, and a late or duplicate event (a second callback, a double click on
"Yes") must be rejected instead of acted on twice.

HOW: WorkflowStatus is a str enum; _TRANSITIONS lists the legal next
states for each state. advance() returns the target or raises.

RULES:
- OPEN → SUBMITTED → RELAYED → CREATED → AWAITING_ATTACH_DECISION
  → ATTACHING → ATTACHED, or AWAITING_ATTACH_DECISION → DECLINED
- FAILED is reachable from every non-terminal state after OPEN
- ATTACHED, DECLINED, and FAILED are terminal
"""

from __future__ import annotations

import enum
from typing import Dict, FrozenSet


class WorkflowStatus(str, enum.Enum):
    OPEN = "open"
    SUBMITTED = "submitted"
    RELAYED = "relayed"
    CREATED = "created"
    AWAITING_ATTACH_DECISION = "awaiting_attach_decision"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DECLINED = "declined"
    FAILED = "failed"


class InvalidTransitionError(ValueError):
    def __init__(self, current: WorkflowStatus, target: WorkflowStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            "Cannot move workflow from {} to {}".format(current.value, target.value)
        )


_TRANSITIONS: Dict[WorkflowStatus, FrozenSet[WorkflowStatus]] = {
    WorkflowStatus.OPEN: frozenset({WorkflowStatus.SUBMITTED}),
    WorkflowStatus.SUBMITTED: frozenset({WorkflowStatus.RELAYED, WorkflowStatus.FAILED}),
    WorkflowStatus.RELAYED: frozenset({WorkflowStatus.CREATED, WorkflowStatus.FAILED}),
    WorkflowStatus.CREATED: frozenset(
        {WorkflowStatus.AWAITING_ATTACH_DECISION, WorkflowStatus.FAILED}
    ),
    WorkflowStatus.AWAITING_ATTACH_DECISION: frozenset(
        {WorkflowStatus.ATTACHING, WorkflowStatus.DECLINED, WorkflowStatus.FAILED}
    ),
    WorkflowStatus.ATTACHING: frozenset({WorkflowStatus.ATTACHED, WorkflowStatus.FAILED}),
    WorkflowStatus.ATTACHED: frozenset(),
    WorkflowStatus.DECLINED: frozenset(),
    WorkflowStatus.FAILED: frozenset(),
}


def can_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    return target in _TRANSITIONS[current]


def advance(current: WorkflowStatus, target: WorkflowStatus) -> WorkflowStatus:
    """Return target if current → target is legal, else raise."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target


def is_terminal(status: WorkflowStatus) -> bool:
    return not _TRANSITIONS[status]
