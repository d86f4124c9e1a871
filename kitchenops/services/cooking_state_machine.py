"""Pure state transition functions for cooking task lifecycle management."""

from datetime import datetime
from typing import Any

from kitchenops.core.errors import InvalidStateTransition
from kitchenops.domain.cooking import CookingStatus, CookingTask


COOKING_TRANSITIONS: dict[CookingStatus, set[CookingStatus]] = {
    CookingStatus.NOT_STARTED: {CookingStatus.IN_PROGRESS, CookingStatus.CANCELLED},
    CookingStatus.IN_PROGRESS: {CookingStatus.COMPLETED, CookingStatus.ON_HOLD, CookingStatus.CANCELLED},
    CookingStatus.ON_HOLD: {CookingStatus.IN_PROGRESS, CookingStatus.CANCELLED},
    CookingStatus.COMPLETED: set(),
    CookingStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({CookingStatus.COMPLETED, CookingStatus.CANCELLED})


def can_transition(current: CookingStatus, target: CookingStatus) -> bool:
    """Return True when the graph allows moving from ``current`` to ``target``."""
    return target in COOKING_TRANSITIONS[current]


def is_terminal(status: CookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def plan_transition(task: CookingTask, target: CookingStatus, *, now: datetime) -> dict[str, Any]:
    """Return the field changes that move ``task`` to ``target``.

    started_at is only set on the first entry into IN_PROGRESS, and
    completed_at is never earlier than started_at. Moving to the current
    status plans no change.

    Raises:
        InvalidStateTransition: If the graph does not allow the move
    """
    if target == task.status:
        return {}
    if not can_transition(task.status, target):
        msg = f"Cannot move cooking task {task.id} from {task.status} to {target}"
        raise InvalidStateTransition(msg)

    changes: dict[str, Any] = {"status": target}
    if target == CookingStatus.IN_PROGRESS and task.started_at is None:
        changes["started_at"] = now
    if target == CookingStatus.COMPLETED:
        started_at = task.started_at or now
        changes["completed_at"] = max(now, started_at)
    return changes


def plan_reassignment(task: CookingTask, assignee: str, *, keep_status: bool) -> dict[str, Any]:
    """Return the field changes that hand ``task`` to ``assignee``.

    The task restarts from NOT_STARTED (clearing started_at) unless
    ``keep_status`` is set.

    Raises:
        InvalidStateTransition: If the task is completed or cancelled
    """
    if is_terminal(task.status):
        msg = f"Cannot reassign cooking task {task.id}: it is {task.status}"
        raise InvalidStateTransition(msg)

    changes: dict[str, Any] = {"assigned_to": assignee}
    if not keep_status and task.status != CookingStatus.NOT_STARTED:
        changes["status"] = CookingStatus.NOT_STARTED
        changes["started_at"] = None
    return changes
