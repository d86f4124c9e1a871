"""Cooking task service: persistence and authorization around the state machine."""

import logging
from datetime import UTC, datetime
from typing import Any

from kitchenops.core import db_client
from kitchenops.core.errors import (
    ConflictError,
    InvalidStateTransition,
    NotFound,
    ValidationError,
    coerce_input,
)
from kitchenops.core.logging import log_with_actor_context, span
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.cooking import CookingBoard, CookingStatus, CookingTask, TaskPriority
from kitchenops.domain.create_models import CookingTaskCreate
from kitchenops.domain.event import TERMINAL_EVENT_STATUSES
from kitchenops.services import access_policy, cooking_state_machine, quantity_calculator


logger = logging.getLogger(__name__)

_PRIORITY_RANK = {
    TaskPriority.URGENT: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 3,
}


def _filter_eq(field: str, value: str) -> str:
    return f'{field} = "{db_client.sanitize_param(value)}"'


def _parse_status(value: CookingStatus | str) -> CookingStatus:
    try:
        return CookingStatus(value)
    except ValueError as e:
        msg = f"Unknown cooking status: {value!r}"
        raise ValidationError(msg) from e


async def _get_task(task_id: str) -> CookingTask:
    try:
        return CookingTask(**await db_client.get_record(collection="cooking_tasks", record_id=task_id))
    except KeyError as e:
        msg = f"Cooking task not found: {task_id}"
        raise NotFound(msg) from e


async def _write_guarded(task: CookingTask, changes: dict[str, Any]) -> CookingTask:
    """Apply ``changes`` only while the task still has the status that was read."""
    updated = await db_client.update_record_where(
        collection="cooking_tasks",
        record_id=task.id,
        data=changes,
        expected={"status": task.status},
    )
    if updated is None:
        msg = f"Cooking task {task.id} changed concurrently; reload and retry"
        raise ConflictError(msg)
    return CookingTask(**updated)


async def insert_task(*, data: CookingTaskCreate) -> CookingTask:
    """Insert a NOT_STARTED task. No role check; callers authorize."""
    record = await db_client.create_record(
        collection="cooking_tasks",
        data={
            **data.model_dump(exclude={"event_id"}),
            "event_id": int(data.event_id),
            "status": CookingStatus.NOT_STARTED,
        },
    )
    logger.info("Created cooking task", extra={"task_id": record["id"], "event_id": data.event_id})
    return CookingTask(**record)


async def list_event_tasks(*, event_id: str) -> list[CookingTask]:
    """All tasks of an event, unscoped, in creation order."""
    records = await db_client.list_all_records(
        collection="cooking_tasks",
        filter_query=_filter_eq("event_id", event_id),
        sort="id ASC",
    )
    return [CookingTask(**r) for r in records]


async def cancel_task(*, task: CookingTask, reason: str | None = None) -> CookingTask:
    """Move a non-terminal task to CANCELLED. No role check; callers authorize."""
    changes = cooking_state_machine.plan_transition(task, CookingStatus.CANCELLED, now=datetime.now(UTC))
    if reason:
        changes["notes"] = reason
    cancelled = await _write_guarded(task, changes)
    logger.info("Cancelled cooking task", extra={"task_id": task.id, "event_id": task.event_id})
    return cancelled


async def refresh_servings(*, task: CookingTask, servings: int) -> CookingTask:
    """Change the servings of a task that has not started yet."""
    if task.status != CookingStatus.NOT_STARTED:
        msg = f"Servings of cooking task {task.id} are fixed once it is {task.status}"
        raise InvalidStateTransition(msg)
    return await _write_guarded(task, {"servings": servings})


async def cancel_open_tasks(*, event_id: str, reason: str) -> list[CookingTask]:
    """Cancel every non-terminal task of an event."""
    cancelled = []
    for task in await list_event_tasks(event_id=event_id):
        if not cooking_state_machine.is_terminal(task.status):
            cancelled.append(await cancel_task(task=task, reason=reason))
    return cancelled


async def create_cooking_task(*, actor: Actor, data: CookingTaskCreate | dict) -> CookingTask:
    """Create a cooking task for an event.

    Estimated time defaults to the category estimate when not given.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the input is invalid
        NotFound: If the event does not exist
        InvalidStateTransition: If the event is completed or cancelled
    """
    with span("cooking_service.create_cooking_task"):
        access_policy.require_role(actor, Role.MANAGER, action="create cooking tasks")
        payload = coerce_input(CookingTaskCreate, data, context="cooking task")

        event = await access_policy.load_event(payload.event_id)
        if event.status in TERMINAL_EVENT_STATUSES:
            msg = f"Cannot add cooking tasks to a {event.status} event"
            raise InvalidStateTransition(msg)

        if payload.estimated_time is None:
            estimate = quantity_calculator.estimate_cooking_time(payload.category, payload.dish_name)
            payload = payload.model_copy(update={"estimated_time": estimate})

        task = await insert_task(data=payload)
        log_with_actor_context(logger, "info", "Cooking task created", actor_id=actor.actor_id, task_id=task.id)
        return task


async def get_cooking_task(*, actor: Actor, task_id: str) -> CookingTask:
    """Fetch a task; chefs only see their own."""
    with span("cooking_service.get_cooking_task"):
        task = await _get_task(task_id)
        access_policy.ensure_visible(
            access_policy.can_view_task(actor, task), entity="Cooking task", entity_id=task_id
        )
        return task


async def list_cooking_tasks(
    *,
    actor: Actor,
    event_id: str | None = None,
    status: CookingStatus | None = None,
    priority: TaskPriority | None = None,
) -> list[CookingTask]:
    """List tasks ordered by priority, most urgent first; chefs only see their own."""
    with span("cooking_service.list_cooking_tasks"):
        filters = []
        if event_id:
            filters.append(_filter_eq("event_id", event_id))
        if status:
            filters.append(_filter_eq("status", status))
        if priority:
            filters.append(_filter_eq("priority", priority))
        if not access_policy.is_unscoped(actor):
            filters.append(_filter_eq("assigned_to", actor.actor_id))

        records = await db_client.list_all_records(
            collection="cooking_tasks",
            filter_query=" && ".join(filters),
            sort="id ASC",
        )
        tasks = [CookingTask(**r) for r in records]
        return sorted(tasks, key=lambda t: _PRIORITY_RANK[t.priority])


async def update_cooking_status(
    *,
    actor: Actor,
    task_id: str,
    status: CookingStatus | str | None = None,
    notes: str | None = None,
    estimated_time: int | None = None,
) -> CookingTask:
    """Move a task along its lifecycle and/or update notes and estimate.

    A chef may only update tasks assigned to them; managers and admins may
    update any task. Passing no status, or the current one, updates the other
    fields without a transition.

    Args:
        actor: Caller
        task_id: Task to update
        status: Target status, if any
        notes: New notes, if any
        estimated_time: New estimate in minutes, if any

    Returns:
        The updated task

    Raises:
        NotFound: If the task does not exist
        PermissionDenied: If a chef updates a task assigned to someone else
        ValidationError: If the status or estimate is invalid
        InvalidStateTransition: If the graph does not allow the move
        ConflictError: If the task changed concurrently
    """
    with span("cooking_service.update_cooking_status"):
        task = await _get_task(task_id)
        access_policy.require_task_assignee(actor, task)

        if estimated_time is not None and estimated_time <= 0:
            msg = f"Estimated time must be positive, got {estimated_time}"
            raise ValidationError(msg)

        changes: dict[str, Any] = {}
        if status is not None:
            changes = cooking_state_machine.plan_transition(task, _parse_status(status), now=datetime.now(UTC))
        if notes is not None:
            changes["notes"] = notes
        if estimated_time is not None:
            changes["estimated_time"] = estimated_time
        if not changes:
            return task

        updated = await _write_guarded(task, changes)
        log_with_actor_context(
            logger,
            "info",
            "Cooking task updated",
            actor_id=actor.actor_id,
            task_id=task_id,
            from_status=str(task.status),
            to_status=str(updated.status),
        )
        return updated


async def reassign_task(*, actor: Actor, task_id: str, assignee: str, keep_status: bool = False) -> CookingTask:
    """Hand a task to another chef.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the assignee is blank
        NotFound: If the task does not exist
        InvalidStateTransition: If the task is completed or cancelled
        ConflictError: If the task changed concurrently
    """
    with span("cooking_service.reassign_task"):
        access_policy.require_role(actor, Role.MANAGER, action="reassign cooking tasks")
        if not assignee or not assignee.strip():
            msg = "An assignee is required"
            raise ValidationError(msg)

        task = await _get_task(task_id)
        changes = cooking_state_machine.plan_reassignment(task, assignee.strip(), keep_status=keep_status)
        updated = await _write_guarded(task, changes)

        log_with_actor_context(
            logger,
            "info",
            "Cooking task reassigned",
            actor_id=actor.actor_id,
            task_id=task_id,
            previous_assignee=task.assigned_to,
            assignee=updated.assigned_to,
        )
        return updated


async def delete_cooking_task(*, actor: Actor, task_id: str) -> None:
    """Delete a task that has not been completed.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        NotFound: If the task does not exist
        InvalidStateTransition: If the task is COMPLETED
    """
    with span("cooking_service.delete_cooking_task"):
        access_policy.require_role(actor, Role.MANAGER, action="delete cooking tasks")
        task = await _get_task(task_id)
        if task.status == CookingStatus.COMPLETED:
            msg = f"Completed cooking task {task_id} cannot be deleted"
            raise InvalidStateTransition(msg)

        await db_client.delete_record(collection="cooking_tasks", record_id=task_id)
        log_with_actor_context(logger, "info", "Cooking task deleted", actor_id=actor.actor_id, task_id=task_id)


async def get_cooking_board(*, actor: Actor, event_id: str) -> CookingBoard:
    """Tasks of one event grouped under every status, with counts."""
    with span("cooking_service.get_cooking_board"):
        await access_policy.load_event_in_scope(actor, event_id)
        tasks = await list_cooking_tasks(actor=actor, event_id=event_id)

        columns: dict[CookingStatus, list[CookingTask]] = {status: [] for status in CookingStatus}
        for task in tasks:
            columns[task.status].append(task)

        return CookingBoard(
            event_id=event_id,
            columns=columns,
            counts={status: len(column) for status, column in columns.items()},
            total=len(tasks),
        )
