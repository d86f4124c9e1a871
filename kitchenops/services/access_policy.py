"""Role checks and chef scoping.

Roles are totally ordered (CHEF < MANAGER < ADMIN). Managers and admins see
everything; a chef sees the events they lead or cook for, those events'
indents, and the cooking tasks assigned to them. Writes check role before
scope, and reads outside scope report NotFound so that existence does not leak.
"""

import logging

from kitchenops.core import db_client
from kitchenops.core.errors import NotFound, PermissionDenied
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.cooking import CookingTask
from kitchenops.domain.event import Event


logger = logging.getLogger(__name__)


def has_permission(actor_role: Role, required_role: Role) -> bool:
    """Return True when ``actor_role`` ranks at or above ``required_role``."""
    return actor_role >= required_role


def require_role(actor: Actor, required_role: Role, *, action: str) -> None:
    """Raise PermissionDenied unless the actor holds at least ``required_role``."""
    if has_permission(actor.role, required_role):
        return
    logger.warning(
        "Permission denied",
        extra={"actor_id": actor.actor_id, "role": actor.role.name, "required": required_role.name, "action": action},
    )
    msg = f"{actor.role.name} cannot {action}; requires {required_role.name} or higher"
    raise PermissionDenied(msg)


def is_unscoped(actor: Actor) -> bool:
    """Managers and admins are not restricted to their own assignments."""
    return has_permission(actor.role, Role.MANAGER)


def can_view_event(actor: Actor, event: Event, *, has_assigned_task: bool = False) -> bool:
    """A chef sees an event they lead or hold a cooking task for."""
    if is_unscoped(actor):
        return True
    return event.assigned_chef == actor.actor_id or has_assigned_task


def can_view_task(actor: Actor, task: CookingTask) -> bool:
    """A chef sees only the tasks assigned to them."""
    return is_unscoped(actor) or task.assigned_to == actor.actor_id


def require_task_assignee(actor: Actor, task: CookingTask) -> None:
    """Raise PermissionDenied when a chef touches a task that is not theirs."""
    if can_view_task(actor, task):
        return
    logger.warning(
        "Chef attempted to update unassigned task",
        extra={"actor_id": actor.actor_id, "task_id": task.id, "assigned_to": task.assigned_to},
    )
    msg = f"Cooking task {task.id} is not assigned to {actor.actor_id}"
    raise PermissionDenied(msg)


def ensure_visible(visible: bool, *, entity: str, entity_id: str) -> None:
    """Report an out-of-scope record exactly like a missing one."""
    if not visible:
        msg = f"{entity} not found: {entity_id}"
        raise NotFound(msg)


async def load_event(event_id: str) -> Event:
    """Fetch an event regardless of scope, raising NotFound when absent."""
    try:
        record = await db_client.get_record(collection="events", record_id=event_id)
    except KeyError as e:
        msg = f"Event not found: {event_id}"
        raise NotFound(msg) from e
    return Event(**record)


async def event_in_scope(actor: Actor, event: Event) -> bool:
    """Scope check for events, looking up the chef's task assignments when needed."""
    if is_unscoped(actor) or event.assigned_chef == actor.actor_id:
        return True
    task = await db_client.get_first_record(
        collection="cooking_tasks",
        filter_query=(
            f'event_id = "{db_client.sanitize_param(event.id)}" '
            f'&& assigned_to = "{db_client.sanitize_param(actor.actor_id)}"'
        ),
    )
    return can_view_event(actor, event, has_assigned_task=task is not None)


async def load_event_in_scope(actor: Actor, event_id: str) -> Event:
    """Fetch an event the actor may see; out-of-scope events raise NotFound."""
    event = await load_event(event_id)
    ensure_visible(await event_in_scope(actor, event), entity="Event", entity_id=event_id)
    return event
