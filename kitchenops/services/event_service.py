"""Event service: event lifecycle plus the provisioning it triggers.

An event write and the provisioning it triggers commit together; the planner
is only notified after that commit.
"""

import logging
from typing import Any

from kitchenops.core import db_client
from kitchenops.core.config import settings
from kitchenops.core.errors import ConflictError, InvalidStateTransition, ValidationError, coerce_input
from kitchenops.core.logging import log_with_actor_context, span
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.create_models import EventCreate
from kitchenops.domain.event import EVENT_TRANSITIONS, TERMINAL_EVENT_STATUSES, Event, EventStatus, MenuItem
from kitchenops.domain.provisioning import ProvisioningConfig
from kitchenops.domain.update_models import EventUpdate
from kitchenops.models.service_models import EventResult, ProvisioningResult
from kitchenops.services import access_policy, cooking_service, provisioning_service, sync_service


logger = logging.getLogger(__name__)

_NOT_NULL_FIELDS = frozenset({"name", "date", "guest_count", "event_type", "status", "menu_items"})


def _menu_json(menu_items: list[MenuItem]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in menu_items]


def _wants_provisioning(config: ProvisioningConfig) -> bool:
    return config.auto_create_indents or config.auto_create_cooking_tasks


def _sync_payload(event: Event, provisioning: ProvisioningResult | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"event": event.model_dump(mode="json")}
    if provisioning and provisioning.indent:
        payload["indent_id"] = provisioning.indent.id
        payload["indent_items"] = provisioning.indent.total_items
    return payload


async def _require_open_event(event_id: str) -> Event:
    event = await access_policy.load_event(event_id)
    if event.status in TERMINAL_EVENT_STATUSES:
        msg = f"Event {event_id} is {event.status} and can no longer change"
        raise InvalidStateTransition(msg)
    return event


async def create_event(
    *,
    actor: Actor,
    data: EventCreate | dict,
    config: ProvisioningConfig | None = None,
) -> EventResult:
    """Create a PLANNED event and provision its DRAFT indent (and tasks).

    Args:
        actor: Caller, MANAGER or above
        data: Event fields and menu
        config: Provisioning switches; defaults to the configured settings

    Returns:
        The event, what provisioning produced, and whether the planner was notified

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the event or menu is invalid
    """
    with span("event_service.create_event"):
        access_policy.require_role(actor, Role.MANAGER, action="create events")
        payload = coerce_input(EventCreate, data, context="event")
        config = config or settings.provisioning_config()

        provisioning = None
        async with db_client.transaction():
            record = await db_client.create_record(
                collection="events",
                data={
                    "name": payload.name,
                    "date": payload.date,
                    "guest_count": payload.guest_count,
                    "event_type": payload.event_type,
                    "status": EventStatus.PLANNED,
                    "menu_items": _menu_json(payload.menu_items),
                    "assigned_chef": payload.assigned_chef,
                    "created_by": actor.actor_id,
                },
            )
            event = Event(**record)
            if _wants_provisioning(config):
                provisioning = await provisioning_service.provision_event(
                    event=event, config=config, actor_id=actor.actor_id
                )

        log_with_actor_context(logger, "info", "Event created", actor_id=actor.actor_id, event_id=event.id)
        synced = await sync_service.emit("event.created", _sync_payload(event, provisioning))
        return EventResult(event=event, provisioning=provisioning, synced=synced)


async def update_event(
    *,
    actor: Actor,
    event_id: str,
    updates: EventUpdate | dict,
    config: ProvisioningConfig | None = None,
) -> EventResult:
    """Change an open event; guest count or menu changes re-run provisioning.

    Status changes follow PLANNED -> IN_PROGRESS -> COMPLETED, and moving to
    CANCELLED behaves like ``cancel_event`` (admin-only).

    Raises:
        PermissionDenied: If the actor is below MANAGER (ADMIN to cancel)
        ValidationError: If an update is invalid
        NotFound: If the event does not exist
        InvalidStateTransition: If the event is closed or the status move is not allowed
        ConflictError: If the event changed concurrently
    """
    with span("event_service.update_event"):
        access_policy.require_role(actor, Role.MANAGER, action="update events")
        payload = coerce_input(EventUpdate, updates, context="event update")
        config = config or settings.provisioning_config()

        fields = set(payload.model_fields_set)
        cleared = sorted(name for name in fields & _NOT_NULL_FIELDS if getattr(payload, name) is None)
        if cleared:
            msg = f"These event fields cannot be cleared: {', '.join(cleared)}"
            raise ValidationError(msg)

        provisioning = None
        async with db_client.transaction():
            event = await _require_open_event(event_id)

            target = payload.status if "status" in fields else event.status
            if target != event.status:
                if target not in EVENT_TRANSITIONS[event.status]:
                    msg = f"Cannot move event {event_id} from {event.status} to {target}"
                    raise InvalidStateTransition(msg)
                if target == EventStatus.CANCELLED:
                    access_policy.require_role(actor, Role.ADMIN, action="cancel events")

            data: dict[str, Any] = {}
            for name in fields:
                value = getattr(payload, name)
                data[name] = _menu_json(value) if name == "menu_items" else value
            if not data:
                return EventResult(event=event)

            record = await db_client.update_record_where(
                collection="events",
                record_id=event_id,
                data=data,
                expected={"status": event.status},
            )
            if record is None:
                msg = f"Event {event_id} changed concurrently; reload and retry"
                raise ConflictError(msg)
            updated = Event(**record)

            if updated.status == EventStatus.CANCELLED:
                await cooking_service.cancel_open_tasks(event_id=event_id, reason="Event cancelled")
            else:
                recalculate = updated.guest_count != event.guest_count or updated.menu_items != event.menu_items
                if recalculate and _wants_provisioning(config) and updated.status not in TERMINAL_EVENT_STATUSES:
                    provisioning = await provisioning_service.provision_event(
                        event=updated, config=config, actor_id=actor.actor_id
                    )

        log_with_actor_context(
            logger,
            "info",
            "Event updated",
            actor_id=actor.actor_id,
            event_id=event_id,
            fields=sorted(fields),
            reprovisioned=provisioning is not None,
        )
        event_type = "event.cancelled" if updated.status == EventStatus.CANCELLED else "event.updated"
        synced = await sync_service.emit(event_type, _sync_payload(updated, provisioning))
        return EventResult(event=updated, provisioning=provisioning, synced=synced)


async def cancel_event(*, actor: Actor, event_id: str) -> Event:
    """Soft delete an event by cancelling it, along with its open cooking tasks.

    Raises:
        PermissionDenied: If the actor is not ADMIN
        NotFound: If the event does not exist
        InvalidStateTransition: If the event is already completed or cancelled
    """
    with span("event_service.cancel_event"):
        access_policy.require_role(actor, Role.ADMIN, action="cancel events")
        result = await update_event(actor=actor, event_id=event_id, updates={"status": EventStatus.CANCELLED})
        return result.event


async def get_event(*, actor: Actor, event_id: str) -> Event:
    """Fetch an event; chefs only see events they lead or cook for."""
    with span("event_service.get_event"):
        return await access_policy.load_event_in_scope(actor, event_id)


async def list_events(*, actor: Actor, status: EventStatus | None = None) -> list[Event]:
    """List events by date within the actor's scope."""
    with span("event_service.list_events"):
        filter_query = f'status = "{db_client.sanitize_param(status)}"' if status else ""
        records = await db_client.list_all_records(collection="events", filter_query=filter_query, sort="date ASC")

        events = []
        for record in records:
            event = Event(**record)
            if await access_policy.event_in_scope(actor, event):
                events.append(event)
        return events
