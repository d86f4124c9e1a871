"""Indent lifecycle: DRAFT -> SUBMITTED -> APPROVED | REJECTED.

Every mutation requires MANAGER or above. Header and items are always written
in one transaction, and status changes are compare-and-swap on the status that
was read, so a lost race surfaces as ConflictError instead of a double write.
REJECTED is terminal; a fresh DRAFT is created to try again.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from kitchenops.core import db_client, schema
from kitchenops.core.config import constants
from kitchenops.core.errors import (
    ConflictError,
    InvalidStateTransition,
    NotFound,
    ValidationError,
    coerce_input,
)
from kitchenops.core.logging import log_with_actor_context, span
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.create_models import IndentItemCreate
from kitchenops.domain.event import TERMINAL_EVENT_STATUSES
from kitchenops.domain.indent import INDENT_TRANSITIONS, Indent, IndentItem, IndentStatus
from kitchenops.services import access_policy, stock_ledger


logger = logging.getLogger(__name__)


def _filter_eq(field: str, value: str) -> str:
    return f'{field} = "{db_client.sanitize_param(value)}"'


def validate_items(items: list[IndentItemCreate | dict]) -> list[IndentItemCreate]:
    """Validate indent lines, raising ValidationError on the first bad one."""
    if not items:
        msg = "An indent needs at least one item"
        raise ValidationError(msg)
    if len(items) > constants.MAX_INDENT_ITEMS:
        msg = f"An indent holds at most {constants.MAX_INDENT_ITEMS} items, got {len(items)}"
        raise ValidationError(msg)
    return [coerce_input(IndentItemCreate, item, context=f"indent item #{i + 1}") for i, item in enumerate(items)]


async def _get_indent_record(indent_id: str) -> dict[str, Any]:
    try:
        return await db_client.get_record(collection="indents", record_id=indent_id)
    except KeyError as e:
        msg = f"Indent not found: {indent_id}"
        raise NotFound(msg) from e


async def _load_items(indent_id: str) -> list[IndentItem]:
    records = await db_client.list_all_records(
        collection="indent_items",
        filter_query=_filter_eq("indent_id", indent_id),
        sort="id ASC",
    )
    return [IndentItem(**r) for r in records]


async def _to_indent(record: dict[str, Any]) -> Indent:
    return Indent(**record, items=await _load_items(record["id"]))


async def _write_items(indent_id: str, items: list[IndentItemCreate]) -> None:
    """Insert item rows with a fresh availability snapshot each."""
    for item in items:
        availability = await stock_ledger.check_availability(item_name=item.item_name, required_quantity=item.quantity)
        await db_client.create_record(
            collection="indent_items",
            data={
                "indent_id": int(indent_id),
                "item_name": item.item_name,
                "category": item.category,
                "quantity": item.quantity,
                "unit": item.unit,
                "is_in_stock": availability.is_available,
                "stock_id": int(availability.stock_id) if availability.stock_id else None,
                "is_received": False,
                "notes": item.notes,
            },
        )


async def insert_draft_indent(*, event_id: str, items: list[IndentItemCreate], created_by: str) -> Indent:
    """Create a DRAFT indent with its items in one transaction.

    No role check; callers authorize. Joins the caller's transaction if any.

    Raises:
        ConflictError: If the event already has a DRAFT indent
    """
    try:
        async with db_client.transaction():
            header = await db_client.create_record(
                collection="indents",
                data={
                    "event_id": int(event_id),
                    "status": IndentStatus.DRAFT,
                    "total_items": len(items),
                    "created_by": created_by,
                    "created_at": datetime.now(UTC),
                },
            )
            await _write_items(header["id"], items)
    except db_client.IntegrityViolationError as e:
        if schema.DRAFT_INDENT_CONFLICT not in str(e):
            raise
        msg = f"Event {event_id} already has a DRAFT indent"
        raise ConflictError(msg) from e

    logger.info("Created DRAFT indent", extra={"indent_id": header["id"], "event_id": event_id, "items": len(items)})
    return await _to_indent(header)


async def replace_draft_items(*, indent_id: str, items: list[IndentItemCreate]) -> Indent:
    """Swap every item of a DRAFT indent, keeping the indent id.

    No role check; callers authorize. Joins the caller's transaction if any.

    Raises:
        ConflictError: If the indent left DRAFT before the swap
    """
    async with db_client.transaction():
        header = await db_client.update_record_where(
            collection="indents",
            record_id=indent_id,
            data={"total_items": len(items)},
            expected={"status": IndentStatus.DRAFT},
        )
        if header is None:
            msg = f"Indent {indent_id} is no longer a DRAFT"
            raise ConflictError(msg)
        await db_client.delete_records(collection="indent_items", filter_query=_filter_eq("indent_id", indent_id))
        await _write_items(indent_id, items)

    logger.info("Replaced DRAFT indent items", extra={"indent_id": indent_id, "items": len(items)})
    return await _to_indent(header)


async def find_draft(*, event_id: str) -> Indent | None:
    """Return the event's DRAFT indent, if any."""
    record = await db_client.get_first_record(
        collection="indents",
        filter_query=f'{_filter_eq("event_id", event_id)} && status = "DRAFT"',
    )
    return await _to_indent(record) if record else None


async def remove_draft(*, indent_id: str) -> None:
    """Delete a DRAFT indent and its items in one transaction.

    Raises:
        InvalidStateTransition: If the indent is not a DRAFT
    """
    async with db_client.transaction():
        record = await _get_indent_record(indent_id)
        if record["status"] != IndentStatus.DRAFT:
            msg = f"Only DRAFT indents can be deleted; indent {indent_id} is {record['status']}"
            raise InvalidStateTransition(msg)
        await db_client.delete_records(collection="indent_items", filter_query=_filter_eq("indent_id", indent_id))
        await db_client.delete_record(collection="indents", record_id=indent_id)

    logger.info("Deleted DRAFT indent", extra={"indent_id": indent_id, "event_id": record["event_id"]})


async def create_indent(*, actor: Actor, event_id: str, items: list[IndentItemCreate | dict]) -> Indent:
    """Create a DRAFT indent for an event.

    Args:
        actor: Caller, MANAGER or above
        event_id: Event the indent procures for
        items: Procurement lines (name, category, quantity > 0, unit)

    Returns:
        The new indent with its items and availability snapshots

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If any item is invalid or the list is empty
        NotFound: If the event does not exist
        InvalidStateTransition: If the event is completed or cancelled
        ConflictError: If the event already has a DRAFT indent
    """
    with span("indent_service.create_indent"):
        access_policy.require_role(actor, Role.MANAGER, action="create indents")
        validated = validate_items(items)

        event = await access_policy.load_event(event_id)
        if event.status in TERMINAL_EVENT_STATUSES:
            msg = f"Cannot create an indent for a {event.status} event"
            raise InvalidStateTransition(msg)

        indent = await insert_draft_indent(event_id=event.id, items=validated, created_by=actor.actor_id)
        log_with_actor_context(logger, "info", "Indent created", actor_id=actor.actor_id, indent_id=indent.id)
        return indent


async def update_indent_items(*, actor: Actor, indent_id: str, items: list[IndentItemCreate | dict]) -> Indent:
    """Replace the items of a DRAFT indent wholesale.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If any item is invalid or the list is empty
        NotFound: If the indent does not exist
        InvalidStateTransition: If the indent is not a DRAFT
        ConflictError: If the indent was submitted concurrently
    """
    with span("indent_service.update_indent_items"):
        access_policy.require_role(actor, Role.MANAGER, action="edit indents")
        validated = validate_items(items)

        record = await _get_indent_record(indent_id)
        if record["status"] != IndentStatus.DRAFT:
            msg = f"Items can only be edited while DRAFT; indent {indent_id} is {record['status']}"
            raise InvalidStateTransition(msg)

        indent = await replace_draft_items(indent_id=indent_id, items=validated)
        log_with_actor_context(logger, "info", "Indent items replaced", actor_id=actor.actor_id, indent_id=indent_id)
        return indent


async def _transition(
    *,
    actor: Actor,
    indent_id: str,
    target: IndentStatus,
    extra: dict[str, Any] | None = None,
) -> Indent:
    access_policy.require_role(actor, Role.MANAGER, action=f"move indents to {target}")

    record = await _get_indent_record(indent_id)
    current = IndentStatus(record["status"])
    if target not in INDENT_TRANSITIONS[current]:
        msg = f"Cannot move indent {indent_id} from {current} to {target}"
        raise InvalidStateTransition(msg)

    updated = await db_client.update_record_where(
        collection="indents",
        record_id=indent_id,
        data={"status": target, **(extra or {})},
        expected={"status": current},
    )
    if updated is None:
        msg = f"Indent {indent_id} changed while moving it to {target}; reload and retry"
        raise ConflictError(msg)

    log_with_actor_context(
        logger,
        "info",
        "Indent status changed",
        actor_id=actor.actor_id,
        indent_id=indent_id,
        from_status=str(current),
        to_status=str(target),
    )
    return await _to_indent(updated)


async def submit_indent(*, actor: Actor, indent_id: str) -> Indent:
    """Move a DRAFT indent to SUBMITTED."""
    with span("indent_service.submit_indent"):
        return await _transition(actor=actor, indent_id=indent_id, target=IndentStatus.SUBMITTED)


async def approve_indent(*, actor: Actor, indent_id: str) -> Indent:
    """Move a SUBMITTED indent to APPROVED."""
    with span("indent_service.approve_indent"):
        return await _transition(actor=actor, indent_id=indent_id, target=IndentStatus.APPROVED)


async def reject_indent(*, actor: Actor, indent_id: str, reason: str) -> Indent:
    """Move a SUBMITTED indent to REJECTED, recording why."""
    with span("indent_service.reject_indent"):
        if not reason or not reason.strip():
            msg = "A rejection reason is required"
            raise ValidationError(msg)
        return await _transition(
            actor=actor,
            indent_id=indent_id,
            target=IndentStatus.REJECTED,
            extra={"rejection_reason": reason.strip()},
        )


async def mark_item_received(
    *,
    actor: Actor,
    indent_id: str,
    item_id: str,
    actual_quantity: float | None = None,
    notes: str | None = None,
) -> IndentItem:
    """Mark one indent item as received.

    Refreshes the item's availability snapshot. The ledger is not touched;
    receipts are booked into stock separately with an ADDED adjustment.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If actual_quantity is not positive
        NotFound: If the indent or item does not exist
        InvalidStateTransition: If the indent was rejected or the item was already received
    """
    with span("indent_service.mark_item_received"):
        access_policy.require_role(actor, Role.MANAGER, action="receive indent items")
        if actual_quantity is not None and actual_quantity <= 0:
            msg = f"Received quantity must be greater than zero, got {actual_quantity}"
            raise ValidationError(msg)

        record = await _get_indent_record(indent_id)
        if record["status"] == IndentStatus.REJECTED:
            msg = f"Indent {indent_id} was rejected; its items cannot be received"
            raise InvalidStateTransition(msg)

        try:
            item = IndentItem(**await db_client.get_record(collection="indent_items", record_id=item_id))
        except KeyError as e:
            msg = f"Indent item not found: {item_id}"
            raise NotFound(msg) from e
        if item.indent_id != indent_id:
            msg = f"Indent item {item_id} does not belong to indent {indent_id}"
            raise NotFound(msg)
        if item.is_received:
            msg = f"Indent item {item_id} was already received"
            raise InvalidStateTransition(msg)

        quantity = actual_quantity if actual_quantity is not None else item.quantity
        availability = await stock_ledger.check_availability(item_name=item.item_name, required_quantity=quantity)

        data: dict[str, Any] = {
            "is_received": True,
            "received_at": datetime.now(UTC),
            "quantity": quantity,
            "is_in_stock": availability.is_available,
            "stock_id": int(availability.stock_id) if availability.stock_id else None,
        }
        if notes is not None:
            data["notes"] = notes

        updated = await db_client.update_record_where(
            collection="indent_items", record_id=item_id, data=data, expected={"is_received": False}
        )
        if updated is None:
            msg = f"Indent item {item_id} was already received"
            raise InvalidStateTransition(msg)
        log_with_actor_context(
            logger, "info", "Indent item received", actor_id=actor.actor_id, indent_id=indent_id, item_id=item_id
        )
        return IndentItem(**updated)


async def delete_indent(*, actor: Actor, indent_id: str) -> None:
    """Delete a DRAFT indent together with its items.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        NotFound: If the indent does not exist
        InvalidStateTransition: If the indent is not a DRAFT
    """
    with span("indent_service.delete_indent"):
        access_policy.require_role(actor, Role.MANAGER, action="delete indents")
        await remove_draft(indent_id=indent_id)
        log_with_actor_context(logger, "info", "Indent deleted", actor_id=actor.actor_id, indent_id=indent_id)


async def get_indent(*, actor: Actor, indent_id: str) -> Indent:
    """Fetch an indent with its items; chefs only see indents of their events."""
    with span("indent_service.get_indent"):
        record = await _get_indent_record(indent_id)
        await access_policy.load_event_in_scope(actor, record["event_id"])
        return await _to_indent(record)


async def list_indents(
    *,
    actor: Actor,
    event_id: str | None = None,
    status: IndentStatus | None = None,
) -> list[Indent]:
    """List indents, newest first, within the actor's scope."""
    with span("indent_service.list_indents"):
        filters = []
        if event_id:
            await access_policy.load_event_in_scope(actor, event_id)
            filters.append(_filter_eq("event_id", event_id))
        if status:
            filters.append(_filter_eq("status", status))

        records = await db_client.list_all_records(
            collection="indents",
            filter_query=" && ".join(filters),
            sort="id DESC",
        )

        indents = []
        visible_events: dict[str, bool] = {}
        for record in records:
            event_key = record["event_id"]
            if event_key not in visible_events:
                event = await access_policy.load_event(event_key)
                visible_events[event_key] = await access_policy.event_in_scope(actor, event)
            if visible_events[event_key]:
                indents.append(await _to_indent(record))
        return indents
