"""Leftover recording and event costing."""

import logging
from datetime import UTC, datetime

from kitchenops.core import db_client
from kitchenops.core.errors import InvalidStateTransition, ValidationError, coerce_input
from kitchenops.core.logging import log_with_actor_context, span
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.create_models import LeftoverCreate
from kitchenops.domain.event import EventStatus
from kitchenops.domain.indent import IndentStatus
from kitchenops.domain.leftover import Leftover
from kitchenops.domain.stock import Stock, StockUpdateType
from kitchenops.models.service_models import EventCosting, ItemCost
from kitchenops.services import access_policy, indent_service, stock_ledger


logger = logging.getLogger(__name__)

_CLOSE_OUT_STATUSES = frozenset({EventStatus.IN_PROGRESS, EventStatus.COMPLETED})


def _money(value: float) -> float:
    return round(value, 2)


async def record_leftovers(*, actor: Actor, event_id: str, leftovers: list[LeftoverCreate | dict]) -> list[Leftover]:
    """Record what is left after an event.

    Lines linked to a stock item go back into stock as RETURNED ledger entries.
    All rows and entries commit together or not at all.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If a line is invalid or its unit differs from the stock item's
        NotFound: If the event or a linked stock item does not exist
        InvalidStateTransition: If the event is not in progress or completed
    """
    with span("leftover_service.record_leftovers"):
        access_policy.require_role(actor, Role.MANAGER, action="record leftovers")
        if not leftovers:
            msg = "At least one leftover line is required"
            raise ValidationError(msg)
        lines = [coerce_input(LeftoverCreate, line, context=f"leftover #{i + 1}") for i, line in enumerate(leftovers)]

        recorded = []
        async with db_client.transaction():
            event = await access_policy.load_event(event_id)
            if event.status not in _CLOSE_OUT_STATUSES:
                msg = f"Leftovers can only be recorded for events in progress or completed; event is {event.status}"
                raise InvalidStateTransition(msg)

            for line in lines:
                estimated_cost = line.estimated_cost
                returned = line.stock_id is not None and line.quantity > 0
                if returned:
                    stock = await stock_ledger.apply_ledger_entry(
                        stock_id=line.stock_id,
                        update_type=StockUpdateType.RETURNED,
                        quantity=line.quantity,
                        reason=f"Leftover from event {event.name}",
                        actor_id=actor.actor_id,
                    )
                    if stock.unit.casefold() != line.unit.casefold():
                        msg = (
                            f"Leftover '{line.item_name}' is in {line.unit} "
                            f"but stock item {stock.id} is in {stock.unit}"
                        )
                        raise ValidationError(msg)
                    if estimated_cost is None and stock.cost_per_unit is not None:
                        estimated_cost = _money(line.quantity * stock.cost_per_unit)

                record = await db_client.create_record(
                    collection="leftovers",
                    data={
                        "event_id": int(event_id),
                        "item_name": line.item_name,
                        "quantity": line.quantity,
                        "unit": line.unit,
                        "estimated_cost": estimated_cost,
                        "stock_id": int(line.stock_id) if line.stock_id else None,
                        "is_returned": returned,
                        "returned_at": datetime.now(UTC) if returned else None,
                        "notes": line.notes,
                    },
                )
                recorded.append(Leftover(**record))

        log_with_actor_context(
            logger,
            "info",
            "Leftovers recorded",
            actor_id=actor.actor_id,
            event_id=event_id,
            lines=len(recorded),
            returned=sum(1 for leftover in recorded if leftover.is_returned),
        )
        return recorded


async def list_leftovers(*, actor: Actor, event_id: str) -> list[Leftover]:
    """Leftovers of an event within the actor's scope."""
    with span("leftover_service.list_leftovers"):
        await access_policy.load_event_in_scope(actor, event_id)
        records = await db_client.list_all_records(
            collection="leftovers",
            filter_query=f'event_id = "{db_client.sanitize_param(event_id)}"',
            sort="id ASC",
        )
        return [Leftover(**r) for r in records]


async def calculate_event_costing(*, actor: Actor, event_id: str) -> EventCosting:
    """Price an event's received ingredients and the value of its leftovers.

    Received items of non-rejected indents are priced at their stock item's
    cost per unit; items without a linked, priced stock item count as unpriced.
    """
    with span("leftover_service.calculate_event_costing"):
        access_policy.require_role(actor, Role.MANAGER, action="view event costing")
        await access_policy.load_event(event_id)

        indents = await indent_service.list_indents(actor=actor, event_id=event_id)
        prices: dict[str, float | None] = {}
        items: list[ItemCost] = []
        unpriced = 0

        for indent in indents:
            if indent.status == IndentStatus.REJECTED:
                continue
            for item in indent.items:
                if not item.is_received:
                    continue
                cost_per_unit = None
                if item.stock_id:
                    if item.stock_id not in prices:
                        stock = Stock(**await db_client.get_record(collection="stock", record_id=item.stock_id))
                        prices[item.stock_id] = stock.cost_per_unit
                    cost_per_unit = prices[item.stock_id]
                if cost_per_unit is None:
                    unpriced += 1
                items.append(
                    ItemCost(
                        item_name=item.item_name,
                        quantity=item.quantity,
                        unit=item.unit,
                        cost_per_unit=cost_per_unit,
                        total_cost=_money(item.quantity * (cost_per_unit or 0)),
                    )
                )

        leftovers = await list_leftovers(actor=actor, event_id=event_id)
        ingredient_cost = _money(sum(i.total_cost for i in items))
        leftover_value = _money(sum(leftover.estimated_cost or 0 for leftover in leftovers))

        logger.info(
            "Calculated event costing",
            extra={"event_id": event_id, "ingredient_cost": ingredient_cost, "leftover_value": leftover_value},
        )
        return EventCosting(
            event_id=event_id,
            items=items,
            ingredient_cost=ingredient_cost,
            leftover_value=leftover_value,
            net_cost=_money(ingredient_cost - leftover_value),
            unpriced_items=unpriced,
        )
