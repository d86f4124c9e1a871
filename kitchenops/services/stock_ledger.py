"""Stock ledger service: every quantity change is an append-only ledger entry.

A stock row's quantity only moves through ``apply_ledger_entry``, which runs
one guarded ``UPDATE ... quantity = quantity + delta`` and inserts the ledger
entry inside the same transaction. Stock creation books the opening quantity
as an ADDED entry, so replaying every entry from zero gives the stored value.
"""

import logging
import math
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from kitchenops.core import db_client
from kitchenops.core.config import constants
from kitchenops.core.errors import (
    ErrorCode,
    InsufficientStock,
    KitchenOpsError,
    NotFound,
    ValidationError,
    coerce_input,
)
from kitchenops.core.logging import span
from kitchenops.domain.actor import Actor, Role
from kitchenops.domain.create_models import StockAdjustment, StockCreate
from kitchenops.domain.stock import DECREASING_TYPES, Stock, StockUpdate, StockUpdateType
from kitchenops.domain.update_models import StockDetailsUpdate
from kitchenops.models.service_models import (
    AdjustmentOutcome,
    Availability,
    BatchAdjustResult,
    LedgerReplay,
    StockAlerts,
    StockAlertSummary,
)
from kitchenops.services import access_policy


logger = logging.getLogger(__name__)


def _round_quantity(value: float) -> float:
    return round(value, constants.QUANTITY_PRECISION)


def name_key(value: str) -> str:
    """Lookup key for stock names and categories; casefold covers non-ASCII letters."""
    return value.strip().casefold()


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps are treated as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def signed_delta(update_type: StockUpdateType, quantity: float) -> tuple[float, float]:
    """Return (magnitude, signed delta) for a ledger entry.

    ADDED/RETURNED add and USED/EXPIRED subtract a positive magnitude.
    ADJUSTED takes a non-zero signed value as the delta itself.

    Raises:
        ValidationError: If the quantity is not finite, or is zero/negative where
            a positive magnitude is required
    """
    if not math.isfinite(quantity):
        msg = f"Quantity must be a finite number, got {quantity}"
        raise ValidationError(msg)

    rounded = _round_quantity(quantity)
    if update_type == StockUpdateType.ADJUSTED:
        if rounded == 0:
            msg = "ADJUSTED entries need a non-zero quantity"
            raise ValidationError(msg)
        return abs(rounded), rounded

    if rounded <= 0:
        msg = f"{update_type} quantity must be greater than zero, got {quantity}"
        raise ValidationError(msg)
    return rounded, -rounded if update_type in DECREASING_TYPES else rounded


def _parse_update_type(value: StockUpdateType | str) -> StockUpdateType:
    try:
        return StockUpdateType(value)
    except ValueError as e:
        msg = f"Unknown stock update type: {value!r}"
        raise ValidationError(msg) from e


async def _get_stock_record(stock_id: str) -> dict[str, Any]:
    try:
        return await db_client.get_record(collection="stock", record_id=stock_id)
    except KeyError as e:
        msg = f"Stock item not found: {stock_id}"
        raise NotFound(msg) from e


async def apply_ledger_entry(
    *,
    stock_id: str,
    update_type: StockUpdateType,
    quantity: float,
    reason: str,
    actor_id: str,
) -> Stock:
    """Book one ledger entry and move the stock quantity by its delta.

    Joins the caller's transaction when there is one. No role check: callers
    are the public operations below and the leftover service.

    Raises:
        ValidationError: If the quantity is invalid for the entry type
        NotFound: If the stock item does not exist or is inactive
        InsufficientStock: If the entry would drive the quantity below zero
    """
    magnitude, delta = signed_delta(update_type, quantity)

    async with db_client.transaction():
        record = await _get_stock_record(stock_id)
        if not record["is_active"]:
            msg = f"Stock item {stock_id} is inactive"
            raise NotFound(msg)

        updated = await db_client.increment_field(
            collection="stock",
            record_id=stock_id,
            field="quantity",
            delta=delta,
            minimum=0,
        )
        if updated is None:
            msg = (
                f"Insufficient stock for {record['item_name']}: "
                f"available {record['quantity']} {record['unit']}, requested {magnitude}"
            )
            raise InsufficientStock(msg, stock_id=stock_id, available=record["quantity"], requested=magnitude)

        await db_client.create_record(
            collection="stock_updates",
            data={
                "stock_id": int(stock_id),
                "type": update_type,
                "quantity": magnitude,
                "delta": delta,
                "reason": reason,
                "actor": actor_id,
                "timestamp": datetime.now(UTC),
            },
        )

    logger.info(
        "Ledger entry booked",
        extra={"stock_id": stock_id, "type": str(update_type), "delta": delta, "quantity": updated["quantity"]},
    )
    return Stock(**updated)


async def create_stock(*, actor: Actor, data: StockCreate | dict) -> Stock:
    """Create a stock item; a positive opening quantity is booked as an ADDED entry.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the input is invalid
    """
    with span("stock_ledger.create_stock"):
        access_policy.require_role(actor, Role.MANAGER, action="create stock items")
        payload = coerce_input(StockCreate, data, context="stock item")

        async with db_client.transaction():
            record = await db_client.create_record(
                collection="stock",
                data={
                    **payload.model_dump(exclude={"quantity"}),
                    "item_name_key": name_key(payload.item_name),
                    "category_key": name_key(payload.category),
                    "quantity": 0,
                    "is_active": True,
                },
            )
            stock = Stock(**record)
            if payload.quantity > 0:
                stock = await apply_ledger_entry(
                    stock_id=stock.id,
                    update_type=StockUpdateType.ADDED,
                    quantity=payload.quantity,
                    reason="Opening stock",
                    actor_id=actor.actor_id,
                )

        logger.info("Created stock item", extra={"stock_id": stock.id, "item_name": stock.item_name})
        return stock


async def get_stock(*, actor: Actor, stock_id: str) -> Stock:
    """Fetch one stock item. Every role may view inventory."""
    with span("stock_ledger.get_stock"):
        logger.debug("Fetching stock", extra={"actor_id": actor.actor_id, "stock_id": stock_id})
        return Stock(**await _get_stock_record(stock_id))


async def list_stock(
    *,
    actor: Actor,
    category: str | None = None,
    low_stock_only: bool = False,
    expiring_only: bool = False,
    include_inactive: bool = False,
) -> list[Stock]:
    """List stock items sorted by name.

    Args:
        actor: Caller; every role may view inventory
        category: Only items in this category (case-insensitive)
        low_stock_only: Only items at or below their minimum stock
        expiring_only: Only items expiring within the warning window
        include_inactive: Include soft deleted items

    Returns:
        Matching stock items
    """
    with span("stock_ledger.list_stock"):
        filters = []
        if not include_inactive:
            filters.append('is_active = "1"')
        if category:
            filters.append(f'category_key = "{db_client.sanitize_param(name_key(category))}"')

        records = await db_client.list_all_records(
            collection="stock",
            filter_query=" && ".join(filters),
            sort="item_name ASC",
        )
        items = [Stock(**r) for r in records]

        now = datetime.now(UTC)
        if low_stock_only:
            items = [s for s in items if _is_low(s)]
        if expiring_only:
            items = [s for s in items if _is_expiring(s, now)]

        logger.debug("Listed stock", extra={"actor_id": actor.actor_id, "count": len(items)})
        return items


async def get_stock_categories(*, actor: Actor) -> list[str]:
    """Distinct categories of active stock, sorted."""
    with span("stock_ledger.get_stock_categories"):
        items = await list_stock(actor=actor)
        return sorted({s.category for s in items})


async def update_stock_details(*, actor: Actor, stock_id: str, updates: StockDetailsUpdate | dict) -> Stock:
    """Update descriptive fields of a stock item. Quantity is not accepted here.

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the payload is invalid or contains quantity
        NotFound: If the stock item does not exist
    """
    with span("stock_ledger.update_stock_details"):
        access_policy.require_role(actor, Role.MANAGER, action="update stock items")
        payload = coerce_input(StockDetailsUpdate, updates, context="stock update")
        data = payload.model_dump(include=payload.model_fields_set)
        if not data:
            return await get_stock(actor=actor, stock_id=stock_id)
        for field in ("item_name", "category"):
            if data.get(field) is not None:
                data[f"{field}_key"] = name_key(data[field])

        try:
            record = await db_client.update_record(collection="stock", record_id=stock_id, data=data)
        except KeyError as e:
            msg = f"Stock item not found: {stock_id}"
            raise NotFound(msg) from e

        logger.info("Updated stock details", extra={"stock_id": stock_id, "fields": sorted(data)})
        return Stock(**record)


async def deactivate_stock(*, actor: Actor, stock_id: str) -> Stock:
    """Soft delete a stock item. Its ledger history is kept.

    Raises:
        PermissionDenied: If the actor is not ADMIN
        NotFound: If the stock item does not exist
    """
    with span("stock_ledger.deactivate_stock"):
        access_policy.require_role(actor, Role.ADMIN, action="delete stock items")
        try:
            record = await db_client.update_record(collection="stock", record_id=stock_id, data={"is_active": False})
        except KeyError as e:
            msg = f"Stock item not found: {stock_id}"
            raise NotFound(msg) from e

        logger.info("Deactivated stock item", extra={"stock_id": stock_id, "actor_id": actor.actor_id})
        return Stock(**record)


async def check_availability(*, item_name: str, required_quantity: float) -> Availability:
    """Check whether active stock can cover a required quantity.

    Names match case-insensitively and exactly; among several matching rows
    the one holding the most quantity is used.
    """
    with span("stock_ledger.check_availability"):
        records = await db_client.list_all_records(
            collection="stock",
            filter_query=f'item_name_key = "{db_client.sanitize_param(name_key(item_name))}" && is_active = "1"',
            sort="quantity DESC, id ASC",
        )
        if not records:
            return Availability(is_available=False)

        best = records[0]
        return Availability(
            is_available=best["quantity"] >= required_quantity,
            stock_id=best["id"],
            available_quantity=best["quantity"],
        )


async def adjust_stock(
    *,
    actor: Actor,
    stock_id: str,
    update_type: StockUpdateType | str,
    quantity: float,
    reason: str = "",
) -> Stock:
    """Apply one quantity change to a stock item and record it in the ledger.

    Args:
        actor: Caller, MANAGER or above
        stock_id: Stock item to adjust
        update_type: ADDED, USED, EXPIRED, RETURNED or ADJUSTED
        quantity: Positive magnitude, or a non-zero signed change for ADJUSTED
        reason: Free text recorded on the ledger entry

    Returns:
        The stock item after the change

    Raises:
        PermissionDenied: If the actor is below MANAGER
        ValidationError: If the type or quantity is invalid
        NotFound: If the stock item does not exist or is inactive
        InsufficientStock: If the change would drive the quantity below zero
    """
    with span("stock_ledger.adjust_stock"):
        access_policy.require_role(actor, Role.MANAGER, action="adjust stock")
        return await apply_ledger_entry(
            stock_id=stock_id,
            update_type=_parse_update_type(update_type),
            quantity=quantity,
            reason=reason,
            actor_id=actor.actor_id,
        )


def _raw_stock_id(raw: Any) -> str:
    if isinstance(raw, StockAdjustment):
        return raw.stock_id
    if isinstance(raw, dict):
        return str(raw.get("stock_id", ""))
    return ""


def _failed_outcome(index: int, stock_id: str, *, code: str, message: str) -> AdjustmentOutcome:
    logger.warning(
        "Batch adjustment row failed",
        extra={"index": index, "stock_id": stock_id, "error_code": code, "error": message},
    )
    return AdjustmentOutcome(index=index, stock_id=stock_id, success=False, error_code=code, error=message)


async def batch_adjust_stock(*, actor: Actor, adjustments: list[StockAdjustment | dict]) -> BatchAdjustResult:
    """Apply several adjustments, each in its own transaction.

    One row's failure never affects another; failures, store errors included,
    are reported in the outcomes instead of raised.

    Raises:
        PermissionDenied: If the actor is below MANAGER
    """
    with span("stock_ledger.batch_adjust_stock"):
        access_policy.require_role(actor, Role.MANAGER, action="adjust stock")

        outcomes: list[AdjustmentOutcome] = []
        for index, raw in enumerate(adjustments):
            raw_stock_id = _raw_stock_id(raw)
            try:
                row = coerce_input(StockAdjustment, raw, context=f"adjustment #{index}")
                stock = await apply_ledger_entry(
                    stock_id=row.stock_id,
                    update_type=row.type,
                    quantity=row.quantity,
                    reason=row.reason,
                    actor_id=actor.actor_id,
                )
            except KitchenOpsError as e:
                outcomes.append(_failed_outcome(index, raw_stock_id, code=e.code, message=e.message))
                continue
            except db_client.DatabaseError as e:
                outcomes.append(_failed_outcome(index, raw_stock_id, code=ErrorCode.ERR_STORE, message=str(e)))
                continue

            outcomes.append(
                AdjustmentOutcome(
                    index=index,
                    stock_id=row.stock_id,
                    type=row.type,
                    success=True,
                    new_quantity=stock.quantity,
                )
            )

        updated = sum(1 for o in outcomes if o.success)
        logger.info("Batch adjustment finished", extra={"updated": updated, "failed": len(outcomes) - updated})
        return BatchAdjustResult(updated=updated, failed=len(outcomes) - updated, outcomes=outcomes)


def _is_low(stock: Stock) -> bool:
    return stock.quantity <= (stock.min_stock or 0)


def _is_expiring(stock: Stock, now: datetime) -> bool:
    if stock.expiry_date is None:
        return False
    expiry = _as_utc(stock.expiry_date)
    return now <= expiry <= now + timedelta(days=constants.EXPIRY_WARNING_DAYS)


def _is_expired(stock: Stock, now: datetime) -> bool:
    return stock.expiry_date is not None and _as_utc(stock.expiry_date) < now


async def get_stock_alerts(*, actor: Actor, now: datetime | None = None) -> StockAlerts:
    """Low stock, expiring-soon and expired items among active stock.

    Low stock is quantity <= min_stock (a missing minimum counts as 0).
    Expiring is now <= expiry_date <= now + the warning window; expired is
    expiry_date < now.
    """
    with span("stock_ledger.get_stock_alerts"):
        now = _as_utc(now) if now else datetime.now(UTC)
        items = await list_stock(actor=actor)

        low_stock = [s for s in items if _is_low(s)]
        expiring = [s for s in items if _is_expiring(s, now)]
        expired = [s for s in items if _is_expired(s, now)]

        summary = StockAlertSummary(
            low_stock_count=len(low_stock),
            expiring_count=len(expiring),
            expired_count=len(expired),
            total_alerts=len(low_stock) + len(expiring) + len(expired),
        )
        logger.info("Computed stock alerts", extra=summary.model_dump())
        return StockAlerts(low_stock=low_stock, expiring=expiring, expired=expired, summary=summary)


async def get_stock_history(*, actor: Actor, stock_id: str, limit: int | None = None) -> list[StockUpdate]:
    """Ledger entries of a stock item, newest first."""
    with span("stock_ledger.get_stock_history"):
        await _get_stock_record(stock_id)
        sort = "id DESC"
        if limit is None:
            records = await db_client.list_all_records(
                collection="stock_updates",
                filter_query=f'stock_id = "{db_client.sanitize_param(stock_id)}"',
                sort=sort,
            )
        else:
            records = await db_client.list_records(
                collection="stock_updates",
                filter_query=f'stock_id = "{db_client.sanitize_param(stock_id)}"',
                sort=sort,
                per_page=limit,
            )
        logger.debug("Fetched stock history", extra={"actor_id": actor.actor_id, "count": len(records)})
        return [StockUpdate(**r) for r in records]


async def replay_ledger(*, actor: Actor, stock_id: str) -> LedgerReplay:
    """Rebuild a stock quantity from zero by summing its ledger deltas."""
    with span("stock_ledger.replay_ledger"):
        async with db_client.transaction():
            stock = await get_stock(actor=actor, stock_id=stock_id)
            entries = await db_client.list_all_records(
                collection="stock_updates",
                filter_query=f'stock_id = "{db_client.sanitize_param(stock_id)}"',
                sort="id ASC",
            )

        replayed = sum((Decimal(str(e["delta"])) for e in entries), Decimal(0))
        replayed_quantity = _round_quantity(float(replayed))
        is_consistent = replayed_quantity == _round_quantity(stock.quantity)
        if not is_consistent:
            logger.error(
                "Ledger replay mismatch",
                extra={"stock_id": stock_id, "stored": stock.quantity, "replayed": replayed_quantity},
            )

        return LedgerReplay(
            stock_id=stock_id,
            current_quantity=stock.quantity,
            replayed_quantity=replayed_quantity,
            entries=len(entries),
            is_consistent=is_consistent,
        )
