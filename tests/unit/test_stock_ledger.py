"""Unit tests for stock_ledger module."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from kitchenops.core import db_client
from kitchenops.core.errors import InsufficientStock, NotFound, PermissionDenied, ValidationError
from kitchenops.domain.stock import StockUpdateType
from kitchenops.services import stock_ledger


@pytest.mark.unit
class TestCreateStock:
    """Tests for create_stock function."""

    async def test_opening_quantity_is_a_ledger_entry(self, manager, make_stock):
        stock = await make_stock(quantity=12.5)

        history = await stock_ledger.get_stock_history(actor=manager, stock_id=stock.id)
        assert stock.quantity == 12.5
        assert len(history) == 1
        assert history[0].type == StockUpdateType.ADDED
        assert history[0].delta == 12.5
        assert history[0].reason == "Opening stock"

    async def test_zero_opening_quantity_has_no_entry(self, manager, make_stock):
        stock = await make_stock(quantity=0)

        assert await stock_ledger.get_stock_history(actor=manager, stock_id=stock.id) == []

    async def test_chef_cannot_create(self, db, chef):
        with pytest.raises(PermissionDenied):
            await stock_ledger.create_stock(
                actor=chef, data={"item_name": "Salt", "category": "Spices", "quantity": 1, "unit": "kg"}
            )

    async def test_negative_quantity_rejected(self, db, manager):
        with pytest.raises(ValidationError):
            await stock_ledger.create_stock(
                actor=manager, data={"item_name": "Salt", "category": "Spices", "quantity": -1, "unit": "kg"}
            )


@pytest.mark.unit
class TestAdjustStock:
    """Tests for adjust_stock function."""

    async def test_added_and_used(self, manager, make_stock):
        stock = await make_stock(quantity=10)

        stock = await stock_ledger.adjust_stock(
            actor=manager, stock_id=stock.id, update_type=StockUpdateType.ADDED, quantity=5, reason="Delivery"
        )
        stock = await stock_ledger.adjust_stock(
            actor=manager, stock_id=stock.id, update_type="USED", quantity=7.25, reason="Lunch service"
        )

        assert stock.quantity == 7.75

    async def test_used_beyond_available_fails_without_side_effects(self, manager, make_stock):
        stock = await make_stock(quantity=3)

        with pytest.raises(InsufficientStock) as exc_info:
            await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="USED", quantity=4)

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 4
        assert (await stock_ledger.get_stock(actor=manager, stock_id=stock.id)).quantity == 3
        assert len(await stock_ledger.get_stock_history(actor=manager, stock_id=stock.id)) == 1

    async def test_expired_reduces_stock(self, manager, make_stock):
        stock = await make_stock(quantity=3)

        stock = await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="EXPIRED", quantity=3)

        assert stock.quantity == 0

    async def test_adjusted_takes_signed_value(self, manager, make_stock):
        stock = await make_stock(quantity=10)

        stock = await stock_ledger.adjust_stock(
            actor=manager, stock_id=stock.id, update_type="ADJUSTED", quantity=-2.5, reason="Stock count"
        )

        history = await stock_ledger.get_stock_history(actor=manager, stock_id=stock.id)
        assert stock.quantity == 7.5
        assert history[0].type == StockUpdateType.ADJUSTED
        assert history[0].quantity == 2.5
        assert history[0].delta == -2.5

    async def test_adjusted_below_zero_fails(self, manager, make_stock):
        stock = await make_stock(quantity=1)

        with pytest.raises(InsufficientStock):
            await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="ADJUSTED", quantity=-2)

    @pytest.mark.parametrize(
        ("update_type", "quantity"),
        [("ADDED", 0), ("USED", -1), ("ADJUSTED", 0), ("RETURNED", 0.0001), ("USED", float("nan"))],
    )
    async def test_invalid_quantities(self, manager, make_stock, update_type, quantity):
        stock = await make_stock(quantity=10)

        with pytest.raises(ValidationError):
            await stock_ledger.adjust_stock(
                actor=manager, stock_id=stock.id, update_type=update_type, quantity=quantity
            )

    async def test_unknown_type(self, manager, make_stock):
        stock = await make_stock()

        with pytest.raises(ValidationError, match="Unknown stock update type"):
            await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="STOLEN", quantity=1)

    async def test_chef_cannot_adjust(self, chef, make_stock):
        stock = await make_stock()

        with pytest.raises(PermissionDenied):
            await stock_ledger.adjust_stock(actor=chef, stock_id=stock.id, update_type="USED", quantity=1)

    async def test_missing_stock(self, db, manager):
        with pytest.raises(NotFound):
            await stock_ledger.adjust_stock(actor=manager, stock_id="404", update_type="ADDED", quantity=1)

    async def test_inactive_stock_cannot_be_adjusted(self, admin, manager, make_stock):
        stock = await make_stock()
        await stock_ledger.deactivate_stock(actor=admin, stock_id=stock.id)

        with pytest.raises(NotFound):
            await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="ADDED", quantity=1)

    async def test_concurrent_usage_never_goes_negative(self, manager, make_stock):
        """Ten concurrent 1.5 kg withdrawals from 10 kg: six succeed, the rest fail cleanly."""
        stock = await make_stock(quantity=10)

        results = await asyncio.gather(
            *(
                stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="USED", quantity=1.5)
                for _ in range(10)
            ),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        final = await stock_ledger.get_stock(actor=manager, stock_id=stock.id)
        assert len(successes) == 6
        assert all(isinstance(f, InsufficientStock) for f in failures)
        assert final.quantity == 1
        assert (await stock_ledger.replay_ledger(actor=manager, stock_id=stock.id)).is_consistent


@pytest.mark.unit
class TestReplayLedger:
    """Tests for replay_ledger function."""

    async def test_replay_matches_after_mixed_operations(self, manager, make_stock):
        stock = await make_stock(quantity=4.2)
        for update_type, quantity in [
            ("ADDED", 0.1),
            ("USED", 0.3),
            ("RETURNED", 1.05),
            ("ADJUSTED", -0.15),
            ("EXPIRED", 0.9),
            ("ADDED", 2.333),
        ]:
            await stock_ledger.adjust_stock(
                actor=manager, stock_id=stock.id, update_type=update_type, quantity=quantity
            )

        replay = await stock_ledger.replay_ledger(actor=manager, stock_id=stock.id)

        assert replay.entries == 7
        assert replay.is_consistent
        assert replay.replayed_quantity == replay.current_quantity == 6.333


@pytest.mark.unit
class TestBatchAdjustStock:
    """Tests for batch_adjust_stock function."""

    async def test_partial_success(self, manager, make_stock):
        rice = await make_stock(item_name="Rice", quantity=10)
        oil = await make_stock(item_name="Oil", quantity=1, unit="liters")

        result = await stock_ledger.batch_adjust_stock(
            actor=manager,
            adjustments=[
                {"stock_id": rice.id, "type": "USED", "quantity": 4},
                {"stock_id": oil.id, "type": "USED", "quantity": 5},
                {"stock_id": "999", "type": "ADDED", "quantity": 1},
                {"stock_id": rice.id, "type": "BOGUS", "quantity": 1},
                {"stock_id": oil.id, "type": "ADDED", "quantity": 2},
            ],
        )

        assert result.updated == 2
        assert result.failed == 3
        assert [o.success for o in result.outcomes] == [True, False, False, False, True]
        assert result.outcomes[1].error_code == "ERR_INSUFFICIENT_STOCK"
        assert result.outcomes[2].error_code == "ERR_NOT_FOUND"
        assert result.outcomes[3].error_code == "ERR_VALIDATION"
        assert (await stock_ledger.get_stock(actor=manager, stock_id=rice.id)).quantity == 6
        assert (await stock_ledger.get_stock(actor=manager, stock_id=oil.id)).quantity == 3

    async def test_malformed_row_is_reported(self, manager, make_stock):
        rice = await make_stock(item_name="Rice", quantity=10)

        result = await stock_ledger.batch_adjust_stock(
            actor=manager,
            adjustments=[
                {"stock_id": rice.id, "type": "USED", "quantity": 1},
                "USED 2kg rice",
                {"stock_id": rice.id, "type": "USED", "quantity": 2},
            ],
        )

        assert [o.success for o in result.outcomes] == [True, False, True]
        assert result.outcomes[1].error_code == "ERR_VALIDATION"
        assert result.outcomes[1].stock_id == ""
        assert (await stock_ledger.get_stock(actor=manager, stock_id=rice.id)).quantity == 7

    async def test_store_error_is_reported(self, manager, make_stock, monkeypatch):
        rice = await make_stock(item_name="Rice", quantity=10)
        oil = await make_stock(item_name="Oil", quantity=5, unit="liters")
        apply_ledger_entry = stock_ledger.apply_ledger_entry

        async def flaky_apply(**kwargs):
            if kwargs["stock_id"] == oil.id:
                raise db_client.DatabaseError("database is locked")
            return await apply_ledger_entry(**kwargs)

        monkeypatch.setattr(stock_ledger, "apply_ledger_entry", flaky_apply)

        result = await stock_ledger.batch_adjust_stock(
            actor=manager,
            adjustments=[
                {"stock_id": oil.id, "type": "USED", "quantity": 1},
                {"stock_id": rice.id, "type": "USED", "quantity": 3},
            ],
        )

        assert result.updated == 1
        assert result.outcomes[0].error_code == "ERR_STORE"
        assert result.outcomes[0].stock_id == oil.id
        assert result.outcomes[1].new_quantity == 7

    async def test_chef_rejected_up_front(self, chef, make_stock):
        rice = await make_stock(quantity=10)

        with pytest.raises(PermissionDenied):
            await stock_ledger.batch_adjust_stock(
                actor=chef, adjustments=[{"stock_id": rice.id, "type": "USED", "quantity": 1}]
            )


@pytest.mark.unit
class TestStockAlerts:
    """Tests for get_stock_alerts function."""

    async def test_low_stock_clears_after_delivery(self, manager, make_stock):
        stock = await make_stock(item_name="Onions", quantity=10, min_stock=15)

        alerts = await stock_ledger.get_stock_alerts(actor=manager)
        assert [s.id for s in alerts.low_stock] == [stock.id]

        await stock_ledger.adjust_stock(actor=manager, stock_id=stock.id, update_type="ADDED", quantity=10)

        alerts = await stock_ledger.get_stock_alerts(actor=manager)
        assert alerts.low_stock == []

    async def test_missing_minimum_counts_as_zero(self, manager, make_stock):
        empty = await make_stock(item_name="Saffron", quantity=0)
        await make_stock(item_name="Cumin", quantity=1)

        alerts = await stock_ledger.get_stock_alerts(actor=manager)

        assert [s.id for s in alerts.low_stock] == [empty.id]

    async def test_expiry_windows(self, chef, make_stock):
        now = datetime.now(UTC)
        expiring = await make_stock(item_name="Paneer", expiry_date=now + timedelta(days=3))
        expired = await make_stock(item_name="Cream", expiry_date=now - timedelta(days=1))
        await make_stock(item_name="Lentils", expiry_date=now + timedelta(days=30))

        alerts = await stock_ledger.get_stock_alerts(actor=chef, now=now)

        assert [s.id for s in alerts.expiring] == [expiring.id]
        assert [s.id for s in alerts.expired] == [expired.id]
        assert alerts.summary.expiring_count == 1
        assert alerts.summary.expired_count == 1
        assert alerts.summary.total_alerts == 2

    async def test_inactive_items_excluded(self, admin, manager, make_stock):
        stock = await make_stock(quantity=0)
        await stock_ledger.deactivate_stock(actor=admin, stock_id=stock.id)

        alerts = await stock_ledger.get_stock_alerts(actor=manager)

        assert alerts.low_stock == []


@pytest.mark.unit
class TestAvailabilityAndDetails:
    """Tests for check_availability and the descriptive stock operations."""

    async def test_case_insensitive_match_prefers_largest_row(self, make_stock):
        await make_stock(item_name="Basmati Rice", quantity=5)
        larger = await make_stock(item_name="basmati rice", quantity=40)

        availability = await stock_ledger.check_availability(item_name="BASMATI RICE", required_quantity=28)

        assert availability.is_available
        assert availability.stock_id == larger.id
        assert availability.available_quantity == 40

    async def test_insufficient_match(self, make_stock):
        stock = await make_stock(item_name="Ghee", quantity=2)

        availability = await stock_ledger.check_availability(item_name="Ghee", required_quantity=5)

        assert not availability.is_available
        assert availability.stock_id == stock.id

    async def test_no_match(self, db):
        availability = await stock_ledger.check_availability(item_name="Truffle", required_quantity=1)

        assert availability == stock_ledger.Availability(is_available=False)

    async def test_update_details_never_touches_quantity(self, manager, make_stock):
        stock = await make_stock(quantity=10)

        with pytest.raises(ValidationError):
            await stock_ledger.update_stock_details(actor=manager, stock_id=stock.id, updates={"quantity": 99})

        updated = await stock_ledger.update_stock_details(
            actor=manager, stock_id=stock.id, updates={"supplier": "Metro", "min_stock": 5}
        )
        assert updated.supplier == "Metro"
        assert updated.min_stock == 5
        assert updated.quantity == 10

    async def test_deactivate_requires_admin(self, manager, make_stock):
        stock = await make_stock()

        with pytest.raises(PermissionDenied):
            await stock_ledger.deactivate_stock(actor=manager, stock_id=stock.id)

    async def test_list_and_categories(self, manager, make_stock):
        await make_stock(item_name="Rice", category="Grains")
        await make_stock(item_name="Milk", category="Dairy", quantity=2, min_stock=5)

        assert [s.item_name for s in await stock_ledger.list_stock(actor=manager, category="dairy")] == ["Milk"]
        assert [s.item_name for s in await stock_ledger.list_stock(actor=manager, low_stock_only=True)] == ["Milk"]
        assert await stock_ledger.get_stock_categories(actor=manager) == ["Dairy", "Grains"]

    async def test_non_ascii_names_match_case_insensitively(self, make_stock):
        stock = await make_stock(item_name="Crème Fraîche", category="Épicerie", quantity=3, unit="liters")

        availability = await stock_ledger.check_availability(item_name=" CRÈME FRAÎCHE ", required_quantity=1)

        assert availability.stock_id == stock.id
        assert availability.is_available

    async def test_non_ascii_category_filter(self, manager, make_stock):
        await make_stock(item_name="Crème Fraîche", category="Épicerie", quantity=3, unit="liters")
        await make_stock(item_name="Rice", category="Grains")

        items = await stock_ledger.list_stock(actor=manager, category="ÉPICERIE")

        assert [s.item_name for s in items] == ["Crème Fraîche"]

    async def test_renamed_item_matches_new_name(self, manager, make_stock):
        stock = await make_stock(item_name="Curd", category="Dairy")

        await stock_ledger.update_stock_details(actor=manager, stock_id=stock.id, updates={"item_name": "Dahi"})

        assert (await stock_ledger.check_availability(item_name="DAHI", required_quantity=1)).stock_id == stock.id
        assert (await stock_ledger.check_availability(item_name="Curd", required_quantity=1)).stock_id is None
