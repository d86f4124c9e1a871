"""Unit tests for leftover_service module."""

import pytest

from kitchenops.core.errors import InvalidStateTransition, NotFound, PermissionDenied, ValidationError
from kitchenops.domain.event import EventStatus
from kitchenops.domain.stock import StockUpdateType
from kitchenops.services import event_service, indent_service, leftover_service, stock_ledger


@pytest.mark.unit
class TestRecordLeftovers:
    """Tests for record_leftovers function."""

    async def test_linked_line_returns_to_stock(self, make_event, make_stock, manager):
        rice = await make_stock(item_name="Cooked Rice", quantity=0, cost_per_unit=80)
        event = await make_event(status=EventStatus.IN_PROGRESS)

        recorded = await leftover_service.record_leftovers(
            actor=manager,
            event_id=event.id,
            leftovers=[
                {"item_name": "Cooked Rice", "quantity": 4, "unit": "KG", "stock_id": rice.id},
                {"item_name": "Gravy", "quantity": 2, "unit": "liters", "estimated_cost": 150},
            ],
        )

        assert [r.is_returned for r in recorded] == [True, False]
        assert recorded[0].returned_at is not None
        assert recorded[0].estimated_cost == 320
        assert recorded[1].estimated_cost == 150
        assert (await stock_ledger.get_stock(actor=manager, stock_id=rice.id)).quantity == 4
        history = await stock_ledger.get_stock_history(actor=manager, stock_id=rice.id)
        assert history[0].type == StockUpdateType.RETURNED
        assert "Sharma Wedding" in history[0].reason

    async def test_unit_mismatch_rolls_back_everything(self, make_event, make_stock, manager):
        oil = await make_stock(item_name="Oil", quantity=1, unit="liters")
        event = await make_event(status=EventStatus.IN_PROGRESS)

        with pytest.raises(ValidationError, match="liters"):
            await leftover_service.record_leftovers(
                actor=manager,
                event_id=event.id,
                leftovers=[
                    {"item_name": "Salad", "quantity": 1, "unit": "kg"},
                    {"item_name": "Oil", "quantity": 2, "unit": "kg", "stock_id": oil.id},
                ],
            )

        assert (await stock_ledger.get_stock(actor=manager, stock_id=oil.id)).quantity == 1
        assert await leftover_service.list_leftovers(actor=manager, event_id=event.id) == []

    async def test_planned_event_rejected(self, make_event, manager):
        event = await make_event()

        with pytest.raises(InvalidStateTransition):
            await leftover_service.record_leftovers(
                actor=manager, event_id=event.id, leftovers=[{"item_name": "Naan", "quantity": 10, "unit": "pieces"}]
            )

    async def test_empty_list_rejected(self, make_event, manager):
        event = await make_event(status=EventStatus.IN_PROGRESS)

        with pytest.raises(ValidationError):
            await leftover_service.record_leftovers(actor=manager, event_id=event.id, leftovers=[])

    async def test_missing_stock_link(self, make_event, manager):
        event = await make_event(status=EventStatus.IN_PROGRESS)

        with pytest.raises(NotFound):
            await leftover_service.record_leftovers(
                actor=manager,
                event_id=event.id,
                leftovers=[{"item_name": "Rice", "quantity": 1, "unit": "kg", "stock_id": "999"}],
            )

    async def test_chef_cannot_record(self, make_event, chef):
        event = await make_event(status=EventStatus.IN_PROGRESS, assigned_chef=chef.actor_id)

        with pytest.raises(PermissionDenied):
            await leftover_service.record_leftovers(
                actor=chef, event_id=event.id, leftovers=[{"item_name": "Naan", "quantity": 10, "unit": "pieces"}]
            )


@pytest.mark.unit
class TestEventCosting:
    """Tests for calculate_event_costing function."""

    async def test_prices_received_items_and_leftovers(self, make_event, make_stock, manager):
        await make_stock(item_name="Basmati Rice", quantity=40, cost_per_unit=120)
        event = await make_event()
        indent = await indent_service.create_indent(
            actor=manager,
            event_id=event.id,
            items=[
                {"item_name": "Basmati Rice", "category": "Grains", "quantity": 28, "unit": "kg"},
                {"item_name": "Kewra Water", "category": "Flavourings", "quantity": 1, "unit": "liters"},
                {"item_name": "Saffron", "category": "Spices", "quantity": 0.05, "unit": "kg"},
            ],
        )
        rice, kewra, _ = indent.items
        await indent_service.mark_item_received(actor=manager, indent_id=indent.id, item_id=rice.id)
        await indent_service.mark_item_received(actor=manager, indent_id=indent.id, item_id=kewra.id)
        await event_service.update_event(actor=manager, event_id=event.id, updates={"status": "IN_PROGRESS"})
        await leftover_service.record_leftovers(
            actor=manager,
            event_id=event.id,
            leftovers=[{"item_name": "Biryani", "quantity": 3, "unit": "kg", "estimated_cost": 450}],
        )

        costing = await leftover_service.calculate_event_costing(actor=manager, event_id=event.id)

        assert [i.item_name for i in costing.items] == ["Basmati Rice", "Kewra Water"]
        assert costing.ingredient_cost == 3360
        assert costing.leftover_value == 450
        assert costing.net_cost == 2910
        assert costing.unpriced_items == 1

    async def test_chef_cannot_view_costing(self, make_event, chef):
        event = await make_event(assigned_chef=chef.actor_id)

        with pytest.raises(PermissionDenied):
            await leftover_service.calculate_event_costing(actor=chef, event_id=event.id)

