"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest

from kitchenops.domain.actor import Actor
from kitchenops.domain.event import Event, EventStatus
from kitchenops.domain.provisioning import ProvisioningConfig
from kitchenops.domain.stock import Stock
from kitchenops.services import event_service, stock_ledger


NO_PROVISIONING = ProvisioningConfig(auto_create_indents=False, auto_create_cooking_tasks=False)


@pytest.fixture
def no_provisioning() -> ProvisioningConfig:
    return NO_PROVISIONING


@pytest.fixture
def make_event(db, manager: Actor) -> Callable[..., Awaitable[Event]]:
    """Create events through the service, without provisioning unless a config is given."""

    async def _make(
        *,
        name: str = "Sharma Wedding",
        guest_count: int = 100,
        menu_items: list[dict] | None = None,
        assigned_chef: str | None = None,
        status: EventStatus = EventStatus.PLANNED,
        config: ProvisioningConfig = NO_PROVISIONING,
    ) -> Event:
        result = await event_service.create_event(
            actor=manager,
            data={
                "name": name,
                "date": datetime.now(UTC) + timedelta(days=14),
                "guest_count": guest_count,
                "event_type": "wedding",
                "menu_items": menu_items or [],
                "assigned_chef": assigned_chef,
            },
            config=config,
        )
        event = result.event
        if status == EventStatus.IN_PROGRESS:
            updated = await event_service.update_event(
                actor=manager, event_id=event.id, updates={"status": status}, config=config
            )
            event = updated.event
        return event

    return _make


@pytest.fixture
def make_stock(db, manager: Actor) -> Callable[..., Awaitable[Stock]]:
    """Create stock items through the ledger."""

    async def _make(
        *,
        item_name: str = "Basmati Rice",
        quantity: float = 50,
        unit: str = "kg",
        category: str = "Grains",
        min_stock: float | None = None,
        expiry_date: datetime | None = None,
        cost_per_unit: float | None = None,
    ) -> Stock:
        return await stock_ledger.create_stock(
            actor=manager,
            data={
                "item_name": item_name,
                "category": category,
                "quantity": quantity,
                "unit": unit,
                "min_stock": min_stock,
                "expiry_date": expiry_date,
                "cost_per_unit": cost_per_unit,
            },
        )

    return _make
