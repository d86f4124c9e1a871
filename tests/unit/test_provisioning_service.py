"""Unit tests for provisioning_service module."""

import pytest

from kitchenops.domain.cooking import CookingStatus, TaskPriority
from kitchenops.domain.indent import IndentStatus
from kitchenops.domain.provisioning import ProvisioningConfig
from kitchenops.services import cooking_service, event_service, indent_service, provisioning_service, staff_service


INDENT_ONLY = ProvisioningConfig(auto_create_indents=True, auto_create_cooking_tasks=False)
FULL = ProvisioningConfig(auto_create_indents=True, auto_create_cooking_tasks=True)

BIRYANI_MENU = [{"item_name": "Chicken Biryani", "category": "biryanis"}]

WEDDING_MENU = [
    {"item_name": "Chicken Biryani", "category": "biryanis"},
    {"item_name": "Paneer Tikka", "category": "starters"},
    {"item_name": "Gulab Jamun", "category": "desserts"},
]


def _items(indent):
    return sorted((item.item_name, item.category, item.quantity, item.unit) for item in indent.items)


@pytest.mark.unit
class TestIndentProvisioning:
    """Tests for the DRAFT indent produced from a menu."""

    async def test_event_creation_provisions_draft(self, make_event):
        event = await make_event(menu_items=BIRYANI_MENU, config=INDENT_ONLY)

        draft = await indent_service.find_draft(event_id=event.id)

        assert draft is not None
        assert draft.status == IndentStatus.DRAFT
        assert _items(draft) == [("Chicken Biryani", "Main Course", 28, "kg")]

    async def test_rerun_is_idempotent(self, make_event):
        event = await make_event(menu_items=WEDDING_MENU, config=INDENT_ONLY)
        first = await indent_service.find_draft(event_id=event.id)

        result = await provisioning_service.provision_event(event=event, config=INDENT_ONLY)

        assert result.indent.id == first.id
        assert _items(result.indent) == _items(first)

    async def test_menu_change_keeps_indent_id(self, make_event, manager):
        event = await make_event(menu_items=BIRYANI_MENU, config=INDENT_ONLY)
        before = await indent_service.find_draft(event_id=event.id)

        result = await event_service.update_event(
            actor=manager,
            event_id=event.id,
            updates={"guest_count": 200, "menu_items": WEDDING_MENU},
            config=INDENT_ONLY,
        )

        assert result.provisioning.indent.id == before.id
        assert result.provisioning.indent.total_items == 3
        # 200 x 0.25 kg x 1.10 = 55
        assert ("Chicken Biryani", "Main Course", 55, "kg") in _items(result.provisioning.indent)

    async def test_empty_menu_removes_draft(self, make_event, manager):
        event = await make_event(menu_items=BIRYANI_MENU, config=INDENT_ONLY)

        result = await event_service.update_event(
            actor=manager, event_id=event.id, updates={"menu_items": []}, config=INDENT_ONLY
        )

        assert result.provisioning.indent_removed
        assert await indent_service.find_draft(event_id=event.id) is None

    async def test_submitted_indent_is_left_alone(self, make_event, manager):
        event = await make_event(menu_items=BIRYANI_MENU, config=INDENT_ONLY)
        submitted = await indent_service.find_draft(event_id=event.id)
        await indent_service.submit_indent(actor=manager, indent_id=submitted.id)

        result = await event_service.update_event(
            actor=manager, event_id=event.id, updates={"guest_count": 120}, config=INDENT_ONLY
        )

        assert result.provisioning.indent.id != submitted.id
        kept = await indent_service.get_indent(actor=manager, indent_id=submitted.id)
        assert kept.status == IndentStatus.SUBMITTED

    async def test_disabled_provisioning_creates_nothing(self, make_event, no_provisioning):
        event = await make_event(menu_items=BIRYANI_MENU, config=no_provisioning)

        assert await indent_service.find_draft(event_id=event.id) is None


@pytest.mark.unit
class TestTaskProvisioning:
    """Tests for cooking task reconciliation."""

    async def test_tasks_go_to_the_event_chef(self, make_event):
        event = await make_event(menu_items=WEDDING_MENU, assigned_chef="chef-1", config=FULL)

        tasks = await cooking_service.list_event_tasks(event_id=event.id)

        assert sorted(t.dish_name for t in tasks) == ["Chicken Biryani", "Gulab Jamun", "Paneer Tikka"]
        assert {t.assigned_to for t in tasks} == {"chef-1"}
        assert all(t.servings == 100 for t in tasks)
        biryani = next(t for t in tasks if t.dish_name == "Chicken Biryani")
        assert biryani.priority == TaskPriority.HIGH
        assert biryani.estimated_time == 90

    async def test_roster_fallback(self, make_event, admin):
        await staff_service.register_staff(actor=admin, actor_id="chef-7", name="Lakshmi")

        event = await make_event(menu_items=BIRYANI_MENU, config=FULL)

        tasks = await cooking_service.list_event_tasks(event_id=event.id)
        assert [t.assigned_to for t in tasks] == ["chef-7"]

    async def test_no_chef_skips_tasks_but_keeps_indent(self, make_event, manager):
        event = await make_event(menu_items=BIRYANI_MENU, config=FULL)

        result = await provisioning_service.provision_event(event=event, config=FULL)

        assert result.tasks_created == []
        assert result.tasks_skipped_reason is not None
        assert result.indent is not None
        assert await cooking_service.list_event_tasks(event_id=event.id) == []

    async def test_rerun_creates_no_duplicates(self, make_event):
        event = await make_event(menu_items=WEDDING_MENU, assigned_chef="chef-1", config=FULL)

        result = await provisioning_service.provision_event(event=event, config=FULL)

        assert result.tasks_created == []
        assert len(await cooking_service.list_event_tasks(event_id=event.id)) == 3

    async def test_removed_dish_cancels_its_task(self, make_event, manager):
        event = await make_event(menu_items=WEDDING_MENU, assigned_chef="chef-1", config=FULL)

        result = await event_service.update_event(
            actor=manager, event_id=event.id, updates={"menu_items": BIRYANI_MENU}, config=FULL
        )

        assert sorted(t.dish_name for t in result.provisioning.tasks_cancelled) == ["Gulab Jamun", "Paneer Tikka"]
        statuses = {t.dish_name: t.status for t in await cooking_service.list_event_tasks(event_id=event.id)}
        assert statuses == {
            "Chicken Biryani": CookingStatus.NOT_STARTED,
            "Paneer Tikka": CookingStatus.CANCELLED,
            "Gulab Jamun": CookingStatus.CANCELLED,
        }

    async def test_guest_change_refreshes_unstarted_servings(self, make_event, manager, chef):
        event = await make_event(menu_items=WEDDING_MENU, assigned_chef=chef.actor_id, config=FULL)
        tasks = await cooking_service.list_event_tasks(event_id=event.id)
        started = next(t for t in tasks if t.dish_name == "Chicken Biryani")
        await cooking_service.update_cooking_status(actor=chef, task_id=started.id, status="IN_PROGRESS")

        await event_service.update_event(actor=manager, event_id=event.id, updates={"guest_count": 150}, config=FULL)

        servings = {t.dish_name: t.servings for t in await cooking_service.list_event_tasks(event_id=event.id)}
        assert servings == {"Chicken Biryani": 100, "Paneer Tikka": 150, "Gulab Jamun": 150}
