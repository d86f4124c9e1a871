"""Auto-provisioning: derive an event's DRAFT indent and cooking tasks from its menu.

Running the pipeline twice on unchanged inputs yields the same indent items and
the same task set. Everything runs inside one transaction, joined with the
caller's when there is one (event creation and update).
"""

import logging

from kitchenops.core import db_client
from kitchenops.core.logging import span
from kitchenops.domain.actor import SYSTEM_ACTOR_ID
from kitchenops.domain.cooking import CookingStatus, CookingTask
from kitchenops.domain.create_models import CookingTaskCreate, IndentItemCreate
from kitchenops.domain.event import Event
from kitchenops.domain.provisioning import ProvisioningConfig
from kitchenops.models.service_models import ProvisioningResult
from kitchenops.services import cooking_service, indent_service, quantity_calculator, staff_service


logger = logging.getLogger(__name__)

# Tasks in these states are cancelled when their dish leaves the menu
_RETRACTABLE = frozenset({CookingStatus.NOT_STARTED, CookingStatus.ON_HOLD})


async def _provision_indent(
    *, event: Event, config: ProvisioningConfig, actor_id: str, result: ProvisioningResult
) -> None:
    lines = quantity_calculator.calculate_procurement(event.menu_items, event.guest_count, config.rules)
    result.lines = lines
    draft = await indent_service.find_draft(event_id=event.id)

    if not lines:
        if draft:
            await indent_service.remove_draft(indent_id=draft.id)
            result.indent_removed = True
            logger.info("Removed DRAFT indent for empty menu", extra={"event_id": event.id, "indent_id": draft.id})
        return

    items = indent_service.validate_items(
        [
            IndentItemCreate(
                item_name=line.item_name,
                category=line.category,
                quantity=float(line.quantity),
                unit=line.unit,
            )
            for line in lines
        ]
    )
    if draft:
        result.indent = await indent_service.replace_draft_items(indent_id=draft.id, items=items)
    else:
        result.indent = await indent_service.insert_draft_indent(event_id=event.id, items=items, created_by=actor_id)


def _desired_tasks(event: Event, config: ProvisioningConfig) -> dict[tuple[str, str], CookingTaskCreate]:
    """One task per distinct (dish, category) of the menu."""
    rules = config.rules
    names: dict[tuple[str, str], set[str]] = {}
    notes: dict[tuple[str, str], str | None] = {}
    for item in event.menu_items:
        category = quantity_calculator.normalize_category(item.category, rules)
        name = item.item_name.strip()
        key = (name.casefold(), category)
        names.setdefault(key, set()).add(name)
        notes.setdefault(key, item.notes)

    desired = {}
    for key in sorted(names, key=lambda k: (k[1], k[0])):
        dish_name = min(names[key])
        category = key[1]
        desired[key] = CookingTaskCreate(
            event_id=event.id,
            dish_name=dish_name,
            category=category,
            servings=event.guest_count,
            priority=quantity_calculator.priority_for_category(category, rules),
            estimated_time=quantity_calculator.estimate_cooking_time(category, dish_name, rules),
            notes=notes[key],
        )
    return desired


async def _default_assignee(event: Event) -> str | None:
    if event.assigned_chef:
        return event.assigned_chef
    chef = await staff_service.find_available_chef()
    return chef.actor_id if chef else None


async def _reconcile_tasks(*, event: Event, config: ProvisioningConfig, result: ProvisioningResult) -> None:
    desired = _desired_tasks(event, config)

    existing: dict[tuple[str, str], CookingTask] = {}
    for task in await cooking_service.list_event_tasks(event_id=event.id):
        if task.status == CookingStatus.CANCELLED:
            continue
        category = quantity_calculator.normalize_category(task.category, config.rules)
        existing.setdefault((task.dish_name.strip().casefold(), category), task)

    for key, task in existing.items():
        if key in desired:
            if task.status == CookingStatus.NOT_STARTED and task.servings != event.guest_count:
                result.tasks_updated.append(
                    await cooking_service.refresh_servings(task=task, servings=event.guest_count)
                )
        elif task.status in _RETRACTABLE:
            result.tasks_cancelled.append(
                await cooking_service.cancel_task(task=task, reason="Dish removed from the event menu")
            )

    missing = [create for key, create in desired.items() if key not in existing]
    if not missing:
        return

    assignee = await _default_assignee(event)
    if assignee is None:
        result.tasks_skipped_reason = "No chef is assigned to the event and no active chef is on the roster"
        logger.warning(
            "Skipping cooking task generation: no chef available",
            extra={"event_id": event.id, "missing_tasks": len(missing)},
        )
        return

    for create in missing:
        task = await cooking_service.insert_task(data=create.model_copy(update={"assigned_to": assignee}))
        result.tasks_created.append(task)


async def provision_event(
    *,
    event: Event,
    config: ProvisioningConfig,
    actor_id: str = SYSTEM_ACTOR_ID,
) -> ProvisioningResult:
    """Recompute the event's DRAFT indent and, when enabled, its cooking tasks.

    Args:
        event: Event as just written
        config: Switches and quantity rules for this run
        actor_id: Recorded as the creator of a new DRAFT indent

    Returns:
        What was created, replaced, updated or cancelled

    Raises:
        ValidationError: If the menu cannot be turned into procurement lines
        ConflictError: If a concurrent writer created or submitted the DRAFT
    """
    with span("provisioning_service.provision_event"):
        result = ProvisioningResult(event_id=event.id)

        async with db_client.transaction():
            if config.auto_create_indents:
                await _provision_indent(event=event, config=config, actor_id=actor_id, result=result)
            if config.auto_create_cooking_tasks:
                await _reconcile_tasks(event=event, config=config, result=result)

        logger.info(
            "Provisioned event",
            extra={
                "event_id": event.id,
                "lines": len(result.lines),
                "indent_id": result.indent.id if result.indent else None,
                "tasks_created": len(result.tasks_created),
                "tasks_updated": len(result.tasks_updated),
                "tasks_cancelled": len(result.tasks_cancelled),
            },
        )
        return result
