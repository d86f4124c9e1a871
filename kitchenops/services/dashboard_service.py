"""Kitchen dashboard: one role-scoped summary of the day.

Every section is read through the owning service, so the usual scoping
applies. A chef sees events they lead or cook for, their own cooking tasks
and only the indents of those events. Managers and admins see everything.
Stock alerts are shared by every role.
"""

import logging
from datetime import UTC, datetime, timedelta

from kitchenops.core.logging import span
from kitchenops.domain.actor import Actor
from kitchenops.domain.cooking import CookingStatus
from kitchenops.domain.indent import IndentStatus
from kitchenops.models.service_models import KitchenDashboard, PendingIndent
from kitchenops.services import cooking_service, event_service, indent_service, stock_ledger


logger = logging.getLogger(__name__)

PENDING_INDENT_STATUSES = (IndentStatus.SUBMITTED, IndentStatus.APPROVED)
ACTIVE_TASK_STATUSES = (CookingStatus.NOT_STARTED, CookingStatus.IN_PROGRESS)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


async def get_kitchen_dashboard(*, actor: Actor, now: datetime | None = None) -> KitchenDashboard:
    """Summarize today's events, pending indents, active cooking and stock alerts.

    Args:
        actor: Caller; sections are limited to what the actor may see
        now: Reference time, defaults to the current UTC time. "Today" is the
            UTC calendar day containing it.

    Returns:
        KitchenDashboard for the actor
    """
    with span("dashboard_service.get_kitchen_dashboard"):
        now = _as_utc(now) if now else datetime.now(UTC)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        events = await event_service.list_events(actor=actor)
        todays_events = [e for e in events if day_start <= _as_utc(e.date) < day_end]

        pending_indents = []
        for status in PENDING_INDENT_STATUSES:
            for indent in await indent_service.list_indents(actor=actor, status=status):
                pending_indents.append(
                    PendingIndent(
                        indent_id=indent.id,
                        event_id=indent.event_id,
                        status=indent.status,
                        total_items=indent.total_items,
                        received_items=sum(1 for item in indent.items if item.is_received),
                    )
                )

        active_tasks = []
        for status in ACTIVE_TASK_STATUSES:
            active_tasks.extend(await cooking_service.list_cooking_tasks(actor=actor, status=status))

        alerts = await stock_ledger.get_stock_alerts(actor=actor, now=now)

        logger.info(
            "Built kitchen dashboard",
            extra={
                "actor_id": actor.actor_id,
                "events": len(todays_events),
                "pending_indents": len(pending_indents),
                "active_tasks": len(active_tasks),
            },
        )
        return KitchenDashboard(
            day=day_start.date(),
            todays_events=todays_events,
            pending_indents=pending_indents,
            active_tasks=active_tasks,
            stock_alerts=alerts.summary,
        )
