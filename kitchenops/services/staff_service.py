"""Staff roster used to find chefs for cooking task assignment."""

import logging

from kitchenops.core import db_client
from kitchenops.core.errors import ConflictError, NotFound, coerce_input
from kitchenops.core.logging import span
from kitchenops.domain.actor import Actor, Role, StaffMember
from kitchenops.domain.create_models import StaffCreate
from kitchenops.services import access_policy


logger = logging.getLogger(__name__)


async def register_staff(*, actor: Actor, actor_id: str, name: str, role: Role | str = Role.CHEF) -> StaffMember:
    """Add a staff member to the roster (admin-only).

    Raises:
        PermissionDenied: If the actor is not ADMIN
        ValidationError: If the name or role is invalid
        ConflictError: If the actor_id is already registered
    """
    with span("staff_service.register_staff"):
        access_policy.require_role(actor, Role.ADMIN, action="register staff")
        payload = coerce_input(StaffCreate, {"actor_id": actor_id, "name": name, "role": role}, context="staff member")

        try:
            record = await db_client.create_record(
                collection="staff",
                data={
                    "actor_id": payload.actor_id,
                    "name": payload.name,
                    "role": payload.role.name,
                    "is_active": True,
                },
            )
        except db_client.IntegrityViolationError as e:
            msg = f"Staff member {actor_id} is already registered"
            raise ConflictError(msg) from e

        logger.info("Registered staff member", extra={"actor_id": payload.actor_id, "role": payload.role.name})
        return StaffMember(**record)


async def set_staff_active(*, actor: Actor, actor_id: str, is_active: bool) -> StaffMember:
    """Activate or deactivate a staff member (admin-only)."""
    with span("staff_service.set_staff_active"):
        access_policy.require_role(actor, Role.ADMIN, action="change staff status")

        record = await db_client.get_first_record(
            collection="staff",
            filter_query=f'actor_id = "{db_client.sanitize_param(actor_id)}"',
        )
        if record is None:
            msg = f"Staff member not found: {actor_id}"
            raise NotFound(msg)

        updated = await db_client.update_record(
            collection="staff", record_id=record["id"], data={"is_active": is_active}
        )
        logger.info("Changed staff status", extra={"actor_id": actor_id, "is_active": is_active})
        return StaffMember(**updated)


async def find_available_chef() -> StaffMember | None:
    """Return the first active chef on the roster, or None."""
    record = await db_client.get_first_record(
        collection="staff",
        filter_query='role = "CHEF" && is_active = "1"',
        sort="id ASC",
    )
    return StaffMember(**record) if record else None
