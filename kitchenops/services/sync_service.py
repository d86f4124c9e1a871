"""One-way notifications to the event planning system.

Emission happens after the kitchen's own transaction has committed and never
fails the calling operation: errors are logged and reported as False.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel

from kitchenops.core.config import constants, settings
from kitchenops.core.logging import span


logger = logging.getLogger(__name__)

SYNC_SOURCE = "kitchen"


def _build_envelope(event_type: str, payload: dict[str, Any] | BaseModel) -> dict[str, Any]:
    data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
    return {
        "type": event_type,
        "source": SYNC_SOURCE,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }


async def emit(event_type: str, payload: dict[str, Any] | BaseModel) -> bool:
    """POST a JSON envelope to the planner sync endpoint.

    Args:
        event_type: Dotted event name, e.g. "event.created"
        payload: JSON-serializable body or a pydantic model

    Returns:
        True if the planner accepted the update, False if sync is disabled or failed
    """
    if not settings.planner_sync_url:
        logger.debug("Planner sync disabled, skipping emit", extra={"event_type": event_type})
        return False

    with span("sync_service.emit"):
        headers = {"Content-Type": "application/json"}
        if settings.planner_sync_token:
            headers["Authorization"] = f"Bearer {settings.planner_sync_token}"

        try:
            async with httpx.AsyncClient(timeout=constants.SYNC_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    settings.planner_sync_url,
                    json=_build_envelope(event_type, payload),
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Planner rejected sync update",
                extra={"event_type": event_type, "status_code": e.response.status_code},
            )
            return False
        except httpx.HTTPError as e:
            logger.warning("Planner sync request failed", extra={"event_type": event_type, "error": str(e)})
            return False

        logger.info("Planner sync update sent", extra={"event_type": event_type})
        return True
