from kitchenops.services import (
    cooking_service,
    dashboard_service,
    event_service,
    indent_service,
    leftover_service,
    provisioning_service,
    staff_service,
    stock_ledger,
    sync_service,
)


__all__ = [
    "cooking_service",
    "dashboard_service",
    "event_service",
    "indent_service",
    "leftover_service",
    "provisioning_service",
    "staff_service",
    "stock_ledger",
    "sync_service",
]
