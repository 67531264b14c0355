from .devices import router as devices_router
from .reconciliation import router as reconciliation_router
from .reports import router as reports_router
from .assets import router as assets_router

__all__ = [
    "devices_router",
    "reconciliation_router",
    "reports_router",
    "assets_router",
]
