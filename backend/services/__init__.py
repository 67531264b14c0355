"""Services package for the SIM device platform."""

from .linking import (
    link_device_to_sim,
    link_asset_to_device,
    unlink_device_from_sim,
    unlink_asset_from_device,
)
from .unified_view import (
    get_unified_view,
    UnifiedViewFilter,
    UnifiedViewPage,
    UnifiedDeviceRow,
)
from .reconciliation import (
    run_reconciliation,
    list_runs,
    ReconciliationEngine,
    ReconciliationResult,
    ReconciliationCancelled,
)
from .reports import (
    generate_report,
    list_reports,
    report_types,
    UnknownReportTypeError,
)
from .system_health import get_system_health, SystemHealthStatus

__all__ = [
    "link_device_to_sim",
    "link_asset_to_device",
    "unlink_device_from_sim",
    "unlink_asset_from_device",
    "get_unified_view",
    "UnifiedViewFilter",
    "UnifiedViewPage",
    "UnifiedDeviceRow",
    "run_reconciliation",
    "list_runs",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationCancelled",
    "generate_report",
    "list_reports",
    "report_types",
    "UnknownReportTypeError",
    "get_system_health",
    "SystemHealthStatus",
]
