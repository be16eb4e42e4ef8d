from battery_ledger.notifications.approvals import PendingApprovalWatcher
from battery_ledger.notifications.bill_alerts import BillDueWatcher
from battery_ledger.notifications.low_stock import LowStockWatcher, resolve_threshold
from battery_ledger.notifications.manager import AppNotificationManager
from battery_ledger.notifications.notifier import (
    LogNotifier,
    Notifier,
    SnsNotifier,
    build_notifier,
)
from battery_ledger.notifications.state import NotificationState, Transition

__all__ = [
    "AppNotificationManager",
    "BillDueWatcher",
    "LogNotifier",
    "LowStockWatcher",
    "NotificationState",
    "Notifier",
    "PendingApprovalWatcher",
    "SnsNotifier",
    "Transition",
    "build_notifier",
    "resolve_threshold",
]
