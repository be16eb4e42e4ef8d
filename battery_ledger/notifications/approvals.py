"""Yönetici için bekleyen onay talebi bildirimleri."""

from __future__ import annotations

import logging

from battery_ledger.models.inventory import EntryStatus, StockEntry
from battery_ledger.notifications.notifier import Notifier
from battery_ledger.store.change_feed import ChangeType, FeedSnapshot

logger = logging.getLogger(__name__)

APPROVAL_TITLE = "Yeni onay talebi"


def is_pending(item: dict) -> bool:
    return item.get("status") == EntryStatus.PENDING.value


class PendingApprovalWatcher:
    """İlk snapshot'taki mevcut talepler bildirilmez; sonra eklenen her bekleyen hareket bildirilir."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def on_snapshot(self, snapshot: FeedSnapshot) -> None:
        if snapshot.is_initial:
            logger.debug("Bekleyen onay sayısı: %d", len(snapshot.changes))
            return
        for change in snapshot.changes:
            if change.type != ChangeType.ADDED or not change.new_image:
                continue
            if not is_pending(change.new_image):
                continue
            self._notify(StockEntry.from_item(change.new_image))

    def _notify(self, entry: StockEntry) -> None:
        kind = "transfer" if entry.is_transfer else "stok girişi"
        body = f"{entry.product_name} {entry.capacity} Amper için yeni {kind} onay bekliyor"
        if entry.created_by_user_name:
            body += f" ({entry.created_by_user_name})"
        self.notifier.notify(APPROVAL_TITLE, body)
