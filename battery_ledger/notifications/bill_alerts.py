"""Vadesi yaklaşan / geçen senet uyarıları."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Optional

from battery_ledger.models.inventory import Bill
from battery_ledger.notifications.notifier import Notifier
from battery_ledger.notifications.state import NotificationState
from battery_ledger.services.bills import is_overdue
from battery_ledger.store.change_feed import ChangeType, FeedSnapshot

logger = logging.getLogger(__name__)

OVERDUE_TITLE = "Vadesi geçmiş senet!"
DUE_SOON_TITLE = "Yaklaşan senet vadesi"
SUMMARY_TITLE = "Senet hatırlatması"


def days_phrase(days: int) -> str:
    if days <= 0:
        return "bugün"
    if days == 1:
        return "yarın"
    return f"{days} gün sonra"


class BillDueWatcher:
    """Senet akışını dinler; her senet bir kez bildirilir.

    İlk snapshot'ta tek bir özet bildirim gider ve ilgili senetler işaretlenir.
    Sonraki eklemelerde/değişikliklerde pencereye giren her senet ayrı bildirilir.
    Ödenen veya silinen senet unutulur.
    Akış yalnızca değişen senetleri getirir; zamanla pencereye giren senetler
    için sweep periyodik olarak çağrılır.
    """

    def __init__(
        self,
        notifier: Notifier,
        state: NotificationState,
        window_days: int = 7,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.notifier = notifier
        self.state = state
        self.window_days = window_days
        self.clock = clock or date.today
        self._primed = False

    def is_relevant(self, bill: Bill, today: Optional[date] = None) -> bool:
        """Kapanmamış ve vadesi bugün + pencere gününün sonuna kadar mı."""
        today = today or self.clock()
        if bill.is_settled:
            return False
        return bill.due_date.date() <= today + timedelta(days=self.window_days)

    def on_snapshot(self, snapshot: FeedSnapshot) -> None:
        today = self.clock()
        if snapshot.is_initial:
            self._on_initial([Bill.from_item(d) for d in snapshot.documents], today)
            return

        for change in snapshot.changes:
            document = change.document
            if not document:
                continue
            bill = Bill.from_item(document)
            if change.type == ChangeType.REMOVED or not self.is_relevant(bill, today):
                self.state.forget_bill(bill.bill_id)
                continue
            if self.state.mark_bill(bill.bill_id):
                self._notify_single(bill, today)

    def sweep(self, bills: list[Bill]) -> list[Bill]:
        """Pencereye girmiş ama henüz bildirilmemiş senetleri bildirir.

        İlk snapshot gelmeden çalışmaz. Yalnızca işaretler, unutma işi akışa
        kalır; böylece akışla yarışan eski bir okuma aynı senedi iki kez
        bildirmez.
        """
        if not self._primed:
            return []
        today = self.clock()
        notified = []
        for bill in bills:
            if self.is_relevant(bill, today) and self.state.mark_bill(bill.bill_id):
                self._notify_single(bill, today)
                notified.append(bill)
        return notified

    def reset(self) -> None:
        self._primed = False

    def _on_initial(self, bills: list[Bill], today: date) -> None:
        relevant = [b for b in bills if self.is_relevant(b, today)]
        for bill in relevant:
            self.state.mark_bill(bill.bill_id)
        self._primed = True
        if not relevant:
            return

        overdue = [b for b in relevant if is_overdue(b, today)]
        upcoming = [b for b in relevant if not is_overdue(b, today)]
        parts = []
        if overdue:
            parts.append(f"{len(overdue)} senedin vadesi geçti")
        if upcoming:
            nearest = min((b.due_date.date() - today).days for b in upcoming)
            parts.append(f"{len(upcoming)} senet yaklaşıyor, en yakını {days_phrase(nearest)}")
        self.notifier.notify(SUMMARY_TITLE, ", ".join(parts))
        logger.info("Başlangıç senet taraması: %d geciken, %d yaklaşan", len(overdue), len(upcoming))

    def _notify_single(self, bill: Bill, today: date) -> None:
        label = bill.description or bill.reference_number or bill.bill_id
        if is_overdue(bill, today):
            self.notifier.notify(
                OVERDUE_TITLE,
                f"{label} senedinin vadesi geçti (kalan: {bill.remaining:.2f})",
            )
            return
        days = (bill.due_date.date() - today).days
        self.notifier.notify(
            DUE_SOON_TITLE,
            f"{label} senedinin vadesi {days_phrase(days)} (tutar: {bill.remaining:.2f})",
        )
