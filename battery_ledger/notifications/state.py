"""Oturum kapsamlı bildirim durumu.

Hangi (varyant, depo) çiftlerinin ve hangi senetlerin zaten bildirildiğini
tutar. Kalıcı değildir; oturum kapanınca temizlenir. Tüm kontrol-ve-işaretle
işlemleri tek bir kilit altında yapılır, böylece aynı anahtar için eşzamanlı
tetiklemelerden sadece biri bildirim üretir.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Iterable

LowStockKey = tuple[str, str]


class Transition(str, Enum):
    NONE = "none"
    BREACHED = "breached"
    RECOVERED = "recovered"
    EXEMPT = "exempt"


class NotificationState:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._breached: set[LowStockKey] = set()
        self._notified_bills: set[str] = set()

    # --- Düşük stok ---

    def evaluate(self, key: LowStockKey, quantity: int, threshold: int) -> Transition:
        """Normal/Breached durum makinesini bir gözlemle ilerletir.

        threshold <= 0 ise anahtar muaftır ve ihlal kümesinden çıkarılır.
        """
        with self._lock:
            if threshold <= 0:
                self._breached.discard(key)
                return Transition.EXEMPT
            if quantity <= threshold:
                if key in self._breached:
                    return Transition.NONE
                self._breached.add(key)
                return Transition.BREACHED
            if key in self._breached:
                self._breached.discard(key)
                return Transition.RECOVERED
            return Transition.NONE

    def is_breached(self, key: LowStockKey) -> bool:
        with self._lock:
            return key in self._breached

    def clear_breached(self, key: LowStockKey) -> bool:
        with self._lock:
            if key in self._breached:
                self._breached.discard(key)
                return True
            return False

    def replace_breached(self, keys: Iterable[LowStockKey]) -> None:
        """Başlangıç taramasında kümeyi sıfırdan kurar."""
        with self._lock:
            self._breached = set(keys)

    def breached_keys(self) -> frozenset[LowStockKey]:
        with self._lock:
            return frozenset(self._breached)

    # --- Senetler ---

    def mark_bill(self, bill_id: str) -> bool:
        """Senet ilk kez işaretleniyorsa True döner."""
        with self._lock:
            if bill_id in self._notified_bills:
                return False
            self._notified_bills.add(bill_id)
            return True

    def forget_bill(self, bill_id: str) -> None:
        with self._lock:
            self._notified_bills.discard(bill_id)

    def notified_bills(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._notified_bills)

    def clear(self) -> None:
        with self._lock:
            self._breached.clear()
            self._notified_bills.clear()
