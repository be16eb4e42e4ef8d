"""Oturum bazlı bildirim yöneticisi.

Kullanıcı oturum açtığında stok hareketi ve varyant akışları konumlanır,
başlangıç stok taraması yapılır, ardından bu akışlar ile senet ve
(yöneticiler için) bekleyen onay akışları dinlenmeye başlanır.
Oturum kapanınca abonelikler durdurulur ve tüm bildirim durumu temizlenir.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Callable, Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from battery_ledger.config import Settings
from battery_ledger.models.inventory import ProductVariant, SessionUser
from battery_ledger.notifications.approvals import PendingApprovalWatcher, is_pending
from battery_ledger.notifications.bill_alerts import BillDueWatcher
from battery_ledger.notifications.low_stock import LowStockWatcher, pair_from_entry
from battery_ledger.notifications.notifier import Notifier, build_notifier
from battery_ledger.notifications.state import LowStockKey, NotificationState
from battery_ledger.services.catalog import InventoryCatalog
from battery_ledger.store.change_feed import ChangeFeedSubscription, FeedSnapshot
from battery_ledger.store.clients import streams_client as build_streams_client

logger = logging.getLogger(__name__)


def changed_variant_keys(old: Optional[dict], new: Optional[dict]) -> list[LowStockKey]:
    """Varyant dokümanındaki stok/eşik değişikliğinden etkilenen anahtarlar."""
    if not new:
        return []
    variant = ProductVariant.from_item(new)
    before = ProductVariant.from_item(old) if old else None
    warehouses = set(variant.stock_levels) | set(variant.min_quantities)
    if before is None or before.min_quantity != variant.min_quantity or before.archived != variant.archived:
        return [(variant.variant_id, wid) for wid in sorted(warehouses)]

    warehouses |= set(before.stock_levels) | set(before.min_quantities)
    return [
        (variant.variant_id, wid)
        for wid in sorted(warehouses)
        if before.stock_at(wid) != variant.stock_at(wid)
        or before.threshold_for(wid) != variant.threshold_for(wid)
    ]


class AppNotificationManager:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        catalog: Optional[InventoryCatalog] = None,
        notifier: Optional[Notifier] = None,
        dynamodb_client: Optional[Any] = None,
        streams_client: Optional[Any] = None,
        subscription_factory: Optional[Callable[..., Any]] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.catalog = catalog or InventoryCatalog(
            settings=self.settings, dynamodb_client=dynamodb_client
        )
        self.notifier = notifier or build_notifier(self.settings)
        self.dynamodb = self.catalog.dynamodb
        self._streams = streams_client
        self._subscription_factory = subscription_factory or ChangeFeedSubscription

        self.state = NotificationState()
        self.low_stock = LowStockWatcher(self.catalog, self.notifier, self.state)
        self.bills = BillDueWatcher(
            self.notifier, self.state, window_days=self.settings.bill_window_days, clock=clock
        )
        self.approvals = PendingApprovalWatcher(self.notifier)

        self.user: Optional[SessionUser] = None
        self._subscriptions: list[Any] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        # çalışan kontrol -> sırada yeni tetikleme var mı
        self._inflight: dict[LowStockKey, bool] = {}
        self._stop = threading.Event()
        self._loops: list[threading.Thread] = []

    @property
    def active(self) -> bool:
        return self.user is not None

    # --- Oturum yaşam döngüsü ---

    def on_user_changed(self, user: Optional[SessionUser]) -> None:
        if user is None:
            self.end_session()
            return
        if self.user is not None and self.user.user_id == user.user_id and self.user.role == user.role:
            return
        self.start_session(user)

    def start_session(self, user: SessionUser) -> None:
        if self.active:
            self.end_session()

        self.user = user
        self._stop.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.notifier_workers, thread_name_prefix="stock-recheck"
        )
        logger.info("Bildirim oturumu başladı: %s (%s)", user.user_id, user.role.value)

        # Stok akışları taramadan önce konumlanır; aradaki yazmalar artımlı teslim edilir
        stock_feeds = [
            self._subscribe(self.catalog.entries_table, self._on_entries, start=False),
            self._subscribe(self.catalog.variants_table, self._on_variants, start=False),
        ]
        opened = [s for s in stock_feeds if self._open_feed(s)]

        try:
            self.low_stock.reconcile(initial=True)
        except Exception:
            logger.exception("Başlangıç stok taraması başarısız")

        for subscription in opened:
            subscription.start()
        self._subscribe(self.catalog.bills_table, self.bills.on_snapshot)
        if user.is_admin:
            self._subscribe(self.catalog.entries_table, self.approvals.on_snapshot, predicate=is_pending)

        self._start_loop(self.settings.reconcile_interval, self._reconcile_stock, "stock-reconcile")
        self._start_loop(self.settings.bill_check_interval, self._sweep_bills, "bill-sweep")

    def end_session(self) -> None:
        if not self.active:
            return
        self._stop.set()
        for subscription in self._subscriptions:
            subscription.stop()
        self._subscriptions = []
        for thread in self._loops:
            thread.join(timeout=5.0)
        self._loops = []
        if self._executor:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
        with self._lock:
            self._inflight.clear()
        self.state.clear()
        self.bills.reset()
        logger.info("Bildirim oturumu kapandı: %s", self.user.user_id)
        self.user = None

    def _subscribe(
        self,
        table_name: str,
        listener: Callable[[FeedSnapshot], None],
        predicate: Optional[Callable[[dict], bool]] = None,
        start: bool = True,
    ) -> Any:
        if self._streams is None:
            self._streams = build_streams_client(self.settings)
        subscription = self._subscription_factory(
            table_name,
            listener,
            self.dynamodb,
            self._streams,
            predicate=predicate,
            poll_interval=self.settings.stream_poll_interval,
            on_error=self._on_feed_error,
        )
        self._subscriptions.append(subscription)
        if start:
            subscription.start()
        return subscription

    def _open_feed(self, subscription: Any) -> bool:
        try:
            subscription.open()
        except (ClientError, BotoCoreError, ValueError) as e:
            subscription.stop()
            self._on_feed_error(e)
            return False
        return True

    def _on_feed_error(self, error: Exception) -> None:
        logger.error("Bildirim akışı durdu: %s", error)

    # --- Akış dinleyicileri ---

    def _on_entries(self, snapshot: FeedSnapshot) -> None:
        if snapshot.is_initial:
            return
        keys = set()
        for change in snapshot.changes:
            for image in (change.new_image, change.old_image):
                key = pair_from_entry(image)
                if key:
                    keys.add(key)
        self.schedule_rechecks(keys)

    def _on_variants(self, snapshot: FeedSnapshot) -> None:
        if snapshot.is_initial:
            return
        keys = set()
        for change in snapshot.changes:
            keys.update(changed_variant_keys(change.old_image, change.new_image))
        self.schedule_rechecks(keys)

    # --- Hedefli kontroller ---

    def schedule_rechecks(self, keys: Iterable[LowStockKey]) -> None:
        """Anahtar başına en fazla bir kontrol çalışır; arada gelen tetiklemeler bir tur daha çalıştırır."""
        for key in keys:
            with self._lock:
                if self._executor is None:
                    return
                if key in self._inflight:
                    self._inflight[key] = True
                    continue
                self._inflight[key] = False
                self._executor.submit(self._run_recheck, key)

    def _run_recheck(self, key: LowStockKey) -> None:
        while True:
            try:
                self.low_stock.recheck(*key)
            except Exception:
                logger.exception("Stok kontrolü başarısız: %s/%s", *key)
            with self._lock:
                if self._inflight.get(key):
                    self._inflight[key] = False
                    continue
                self._inflight.pop(key, None)
                return

    # --- Periyodik taramalar ---

    def _start_loop(self, interval: float, task: Callable[[], None], name: str) -> None:
        if interval <= 0:
            return
        thread = threading.Thread(
            target=self._run_loop, args=(interval, task), name=name, daemon=True
        )
        thread.start()
        self._loops.append(thread)

    def _run_loop(self, interval: float, task: Callable[[], None]) -> None:
        while not self._stop.wait(interval):
            try:
                task()
            except Exception:
                logger.exception("Periyodik tarama başarısız: %s", threading.current_thread().name)

    def _reconcile_stock(self) -> None:
        """Tarama yalnızca aday seçer; karar hedefli kontrol yolunda verilir."""
        self.low_stock.reconcile(dispatch=self.schedule_rechecks)

    def _sweep_bills(self) -> None:
        self.bills.sweep(self.catalog.list_bills(consistent=True))
