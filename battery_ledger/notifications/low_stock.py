"""Düşük stok izleme.

Her (varyant, depo) anahtarı Normal/Breached durum makinesinden geçer.
Normal -> Breached geçişinde tek bildirim üretilir, stok eşiğin üstüne
çıkınca anahtar sessizce temizlenir ve bir sonraki ihlal yeniden bildirilir.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from battery_ledger.models.inventory import ProductVariant
from battery_ledger.notifications.notifier import Notifier
from battery_ledger.notifications.state import LowStockKey, NotificationState, Transition
from battery_ledger.services.catalog import InventoryCatalog

logger = logging.getLogger(__name__)

LOW_STOCK_TITLE = "Düşük stok uyarısı"


def resolve_threshold(variant: ProductVariant, warehouse_id: str) -> int:
    """Depo bazlı eşik yoksa genel eşik. 0 veya altı 'eşik tanımsız' demektir."""
    return variant.threshold_for(warehouse_id)


def is_low(variant: ProductVariant, warehouse_id: str) -> bool:
    threshold = resolve_threshold(variant, warehouse_id)
    return threshold > 0 and variant.stock_at(warehouse_id) <= threshold


class LowStockWatcher:
    def __init__(
        self,
        catalog: InventoryCatalog,
        notifier: Notifier,
        state: NotificationState,
    ):
        self.catalog = catalog
        self.notifier = notifier
        self.state = state

    def recheck(self, variant_id: str, warehouse_id: str) -> Transition:
        """Tek bir anahtarı güncel stokla yeniden değerlendirir.

        Varyant tutarlı okumayla alınır; commit edilmiş son hareket mutlaka görülür.
        Okuma hatası yukarı taşınır, durum değişmez.
        """
        key = (variant_id, warehouse_id)
        variant = self.catalog.get_variant(variant_id, consistent=True)
        if variant is None or variant.archived:
            self.state.clear_breached(key)
            return Transition.EXEMPT

        quantity = variant.stock_at(warehouse_id)
        threshold = resolve_threshold(variant, warehouse_id)
        transition = self.state.evaluate(key, quantity, threshold)
        if transition == Transition.BREACHED:
            self._notify_breach(key, variant, quantity)
        elif transition == Transition.RECOVERED:
            logger.debug("Stok eşik üstüne döndü: %s/%s (%d)", variant_id, warehouse_id, quantity)
        return transition

    def reconcile(
        self,
        initial: bool = False,
        dispatch: Optional[Callable[[Iterable[LowStockKey]], None]] = None,
    ) -> list[LowStockKey]:
        """Arşivlenmemiş tüm varyantlar x tüm depolar üzerinde tam tarama.

        initial=True: ihlal kümesi sıfırdan kurulur, tek tek bildirim yerine
        toplam sayıyı veren tek bir özet bildirim gönderilir. Hedefli
        kontroller başlamadan önce çağrılmalıdır.

        initial=False: tarama durumu doğrudan değiştirmez. Taramaya göre
        durumu değişecek görünen anahtarlar hedefli kontrole gönderilir
        (dispatch verilmezse sırayla recheck edilir). Tarama verisi eski
        olabilir, karar her zaman tutarlı okumayla verilir.
        """
        variants = self.catalog.list_variants(consistent=True)
        warehouses = [w.warehouse_id for w in self.catalog.list_warehouses(consistent=True)]

        if initial:
            breached = [
                (v.variant_id, wid)
                for v in variants
                for wid in warehouses
                if is_low(v, wid)
            ]
            self.state.replace_breached(breached)
            if breached:
                self.notifier.notify(
                    LOW_STOCK_TITLE,
                    f"{len(breached)} ürün minimum stok seviyesine ulaştı",
                )
            logger.info("Başlangıç stok taraması: %d düşük stok", len(breached))
            return breached

        candidates = self.sweep_candidates(variants, warehouses)
        if dispatch is not None:
            dispatch(candidates)
            return candidates

        for key in candidates:
            try:
                self.recheck(*key)
            except Exception:
                logger.exception("Stok kontrolü başarısız: %s/%s", *key)
        return candidates

    def sweep_candidates(
        self, variants: list[ProductVariant], warehouses: list[str]
    ) -> list[LowStockKey]:
        """Tarama ile ihlal kümesinin uyuşmadığı anahtarlar.

        Taramada görünmeyen varyantlara ait ihlaller de aday olur; recheck
        silinmiş veya arşivlenmiş varyantı kümeden düşer. Varyantı duran ama
        deposu silinmiş anahtarlar doğrudan düşülür.
        """
        breached = self.state.breached_keys()
        known_variants = {v.variant_id for v in variants}
        known_warehouses = set(warehouses)

        candidates = set()
        for variant in variants:
            for wid in warehouses:
                key = (variant.variant_id, wid)
                if is_low(variant, wid) != (key in breached):
                    candidates.add(key)

        for key in breached:
            variant_id, wid = key
            if variant_id not in known_variants:
                candidates.add(key)
            elif wid not in known_warehouses:
                self.state.clear_breached(key)
        return sorted(candidates)

    def _notify_breach(self, key: LowStockKey, variant: ProductVariant, quantity: int) -> None:
        try:
            body = self._describe(variant, key[1], quantity)
        except Exception:
            # Bildirim gönderilemediyse bir sonraki tetiklemede yeniden denenmeli
            self.state.clear_breached(key)
            raise
        self.notifier.notify(LOW_STOCK_TITLE, body)

    def _describe(self, variant: ProductVariant, warehouse_id: str, quantity: int) -> str:
        product = self.catalog.get_product(variant.product_id)
        warehouse = self.catalog.get_warehouse(warehouse_id)
        product_name = product.name if product else variant.product_id
        warehouse_name = warehouse.name if warehouse else warehouse_id
        return (
            f"{product_name} {variant.capacity} Amper, {warehouse_name} deposunda "
            f"minimum seviyeye ulaştı (kalan: {quantity})"
        )

    def breached(self) -> frozenset[LowStockKey]:
        return self.state.breached_keys()


def pair_from_entry(item: Optional[dict]) -> Optional[LowStockKey]:
    """Stok hareketi dokümanından etkilenen (varyant, depo) anahtarını çıkarır."""
    if not item:
        return None
    variant_id = item.get("product_variant_id")
    warehouse_id = item.get("warehouse_id")
    if not variant_id or not warehouse_id:
        return None
    return (variant_id, warehouse_id)
