"""Bakiye defteri güncelleyicisi.

Ürün varyantlarının depo bazlı stok seviyelerine ve tedarikçilerin borç/alacak
toplamlarına delta uygular. Her çağrı verilen transaction içinde oku-hesapla-yaz
yapar; tekrar deneme yapmaz, hatalar çevreleyen transaction'ı iptal eder.
"""

from __future__ import annotations

import logging
from typing import Optional

from battery_ledger.config import Settings
from battery_ledger.models.inventory import ProductVariant, Supplier
from battery_ledger.store.transaction import Transaction

logger = logging.getLogger(__name__)


class BalanceManager:
    """Transaction kapsamlı stok ve tedarikçi bakiye güncellemeleri."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings.from_env()
        self.variants_table = settings.table_name(ProductVariant.TABLE)
        self.suppliers_table = settings.table_name(Supplier.TABLE)

    def update_variant_stock(
        self,
        txn: Transaction,
        variant_id: str,
        warehouse_id: str,
        delta: int,
    ) -> Optional[int]:
        """Varyantın depo stokuna delta ekler ve yeni seviyeyi döndürür.

        - variant_id boşsa veya varyant yoksa sessizce hiçbir şey yapmaz (None)
        - Depo anahtarı yoksa mevcut stok 0 kabul edilir
        - Alt sınır yoktur, negatif stok yazılabilir
        """
        if not variant_id:
            return None

        key = {ProductVariant.KEY: variant_id}
        variant = txn.get(self.variants_table, key)
        if variant is None:
            logger.debug("Varyant bulunamadı, stok güncellenmedi: %s", variant_id)
            return None

        stock_levels = {k: int(v) for k, v in (variant.get("stock_levels") or {}).items()}
        new_quantity = stock_levels.get(warehouse_id, 0) + int(delta)
        stock_levels[warehouse_id] = new_quantity
        txn.update(self.variants_table, key, {"stock_levels": stock_levels})
        return new_quantity

    def update_supplier_balance(
        self,
        txn: Transaction,
        supplier_id: str,
        debit_delta: float = 0.0,
        credit_delta: float = 0.0,
    ) -> None:
        """Tedarikçinin borç/alacak toplamlarına sadece sıfır olmayan deltaları ekler."""
        if not supplier_id:
            return
        if debit_delta == 0 and credit_delta == 0:
            return

        key = {Supplier.KEY: supplier_id}
        supplier = txn.get(self.suppliers_table, key)
        if supplier is None:
            logger.debug("Tedarikçi bulunamadı, bakiye güncellenmedi: %s", supplier_id)
            return

        updates = {}
        if debit_delta != 0:
            updates["total_debit"] = float(supplier.get("total_debit", 0.0)) + debit_delta
        if credit_delta != 0:
            updates["total_credit"] = float(supplier.get("total_credit", 0.0)) + credit_delta
        txn.update(self.suppliers_table, key, updates)
