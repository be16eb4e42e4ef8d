"""Stok hareketleri - giriş, transfer, onay, iade ve düzeltme.

Her iş operasyonu tek bir transaction içinde hem stok hareketi dokümanını
hem de BalanceManager üzerinden varyant stoku ve tedarikçi borcunu günceller:
ya hepsi yazılır ya hiçbiri.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from battery_ledger.models.inventory import (
    TRANSFER_SUPPLIER,
    EntryStatus,
    ProductVariant,
    StockEntry,
)
from battery_ledger.services.balance_manager import BalanceManager
from battery_ledger.services.base_service import BaseService
from battery_ledger.store.serialization import deserialize_item, serialize_item
from battery_ledger.store.transaction import Transaction

logger = logging.getLogger(__name__)

VARIANT_WAREHOUSE_INDEX = "VariantWarehouseIndex"
STATUS_INDEX = "StatusIndex"


class ValidationError(Exception):
    """İş kuralı validasyon hatası."""
    pass


class EntityNotFoundError(ValidationError):
    """İstenen doküman bulunamadı."""
    pass


class StockEntryService(BaseService):
    """Stok hareketlerini ve bunların defter etkilerini yöneten servis."""

    def __init__(self, balance_manager: Optional[BalanceManager] = None, **kwargs: Any):
        super().__init__(service_name="StockEntryService", **kwargs)
        self.balance_manager = balance_manager or BalanceManager(self.settings)

    # --- Yardımcılar ---

    @staticmethod
    def _key(entry_id: str) -> dict:
        return {StockEntry.KEY: entry_id}

    def _apply_impact(self, txn: Transaction, entry: StockEntry, sign: int) -> None:
        """Onaylı hareketin stok ve tedarikçi etkisini uygular (sign=-1 geri alır)."""
        if not entry.is_approved:
            return
        self.balance_manager.update_variant_stock(
            txn, entry.product_variant_id, entry.warehouse_id, sign * entry.net_quantity
        )
        if entry.supplier_id:
            self.balance_manager.update_supplier_balance(
                txn, entry.supplier_id, debit_delta=sign * entry.total_cost
            )

    def _prepare(self, entry: StockEntry) -> StockEntry:
        if not entry.product_variant_id:
            raise ValidationError("Ürün varyantı zorunludur")
        if not entry.warehouse_id:
            raise ValidationError("Depo zorunludur")
        if not entry.entry_id:
            entry = dataclasses.replace(entry, entry_id=str(uuid.uuid4()))
        return entry

    def _load(self, txn: Transaction, entry_id: str) -> StockEntry:
        item = txn.get(self.entries_table, self._key(entry_id))
        if item is None:
            raise EntityNotFoundError(f"Stok hareketi bulunamadı: {entry_id}")
        return StockEntry.from_item(item)

    # --- Stok girişi ---

    def add_stock_entry(self, entry: StockEntry) -> StockEntry:
        """Hareketi kaydeder; onaylıysa stok ve tedarikçi borcu aynı transaction'da güncellenir."""
        return self.add_stock_entries([entry])[0]

    def add_stock_entries(self, entries: list[StockEntry]) -> list[StockEntry]:
        """Birden fazla hareketi tek transaction'da kaydeder."""
        prepared = [self._prepare(e) for e in entries]

        def _write(txn: Transaction) -> None:
            for entry in prepared:
                txn.set(self.entries_table, self._key(entry.entry_id), entry.to_item())
                self._apply_impact(txn, entry, +1)

        self.run_transaction(_write)
        for entry in prepared:
            self.log_operation(
                "stock_entry_added",
                {"variant_id": entry.product_variant_id, "warehouse_id": entry.warehouse_id},
                {"entry_id": entry.entry_id, "quantity": entry.net_quantity, "status": entry.status.value},
            )
        return prepared

    # --- Depolar arası transfer ---

    def transfer_stock(
        self,
        variant_id: str,
        source_warehouse_id: str,
        destination_warehouse_id: str,
        quantity: int,
        product_name: str = "",
        capacity: int = 0,
        status: EntryStatus = EntryStatus.APPROVED,
        created_by: str = "",
        created_by_user_name: str = "",
    ) -> tuple[StockEntry, StockEntry]:
        """Kaynak depoya negatif, hedef depoya pozitif hareket yazar.

        Onaylı transferde iki stok deltası aynı transaction'da uygulanır,
        toplam stok korunur. Kaynak stok yeterliliği kontrol edilmez.
        """
        if quantity <= 0:
            raise ValidationError(f"Transfer miktarı pozitif olmalı: {quantity}")
        if source_warehouse_id == destination_warehouse_id:
            raise ValidationError("Kaynak ve hedef depo aynı olamaz")
        if not variant_id:
            raise ValidationError("Ürün varyantı zorunludur")

        timestamp = datetime.utcnow()
        common = dict(
            product_variant_id=variant_id,
            product_name=product_name,
            capacity=capacity,
            supplier=TRANSFER_SUPPLIER,
            status=status,
            created_by=created_by,
            created_by_user_name=created_by_user_name,
            timestamp=timestamp,
        )
        outgoing = StockEntry(
            entry_id=str(uuid.uuid4()), warehouse_id=source_warehouse_id, quantity=-quantity, **common
        )
        incoming = StockEntry(
            entry_id=str(uuid.uuid4()), warehouse_id=destination_warehouse_id, quantity=quantity, **common
        )

        def _write(txn: Transaction) -> None:
            for entry in (outgoing, incoming):
                txn.set(self.entries_table, self._key(entry.entry_id), entry.to_item())
                self._apply_impact(txn, entry, +1)

        self.run_transaction(_write)
        self.log_operation(
            "stock_transferred",
            {"variant_id": variant_id, "source": source_warehouse_id, "target": destination_warehouse_id},
            {"quantity": quantity, "status": status.value},
        )
        return outgoing, incoming

    # --- Onay ---

    def approve_entry(self, entry_id: str) -> StockEntry:
        """Bekleyen hareketi onaylar; stok ve tedarikçi borcu aynı transaction'da uygulanır.

        Zaten onaylı hareket için hiçbir şey yazılmaz.
        """
        def _approve(txn: Transaction) -> tuple[StockEntry, bool]:
            entry = self._load(txn, entry_id)
            if entry.is_approved:
                return entry, False
            entry = dataclasses.replace(entry, status=EntryStatus.APPROVED)
            txn.update(self.entries_table, self._key(entry_id), {"status": EntryStatus.APPROVED.value})
            self._apply_impact(txn, entry, +1)
            return entry, True

        entry, changed = self.run_transaction(_approve)
        if changed:
            self.log_operation(
                "stock_entry_approved",
                {"entry_id": entry_id},
                {"variant_id": entry.product_variant_id, "warehouse_id": entry.warehouse_id,
                 "quantity": entry.net_quantity},
            )
        return entry

    # --- Düzeltme / silme ---

    def update_stock_entry(self, entry: StockEntry) -> StockEntry:
        """Eski hareketin etkisini geri alır, yenisini uygular."""
        entry = self._prepare(entry)

        def _update(txn: Transaction) -> StockEntry:
            old = self._load(txn, entry.entry_id)
            self._apply_impact(txn, old, -1)
            txn.set(self.entries_table, self._key(entry.entry_id), entry.to_item())
            self._apply_impact(txn, entry, +1)
            return old

        old = self.run_transaction(_update)
        self.log_operation(
            "stock_entry_updated",
            {"entry_id": entry.entry_id, "old_quantity": old.net_quantity},
            {"new_quantity": entry.net_quantity, "status": entry.status.value},
        )
        return entry

    def delete_stock_entry(self, entry_id: str) -> StockEntry:
        def _delete(txn: Transaction) -> StockEntry:
            entry = self._load(txn, entry_id)
            self._apply_impact(txn, entry, -1)
            txn.delete(self.entries_table, self._key(entry_id))
            return entry

        entry = self.run_transaction(_delete)
        self.log_operation("stock_entry_deleted", {"entry_id": entry_id}, {"reversed": entry.net_quantity})
        return entry

    # --- İade ---

    def record_return(
        self,
        entry_id: str,
        returned_quantity: int,
        return_date: Optional[datetime] = None,
    ) -> StockEntry:
        """Hareketin iade miktarını günceller.

        Onaylı hareketlerde iade farkı kadar stok geri alınır. İadeler stoku
        sadece bu çağrı üzerinden etkiler. Tedarikçi borcu değişmez.
        """
        def _return(txn: Transaction) -> StockEntry:
            entry = self._load(txn, entry_id)
            low, high = sorted((0, entry.quantity))
            if not low <= returned_quantity <= high:
                raise ValidationError(
                    f"Geçersiz iade miktarı: {returned_quantity} (hareket miktarı {entry.quantity})"
                )
            difference = returned_quantity - entry.returned_quantity
            updated = dataclasses.replace(
                entry,
                returned_quantity=returned_quantity,
                return_date=return_date or datetime.utcnow(),
            )
            txn.update(
                self.entries_table,
                self._key(entry_id),
                {"returned_quantity": returned_quantity, "return_date": updated.return_date.isoformat()},
            )
            if entry.is_approved and difference:
                self.balance_manager.update_variant_stock(
                    txn, entry.product_variant_id, entry.warehouse_id, -difference
                )
            return updated

        entry = self.run_transaction(_return)
        self.log_operation(
            "stock_entry_returned",
            {"entry_id": entry_id},
            {"returned_quantity": returned_quantity, "net_quantity": entry.net_quantity},
        )
        return entry

    # --- Sorgular ---

    def get_stock_entry(self, entry_id: str) -> Optional[StockEntry]:
        response = self.dynamodb.get_item(
            TableName=self.entries_table, Key=serialize_item(self._key(entry_id)), ConsistentRead=True
        )
        item = deserialize_item(response.get("Item"))
        return StockEntry.from_item(item) if item else None

    def list_pair_entries(self, variant_id: str, warehouse_id: str) -> list[StockEntry]:
        """Bir varyant-depo çiftinin tüm hareketleri (VariantWarehouseIndex GSI)."""
        entries: list[StockEntry] = []
        kwargs: dict = {
            "TableName": self.entries_table,
            "IndexName": VARIANT_WAREHOUSE_INDEX,
            "KeyConditionExpression": "#vw = :vw",
            "ExpressionAttributeNames": {"#vw": "variant_warehouse"},
            "ExpressionAttributeValues": {":vw": {"S": f"{variant_id}#{warehouse_id}"}},
        }
        while True:
            response = self.dynamodb.query(**kwargs)
            entries.extend(StockEntry.from_item(deserialize_item(i)) for i in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return entries
            kwargs["ExclusiveStartKey"] = last_key

    def list_pending_entries(self, limit: int = 50) -> list[StockEntry]:
        """Onay bekleyen hareketler, en yeni önce (StatusIndex GSI)."""
        response = self.dynamodb.query(
            TableName=self.entries_table,
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#s = :s",
            ExpressionAttributeNames={"#s": "status"},
            ExpressionAttributeValues={":s": {"S": EntryStatus.PENDING.value}},
            ScanIndexForward=False,
            Limit=limit,
        )
        return [StockEntry.from_item(deserialize_item(i)) for i in response.get("Items", [])]

    def pair_ledger_quantity(self, variant_id: str, warehouse_id: str) -> int:
        """Onaylı hareketlerin net miktar toplamı."""
        return sum(
            e.net_quantity for e in self.list_pair_entries(variant_id, warehouse_id) if e.is_approved
        )

    def verify_stock_levels(self, variant_id: str) -> dict:
        """Varyant üzerindeki stok sayaçlarını hareket defteriyle karşılaştırır."""
        response = self.dynamodb.get_item(
            TableName=self.variants_table,
            Key=serialize_item({ProductVariant.KEY: variant_id}),
            ConsistentRead=True,
        )
        item = deserialize_item(response.get("Item"))
        if item is None:
            raise EntityNotFoundError(f"Varyant bulunamadı: {variant_id}")
        variant = ProductVariant.from_item(item)

        discrepancies = []
        details: dict[str, dict] = {}
        for warehouse_id, actual in sorted(variant.stock_levels.items()):
            expected = self.pair_ledger_quantity(variant_id, warehouse_id)
            details[warehouse_id] = {"expected": expected, "actual": actual, "match": expected == actual}
            if expected != actual:
                discrepancies.append({
                    "warehouse_id": warehouse_id,
                    "expected": expected,
                    "actual": actual,
                    "difference": actual - expected,
                })

        if discrepancies:
            logger.warning("Stok sapması tespit edildi: %s %s", variant_id, discrepancies)

        return {
            "variant_id": variant_id,
            "verification_date": datetime.utcnow().isoformat(),
            "warehouses_checked": len(details),
            "discrepancies_found": len(discrepancies),
            "discrepancies": discrepancies,
            "all_valid": not discrepancies,
            "details": details,
        }
