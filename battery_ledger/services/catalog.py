"""Katalog okumaları: varyant, ürün, depo, tedarikçi, senet."""

from __future__ import annotations

import logging
from typing import Any, Optional

from battery_ledger.models.inventory import (
    Bill,
    Product,
    ProductVariant,
    Supplier,
    Warehouse,
)
from battery_ledger.services.base_service import BaseService
from battery_ledger.store.serialization import deserialize_item, serialize_item

logger = logging.getLogger(__name__)


class InventoryCatalog(BaseService):
    """Dokümanları model nesnelerine çeviren salt okunur erişim katmanı."""

    def __init__(self, **kwargs: Any):
        super().__init__(service_name="InventoryCatalog", **kwargs)

    def _get(self, table: str, key: dict, consistent: bool = False) -> Optional[dict]:
        response = self.dynamodb.get_item(
            TableName=table,
            Key=serialize_item(key),
            ConsistentRead=consistent,
        )
        return deserialize_item(response.get("Item"))

    def _scan(self, table: str, consistent: bool = False) -> list[dict]:
        items: list[dict] = []
        kwargs: dict = {"TableName": table, "ConsistentRead": consistent}
        while True:
            response = self.dynamodb.scan(**kwargs)
            items.extend(deserialize_item(i) for i in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def get_variant(self, variant_id: str, consistent: bool = False) -> Optional[ProductVariant]:
        """consistent=True son commit edilen yazmayı garanti eder."""
        item = self._get(self.variants_table, {ProductVariant.KEY: variant_id}, consistent)
        return ProductVariant.from_item(item) if item else None

    def get_product(self, product_id: str) -> Optional[Product]:
        item = self._get(self.products_table, {Product.KEY: product_id})
        return Product.from_item(item) if item else None

    def get_warehouse(self, warehouse_id: str) -> Optional[Warehouse]:
        item = self._get(self.warehouses_table, {Warehouse.KEY: warehouse_id})
        return Warehouse.from_item(item) if item else None

    def get_supplier(self, supplier_id: str, consistent: bool = False) -> Optional[Supplier]:
        item = self._get(self.suppliers_table, {Supplier.KEY: supplier_id}, consistent)
        return Supplier.from_item(item) if item else None

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        item = self._get(self.bills_table, {Bill.KEY: bill_id})
        return Bill.from_item(item) if item else None

    def list_variants(
        self, include_archived: bool = False, consistent: bool = False
    ) -> list[ProductVariant]:
        items = self._scan(self.variants_table, consistent)
        variants = [ProductVariant.from_item(i) for i in items]
        if include_archived:
            return variants
        return [v for v in variants if not v.archived]

    def list_products(self) -> list[Product]:
        return [Product.from_item(i) for i in self._scan(self.products_table)]

    def list_warehouses(self, consistent: bool = False) -> list[Warehouse]:
        return [Warehouse.from_item(i) for i in self._scan(self.warehouses_table, consistent)]

    def list_bills(self, consistent: bool = False) -> list[Bill]:
        return [Bill.from_item(i) for i in self._scan(self.bills_table, consistent)]
