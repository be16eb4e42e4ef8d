"""Tüm servisler için temel sınıf - DynamoDB istemcisi ve işlem kaydı."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from typing import Any, Callable, Optional, TypeVar

from battery_ledger.config import Settings
from battery_ledger.models.inventory import (
    Bill,
    LedgerOperation,
    Product,
    ProductVariant,
    StockEntry,
    Supplier,
    Warehouse,
)
from battery_ledger.store.clients import dynamodb_client as build_dynamodb_client
from battery_ledger.store.transaction import Transaction, run_transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Uzun yaşayan süreçte yalnızca son işlemler tutulur
OPERATION_LOG_SIZE = 1000


class BaseService:
    """DynamoDB tabanlı servis temel sınıfı."""

    def __init__(
        self,
        service_name: str,
        settings: Optional[Settings] = None,
        dynamodb_client: Optional[Any] = None,
    ):
        self.service_name = service_name
        self.settings = settings or Settings.from_env()

        # AWS istemcisi - dependency injection destekli
        self.dynamodb = dynamodb_client or build_dynamodb_client(self.settings)

        # Tablo referansları
        self.variants_table = self.settings.table_name(ProductVariant.TABLE)
        self.products_table = self.settings.table_name(Product.TABLE)
        self.warehouses_table = self.settings.table_name(Warehouse.TABLE)
        self.suppliers_table = self.settings.table_name(Supplier.TABLE)
        self.entries_table = self.settings.table_name(StockEntry.TABLE)
        self.bills_table = self.settings.table_name(Bill.TABLE)

        self._operations: deque[LedgerOperation] = deque(maxlen=OPERATION_LOG_SIZE)

        logger.info("Servis başlatıldı: %s", service_name)

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Ayarlardaki deneme sayısıyla transaction çalıştırır."""
        return run_transaction(
            self.dynamodb,
            fn,
            max_attempts=self.settings.txn_max_attempts,
            base_delay=self.settings.txn_base_delay,
        )

    def log_operation(self, operation_type: str, input_data: dict, output_data: dict) -> LedgerOperation:
        """Commit edilmiş bir defter işlemini kaydeder."""
        operation = LedgerOperation(
            operation_id=str(uuid.uuid4()),
            service_name=self.service_name,
            operation_type=operation_type,
            input_data=input_data,
            output_data=output_data,
        )
        self._operations.append(operation)
        logger.info("[%s] %s: %s -> %s", self.service_name, operation_type, input_data, output_data)
        return operation

    def get_operations(self) -> list[LedgerOperation]:
        return list(self._operations)
