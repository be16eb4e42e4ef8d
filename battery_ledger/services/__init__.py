from battery_ledger.services.balance_manager import BalanceManager
from battery_ledger.services.base_service import BaseService
from battery_ledger.services.bills import BillService
from battery_ledger.services.catalog import InventoryCatalog
from battery_ledger.services.stock_entries import (
    EntityNotFoundError,
    StockEntryService,
    ValidationError,
)

__all__ = [
    "BalanceManager",
    "BaseService",
    "BillService",
    "EntityNotFoundError",
    "InventoryCatalog",
    "StockEntryService",
    "ValidationError",
]
