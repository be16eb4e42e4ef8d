from battery_ledger.models.inventory import (
    Bill,
    BillStatus,
    BillType,
    EntryStatus,
    LedgerOperation,
    Product,
    ProductVariant,
    SessionUser,
    StockEntry,
    Supplier,
    UserRole,
    Warehouse,
)

__all__ = [
    "Bill",
    "BillStatus",
    "BillType",
    "EntryStatus",
    "LedgerOperation",
    "Product",
    "ProductVariant",
    "SessionUser",
    "StockEntry",
    "Supplier",
    "UserRole",
    "Warehouse",
]
