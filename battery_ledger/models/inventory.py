"""Akü satış/stok yönetimi veri modelleri."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Optional

TRANSFER_SUPPLIER = "Transfer"


class EntryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class BillStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class BillType(str, Enum):
    CHECK = "CHECK"
    BILL = "BILL"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class UserRole(str, Enum):
    ADMIN = "admin"
    SELLER = "seller"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _int_map(value: Optional[dict]) -> dict[str, int]:
    return {str(k): int(v) for k, v in (value or {}).items()}


@dataclass
class Warehouse:
    TABLE: ClassVar[str] = "warehouses"
    KEY: ClassVar[str] = "warehouse_id"

    warehouse_id: str
    name: str = ""
    location: str = ""

    @classmethod
    def from_item(cls, item: dict) -> "Warehouse":
        return cls(
            warehouse_id=item["warehouse_id"],
            name=item.get("name", ""),
            location=item.get("location", ""),
        )

    def to_item(self) -> dict:
        return {"warehouse_id": self.warehouse_id, "name": self.name, "location": self.location}


@dataclass
class Product:
    TABLE: ClassVar[str] = "products"
    KEY: ClassVar[str] = "product_id"

    product_id: str
    name: str = ""
    specification: str = ""
    archived: bool = False

    @classmethod
    def from_item(cls, item: dict) -> "Product":
        return cls(
            product_id=item["product_id"],
            name=item.get("name", ""),
            specification=item.get("specification", ""),
            archived=bool(item.get("archived", False)),
        )

    def to_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "specification": self.specification,
            "archived": self.archived,
        }


@dataclass
class ProductVariant:
    """Bir ürünün belirli bir kapasitesi (amper). Silinmez, sadece arşivlenir."""

    TABLE: ClassVar[str] = "product_variants"
    KEY: ClassVar[str] = "variant_id"

    variant_id: str
    product_id: str
    capacity: int
    selling_price: float = 0.0
    barcode: str = ""
    stock_levels: dict[str, int] = field(default_factory=dict)
    min_quantity: int = 0
    min_quantities: dict[str, int] = field(default_factory=dict)
    specification: str = ""
    archived: bool = False

    def is_valid(self) -> bool:
        return self.validation_error() is None

    def validation_error(self) -> Optional[str]:
        if not self.product_id.strip():
            return "Ana ürün kimliği zorunludur"
        if self.capacity <= 0:
            return "Kapasite sıfırdan büyük olmalıdır"
        return None

    def stock_at(self, warehouse_id: str) -> int:
        return self.stock_levels.get(warehouse_id, 0)

    def threshold_for(self, warehouse_id: str) -> int:
        """Depo bazlı eşik tanımlıysa onu, değilse genel eşiği döndürür."""
        if warehouse_id in self.min_quantities:
            return self.min_quantities[warehouse_id]
        return self.min_quantity

    @classmethod
    def from_item(cls, item: dict) -> "ProductVariant":
        return cls(
            variant_id=item["variant_id"],
            product_id=item.get("product_id", ""),
            capacity=int(item.get("capacity", 0)),
            selling_price=float(item.get("selling_price", 0.0)),
            barcode=item.get("barcode", ""),
            stock_levels=_int_map(item.get("stock_levels")),
            min_quantity=int(item.get("min_quantity", 0)),
            min_quantities=_int_map(item.get("min_quantities")),
            specification=item.get("specification", ""),
            archived=bool(item.get("archived", False)),
        )

    def to_item(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "capacity": self.capacity,
            "selling_price": self.selling_price,
            "barcode": self.barcode,
            "stock_levels": dict(self.stock_levels),
            "min_quantity": self.min_quantity,
            "min_quantities": dict(self.min_quantities),
            "specification": self.specification,
            "archived": self.archived,
        }


@dataclass
class Supplier:
    TABLE: ClassVar[str] = "suppliers"
    KEY: ClassVar[str] = "supplier_id"

    supplier_id: str
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    yearly_target: float = 0.0
    total_debit: float = 0.0
    total_credit: float = 0.0
    reset_date: Optional[datetime] = None

    @property
    def balance(self) -> float:
        """Tedarikçiye kalan borç (alımlar - ödemeler)."""
        return self.total_debit - self.total_credit

    @classmethod
    def from_item(cls, item: dict) -> "Supplier":
        return cls(
            supplier_id=item["supplier_id"],
            name=item.get("name", ""),
            phone=item.get("phone", ""),
            email=item.get("email", ""),
            address=item.get("address", ""),
            yearly_target=float(item.get("yearly_target", 0.0)),
            total_debit=float(item.get("total_debit", 0.0)),
            total_credit=float(item.get("total_credit", 0.0)),
            reset_date=_parse_dt(item.get("reset_date")),
        )

    def to_item(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "yearly_target": self.yearly_target,
            "total_debit": self.total_debit,
            "total_credit": self.total_credit,
            "reset_date": _format_dt(self.reset_date),
        }


@dataclass
class StockEntry:
    """Stok hareketi. quantity işaretlidir: giriş/transfer-in pozitif, çıkış negatif."""

    TABLE: ClassVar[str] = "stock_entries"
    KEY: ClassVar[str] = "entry_id"

    entry_id: str
    product_variant_id: str
    warehouse_id: str
    quantity: int
    cost_price: float = 0.0
    total_cost: float = 0.0
    supplier_id: str = ""
    supplier: str = ""
    product_name: str = ""
    capacity: int = 0
    status: EntryStatus = EntryStatus.APPROVED
    created_by: str = ""
    created_by_user_name: str = ""
    returned_quantity: int = 0
    return_date: Optional[datetime] = None
    invoice_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def net_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    @property
    def is_approved(self) -> bool:
        return self.status == EntryStatus.APPROVED

    @property
    def is_transfer(self) -> bool:
        return self.supplier == TRANSFER_SUPPLIER

    @classmethod
    def from_item(cls, item: dict) -> "StockEntry":
        return cls(
            entry_id=item["entry_id"],
            product_variant_id=item.get("product_variant_id", ""),
            warehouse_id=item.get("warehouse_id", ""),
            quantity=int(item.get("quantity", 0)),
            cost_price=float(item.get("cost_price", 0.0)),
            total_cost=float(item.get("total_cost", 0.0)),
            supplier_id=item.get("supplier_id", ""),
            supplier=item.get("supplier", ""),
            product_name=item.get("product_name", ""),
            capacity=int(item.get("capacity", 0)),
            status=EntryStatus(item.get("status", EntryStatus.APPROVED.value)),
            created_by=item.get("created_by", ""),
            created_by_user_name=item.get("created_by_user_name", ""),
            returned_quantity=int(item.get("returned_quantity", 0)),
            return_date=_parse_dt(item.get("return_date")),
            invoice_id=item.get("invoice_id"),
            timestamp=_parse_dt(item.get("timestamp")) or datetime.utcnow(),
        )

    def to_item(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "product_variant_id": self.product_variant_id,
            "warehouse_id": self.warehouse_id,
            # VariantWarehouseIndex GSI anahtarı
            "variant_warehouse": f"{self.product_variant_id}#{self.warehouse_id}",
            "quantity": self.quantity,
            "cost_price": self.cost_price,
            "total_cost": self.total_cost,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier,
            "product_name": self.product_name,
            "capacity": self.capacity,
            "status": self.status.value,
            "created_by": self.created_by,
            "created_by_user_name": self.created_by_user_name,
            "returned_quantity": self.returned_quantity,
            "return_date": _format_dt(self.return_date),
            "invoice_id": self.invoice_id,
            "timestamp": _format_dt(self.timestamp),
        }


@dataclass
class Bill:
    """Senet/çek kaydı. status çağıran tarafından yönetilir, vade tarihinden türetilmez."""

    TABLE: ClassVar[str] = "bills"
    KEY: ClassVar[str] = "bill_id"

    bill_id: str
    description: str = ""
    amount: float = 0.0
    paid_amount: float = 0.0
    due_date: datetime = field(default_factory=datetime.utcnow)
    status: BillStatus = BillStatus.UNPAID
    bill_type: BillType = BillType.CHECK
    supplier_id: str = ""
    paid_date: Optional[datetime] = None
    reference_number: str = ""
    related_entry_id: Optional[str] = None
    notes: str = ""

    @property
    def remaining(self) -> float:
        return max(0.0, self.amount - self.paid_amount)

    @property
    def is_settled(self) -> bool:
        if self.status == BillStatus.PAID:
            return True
        return self.amount > 0 and self.paid_amount >= self.amount

    @classmethod
    def from_item(cls, item: dict) -> "Bill":
        return cls(
            bill_id=item["bill_id"],
            description=item.get("description", ""),
            amount=float(item.get("amount", 0.0)),
            paid_amount=float(item.get("paid_amount", 0.0)),
            due_date=_parse_dt(item.get("due_date")) or datetime.utcnow(),
            status=BillStatus(item.get("status", BillStatus.UNPAID.value)),
            bill_type=BillType(item.get("bill_type", BillType.CHECK.value)),
            supplier_id=item.get("supplier_id", ""),
            paid_date=_parse_dt(item.get("paid_date")),
            reference_number=item.get("reference_number", ""),
            related_entry_id=item.get("related_entry_id"),
            notes=item.get("notes", ""),
        )

    def to_item(self) -> dict:
        return {
            "bill_id": self.bill_id,
            "description": self.description,
            "amount": self.amount,
            "paid_amount": self.paid_amount,
            "due_date": _format_dt(self.due_date),
            "status": self.status.value,
            "bill_type": self.bill_type.value,
            "supplier_id": self.supplier_id,
            "paid_date": _format_dt(self.paid_date),
            "reference_number": self.reference_number,
            "related_entry_id": self.related_entry_id,
            "notes": self.notes,
        }


@dataclass
class SessionUser:
    user_id: str
    display_name: str = ""
    role: UserRole = UserRole.SELLER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass
class LedgerOperation:
    operation_id: str
    service_name: str
    operation_type: str
    input_data: dict
    output_data: dict
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
