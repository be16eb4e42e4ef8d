"""Veri modeli testleri."""

from datetime import datetime

from battery_ledger.models.inventory import (
    TRANSFER_SUPPLIER,
    Bill,
    BillStatus,
    EntryStatus,
    ProductVariant,
    SessionUser,
    StockEntry,
    Supplier,
    UserRole,
)


class TestProductVariant:
    def test_capacity_must_be_positive(self):
        assert ProductVariant("V1", "P1", 0).validation_error() is not None
        assert ProductVariant("V1", "P1", 60).is_valid()

    def test_product_is_required(self):
        assert not ProductVariant("V1", " ", 60).is_valid()

    def test_stock_at_unknown_warehouse_is_zero(self):
        assert ProductVariant("V1", "P1", 60, stock_levels={"WH1": 4}).stock_at("WH9") == 0

    def test_item_round_trip_keeps_maps(self):
        variant = ProductVariant("V1", "P1", 60, stock_levels={"WH1": 4}, min_quantities={"WH1": 2})
        restored = ProductVariant.from_item(variant.to_item())
        assert restored == variant


class TestStockEntry:
    def test_net_quantity_subtracts_returns(self):
        entry = StockEntry("E1", "V1", "WH1", quantity=5, returned_quantity=2)
        assert entry.net_quantity == 3

    def test_transfer_detection(self):
        assert StockEntry("E1", "V1", "WH1", 1, supplier=TRANSFER_SUPPLIER).is_transfer
        assert not StockEntry("E1", "V1", "WH1", 1, supplier="Anadolu").is_transfer

    def test_from_item_defaults(self):
        entry = StockEntry.from_item({"entry_id": "E1", "status": "pending", "timestamp": "2026-01-02T03:04:05"})
        assert entry.status == EntryStatus.PENDING
        assert entry.quantity == 0
        assert entry.timestamp == datetime(2026, 1, 2, 3, 4, 5)


class TestBill:
    def test_settled_by_status_or_amount(self):
        assert Bill("B1", amount=100.0, status=BillStatus.PAID).is_settled
        assert Bill("B1", amount=100.0, paid_amount=100.0).is_settled
        assert not Bill("B1", amount=100.0, paid_amount=50.0, status=BillStatus.PARTIAL).is_settled

    def test_remaining_never_negative(self):
        assert Bill("B1", amount=100.0, paid_amount=120.0).remaining == 0.0


class TestSupplierAndUser:
    def test_balance_is_debit_minus_credit(self):
        assert Supplier("S1", total_debit=500.0, total_credit=200.0).balance == 300.0

    def test_admin_role(self):
        assert SessionUser("u1", role=UserRole.ADMIN).is_admin
        assert not SessionUser("u2").is_admin
