"""Senet/çek işlemleri ve tedarikçi alacak hareketleri."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import date, datetime
from typing import Any, Optional

from battery_ledger.models.inventory import Bill, BillStatus
from battery_ledger.services.balance_manager import BalanceManager
from battery_ledger.services.base_service import BaseService
from battery_ledger.services.stock_entries import EntityNotFoundError, ValidationError
from battery_ledger.store.transaction import Transaction

logger = logging.getLogger(__name__)


def payment_status(amount: float, paid_amount: float) -> BillStatus:
    if paid_amount >= amount:
        return BillStatus.PAID
    if paid_amount > 0:
        return BillStatus.PARTIAL
    return BillStatus.UNPAID


def is_overdue(bill: Bill, today: Optional[date] = None) -> bool:
    """Vadesi geçmiş ve kapanmamış mı. Kayıtlı status alanından bağımsızdır."""
    today = today or date.today()
    return not bill.is_settled and bill.due_date.date() < today


class BillService(BaseService):
    """Senet kayıtları; ödemeler tedarikçi alacağına aynı transaction'da yansır."""

    def __init__(self, balance_manager: Optional[BalanceManager] = None, **kwargs: Any):
        super().__init__(service_name="BillService", **kwargs)
        self.balance_manager = balance_manager or BalanceManager(self.settings)

    @staticmethod
    def _key(bill_id: str) -> dict:
        return {Bill.KEY: bill_id}

    def _load(self, txn: Transaction, bill_id: str) -> Bill:
        item = txn.get(self.bills_table, self._key(bill_id))
        if item is None:
            raise EntityNotFoundError(f"Senet bulunamadı: {bill_id}")
        return Bill.from_item(item)

    def add_bill(self, bill: Bill) -> Bill:
        if bill.amount < 0:
            raise ValidationError(f"Senet tutarı negatif olamaz: {bill.amount}")
        if not bill.bill_id:
            bill = dataclasses.replace(bill, bill_id=str(uuid.uuid4()))

        def _write(txn: Transaction) -> None:
            txn.set(self.bills_table, self._key(bill.bill_id), bill.to_item())
            if bill.paid_amount:
                self.balance_manager.update_supplier_balance(
                    txn, bill.supplier_id, credit_delta=bill.paid_amount
                )

        self.run_transaction(_write)
        self.log_operation("bill_added", {"bill_id": bill.bill_id}, {"amount": bill.amount})
        return bill

    def record_payment(self, bill_id: str, payment_amount: float) -> Bill:
        """Ödemeyi ekler, durumu ödenen tutara göre belirler, tedarikçiyi alacaklandırır."""
        if payment_amount <= 0:
            raise ValidationError(f"Ödeme tutarı pozitif olmalı: {payment_amount}")

        def _pay(txn: Transaction) -> Bill:
            bill = self._load(txn, bill_id)
            paid_amount = bill.paid_amount + payment_amount
            status = payment_status(bill.amount, paid_amount)
            updates: dict = {"paid_amount": paid_amount, "status": status.value}
            paid_date = bill.paid_date
            if status == BillStatus.PAID:
                paid_date = datetime.utcnow()
                updates["paid_date"] = paid_date.isoformat()
            txn.update(self.bills_table, self._key(bill_id), updates)
            self.balance_manager.update_supplier_balance(
                txn, bill.supplier_id, credit_delta=payment_amount
            )
            return dataclasses.replace(bill, paid_amount=paid_amount, status=status, paid_date=paid_date)

        bill = self.run_transaction(_pay)
        self.log_operation(
            "bill_payment_recorded",
            {"bill_id": bill_id, "payment": payment_amount},
            {"paid_amount": bill.paid_amount, "status": bill.status.value},
        )
        return bill

    def update_bill_status(
        self, bill_id: str, status: BillStatus, paid_date: Optional[datetime] = None
    ) -> Bill:
        """Durumu çağıranın isteğiyle değiştirir (örn. OVERDUE işaretleme)."""
        def _update(txn: Transaction) -> Bill:
            bill = self._load(txn, bill_id)
            updates: dict = {"status": status.value}
            if paid_date:
                updates["paid_date"] = paid_date.isoformat()
            txn.update(self.bills_table, self._key(bill_id), updates)
            return dataclasses.replace(bill, status=status, paid_date=paid_date or bill.paid_date)

        bill = self.run_transaction(_update)
        self.log_operation("bill_status_updated", {"bill_id": bill_id}, {"status": status.value})
        return bill

    def delete_bill(self, bill_id: str) -> Bill:
        """Senedi siler, ödenmiş tutarı tedarikçi alacağından geri alır."""
        def _delete(txn: Transaction) -> Bill:
            bill = self._load(txn, bill_id)
            if bill.paid_amount:
                self.balance_manager.update_supplier_balance(
                    txn, bill.supplier_id, credit_delta=-bill.paid_amount
                )
            txn.delete(self.bills_table, self._key(bill_id))
            return bill

        bill = self.run_transaction(_delete)
        self.log_operation("bill_deleted", {"bill_id": bill_id}, {"reversed_credit": bill.paid_amount})
        return bill
