"""DynamoDB üzerinde iyimser eşzamanlılık (optimistic concurrency) ile transaction.

Her doküman bir `doc_version` sayacı taşır. Transaction içindeki okumalar
strongly consistent yapılır ve okunan versiyon kaydedilir; commit sırasında
tüm yazmalar tek bir TransactWriteItems çağrısında, okunan versiyona koşullu
olarak gönderilir. Araya başka bir yazıcı girdiyse koşul tutmaz, tüm işlem
iptal edilir ve `run_transaction` işlemi baştan tekrar dener.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from battery_ledger.store.serialization import deserialize_item, serialize_item, serialize_value

logger = logging.getLogger(__name__)

VERSION_ATTR = "doc_version"

_CONFLICT_CODES = {"ConditionalCheckFailed", "TransactionConflict"}

T = TypeVar("T")


class TransactionConflictError(Exception):
    """Okunan versiyon commit anında geçerliliğini yitirdi."""
    pass


class TransactionAbortedError(Exception):
    """Tekrar deneme hakkı tükendi."""
    pass


class DocumentExistsError(Exception):
    """Okunmadan yazılan yeni doküman zaten mevcut. Tekrar denemek sonucu değiştirmez."""

    def __init__(self, table: str, key: dict):
        super().__init__(f"Doküman zaten mevcut: {table} {key}")
        self.table = table
        self.key = key


@dataclass
class _Document:
    table: str
    key: dict
    read: bool
    exists: bool
    version: Optional[int]
    data: Optional[dict]
    op: Optional[str] = None
    changed: dict = field(default_factory=dict)

    @property
    def key_attr(self) -> str:
        return next(iter(self.key))


class Transaction:
    """Tek bir deneme boyunca okuma/yazma durumunu tutar."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self._docs: dict[tuple, _Document] = {}
        self._committed = False

    @staticmethod
    def _doc_id(table: str, key: dict) -> tuple:
        return (table, tuple(sorted(key.items())))

    def get(self, table: str, key: dict) -> Optional[dict]:
        """Dokümanı okur. Aynı transaction içindeki sonraki okumalar staged hali görür."""
        doc_id = self._doc_id(table, key)
        doc = self._docs.get(doc_id)
        if doc is None:
            response = self._client.get_item(
                TableName=table,
                Key=serialize_item(key),
                ConsistentRead=True,
            )
            data = deserialize_item(response.get("Item"))
            doc = _Document(
                table=table,
                key=dict(key),
                read=True,
                exists=data is not None,
                version=data.get(VERSION_ATTR) if data else None,
                data=data,
            )
            self._docs[doc_id] = doc
        return copy.deepcopy(doc.data) if doc.data is not None else None

    def update(self, table: str, key: dict, fields: dict) -> None:
        """Daha önce okunmuş ve mevcut bir dokümanın alanlarını günceller."""
        doc = self._docs.get(self._doc_id(table, key))
        if doc is None or doc.data is None:
            raise ValueError(f"Güncellenecek doküman okunmamış veya mevcut değil: {table} {key}")
        doc.data.update(copy.deepcopy(fields))
        doc.changed.update(copy.deepcopy(fields))
        if doc.op is None:
            doc.op = "update"

    def set(self, table: str, key: dict, item: dict) -> None:
        """Dokümanı tamamen yazar. Okunmamış doküman yeni kayıt olarak oluşturulur."""
        doc_id = self._doc_id(table, key)
        doc = self._docs.get(doc_id)
        if doc is None:
            doc = _Document(table=table, key=dict(key), read=False, exists=False, version=None, data=None)
            self._docs[doc_id] = doc
        doc.data = copy.deepcopy({**item, **key})
        doc.op = "put"

    def delete(self, table: str, key: dict) -> None:
        doc_id = self._doc_id(table, key)
        doc = self._docs.get(doc_id)
        if doc is None:
            doc = _Document(table=table, key=dict(key), read=False, exists=False, version=None, data=None)
            self._docs[doc_id] = doc
        doc.data = None
        doc.op = "delete"

    @property
    def has_writes(self) -> bool:
        return any(doc.op for doc in self._docs.values())

    # --- commit ---

    def _condition(self, doc: _Document) -> tuple[str, dict, dict]:
        if not doc.read or not doc.exists:
            return "attribute_not_exists(#pk)", {"#pk": doc.key_attr}, {}
        if doc.version is None:
            return "attribute_not_exists(#ver)", {"#ver": VERSION_ATTR}, {}
        return "#ver = :ver", {"#ver": VERSION_ATTR}, {":ver": serialize_value(doc.version)}

    def _build_update(self, doc: _Document) -> dict:
        condition, names, values = self._condition(doc)
        names = {**names, "#ver": VERSION_ATTR}
        values = {**values, ":next": serialize_value((doc.version or 0) + 1)}
        assignments = []
        for i, (name, value) in enumerate(doc.changed.items()):
            names[f"#f{i}"] = name
            values[f":f{i}"] = serialize_value(value)
            assignments.append(f"#f{i} = :f{i}")
        assignments.append("#ver = :next")
        return {
            "Update": {
                "TableName": doc.table,
                "Key": serialize_item(doc.key),
                "UpdateExpression": "SET " + ", ".join(assignments),
                "ConditionExpression": condition,
                "ExpressionAttributeNames": names,
                "ExpressionAttributeValues": values,
            }
        }

    def _build_put(self, doc: _Document) -> dict:
        condition, names, values = self._condition(doc)
        item = {**doc.data, VERSION_ATTR: (doc.version or 0) + 1}
        request = {
            "TableName": doc.table,
            "Item": serialize_item(item),
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
        }
        if values:
            request["ExpressionAttributeValues"] = values
        return {"Put": request}

    def _build_delete(self, doc: _Document) -> dict:
        request: dict = {"TableName": doc.table, "Key": serialize_item(doc.key)}
        if doc.read and doc.exists:
            condition, names, values = self._condition(doc)
            request["ConditionExpression"] = condition
            request["ExpressionAttributeNames"] = names
            if values:
                request["ExpressionAttributeValues"] = values
        return {"Delete": request}

    def _build_check(self, doc: _Document) -> dict:
        condition, names, values = self._condition(doc)
        request = {
            "TableName": doc.table,
            "Key": serialize_item(doc.key),
            "ConditionExpression": condition,
            "ExpressionAttributeNames": names,
        }
        if values:
            request["ExpressionAttributeValues"] = values
        return {"ConditionCheck": request}

    def commit(self) -> None:
        """Staged yazmaları atomik olarak gönderir. Yazma yoksa store çağrılmaz."""
        if self._committed:
            raise RuntimeError("Transaction zaten commit edildi")
        self._committed = True

        writes: list[tuple[_Document, dict]] = []
        checks: list[tuple[_Document, dict]] = []
        for doc in self._docs.values():
            if doc.op == "update":
                writes.append((doc, self._build_update(doc)))
            elif doc.op == "put":
                writes.append((doc, self._build_put(doc)))
            elif doc.op == "delete":
                if doc.read and not doc.exists:
                    checks.append((doc, self._build_check(doc)))
                else:
                    writes.append((doc, self._build_delete(doc)))
            elif doc.read:
                # Sadece okunan dokümanlar da commit anında değişmemiş olmalı
                checks.append((doc, self._build_check(doc)))

        if not writes:
            return

        staged = writes + checks
        try:
            self._client.transact_write_items(TransactItems=[request for _, request in staged])
        except ClientError as e:
            error = e.response.get("Error", {})
            if error.get("Code") == "TransactionCanceledException":
                reasons = e.response.get("CancellationReasons", [])
                # Okunmamış dokümana put: koşul ancak kayıt zaten varsa tutmaz
                for (doc, _), reason in zip(staged, reasons):
                    if reason.get("Code") == "ConditionalCheckFailed" and doc.op == "put" and not doc.read:
                        raise DocumentExistsError(doc.table, doc.key) from e
                if any(r.get("Code") in _CONFLICT_CODES for r in reasons):
                    raise TransactionConflictError(error.get("Message", str(e))) from e
            if error.get("Code") == "TransactionConflictException":
                raise TransactionConflictError(error.get("Message", str(e))) from e
            raise


def run_transaction(
    client: Any,
    fn: Callable[[Transaction], T],
    max_attempts: int = 5,
    base_delay: float = 0.05,
) -> T:
    """fn(txn) çalıştırır ve commit eder; çakışmada baştan tekrar dener.

    fn içinde atılan hata transaction'ı iptal eder, hiçbir yazma görünmez.
    """
    last_error: Optional[TransactionConflictError] = None
    for attempt in range(1, max_attempts + 1):
        txn = Transaction(client)
        result = fn(txn)
        try:
            txn.commit()
        except TransactionConflictError as e:
            last_error = e
            logger.warning("Transaction çakışması (deneme %d/%d): %s", attempt, max_attempts, e)
            if attempt < max_attempts and base_delay > 0:
                time.sleep(base_delay * (2 ** (attempt - 1)))
            continue
        return result

    raise TransactionAbortedError(
        f"Transaction {max_attempts} denemede tamamlanamadı"
    ) from last_error
