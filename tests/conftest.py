"""Testler için bellek içi DynamoDB istemcisi.

Sadece servis katmanının kullandığı low-level çağrıları destekler:
get_item, scan, query (tek eşitlik koşulu), transact_write_items ve
describe_table. Transaction koşulları (attribute_not_exists, #ver = :ver)
gerçek servisteki gibi değerlendirilir; biri tutmazsa hiçbir yazma uygulanmaz.
"""

import copy
from typing import Callable, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from battery_ledger.config import Settings
from battery_ledger.models.inventory import (
    Bill,
    Product,
    ProductVariant,
    StockEntry,
    Supplier,
    Warehouse,
)
from battery_ledger.store.serialization import deserialize_item, serialize_item

TABLE_KEYS = {
    model.TABLE: model.KEY
    for model in (Warehouse, Product, ProductVariant, Supplier, StockEntry, Bill)
}

INDEX_SORT_KEYS = {"StatusIndex": "timestamp"}


class FakeDynamoClient:
    def __init__(self, table_keys: Optional[Dict[str, str]] = None):
        self.table_keys = dict(table_keys or TABLE_KEYS)
        self.tables: Dict[str, Dict[str, dict]] = {name: {} for name in self.table_keys}
        self.transact_calls: List[list] = []
        self.get_item_calls = 0
        # transact_write_items başında bir kez çalışır (eşzamanlı yazıcı simülasyonu)
        self.before_transact: List[Callable[["FakeDynamoClient"], None]] = []

    # --- Test yardımcıları ---

    def put(self, table: str, item: dict) -> None:
        typed = serialize_item(item)
        self.tables[table][self._key_value(table, typed)] = typed

    def item(self, table: str, key_value: str) -> Optional[dict]:
        return deserialize_item(self.tables[table].get(key_value))

    def bump_version(self, table: str, key_value: str) -> None:
        typed = self.tables[table][key_value]
        current = int(typed.get("doc_version", {"N": "0"})["N"])
        typed["doc_version"] = {"N": str(current + 1)}

    def _key_value(self, table: str, typed: dict) -> str:
        return typed[self.table_keys[table]]["S"]

    # --- boto3 client API ---

    def describe_table(self, TableName: str) -> dict:
        return {
            "Table": {
                "TableName": TableName,
                "KeySchema": [{"AttributeName": self.table_keys[TableName], "KeyType": "HASH"}],
                "LatestStreamArn": f"arn:aws:dynamodb:local:000000000000:table/{TableName}/stream/1",
            }
        }

    def get_item(self, TableName: str, Key: dict, ConsistentRead: bool = False) -> dict:
        self.get_item_calls += 1
        typed = self.tables[TableName].get(self._key_value(TableName, Key))
        return {"Item": copy.deepcopy(typed)} if typed is not None else {}

    def scan(self, TableName: str, **kwargs) -> dict:
        return {"Items": [copy.deepcopy(i) for i in self.tables[TableName].values()]}

    def query(self, TableName: str, KeyConditionExpression: str, ExpressionAttributeNames: dict,
              ExpressionAttributeValues: dict, IndexName: Optional[str] = None,
              ScanIndexForward: bool = True, Limit: Optional[int] = None, **kwargs) -> dict:
        name_ref, value_ref = [part.strip() for part in KeyConditionExpression.split("=")]
        attr = ExpressionAttributeNames[name_ref]
        expected = ExpressionAttributeValues[value_ref]
        items = [copy.deepcopy(i) for i in self.tables[TableName].values() if i.get(attr) == expected]
        sort_key = INDEX_SORT_KEYS.get(IndexName)
        if sort_key:
            items.sort(key=lambda i: i.get(sort_key, {}).get("S", ""), reverse=not ScanIndexForward)
        if Limit:
            items = items[:Limit]
        return {"Items": items}

    def transact_write_items(self, TransactItems: list) -> dict:
        while self.before_transact:
            self.before_transact.pop(0)(self)
        self.transact_calls.append(copy.deepcopy(TransactItems))

        reasons = []
        for op in TransactItems:
            (kind, request), = op.items()
            ok = self._check(request)
            reasons.append({"Code": "None"} if ok else {"Code": "ConditionalCheckFailed"})
        if any(r["Code"] != "None" for r in reasons):
            raise ClientError(
                {
                    "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
                    "CancellationReasons": reasons,
                },
                "TransactWriteItems",
            )

        for op in TransactItems:
            (kind, request), = op.items()
            getattr(self, f"_apply_{kind.lower()}")(request)
        return {}

    # --- transaction değerlendirme ---

    def _current(self, request: dict) -> Optional[dict]:
        table = request["TableName"]
        if "Item" in request:
            return self.tables[table].get(self._key_value(table, request["Item"]))
        return self.tables[table].get(self._key_value(table, request["Key"]))

    def _check(self, request: dict) -> bool:
        condition = request.get("ConditionExpression")
        if not condition:
            return True
        names = request.get("ExpressionAttributeNames", {})
        values = request.get("ExpressionAttributeValues", {})
        current = self._current(request)
        if condition.startswith("attribute_not_exists("):
            attr = names[condition[len("attribute_not_exists("):-1]]
            return current is None or attr not in current
        name_ref, value_ref = [part.strip() for part in condition.split("=")]
        return current is not None and current.get(names[name_ref]) == values[value_ref]

    def _apply_put(self, request: dict) -> None:
        table = request["TableName"]
        self.tables[table][self._key_value(table, request["Item"])] = copy.deepcopy(request["Item"])

    def _apply_update(self, request: dict) -> None:
        table = request["TableName"]
        typed = self.tables[table][self._key_value(table, request["Key"])]
        names = request["ExpressionAttributeNames"]
        values = request["ExpressionAttributeValues"]
        for assignment in request["UpdateExpression"][len("SET "):].split(", "):
            name_ref, value_ref = [part.strip() for part in assignment.split("=")]
            typed[names[name_ref]] = copy.deepcopy(values[value_ref])

    def _apply_delete(self, request: dict) -> None:
        table = request["TableName"]
        self.tables[table].pop(self._key_value(table, request["Key"]), None)

    def _apply_conditioncheck(self, request: dict) -> None:
        pass


@pytest.fixture
def settings():
    return Settings(txn_max_attempts=3, txn_base_delay=0.0)


@pytest.fixture
def fake_dynamodb():
    return FakeDynamoClient()


@pytest.fixture
def seeded_dynamodb(fake_dynamodb):
    """İki depo, bir ürün, iki varyant ve bir tedarikçi."""
    fake_dynamodb.put(Warehouse.TABLE, Warehouse("WH1", "Merkez", "İstanbul").to_item())
    fake_dynamodb.put(Warehouse.TABLE, Warehouse("WH2", "Şube", "Ankara").to_item())
    fake_dynamodb.put(Product.TABLE, Product("P1", "Varta Blue").to_item())
    fake_dynamodb.put(
        ProductVariant.TABLE,
        ProductVariant("V60", "P1", 60, stock_levels={"WH1": 10, "WH2": 3}, min_quantity=5).to_item(),
    )
    fake_dynamodb.put(
        ProductVariant.TABLE,
        ProductVariant("V72", "P1", 72, stock_levels={"WH1": 1}, min_quantity=0).to_item(),
    )
    fake_dynamodb.put(Supplier.TABLE, Supplier("S1", "Anadolu Dağıtım").to_item())
    return fake_dynamodb
