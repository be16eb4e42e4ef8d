"""DynamoDB tablo oluşturma ve başlangıç verisi yükleme.

6 tablo: warehouses, products, product_variants, suppliers, stock_entries, bills
Tüm tablolarda stream (NEW_AND_OLD_IMAGES) açıktır; bildirim akışları buna dayanır.
"""
import json
import os
import sys
from decimal import Decimal

import boto3
from botocore.exceptions import ClientError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from battery_ledger.config import BOTO_CONFIG, Settings
from battery_ledger.models.inventory import (
    Bill,
    Product,
    ProductVariant,
    StockEntry,
    Supplier,
    Warehouse,
)
from battery_ledger.store.clients import dynamodb_client

STREAM_SPECIFICATION = {"StreamEnabled": True, "StreamViewType": "NEW_AND_OLD_IMAGES"}


def _simple_table(name: str, key: str) -> dict:
    return {
        "TableName": name,
        "KeySchema": [
            {"AttributeName": key, "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": key, "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
        "StreamSpecification": STREAM_SPECIFICATION,
    }


TABLE_DEFINITIONS = [
    _simple_table(Warehouse.TABLE, Warehouse.KEY),
    _simple_table(Product.TABLE, Product.KEY),
    _simple_table(ProductVariant.TABLE, ProductVariant.KEY),
    _simple_table(Supplier.TABLE, Supplier.KEY),
    {
        "TableName": StockEntry.TABLE,
        "KeySchema": [
            {"AttributeName": StockEntry.KEY, "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": StockEntry.KEY, "AttributeType": "S"},
            {"AttributeName": "variant_warehouse", "AttributeType": "S"},
            {"AttributeName": "status", "AttributeType": "S"},
            {"AttributeName": "timestamp", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "VariantWarehouseIndex",
                "KeySchema": [
                    {"AttributeName": "variant_warehouse", "KeyType": "HASH"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "StatusIndex",
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": "timestamp", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
        "StreamSpecification": STREAM_SPECIFICATION,
    },
    _simple_table(Bill.TABLE, Bill.KEY),
]

SEED_FILES = {
    Warehouse.TABLE: "warehouses.json",
    Product.TABLE: "products.json",
    ProductVariant.TABLE: "product_variants.json",
    Supplier.TABLE: "suppliers.json",
}


def table_definitions(settings: Settings) -> list:
    """Prefix uygulanmış tablo tanımları."""
    return [
        {**table_def, "TableName": settings.table_name(table_def["TableName"])}
        for table_def in TABLE_DEFINITIONS
    ]


def create_tables(settings: Settings = None, client=None):
    """Tüm DynamoDB tablolarını oluşturur, mevcut olanları atlar."""
    settings = settings or Settings.from_env()
    dynamodb = client or dynamodb_client(settings)

    for table_def in table_definitions(settings):
        table_name = table_def["TableName"]
        try:
            dynamodb.describe_table(TableName=table_name)
            print(f"  ⏭️  {table_name} zaten mevcut, atlanıyor")
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                print(f"  🔨 {table_name} oluşturuluyor...")
                dynamodb.create_table(**table_def)
                # Tablonun aktif olmasını bekle
                waiter = dynamodb.get_waiter("table_exists")
                waiter.wait(TableName=table_name)
                print(f"  ✓  {table_name} oluşturuldu")
            else:
                raise


def convert_floats(obj):
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: convert_floats(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [convert_floats(i) for i in obj]
    return obj


def load_data_to_table(table_name: str, data: list, settings: Settings):
    """JSON kayıtlarını batch write ile tabloya yükler."""
    dynamodb = boto3.resource(
        "dynamodb",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=BOTO_CONFIG,
    )
    table = dynamodb.Table(table_name)
    with table.batch_writer() as batch:
        for item in convert_floats(data):
            batch.put_item(Item=item)
    print(f"  ✓  {table_name}: {len(data)} kayıt yüklendi")


def load_seed_data(data_dir: str = "data_layer/data", settings: Settings = None):
    """Katalog tablolarını JSON dosyalarından doldurur (dosya yoksa atlar)."""
    settings = settings or Settings.from_env()
    print("\n📤 Başlangıç verisi yükleniyor...\n")
    for base, filename in SEED_FILES.items():
        path = os.path.join(data_dir, filename)
        if not os.path.exists(path):
            print(f"  ⏭️  {filename} bulunamadı, atlanıyor")
            continue
        with open(path, "r", encoding="utf-8") as f:
            load_data_to_table(settings.table_name(base), json.load(f), settings)
    print("\n✅ Başlangıç verisi yüklendi!")


def delete_tables(settings: Settings = None, client=None):
    """Tüm tabloları siler (dikkatli kullan)."""
    settings = settings or Settings.from_env()
    dynamodb = client or dynamodb_client(settings)
    for table_def in table_definitions(settings):
        table_name = table_def["TableName"]
        try:
            dynamodb.delete_table(TableName=table_name)
            print(f"  🗑️  {table_name} silindi")
        except ClientError:
            print(f"  ⏭️  {table_name} bulunamadı, atlanıyor")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--delete":
        print("🗑️  Tablolar siliniyor...")
        delete_tables()
    else:
        print("🏗️  DynamoDB tabloları oluşturuluyor...\n")
        create_tables()
        load_seed_data()
