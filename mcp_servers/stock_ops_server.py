"""
Stock Operations MCP Server

Stok girişi, depolar arası transfer, onay, iade, senet ödemesi ve stok
sorgulama araçları. Tüm yazma işlemleri servis katmanındaki transaction'lar
üzerinden yapılır; stok sayaçları ve tedarikçi bakiyesi aynı commit'te güncellenir.

Tables used: product_variants, stock_entries (GSI: VariantWarehouseIndex, StatusIndex), suppliers, bills
"""

import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from botocore.exceptions import BotoCoreError, ClientError
from mcp.server import Server
from mcp.types import TextContent, Tool

from battery_ledger.config import Settings, configure_logging
from battery_ledger.models.inventory import EntryStatus, StockEntry
from battery_ledger.notifications.low_stock import is_low, resolve_threshold
from battery_ledger.services import (
    BillService,
    InventoryCatalog,
    StockEntryService,
    ValidationError,
)
from battery_ledger.store.transaction import DocumentExistsError, TransactionAbortedError

logger = logging.getLogger(__name__)

app = Server("stock-ops")

_services: Dict[str, object] = {}


def _get_services() -> Dict[str, object]:
    """Servisleri ilk kullanımda, ortak istemciyle oluşturur."""
    if not _services:
        settings = Settings.from_env()
        catalog = InventoryCatalog(settings=settings)
        _services["catalog"] = catalog
        _services["entries"] = StockEntryService(settings=settings, dynamodb_client=catalog.dynamodb)
        _services["bills"] = BillService(settings=settings, dynamodb_client=catalog.dynamodb)
    return _services


def _to_json(obj):
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_json(i) for i in obj]
    return obj


def _entry(entry: StockEntry) -> Dict:
    return _to_json(asdict(entry))


def _result(data):
    return [TextContent(type="text", text=json.dumps(_to_json(data), indent=2, ensure_ascii=False))]


@app.list_tools()
async def list_tools() -> List[Tool]:
    return [
        Tool(name="add_stock_entry", description="Record a stock entry (purchase, sale or adjustment) for a variant in a warehouse",
             inputSchema={"type": "object", "properties": {
                 "variant_id": {"type": "string"}, "warehouse_id": {"type": "string"},
                 "quantity": {"type": "integer"}, "cost_price": {"type": "number", "default": 0},
                 "supplier_id": {"type": "string"}, "product_name": {"type": "string"},
                 "capacity": {"type": "integer"}, "status": {"type": "string", "enum": ["approved", "pending"]},
                 "created_by": {"type": "string"}, "created_by_user_name": {"type": "string"},
                 "entry_id": {"type": "string", "description": "Optional client-chosen id; re-sending it does not duplicate the entry"}
             }, "required": ["variant_id", "warehouse_id", "quantity"]}),
        Tool(name="transfer_stock", description="Move stock of a variant between two warehouses",
             inputSchema={"type": "object", "properties": {
                 "variant_id": {"type": "string"}, "source_warehouse_id": {"type": "string"},
                 "destination_warehouse_id": {"type": "string"}, "quantity": {"type": "integer", "minimum": 1},
                 "product_name": {"type": "string"}, "capacity": {"type": "integer"},
                 "status": {"type": "string", "enum": ["approved", "pending"]},
                 "created_by": {"type": "string"}, "created_by_user_name": {"type": "string"}
             }, "required": ["variant_id", "source_warehouse_id", "destination_warehouse_id", "quantity"]}),
        Tool(name="approve_entry", description="Approve a pending stock entry and apply its stock impact",
             inputSchema={"type": "object", "properties": {"entry_id": {"type": "string"}}, "required": ["entry_id"]}),
        Tool(name="list_pending_entries", description="List stock entries waiting for approval using StatusIndex GSI",
             inputSchema={"type": "object", "properties": {"limit": {"type": "integer", "default": 50}}}),
        Tool(name="record_return", description="Set the returned quantity of a stock entry",
             inputSchema={"type": "object", "properties": {
                 "entry_id": {"type": "string"}, "returned_quantity": {"type": "integer", "minimum": 0}
             }, "required": ["entry_id", "returned_quantity"]}),
        Tool(name="record_payment", description="Record a payment against a bill and credit its supplier",
             inputSchema={"type": "object", "properties": {
                 "bill_id": {"type": "string"}, "amount": {"type": "number"}
             }, "required": ["bill_id", "amount"]}),
        Tool(name="get_variant_stock", description="Get per-warehouse stock and thresholds of a variant",
             inputSchema={"type": "object", "properties": {"variant_id": {"type": "string"}}, "required": ["variant_id"]}),
        Tool(name="find_low_stock", description="List variant/warehouse pairs at or below their minimum quantity",
             inputSchema={"type": "object", "properties": {"warehouse_id": {"type": "string"}}}),
        Tool(name="verify_stock_levels", description="Compare a variant's stock counters with its approved ledger entries",
             inputSchema={"type": "object", "properties": {"variant_id": {"type": "string"}}, "required": ["variant_id"]}),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    handlers = {
        "add_stock_entry": lambda a: add_stock_entry(**a),
        "transfer_stock": lambda a: transfer_stock(**a),
        "approve_entry": lambda a: approve_entry(a["entry_id"]),
        "list_pending_entries": lambda a: list_pending_entries(a.get("limit", 50)),
        "record_return": lambda a: record_return(a["entry_id"], a["returned_quantity"]),
        "record_payment": lambda a: record_payment(a["bill_id"], a["amount"]),
        "get_variant_stock": lambda a: get_variant_stock(a["variant_id"]),
        "find_low_stock": lambda a: find_low_stock(a.get("warehouse_id")),
        "verify_stock_levels": lambda a: verify_stock_levels(a["variant_id"]),
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")
    return _result(handler(arguments))


def _failure(error: Exception) -> Dict:
    if isinstance(error, ValidationError):
        return {"success": False, "error": str(error)}
    if isinstance(error, DocumentExistsError):
        return {"success": False, "error": "Record already exists", "details": str(error)}
    if isinstance(error, TransactionAbortedError):
        return {"success": False, "error": "Transaction failed - concurrent updates, please retry", "details": str(error)}
    logger.error("Store hatası: %s", error)
    return {"success": False, "error": str(error)}


# --- Implementation ---

def add_stock_entry(variant_id: str, warehouse_id: str, quantity: int, cost_price: float = 0.0,
                    supplier_id: str = "", product_name: str = "", capacity: int = 0,
                    status: str = "approved", created_by: str = "", created_by_user_name: str = "",
                    entry_id: str = "") -> Dict:
    entry = StockEntry(
        entry_id=entry_id,
        product_variant_id=variant_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        cost_price=cost_price,
        total_cost=cost_price * quantity,
        supplier_id=supplier_id,
        product_name=product_name,
        capacity=capacity,
        status=EntryStatus(status),
        created_by=created_by,
        created_by_user_name=created_by_user_name,
    )
    try:
        saved = _get_services()["entries"].add_stock_entry(entry)
        return {"success": True, "entry": _entry(saved)}
    except (ValidationError, DocumentExistsError, TransactionAbortedError, ClientError, BotoCoreError) as e:
        return _failure(e)


def transfer_stock(variant_id: str, source_warehouse_id: str, destination_warehouse_id: str, quantity: int,
                   product_name: str = "", capacity: int = 0, status: str = "approved",
                   created_by: str = "", created_by_user_name: str = "") -> Dict:
    try:
        outgoing, incoming = _get_services()["entries"].transfer_stock(
            variant_id, source_warehouse_id, destination_warehouse_id, quantity,
            product_name=product_name, capacity=capacity, status=EntryStatus(status),
            created_by=created_by, created_by_user_name=created_by_user_name,
        )
        return {"success": True, "outgoing": _entry(outgoing), "incoming": _entry(incoming)}
    except (ValidationError, DocumentExistsError, TransactionAbortedError, ClientError, BotoCoreError) as e:
        return _failure(e)


def approve_entry(entry_id: str) -> Dict:
    try:
        entry = _get_services()["entries"].approve_entry(entry_id)
        return {"success": True, "entry": _entry(entry)}
    except (ValidationError, DocumentExistsError, TransactionAbortedError, ClientError, BotoCoreError) as e:
        return _failure(e)


def list_pending_entries(limit: int = 50) -> Dict:
    try:
        entries = _get_services()["entries"].list_pending_entries(limit)
        return {"success": True, "count": len(entries), "data": [_entry(e) for e in entries]}
    except (ClientError, BotoCoreError) as e:
        return {"success": False, "error": str(e), "data": []}


def record_return(entry_id: str, returned_quantity: int) -> Dict:
    try:
        entry = _get_services()["entries"].record_return(entry_id, returned_quantity)
        return {"success": True, "entry": _entry(entry)}
    except (ValidationError, DocumentExistsError, TransactionAbortedError, ClientError, BotoCoreError) as e:
        return _failure(e)


def record_payment(bill_id: str, amount: float) -> Dict:
    try:
        bill = _get_services()["bills"].record_payment(bill_id, amount)
        return {"success": True, "bill": _to_json(asdict(bill)), "remaining": bill.remaining}
    except (ValidationError, DocumentExistsError, TransactionAbortedError, ClientError, BotoCoreError) as e:
        return _failure(e)


def get_variant_stock(variant_id: str) -> Dict:
    try:
        variant = _get_services()["catalog"].get_variant(variant_id, consistent=True)
        if variant is None:
            return {"success": False, "error": "Variant not found"}
        warehouses = sorted(set(variant.stock_levels) | set(variant.min_quantities))
        return {"success": True, "variant_id": variant_id, "capacity": variant.capacity,
                "archived": variant.archived,
                "warehouses": {wid: {"quantity": variant.stock_at(wid),
                                     "threshold": resolve_threshold(variant, wid),
                                     "low": is_low(variant, wid)} for wid in warehouses}}
    except (ClientError, BotoCoreError) as e:
        return {"success": False, "error": str(e)}


def find_low_stock(warehouse_id: str = None) -> Dict:
    """Arşivlenmemiş varyantlar arasında eşik altındaki çiftler."""
    try:
        catalog = _get_services()["catalog"]
        warehouses = [warehouse_id] if warehouse_id else [w.warehouse_id for w in catalog.list_warehouses()]
        items = [
            {"variant_id": v.variant_id, "warehouse_id": wid, "capacity": v.capacity,
             "quantity": v.stock_at(wid), "threshold": resolve_threshold(v, wid)}
            for v in catalog.list_variants()
            for wid in warehouses
            if is_low(v, wid)
        ]
        return {"success": True, "count": len(items), "data": items}
    except (ClientError, BotoCoreError) as e:
        return {"success": False, "error": str(e), "data": []}


def verify_stock_levels(variant_id: str) -> Dict:
    try:
        return {"success": True, **_get_services()["entries"].verify_stock_levels(variant_id)}
    except (ValidationError, ClientError, BotoCoreError) as e:
        return _failure(e)


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    configure_logging(Settings.from_env().log_level)

    async def run():
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    asyncio.run(run())
