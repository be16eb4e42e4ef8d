"""Düşük stok izleyici testleri."""

import pytest
from unittest.mock import MagicMock

from battery_ledger.models.inventory import Product, ProductVariant, Warehouse
from battery_ledger.notifications.low_stock import (
    LowStockWatcher,
    is_low,
    pair_from_entry,
    resolve_threshold,
)
from battery_ledger.notifications.notifier import LogNotifier
from battery_ledger.notifications.state import NotificationState, Transition
from battery_ledger.services.catalog import InventoryCatalog


def _variant(stock, min_quantity=5, min_quantities=None, archived=False, variant_id="V1"):
    return ProductVariant(
        variant_id=variant_id,
        product_id="P1",
        capacity=60,
        stock_levels={"WH1": stock},
        min_quantity=min_quantity,
        min_quantities=min_quantities or {},
        archived=archived,
    )


def _watcher(catalog):
    notifier = LogNotifier()
    return LowStockWatcher(catalog, notifier, NotificationState()), notifier


def _mock_catalog():
    catalog = MagicMock()
    catalog.get_product.return_value = Product("P1", "Varta Blue")
    catalog.get_warehouse.return_value = Warehouse("WH1", "Merkez")
    return catalog


class TestThreshold:
    def test_per_warehouse_override_wins(self):
        variant = _variant(3, min_quantity=5, min_quantities={"WH1": 2})
        assert resolve_threshold(variant, "WH1") == 2
        assert resolve_threshold(variant, "WH2") == 5

    def test_zero_threshold_is_exempt(self):
        assert is_low(_variant(0, min_quantity=0), "WH1") is False

    def test_pair_from_entry(self):
        assert pair_from_entry({"product_variant_id": "V1", "warehouse_id": "WH1"}) == ("V1", "WH1")
        assert pair_from_entry({"product_variant_id": "V1"}) is None
        assert pair_from_entry(None) is None


class TestRecheck:
    def test_one_alert_per_breach_episode(self):
        catalog = _mock_catalog()
        watcher, notifier = _watcher(catalog)

        transitions = []
        for quantity in [10, 4, 3, 6, 2]:
            catalog.get_variant.return_value = _variant(quantity)
            transitions.append(watcher.recheck("V1", "WH1"))

        assert len(notifier.history) == 2
        assert transitions == [
            Transition.NONE,
            Transition.BREACHED,
            Transition.NONE,
            Transition.RECOVERED,
            Transition.BREACHED,
        ]
        assert "Varta Blue 60 Amper" in notifier.history[0].body
        assert "Merkez" in notifier.history[0].body

    def test_recheck_uses_consistent_read(self):
        catalog = _mock_catalog()
        catalog.get_variant.return_value = _variant(10)
        watcher, _ = _watcher(catalog)

        watcher.recheck("V1", "WH1")

        catalog.get_variant.assert_called_once_with("V1", consistent=True)

    @pytest.mark.parametrize("quantity", [5, 1, 0, -3])
    def test_zero_threshold_never_breaches(self, quantity):
        catalog = _mock_catalog()
        catalog.get_variant.return_value = _variant(quantity, min_quantity=0)
        watcher, notifier = _watcher(catalog)

        assert watcher.recheck("V1", "WH1") == Transition.EXEMPT
        assert notifier.history == []

    def test_archived_variant_never_alerts(self):
        catalog = _mock_catalog()
        catalog.get_variant.return_value = _variant(0, min_quantity=10, archived=True)
        watcher, notifier = _watcher(catalog)

        watcher.recheck("V1", "WH1")

        assert notifier.history == []
        assert watcher.breached() == frozenset()

    def test_read_failure_propagates_without_state_change(self):
        catalog = _mock_catalog()
        catalog.get_variant.side_effect = RuntimeError("store down")
        watcher, notifier = _watcher(catalog)

        with pytest.raises(RuntimeError):
            watcher.recheck("V1", "WH1")
        assert watcher.breached() == frozenset()

    def test_name_lookup_failure_allows_retry(self):
        catalog = _mock_catalog()
        catalog.get_variant.return_value = _variant(1)
        catalog.get_product.side_effect = RuntimeError("store down")
        watcher, notifier = _watcher(catalog)

        with pytest.raises(RuntimeError):
            watcher.recheck("V1", "WH1")
        assert watcher.breached() == frozenset()

        catalog.get_product.side_effect = None
        watcher.recheck("V1", "WH1")
        assert len(notifier.history) == 1


class TestReconcile:
    def _catalog(self, client, settings):
        client.put("warehouses", Warehouse("WH1", "Merkez").to_item())
        client.put("products", Product("P1", "Varta Blue").to_item())
        return InventoryCatalog(settings=settings, dynamodb_client=client)

    def test_startup_sweep_seeds_set_and_sends_one_summary(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(2, min_quantity=5, variant_id="A").to_item())
        fake_dynamodb.put("product_variants", _variant(8, min_quantity=3, variant_id="B").to_item())
        watcher, notifier = _watcher(catalog)

        breached = watcher.reconcile(initial=True)

        assert breached == [("A", "WH1")]
        assert watcher.breached() == frozenset({("A", "WH1")})
        assert len(notifier.history) == 1
        assert notifier.history[0].body.startswith("1 ")

    def test_startup_sweep_without_breaches_is_silent(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(8, variant_id="B").to_item())
        watcher, notifier = _watcher(catalog)

        assert watcher.reconcile(initial=True) == []
        assert notifier.history == []

    def test_startup_sweep_excludes_archived(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put(
            "product_variants", _variant(0, min_quantity=10, archived=True, variant_id="A").to_item()
        )
        watcher, notifier = _watcher(catalog)

        assert watcher.reconcile(initial=True) == []
        assert notifier.history == []

    def test_startup_sweep_does_not_block_later_recovery(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(2, variant_id="A").to_item())
        watcher, notifier = _watcher(catalog)
        watcher.reconcile(initial=True)

        # seed'lenen anahtar tekrar bildirilmez
        assert watcher.recheck("A", "WH1") == Transition.NONE
        fake_dynamodb.put("product_variants", _variant(9, variant_id="A").to_item())
        assert watcher.recheck("A", "WH1") == Transition.RECOVERED
        fake_dynamodb.put("product_variants", _variant(1, variant_id="A").to_item())
        assert watcher.recheck("A", "WH1") == Transition.BREACHED
        assert len(notifier.history) == 2

    def test_periodic_sweep_alerts_missed_breach_and_drops_stale_keys(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(9, variant_id="A").to_item())
        fake_dynamodb.put("product_variants", _variant(1, variant_id="B").to_item())
        watcher, notifier = _watcher(catalog)
        watcher.reconcile(initial=True)
        notifier.history.clear()

        fake_dynamodb.put("product_variants", _variant(2, variant_id="A").to_item())
        fake_dynamodb.put("product_variants", _variant(1, archived=True, variant_id="B").to_item())
        candidates = watcher.reconcile()

        assert candidates == [("A", "WH1"), ("B", "WH1")]
        assert len(notifier.history) == 1
        assert watcher.breached() == frozenset({("A", "WH1")})

    def test_periodic_sweep_uses_scan_only_to_pick_keys(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(9, variant_id="A").to_item())
        watcher, notifier = _watcher(catalog)
        watcher.reconcile(initial=True)

        fake_dynamodb.put("product_variants", _variant(2, variant_id="A").to_item())
        dispatched = []
        watcher.reconcile(dispatch=dispatched.extend)

        assert dispatched == [("A", "WH1")]
        assert watcher.breached() == frozenset()
        assert notifier.history == []

    def test_stale_scan_does_not_rebreach_recovered_key(self, fake_dynamodb, settings):
        catalog = self._catalog(fake_dynamodb, settings)
        fake_dynamodb.put("product_variants", _variant(2, variant_id="A").to_item())
        watcher, notifier = _watcher(catalog)
        watcher.reconcile(initial=True)
        notifier.history.clear()

        scan = catalog.list_variants

        def scan_then_recover(**kwargs):
            variants = scan(**kwargs)
            # tarama okunduktan sonra stok toparlanır ve hedefli kontrol çalışır
            fake_dynamodb.put("product_variants", _variant(10, variant_id="A").to_item())
            assert watcher.recheck("A", "WH1") == Transition.RECOVERED
            return variants

        catalog.list_variants = scan_then_recover
        watcher.reconcile()
        catalog.list_variants = scan

        assert notifier.history == []
        assert watcher.breached() == frozenset()

        fake_dynamodb.put("product_variants", _variant(3, variant_id="A").to_item())
        assert watcher.recheck("A", "WH1") == Transition.BREACHED
        assert len(notifier.history) == 1

    def test_sweep_reads_consistently(self):
        catalog = _mock_catalog()
        catalog.list_variants.return_value = []
        catalog.list_warehouses.return_value = []
        watcher, _ = _watcher(catalog)

        watcher.reconcile(dispatch=lambda keys: None)

        catalog.list_variants.assert_called_once_with(consistent=True)
        catalog.list_warehouses.assert_called_once_with(consistent=True)

    def test_removed_warehouse_key_is_dropped(self):
        watcher, _ = _watcher(_mock_catalog())
        watcher.state.replace_breached([("A", "WH9")])

        candidates = watcher.sweep_candidates([_variant(9, variant_id="A")], ["WH1"])

        assert candidates == []
        assert watcher.breached() == frozenset()
