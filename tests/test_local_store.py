"""Tests for the guest key/value store."""

import json
import os
from decimal import Decimal

from storefront_server.local_store import LocalCartStore
from storefront_server.models import Address, CartLine


def _line():
    return CartLine(
        id="l1", product_id="p1", quantity=2, name="Helmet", unit_price=Decimal("149.50"), inventory=4
    )


def _address():
    return Address(id="a1", line1="1 Track Rd", city="Pune", postal_code="411001", country="IN", is_default=True)


class TestLoadSave:
    def test_missing_file_is_empty(self, store):
        assert store.load_cart() == []
        assert store.load_addresses() == []

    def test_cart_survives_reload(self, store):
        store.save_cart([_line()])

        reloaded = LocalCartStore(store.store_file).load_cart()

        assert reloaded == [_line()]
        assert reloaded[0].unit_price == Decimal("149.50")

    def test_cart_and_addresses_are_independent(self, store):
        store.save_cart([_line()])
        store.save_addresses([_address()])
        store.clear_cart()

        assert store.load_cart() == []
        assert store.load_addresses() == [_address()]


class TestCorruption:
    def test_unparseable_file_is_treated_as_empty_and_removed(self, store):
        with open(store.store_file, "w") as f:
            f.write("{not json")

        assert store.load_cart() == []
        assert not os.path.exists(store.store_file)

    def test_non_object_file_is_discarded(self, store):
        with open(store.store_file, "w") as f:
            json.dump(["cart"], f)

        assert store.load_addresses() == []
        assert not os.path.exists(store.store_file)

    def test_invalid_cart_entry_is_purged_without_touching_addresses(self, store):
        store.save_addresses([_address()])
        store.set("cart", [{"id": "l1", "quantity": -3}])

        assert store.load_cart() == []
        assert store.get("cart") is None
        assert store.load_addresses() == [_address()]

    def test_corrupt_entry_does_not_resurface(self, store):
        store.set("addresses", "garbage")

        assert store.load_addresses() == []
        assert store.load_addresses() == []
        with open(store.store_file) as f:
            assert "addresses" not in json.load(f)
