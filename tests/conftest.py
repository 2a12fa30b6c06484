import asyncio
from decimal import Decimal

import pytest

from storefront_server.errors import GatewayError, UnauthenticatedError
from storefront_server.local_store import LocalCartStore
from storefront_server.models import Address, AuthState, CartLine, Product, SimProduct


class FakeGateway:
    """In-memory stand-in for the remote service, with the same method surface."""

    def __init__(self):
        self.lines: list[CartLine] = []
        self.calls: list[tuple] = []
        self.failing_products: set[str] = set()
        self.fail_fetch = False
        self.fail_mutations = False
        self.unauthenticated = False
        self._next_id = 1

        self.addresses: list[Address] = []
        self.address_log: list[tuple] = []

        self.orders: list[dict] = []
        self.order_items: dict[str, list[dict]] = {}
        self.products: dict[str, Product] = {}
        self.sim_products: dict[str, SimProduct] = {}
        self.broken_products: set[str] = set()
        self.address_records: dict[str, Address] = {}

    def _id(self, prefix: str) -> str:
        value = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return value

    def _snapshot(self) -> list[CartLine]:
        return [line.model_copy() for line in self.lines]

    def _check_mutation(self):
        if self.unauthenticated:
            raise UnauthenticatedError("expired")
        if self.fail_mutations:
            raise GatewayError("service unavailable", status_code=503)

    # Cart

    async def fetch_cart(self):
        self.calls.append(("fetch_cart",))
        if self.fail_fetch:
            raise GatewayError("service unavailable", status_code=503)
        if self.unauthenticated:
            return []
        return self._snapshot()

    async def add_item(self, product_id, quantity):
        self.calls.append(("add_item", product_id, quantity))
        self._check_mutation()
        if product_id in self.failing_products:
            raise GatewayError(f"cannot add {product_id}", status_code=500)
        existing = next((line for line in self.lines if line.product_id == product_id), None)
        if existing:
            existing.quantity += quantity
        else:
            self.lines.append(
                CartLine(
                    id=self._id("srv"),
                    product_id=product_id,
                    quantity=quantity,
                    name=product_id,
                    unit_price=Decimal("10"),
                )
            )
        return self._snapshot()

    async def update_item(self, item_id, quantity):
        self.calls.append(("update_item", item_id, quantity))
        if quantity <= 0:
            return await self.remove_item(item_id)
        self._check_mutation()
        for line in self.lines:
            if line.id == item_id:
                line.quantity = quantity
        return self._snapshot()

    async def remove_item(self, item_id):
        self.calls.append(("remove_item", item_id))
        self._check_mutation()
        self.lines = [line for line in self.lines if line.id != item_id]
        return self._snapshot()

    async def clear_cart(self):
        self.calls.append(("clear_cart",))
        self._check_mutation()
        self.lines = []

    # Addresses

    def _assert_single_default(self):
        assert sum(1 for addr in self.addresses if addr.is_default) <= 1

    async def list_addresses(self):
        if self.unauthenticated:
            return []
        return [addr.model_copy() for addr in self.addresses]

    async def get_address(self, address_id):
        return self.address_records.get(address_id)

    async def insert_address(self, address):
        self._check_mutation()
        self.address_log.append(("insert", address.is_default))
        self.addresses.append(Address(id=self._id("addr"), **address.model_dump()))
        self._assert_single_default()

    async def update_address(self, address):
        self._check_mutation()
        self.address_log.append(("update", address.id, address.is_default))
        self.addresses = [address if addr.id == address.id else addr for addr in self.addresses]
        self._assert_single_default()

    async def set_address_default(self, address_id):
        self._check_mutation()
        self.address_log.append(("set_default", address_id))
        for addr in self.addresses:
            if addr.id == address_id:
                addr.is_default = True
        self._assert_single_default()

    async def delete_address(self, address_id):
        self._check_mutation()
        self.address_log.append(("delete", address_id))
        self.addresses = [addr for addr in self.addresses if addr.id != address_id]

    async def clear_default_addresses(self, exclude_id=None):
        self._check_mutation()
        self.address_log.append(("clear_default", exclude_id))
        for addr in self.addresses:
            if addr.id != exclude_id:
                addr.is_default = False

    # Orders and catalog

    async def list_orders(self):
        return list(self.orders)

    async def get_order(self, order_id):
        self.calls.append(("get_order", order_id))
        return next((row for row in self.orders if row["id"] == order_id), None)

    async def list_order_items(self, order_id):
        return list(self.order_items.get(order_id, []))

    async def get_product(self, product_id):
        if product_id in self.broken_products:
            raise GatewayError("catalog exploded", status_code=500)
        return self.products.get(product_id)

    async def list_sim_products(self):
        return list(self.sim_products.values())

    async def get_sim_product(self, product_id):
        return self.sim_products.get(product_id)

    async def close(self):
        pass


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STOREFRONT_ACCESS_TOKEN",
        "STOREFRONT_USER_ID",
        "STOREFRONT_USER_EMAIL",
        "STOREFRONT_API_URL",
        "STOREFRONT_SESSION_FILE",
        "STOREFRONT_LOCAL_STORE_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def run():
    return asyncio.run


@pytest.fixture
def store(tmp_path):
    return LocalCartStore(str(tmp_path / "local.json"))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def alice():
    return AuthState(user_id="user-alice", access_token="token-a")


def make_product(product_id="p1", price="100", inventory=None, **kwargs):
    return Product(id=product_id, name=f"Product {product_id}", price=Decimal(price), inventory=inventory, **kwargs)
