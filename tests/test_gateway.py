"""Tests for the remote service client, against a stubbed transport."""

import json
from decimal import Decimal

import httpx
import pytest

from storefront_server.auth import AuthManager
from storefront_server.errors import GatewayError, UnauthenticatedError
from storefront_server.gateway import RemoteCartGateway
from storefront_server.models import AddressInput


CART_ROWS = [
    {
        "id": 11,
        "product_id": "p1",
        "quantity": 2,
        "product": {
            "name": "Racing Gloves",
            "price": 49.5,
            "images": ["https://cdn.example/gloves.jpg"],
            "gst_percentage": 18,
            "inventory": 7,
        },
    },
    {
        "id": 12,
        "product_id": "s1",
        "quantity": 1,
        "sim_product": {"name": "Wheel Base", "price": "899", "image_url": ["https://cdn.example/base.jpg"]},
    },
    {"id": 13, "product_id": "gone", "quantity": 1},
]


class StubService:
    """Records requests and answers from a routing table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], httpx.Response] = {}

    def respond(self, method, path, status_code=200, **kwargs):
        self.responses[(method, path)] = httpx.Response(status_code, **kwargs)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.get((request.method, request.url.path), httpx.Response(404, json={"error": "no route"}))

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def service():
    return StubService()


@pytest.fixture
def auth_manager(tmp_path):
    manager = AuthManager(session_file=str(tmp_path / "session.json"))
    manager.save_session(access_token="token-a", user_id="user-alice")
    return manager


@pytest.fixture
def client(service, auth_manager):
    return RemoteCartGateway(auth_manager, base_url="http://store.test", transport=httpx.MockTransport(service.handler))


class TestCart:
    def test_fetch_parses_shop_and_sim_rows(self, run, service, client):
        service.respond("GET", "/api/cart", json={"data": CART_ROWS})

        lines = run(client.fetch_cart())

        gloves, wheel, gone = lines
        assert gloves.id == "11"
        assert gloves.name == "Racing Gloves"
        assert gloves.unit_price == Decimal("49.5")
        assert gloves.image_url == "https://cdn.example/gloves.jpg"
        assert gloves.inventory == 7
        assert wheel.unit_price == Decimal("899")
        assert wheel.image_url == "https://cdn.example/base.jpg"
        assert wheel.inventory is None
        assert gone.name == "Unknown Product"
        assert gone.unit_price == Decimal("0")
        assert gone.image_url == ""

    def test_sends_bearer_and_no_cache_headers(self, run, service, client):
        service.respond("GET", "/api/cart", json={"data": []})

        run(client.fetch_cart())

        headers = service.requests[0].headers
        assert headers["Authorization"] == "Bearer token-a"
        assert "no-store" in headers["Cache-Control"]
        assert headers["Pragma"] == "no-cache"

    def test_no_authorization_header_without_session(self, run, service, client, auth_manager):
        auth_manager.clear_session()
        service.respond("GET", "/api/cart", json={"data": []})

        run(client.fetch_cart())

        assert "Authorization" not in service.requests[0].headers

    def test_unauthenticated_fetch_is_empty(self, run, service, client):
        service.respond("GET", "/api/cart", status_code=401, json={"error": "Unauthorized"})

        assert run(client.fetch_cart()) == []

    def test_unauthenticated_mutation_raises(self, run, service, client):
        service.respond("POST", "/api/cart", status_code=401, json={"error": "Unauthorized"})

        with pytest.raises(UnauthenticatedError):
            run(client.add_item("p1", 1))

    def test_add_posts_product_and_returns_whole_cart(self, run, service, client):
        service.respond("POST", "/api/cart", json={"data": CART_ROWS})

        lines = run(client.add_item("p1", 2))

        assert service.requests[0].method == "POST"
        assert service.body() == {"product_id": "p1", "quantity": 2}
        assert [line.id for line in lines] == ["11", "12", "13"]

    def test_update_sends_patch(self, run, service, client):
        service.respond("PATCH", "/api/cart", json={"data": CART_ROWS[:1]})

        run(client.update_item("11", 3))

        assert service.body() == {"itemId": "11", "quantity": 3}

    def test_update_to_zero_deletes_line(self, run, service, client):
        service.respond("DELETE", "/api/cart", json={"data": []})

        assert run(client.update_item("11", 0)) == []
        assert service.requests[0].method == "DELETE"
        assert service.body() == {"itemId": "11"}

    def test_clear_sends_clear_all(self, run, service, client):
        service.respond("DELETE", "/api/cart", json={"success": True})

        run(client.clear_cart())

        assert service.body() == {"clearAll": True}

    def test_server_error_raises_with_status(self, run, service, client):
        service.respond("POST", "/api/cart", status_code=500, json={"error": "Failed to add item to cart"})

        with pytest.raises(GatewayError) as excinfo:
            run(client.add_item("p1", 1))

        assert excinfo.value.status_code == 500
        assert "Failed to add item to cart" in str(excinfo.value)

    def test_malformed_rows_raise_gateway_error(self, run, service, client):
        service.respond("GET", "/api/cart", json={"data": [{"id": 1, "quantity": 1}]})

        with pytest.raises(GatewayError):
            run(client.fetch_cart())

    def test_transport_failure_raises_gateway_error(self, run, auth_manager):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = RemoteCartGateway(auth_manager, base_url="http://store.test", transport=httpx.MockTransport(refuse))

        with pytest.raises(GatewayError) as excinfo:
            run(gateway.add_item("p1", 1))

        assert excinfo.value.status_code is None


class TestAddresses:
    def test_list_coerces_numeric_postal_codes(self, run, service, client):
        service.respond(
            "GET",
            "/api/addresses",
            json={"data": [{"id": "a1", "line1": "1 Pit Lane", "city": "Pune", "postal_code": 411001, "country": "IN"}]},
        )

        (address,) = run(client.list_addresses())

        assert address.postal_code == "411001"

    def test_clear_defaults_excludes_address(self, run, service, client):
        service.respond("PATCH", "/api/addresses", json={"success": True})

        run(client.clear_default_addresses(exclude_id="a2"))

        assert service.body() == {"is_default": False, "exclude_id": "a2"}

    def test_insert_sends_fields(self, run, service, client):
        service.respond("POST", "/api/addresses", status_code=201, json={"data": {"id": "a9"}})

        run(client.insert_address(AddressInput(line1="1 Pit Lane", city="Pune", postal_code="411001", country="IN")))

        body = service.body()
        assert body["line1"] == "1 Pit Lane"
        assert body["is_default"] is False

    def test_missing_address_is_none(self, run, client):
        assert run(client.get_address("missing")) is None


class TestOrdersAndCatalog:
    def test_order_items_query(self, run, service, client):
        service.respond("GET", "/api/order-items", json={"data": [{"id": "i1"}]})

        assert run(client.list_order_items("o1")) == [{"id": "i1"}]
        assert service.requests[0].url.params["order_id"] == "o1"

    def test_unknown_product_is_none(self, run, client):
        assert run(client.get_product("deleted")) is None

    def test_product_lookup(self, run, service, client):
        service.respond("GET", "/api/products/p1", json={"data": {"id": "p1", "name": "Gloves", "price": 10}})

        product = run(client.get_product("p1"))

        assert product.name == "Gloves"
        assert product.primary_image == ""

    def test_unauthenticated_orders_are_empty(self, run, service, client):
        service.respond("GET", "/api/orders", status_code=401)

        assert run(client.list_orders()) == []
