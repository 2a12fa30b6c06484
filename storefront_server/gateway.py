"""Storefront remote service client."""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .auth import AuthManager
from .errors import GatewayError, UnauthenticatedError
from .models import Address, AddressInput, CartLine, Product, SimProduct

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


def _line_from_row(row: dict[str, Any]) -> CartLine:
    """
    Build a cart line from a cart row with its catalog record attached.

    Shop products carry ``images``, sim products carry ``image_url``; rows
    that already hold flat display fields are accepted as they are.
    """
    product = row.get("product") or row.get("sim_product") or {}
    images = product.get("images") or product.get("image_url") or []
    if isinstance(images, str):
        images = [images]
    return CartLine(
        id=str(row["id"]),
        product_id=str(row["product_id"]),
        quantity=row["quantity"],
        name=product.get("name") or row.get("name") or "Unknown Product",
        unit_price=Decimal(str(product.get("price") or row.get("unit_price") or 0)),
        image_url=(images[0] if images else row.get("image_url")) or "",
        gst_percentage=product.get("gst_percentage", row.get("gst_percentage")),
        inventory=product.get("inventory", row.get("inventory")),
    )


class RemoteCartGateway:
    """Client for the storefront cart, address, order and catalog API."""

    def __init__(
        self,
        auth_manager: AuthManager,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            auth_manager: Source of the bearer credential
            base_url: Remote service base URL
            timeout: Transport timeout in seconds
            transport: Optional httpx transport (used to stub the service)
        """
        self.auth_manager = auth_manager
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "Accept": "application/json",
                "User-Agent": "storefront-mcp-server/0.1.0",
            },
        )

    def _headers(self) -> dict[str, str]:
        headers = dict(NO_CACHE_HEADERS)
        token = self.auth_manager.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send a request and return the ``data`` member of the JSON payload."""
        try:
            response = await self.client.request(
                method, path, json=json, params=params, headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} transport error: {e}")
            raise GatewayError(f"Could not reach storefront service: {e}") from e

        if response.status_code == 401:
            raise UnauthenticatedError(f"{method} {path}: not authenticated")

        if response.is_error:
            message = f"{method} {path} failed with status {response.status_code}"
            try:
                detail = response.json().get("error")
                if detail:
                    message = f"{message}: {detail}"
            except ValueError:
                pass
            logger.error(message)
            raise GatewayError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayError(f"{method} {path} returned invalid JSON", response.status_code) from e
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def _get_optional(self, path: str) -> Optional[Any]:
        """GET a single record, returning None when it does not exist."""
        try:
            return await self._request("GET", path)
        except GatewayError as e:
            if e.status_code == 404:
                return None
            raise

    def _lines(self, rows: Optional[list[dict[str, Any]]]) -> list[CartLine]:
        try:
            return [_line_from_row(row) for row in rows or []]
        except (KeyError, ValidationError) as e:
            raise GatewayError(f"Malformed cart payload: {e}") from e

    # Cart

    async def fetch_cart(self) -> list[CartLine]:
        """
        Get the authenticated cart.

        Returns:
            Cart lines, or an empty list when the session is not authenticated
        """
        logger.info("=== FETCH CART ===")
        try:
            rows = await self._request("GET", "/api/cart")
        except UnauthenticatedError:
            logger.info("FETCH CART: not authenticated, returning empty cart")
            return []
        lines = self._lines(rows)
        logger.info(f"FETCH CART SUCCESS: {len(lines)} line(s)")
        return lines

    async def add_item(self, product_id: str, quantity: int) -> list[CartLine]:
        """
        Add a product to the cart.

        Returns:
            The whole updated cart as recomputed by the service
        """
        logger.info(f"=== ADD ITEM: product_id={product_id}, quantity={quantity} ===")
        rows = await self._request(
            "POST", "/api/cart", json={"product_id": product_id, "quantity": quantity}
        )
        return self._lines(rows)

    async def update_item(self, item_id: str, quantity: int) -> list[CartLine]:
        """
        Set the quantity of a cart line; non-positive quantities remove it.

        Returns:
            The whole updated cart
        """
        if quantity <= 0:
            return await self.remove_item(item_id)
        logger.info(f"=== UPDATE ITEM: item_id={item_id}, quantity={quantity} ===")
        rows = await self._request(
            "PATCH", "/api/cart", json={"itemId": item_id, "quantity": quantity}
        )
        return self._lines(rows)

    async def remove_item(self, item_id: str) -> list[CartLine]:
        """
        Remove a cart line.

        Returns:
            The whole updated cart
        """
        logger.info(f"=== REMOVE ITEM: item_id={item_id} ===")
        rows = await self._request("DELETE", "/api/cart", json={"itemId": item_id})
        return self._lines(rows)

    async def clear_cart(self) -> None:
        """Remove every line from the authenticated cart."""
        logger.info("=== CLEAR CART ===")
        await self._request("DELETE", "/api/cart", json={"clearAll": True})

    # Addresses

    async def list_addresses(self) -> list[Address]:
        """Get the owner's addresses, or an empty list when not authenticated."""
        try:
            rows = await self._request("GET", "/api/addresses")
        except UnauthenticatedError:
            logger.info("LIST ADDRESSES: not authenticated, returning no addresses")
            return []
        try:
            return [Address.model_validate(row) for row in rows or []]
        except ValidationError as e:
            raise GatewayError(f"Malformed address payload: {e}") from e

    async def get_address(self, address_id: str) -> Optional[Address]:
        """Get a single address, or None if it no longer exists."""
        row = await self._get_optional(f"/api/addresses/{address_id}")
        if not row:
            return None
        return Address.model_validate(row)

    async def insert_address(self, address: AddressInput) -> None:
        await self._request("POST", "/api/addresses", json=address.model_dump(mode="json"))

    async def update_address(self, address: Address) -> None:
        payload = address.model_dump(mode="json", exclude={"id", "owner_id"})
        await self._request("PATCH", f"/api/addresses/{address.id}", json=payload)

    async def set_address_default(self, address_id: str) -> None:
        await self._request("PATCH", f"/api/addresses/{address_id}", json={"is_default": True})

    async def delete_address(self, address_id: str) -> None:
        await self._request("DELETE", f"/api/addresses/{address_id}")

    async def clear_default_addresses(self, exclude_id: Optional[str] = None) -> None:
        """Unset ``is_default`` on every address of the owner except ``exclude_id``."""
        payload: dict[str, Any] = {"is_default": False}
        if exclude_id:
            payload["exclude_id"] = exclude_id
        await self._request("PATCH", "/api/addresses", json=payload)

    # Orders

    async def list_orders(self) -> list[dict[str, Any]]:
        """Get raw order rows, newest first, or an empty list when not authenticated."""
        try:
            return await self._request("GET", "/api/orders") or []
        except UnauthenticatedError:
            logger.info("LIST ORDERS: not authenticated, returning no orders")
            return []

    async def get_order(self, order_id: str) -> Optional[dict[str, Any]]:
        return await self._get_optional(f"/api/orders/{order_id}")

    async def list_order_items(self, order_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", "/api/order-items", params={"order_id": order_id}) or []

    # Catalog

    async def get_product(self, product_id: str) -> Optional[Product]:
        row = await self._get_optional(f"/api/products/{product_id}")
        return Product.model_validate(row) if row else None

    async def list_sim_products(self) -> list[SimProduct]:
        rows = await self._request("GET", "/api/sim-products") or []
        return [SimProduct.model_validate(row) for row in rows]

    async def get_sim_product(self, product_id: str) -> Optional[SimProduct]:
        row = await self._get_optional(f"/api/sim-products/{product_id}")
        return SimProduct.model_validate(row) if row else None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
