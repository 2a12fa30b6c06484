"""Order history assembly."""

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .errors import GatewayError, StorefrontError
from .gateway import RemoteCartGateway
from .models import Address, AuthState, Order, OrderItem

logger = logging.getLogger(__name__)

PRODUCT_UNAVAILABLE = "Product no longer available"


class OrderAggregator:
    """
    Read-only view over the account's orders.

    Each order is returned with its items and shipping address. Item display
    fields come from the shop or sim catalog depending on which reference the
    item carries; anything that cannot be resolved falls back to
    ``PRODUCT_UNAVAILABLE`` and an empty image.
    """

    def __init__(self, gateway: RemoteCartGateway) -> None:
        self.gateway = gateway
        self.auth = AuthState()
        self.orders: list[Order] = []
        self.last_error: Optional[StorefrontError] = None

    async def on_login(self, auth: AuthState) -> list[Order]:
        self.auth = auth
        try:
            return await self.fetch_orders()
        except GatewayError:
            return self.orders

    def on_logout(self) -> None:
        self.auth = AuthState()
        self.orders = []
        self.last_error = None

    async def _sim_product_ids(self) -> set[str]:
        try:
            return {product.id for product in await self.gateway.list_sim_products()}
        except (StorefrontError, ValidationError) as e:
            logger.warning(f"Could not load sim catalog, resolving items against shop catalog only: {e}")
            return set()

    async def _resolve_item(self, raw: dict[str, Any], sim_ids: set[str]) -> OrderItem:
        item = OrderItem.model_validate(raw)
        if not item.product_id and not item.sim_product_id:
            return item

        name, image = PRODUCT_UNAVAILABLE, ""
        try:
            if item.sim_product_id and item.sim_product_id in sim_ids:
                sim_product = await self.gateway.get_sim_product(item.sim_product_id)
                if sim_product:
                    name, image = sim_product.name, sim_product.primary_image
            elif item.product_id:
                product = await self.gateway.get_product(item.product_id)
                if product:
                    name, image = product.name, product.primary_image
        except (StorefrontError, ValidationError) as e:
            logger.warning(f"Could not resolve product for order item {item.id}: {e}")

        return item.model_copy(update={"resolved_name": name or PRODUCT_UNAVAILABLE, "resolved_image": image})

    async def _resolve_address(self, reference: Any) -> Optional[Address]:
        address_id = reference.get("id") if isinstance(reference, dict) else reference
        if not address_id:
            return None
        try:
            return await self.gateway.get_address(str(address_id))
        except (StorefrontError, ValidationError) as e:
            logger.warning(f"Could not resolve shipping address {address_id}: {e}")
            return None

    async def _assemble(self, row: dict[str, Any], sim_ids: set[str]) -> Order:
        raw_items = await self.gateway.list_order_items(str(row["id"]))
        items = await asyncio.gather(*(self._resolve_item(raw, sim_ids) for raw in raw_items))
        shipping_address = await self._resolve_address(row.get("shipping_address"))
        return Order(
            id=str(row["id"]),
            total=row.get("total") or 0,
            status=row["status"],
            created_at=row["created_at"],
            items=list(items),
            shipping_address=shipping_address,
        )

    async def fetch_orders(self) -> list[Order]:
        """
        Load every order of the signed-in account, newest first.

        Returns:
            Assembled orders; an empty list when nobody is signed in

        Raises:
            GatewayError: If the order list or an order's items cannot be read
        """
        logger.info("=== GET ORDERS ===")
        if not self.auth.is_authenticated:
            return []

        try:
            rows = await self.gateway.list_orders()
            sim_ids = await self._sim_product_ids()
            orders = await asyncio.gather(*(self._assemble(row, sim_ids) for row in rows))
        except GatewayError as e:
            self.last_error = e
            logger.error(f"GET ORDERS FAILED: {e}")
            raise
        except (KeyError, ValidationError) as e:
            self.last_error = GatewayError(f"Malformed order payload: {e}")
            logger.error(f"GET ORDERS FAILED: {e}")
            raise self.last_error from e

        self.orders = list(orders)
        self.last_error = None
        logger.info(f"Found {len(self.orders)} orders")
        return self.orders

    async def get_order_by_id(self, order_id: str) -> Optional[Order]:
        """
        Get one order, from the loaded list if present, otherwise from the service.

        Returns:
            The assembled order, or None if it does not exist or nobody is signed in
        """
        logger.info(f"=== GET ORDER DETAILS: order_id={order_id} ===")
        if not self.auth.is_authenticated:
            return None

        for order in self.orders:
            if order.id == order_id:
                return order

        row = await self.gateway.get_order(order_id)
        if not row:
            logger.info(f"Order {order_id} not found")
            return None
        try:
            return await self._assemble(row, await self._sim_product_ids())
        except (KeyError, ValidationError) as e:
            raise GatewayError(f"Malformed order payload: {e}") from e
