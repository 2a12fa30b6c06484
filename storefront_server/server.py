"""MCP Server for the vendor marketplace storefront."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .cart_engine import CatalogProduct
from .errors import InventoryError, NotFoundError, StorefrontError
from .models import Address, AddressInput, CartLine, Order
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
storefront: Storefront


def _format_line(index: int, line: CartLine) -> list[str]:
    lines = [
        f"\n{index}. {line.name}",
        f"   Line ID: {line.id}",
        f"   Product ID: {line.product_id}",
        f"   Price: ₹{line.unit_price}",
        f"   Quantity: {line.quantity}",
        f"   Subtotal: ₹{line.subtotal}",
    ]
    if line.inventory is not None:
        lines.append(f"   In stock: {line.inventory}")
    return lines


def format_cart() -> str:
    cart = storefront.cart
    if not cart.lines:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({cart.item_count} items):\n"]
    for i, line in enumerate(cart.lines, 1):
        result_lines.extend(_format_line(i, line))
    result_lines.append(f"\n{'=' * 50}")
    result_lines.append(f"Total: ₹{cart.calculate_total()}")
    return "\n".join(result_lines)


def format_address(address: Address) -> str:
    parts = [address.line1, address.line2, address.city, address.state, address.postal_code, address.country]
    text = ", ".join(part for part in parts if part)
    label = f"{address.label}: " if address.label else ""
    default = " (default)" if address.is_default else ""
    return f"{label}{text}{default}"


def format_order(order: Order) -> list[str]:
    result_lines = [
        f"Order {order.id}",
        f"   Status: {order.status.value}",
        f"   Date: {order.created_at.strftime('%Y-%m-%d %H:%M')}",
        f"   Total: ₹{order.total}",
    ]
    if order.shipping_address:
        result_lines.append(f"   Ship to: {format_address(order.shipping_address)}")
    if order.items:
        result_lines.append(f"   Items ({len(order.items)}):")
        for item in order.items:
            result_lines.append(f"     - {item.resolved_name or 'Unknown item'} x{item.quantity} (₹{item.price})")
    return result_lines


async def lookup_product(product_id: str, catalog: str = "shop") -> Optional[CatalogProduct]:
    """Fetch a product's display data and stock level from the requested catalog."""
    if catalog == "sim":
        return await storefront.gateway.get_sim_product(product_id)
    return await storefront.gateway.get_product(product_id)


def _text(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


def _not_authenticated() -> list[TextContent]:
    return _text("Error: Not authenticated. Please login first with storefront_login.")


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = [
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        ),
        Resource(
            uri=AnyUrl("storefront://addresses"),
            name="Addresses",
            mimeType="application/json",
            description="Saved shipping addresses",
        ),
    ]

    if storefront.auth_manager.is_authenticated():
        resources.append(
            Resource(
                uri=AnyUrl("storefront://orders"),
                name="Orders",
                mimeType="application/json",
                description="User's orders",
            )
        )

    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "storefront://cart":
        return json.dumps([line.model_dump(mode="json") for line in storefront.cart.lines], indent=2)

    elif uri_str == "storefront://addresses":
        return json.dumps([addr.model_dump(mode="json") for addr in storefront.addresses.addresses], indent=2)

    elif uri_str == "storefront://orders":
        if not storefront.auth_manager.is_authenticated():
            return "Error: Not authenticated. Please login first."

        orders = await storefront.orders.fetch_orders()
        return json.dumps([order.model_dump(mode="json") for order in orders], indent=2)

    raise ValueError(f"Unknown resource: {uri}")


ADDRESS_PROPERTIES = {
    "label": {"type": "string", "description": "Short name such as Home or Work"},
    "line1": {"type": "string", "description": "Street address"},
    "line2": {"type": "string", "description": "Apartment, suite, etc."},
    "city": {"type": "string"},
    "state": {"type": "string"},
    "postal_code": {"type": "string"},
    "country": {"type": "string"},
    "phone": {"type": "string"},
    "is_default": {"type": "boolean", "description": "Make this the default address"},
}


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="storefront_login",
            description="Start an authenticated session with an access token issued by the identity provider. Guest cart items are merged into the account cart.",
            inputSchema={
                "type": "object",
                "properties": {
                    "access_token": {"type": "string", "description": "Bearer access token"},
                    "user_id": {"type": "string", "description": "User ID the token belongs to"},
                    "email": {"type": "string", "description": "User email (optional)"},
                },
                "required": ["access_token", "user_id"],
            },
        ),
        Tool(
            name="storefront_logout",
            description="End the session and fall back to the guest cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current shopping cart contents with all items and total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product to the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to add to cart"},
                    "quantity": {"type": "integer", "description": "Quantity to add (default: 1)", "default": 1},
                    "catalog": {
                        "type": "string",
                        "enum": ["shop", "sim"],
                        "description": "Catalog the product belongs to (default: shop)",
                        "default": "shop",
                    },
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a cart line; 0 removes it",
            inputSchema={
                "type": "object",
                "properties": {
                    "item_id": {"type": "string", "description": "Cart line ID"},
                    "quantity": {"type": "integer", "description": "New quantity to set"},
                },
                "required": ["item_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a line from the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {"item_id": {"type": "string", "description": "Cart line ID to remove"}},
                "required": ["item_id"],
            },
        ),
        Tool(
            name="storefront_clear_cart",
            description="Remove every item from the shopping cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_validate_inventory",
            description="Check cart items for out-of-stock and low-stock products",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_list_addresses",
            description="List saved shipping addresses",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_add_address",
            description="Add a shipping address",
            inputSchema={
                "type": "object",
                "properties": ADDRESS_PROPERTIES,
                "required": ["line1", "city", "postal_code", "country"],
            },
        ),
        Tool(
            name="storefront_update_address",
            description="Update fields of a saved address",
            inputSchema={
                "type": "object",
                "properties": {"address_id": {"type": "string"}, **ADDRESS_PROPERTIES},
                "required": ["address_id"],
            },
        ),
        Tool(
            name="storefront_remove_address",
            description="Remove a saved address",
            inputSchema={
                "type": "object",
                "properties": {"address_id": {"type": "string"}},
                "required": ["address_id"],
            },
        ),
        Tool(
            name="storefront_set_default_address",
            description="Make an address the default shipping address",
            inputSchema={
                "type": "object",
                "properties": {"address_id": {"type": "string"}},
                "required": ["address_id"],
            },
        ),
        Tool(
            name="storefront_get_orders",
            description="Get user's order history",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_get_order_details",
            description="Get detailed information for a specific order, including all items",
            inputSchema={
                "type": "object",
                "properties": {"order_id": {"type": "string", "description": "Order ID to fetch details for"}},
                "required": ["order_id"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "storefront_login":
            await storefront.auth_manager.login(
                access_token=arguments["access_token"],
                user_id=arguments["user_id"],
                user_email=arguments.get("email"),
            )
            return _text(f"Successfully logged in as {arguments.get('email') or arguments['user_id']}\n\n{format_cart()}")

        elif name == "storefront_logout":
            await storefront.auth_manager.logout()
            return _text("Successfully logged out")

        elif name == "storefront_get_cart":
            if storefront.auth_manager.is_authenticated():
                await storefront.cart.refresh_cart()
            return _text(format_cart())

        elif name == "storefront_add_to_cart":
            product_id = arguments["product_id"]
            quantity = arguments.get("quantity", 1)

            product = await lookup_product(product_id, arguments.get("catalog", "shop"))
            if not product:
                return _text(f"Product {product_id} not found")

            await storefront.cart.add_to_cart(product, quantity)
            return _text(f"Successfully added {product.name} (quantity: {quantity}) to cart")

        elif name == "storefront_update_cart_quantity":
            item_id = arguments["item_id"]
            quantity = arguments["quantity"]
            await storefront.cart.update_quantity(item_id, quantity)
            if quantity <= 0:
                return _text(f"Removed line {item_id} from cart")
            return _text(f"Successfully updated line {item_id} to quantity {quantity}")

        elif name == "storefront_remove_from_cart":
            await storefront.cart.remove_from_cart(arguments["item_id"])
            return _text(f"Successfully removed line {arguments['item_id']} from cart")

        elif name == "storefront_clear_cart":
            await storefront.cart.clear_cart()
            return _text("Cart cleared")

        elif name == "storefront_validate_inventory":
            report = storefront.cart.validate_inventory()
            result_lines = ["All items are in stock" if report.is_valid else "Some items are out of stock"]
            for line in report.out_of_stock:
                result_lines.append(f"   OUT OF STOCK: {line.name} (line {line.id})")
            for line in report.low_stock:
                result_lines.append(f"   Low stock: {line.name} - only {line.inventory} left")
            return _text("\n".join(result_lines))

        elif name == "storefront_list_addresses":
            addresses = storefront.addresses.addresses
            if not addresses:
                return _text("No saved addresses")
            result_lines = [f"Found {len(addresses)} address(es):\n"]
            for i, address in enumerate(addresses, 1):
                result_lines.append(f"{i}. [{address.id}] {format_address(address)}")
            return _text("\n".join(result_lines))

        elif name == "storefront_add_address":
            await storefront.addresses.add(AddressInput(**arguments))
            return _text("Address added successfully")

        elif name == "storefront_update_address":
            address_id = arguments["address_id"]
            updates = {key: value for key, value in arguments.items() if key in ADDRESS_PROPERTIES}
            current = next((a for a in storefront.addresses.addresses if a.id == address_id), None)
            if current is None:
                return _text(f"Address {address_id} not found")
            # id and owner_id are not editable
            await storefront.addresses.update(Address.model_validate({**current.model_dump(), **updates}))
            return _text("Address updated successfully")

        elif name == "storefront_remove_address":
            await storefront.addresses.remove(arguments["address_id"])
            return _text("Address removed successfully")

        elif name == "storefront_set_default_address":
            await storefront.addresses.set_default(arguments["address_id"])
            return _text("Default address updated")

        elif name == "storefront_get_orders":
            if not storefront.auth_manager.is_authenticated():
                return _not_authenticated()

            orders = await storefront.orders.fetch_orders()
            if not orders:
                return _text("No orders found")

            result_lines = [f"Found {len(orders)} order(s):\n"]
            for i, order in enumerate(orders, 1):
                order_lines = format_order(order)
                result_lines.append(f"\n{i}. {order_lines[0]}")
                result_lines.extend(order_lines[1:])
            return _text("\n".join(result_lines))

        elif name == "storefront_get_order_details":
            if not storefront.auth_manager.is_authenticated():
                return _not_authenticated()

            order_id = arguments["order_id"]
            order = await storefront.orders.get_order_by_id(order_id)
            if not order:
                return _text(f"Order {order_id} not found")
            return _text("Order Details:\n\n" + "\n".join(format_order(order)))

        else:
            return _text(f"Unknown tool: {name}")

    except InventoryError as e:
        return _text(f"Insufficient stock: {e}")
    except NotFoundError as e:
        return _text(f"Error: {e}")
    except StorefrontError as e:
        logger.error(f"Error executing tool {name}: {e}")
        return _text(f"Error: {e}")
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront

    storefront = Storefront()
    await storefront.start()

    if storefront.auth_manager.is_authenticated():
        logger.info(f"Session restored for user {storefront.auth_manager.session.user_id}")
    else:
        logger.info("No session found, cart operations use the guest cart")
        logger.info(f"Remote service: {storefront.settings.api_url} (set STOREFRONT_API_URL to change)")

    logger.info("Starting Storefront MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
