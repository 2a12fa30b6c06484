"""HTTP server for the Storefront MCP Server with hot reloading support."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .errors import GatewayError, InventoryError, NotFoundError
from .models import AddressInput
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-http-server")

# Global state
storefront: Storefront


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global storefront

    # Startup
    logger.info("Starting Storefront HTTP Server...")
    storefront = Storefront()
    await storefront.start()
    logger.info(f"Remote service: {storefront.settings.api_url}")

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    await storefront.close()


app = FastAPI(
    title="Storefront MCP Server",
    description="HTTP API for the vendor marketplace cart, address book and order history",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class LoginRequest(BaseModel):
    access_token: str
    user_id: str
    email: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool
    message: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1
    catalog: str = "shop"


class UpdateCartRequest(BaseModel):
    item_id: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    item_id: str


class UpdateAddressRequest(BaseModel):
    label: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


def cart_payload() -> dict:
    cart = storefront.cart
    return {
        "state": cart.state.value,
        "items": [line.model_dump(mode="json") for line in cart.lines],
        "item_count": cart.item_count,
        "total": str(cart.calculate_total()),
    }


def addresses_payload() -> dict:
    return {"addresses": [addr.model_dump(mode="json") for addr in storefront.addresses.addresses]}


def to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, InventoryError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Storefront MCP Server",
        "version": "0.1.0",
        "description": "HTTP API for the vendor marketplace cart, address book and order history",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "login": "POST /auth/login",
                "logout": "POST /auth/logout",
                "status": "GET /auth/status",
            },
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "update": "POST /cart/update",
                "remove": "POST /cart/remove",
                "clear": "POST /cart/clear",
                "inventory": "GET /cart/inventory",
            },
            "addresses": {
                "list": "GET /addresses",
                "add": "POST /addresses",
                "update": "PATCH /addresses/{address_id}",
                "remove": "DELETE /addresses/{address_id}",
                "default": "POST /addresses/{address_id}/default",
            },
            "orders": {
                "list": "GET /orders",
                "details": "GET /orders/{order_id}",
            },
        },
        "authenticated": storefront.auth_manager.is_authenticated(),
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": storefront.auth_manager.is_authenticated(),
        "cart_state": storefront.cart.state.value,
        "loading": storefront.is_loading,
    }


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Start a session with a pre-issued access token."""
    try:
        await storefront.auth_manager.login(
            access_token=request.access_token, user_id=request.user_id, user_email=request.email
        )
        return LoginResponse(success=True, message=f"Successfully logged in as {request.email or request.user_id}")
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/auth/logout")
async def logout():
    """End the session."""
    await storefront.auth_manager.logout()
    return {"success": True, "message": "Successfully logged out"}


@app.get("/auth/status")
async def auth_status():
    """Get authentication status."""
    session = storefront.auth_manager.get_session()
    return {
        "authenticated": storefront.auth_manager.is_authenticated(),
        "user_id": session.user_id,
        "email": session.user_email,
    }


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current shopping cart."""
    try:
        if storefront.auth_manager.is_authenticated():
            await storefront.cart.refresh_cart()
    except GatewayError as e:
        # Serve the last known cart rather than failing the read
        logger.warning(f"Get cart refresh failed: {e}")
    return cart_payload()


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    """Add a product to the cart."""
    try:
        if request.catalog == "sim":
            product = await storefront.gateway.get_sim_product(request.product_id)
        else:
            product = await storefront.gateway.get_product(request.product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {request.product_id} not found")

        await storefront.cart.add_to_cart(product, request.quantity)
        return cart_payload()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Add to cart error: {e}")
        raise to_http_error(e)


@app.post("/cart/update")
async def update_cart(request: UpdateCartRequest):
    """Update line quantity in cart."""
    try:
        await storefront.cart.update_quantity(request.item_id, request.quantity)
        return cart_payload()
    except Exception as e:
        logger.error(f"Update cart error: {e}")
        raise to_http_error(e)


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a line from the cart."""
    try:
        await storefront.cart.remove_from_cart(request.item_id)
        return cart_payload()
    except Exception as e:
        logger.error(f"Remove from cart error: {e}")
        raise to_http_error(e)


@app.post("/cart/clear")
async def clear_cart():
    """Remove every line from the cart."""
    try:
        await storefront.cart.clear_cart()
        return cart_payload()
    except Exception as e:
        logger.error(f"Clear cart error: {e}")
        raise to_http_error(e)


@app.get("/cart/inventory")
async def cart_inventory():
    """Classify cart lines by stock level."""
    report = storefront.cart.validate_inventory()
    return {
        "is_valid": report.is_valid,
        "out_of_stock": [line.model_dump(mode="json") for line in report.out_of_stock],
        "low_stock": [line.model_dump(mode="json") for line in report.low_stock],
        "can_increase": {line.id: storefront.cart.can_increase_quantity(line.id) for line in storefront.cart.lines},
    }


# Address endpoints
@app.get("/addresses")
async def list_addresses():
    return addresses_payload()


@app.post("/addresses")
async def add_address(request: AddressInput):
    try:
        await storefront.addresses.add(request)
        return addresses_payload()
    except Exception as e:
        logger.error(f"Add address error: {e}")
        raise to_http_error(e)


@app.patch("/addresses/{address_id}")
async def update_address(address_id: str, request: UpdateAddressRequest):
    try:
        current = next((a for a in storefront.addresses.addresses if a.id == address_id), None)
        if current is None:
            raise HTTPException(status_code=404, detail=f"Address {address_id} not found")
        await storefront.addresses.update(current.model_copy(update=request.model_dump(exclude_none=True)))
        return addresses_payload()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update address error: {e}")
        raise to_http_error(e)


@app.delete("/addresses/{address_id}")
async def remove_address(address_id: str):
    try:
        await storefront.addresses.remove(address_id)
        return addresses_payload()
    except Exception as e:
        logger.error(f"Remove address error: {e}")
        raise to_http_error(e)


@app.post("/addresses/{address_id}/default")
async def set_default_address(address_id: str):
    try:
        await storefront.addresses.set_default(address_id)
        return addresses_payload()
    except Exception as e:
        logger.error(f"Set default address error: {e}")
        raise to_http_error(e)


# Order endpoints
@app.get("/orders")
async def get_orders():
    """Get user's orders."""
    if not storefront.auth_manager.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        orders = await storefront.orders.fetch_orders()
        return {
            "count": len(orders),
            "orders": [order.model_dump(mode="json") for order in orders],
        }
    except Exception as e:
        logger.error(f"Get orders error: {e}", exc_info=True)
        raise to_http_error(e)


@app.get("/orders/{order_id}")
async def get_order_details(order_id: str):
    """Get detailed information for a specific order."""
    if not storefront.auth_manager.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        order = await storefront.orders.get_order_by_id(order_id)
    except Exception as e:
        logger.error(f"Get order details error: {e}", exc_info=True)
        raise to_http_error(e)

    if not order:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order.model_dump(mode="json")


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "storefront_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["storefront_server"],
            log_level="info",
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server(reload=True)
