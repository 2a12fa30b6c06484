"""Cart reconciliation across guest and authenticated sessions."""

import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from . import inventory
from .errors import GatewayError, InventoryError, NotFoundError, StorefrontError, UnauthenticatedError
from .gateway import RemoteCartGateway
from .local_store import LocalCartStore
from .models import AuthState, CartLine, InventoryReport, Product, SimProduct

logger = logging.getLogger(__name__)

CatalogProduct = Union[Product, SimProduct]


class CartState(str, Enum):
    """Operating mode of the cart engine."""

    ANONYMOUS = "anonymous"
    MERGING = "merging"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


class CartBackend(ABC):
    """Where cart mutations are applied. Every method returns the full resulting cart."""

    @abstractmethod
    async def load(self) -> list[CartLine]: ...

    @abstractmethod
    async def add(self, product: CatalogProduct, quantity: int, lines: list[CartLine]) -> list[CartLine]: ...

    @abstractmethod
    async def update(self, item_id: str, quantity: int, lines: list[CartLine]) -> list[CartLine]: ...

    @abstractmethod
    async def remove(self, item_id: str, lines: list[CartLine]) -> list[CartLine]: ...

    @abstractmethod
    async def clear(self) -> list[CartLine]: ...


class LocalCartBackend(CartBackend):
    """Guest cart kept in the local store."""

    def __init__(self, store: LocalCartStore) -> None:
        self.store = store

    async def load(self) -> list[CartLine]:
        return self.store.load_cart()

    async def add(self, product: CatalogProduct, quantity: int, lines: list[CartLine]) -> list[CartLine]:
        updated = [line.model_copy() for line in lines]
        existing = next((line for line in updated if line.product_id == product.id), None)
        if existing:
            existing.quantity += quantity
        else:
            updated.append(
                CartLine(
                    id=str(uuid.uuid4()),
                    product_id=product.id,
                    quantity=quantity,
                    name=product.name,
                    unit_price=product.price,
                    image_url=product.primary_image,
                    gst_percentage=product.gst_percentage,
                    inventory=product.inventory,
                )
            )
        self.store.save_cart(updated)
        return updated

    async def update(self, item_id: str, quantity: int, lines: list[CartLine]) -> list[CartLine]:
        if not any(line.id == item_id for line in lines):
            raise NotFoundError(f"Cart line {item_id} not found")
        updated = [
            line.model_copy(update={"quantity": quantity}) if line.id == item_id else line
            for line in lines
        ]
        self.store.save_cart(updated)
        return updated

    async def remove(self, item_id: str, lines: list[CartLine]) -> list[CartLine]:
        updated = [line for line in lines if line.id != item_id]
        self.store.save_cart(updated)
        return updated

    async def clear(self) -> list[CartLine]:
        self.store.clear_cart()
        return []


class RemoteCartBackend(CartBackend):
    """Authenticated cart owned by the remote service."""

    def __init__(self, gateway: RemoteCartGateway) -> None:
        self.gateway = gateway

    async def load(self) -> list[CartLine]:
        return await self.gateway.fetch_cart()

    async def add(self, product: CatalogProduct, quantity: int, lines: list[CartLine]) -> list[CartLine]:
        return await self.gateway.add_item(product.id, quantity)

    async def update(self, item_id: str, quantity: int, lines: list[CartLine]) -> list[CartLine]:
        return await self.gateway.update_item(item_id, quantity)

    async def remove(self, item_id: str, lines: list[CartLine]) -> list[CartLine]:
        return await self.gateway.remove_item(item_id)

    async def clear(self) -> list[CartLine]:
        await self.gateway.clear_cart()
        return []


class CartEngine:
    """
    Single source of truth for the current cart.

    Mutations go to the local store while the visitor is anonymous and to the
    remote service once a session exists. The first login for an identity
    folds the guest cart into the account cart.

    Concurrent mutations are not serialised: the last response to arrive
    replaces the snapshot.
    """

    def __init__(
        self,
        local_store: LocalCartStore,
        gateway: RemoteCartGateway,
        local_backend: Optional[CartBackend] = None,
        remote_backend: Optional[CartBackend] = None,
    ) -> None:
        self.local_store = local_store
        self.gateway = gateway
        self.local_backend = local_backend or LocalCartBackend(local_store)
        self.remote_backend = remote_backend or RemoteCartBackend(gateway)

        self.auth = AuthState()
        self.state = CartState.ANONYMOUS
        self.lines: list[CartLine] = []
        self.last_error: Optional[StorefrontError] = None
        self.merged_for_identity: Optional[str] = None
        self._guest_loaded = False

    @property
    def backend(self) -> CartBackend:
        return self.remote_backend if self.auth.is_authenticated else self.local_backend

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def find_line(self, item_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.id == item_id), None)

    def _line_for_product(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.product_id == product_id), None)

    async def _apply(self, operation: str, call: Callable[[], Awaitable[list[CartLine]]]) -> list[CartLine]:
        """Run a backend call and adopt its result as the new snapshot."""
        try:
            lines = await call()
        except UnauthenticatedError:
            logger.warning(f"{operation}: session rejected by service, cart left unchanged")
            return self.lines
        except GatewayError as e:
            self.state = CartState.ERROR
            self.last_error = e
            logger.error(f"{operation} FAILED: {e}")
            raise

        self.lines = lines
        self.last_error = None
        if self.state is CartState.ERROR:
            self.state = CartState.AUTHENTICATED if self.auth.is_authenticated else CartState.ANONYMOUS
        logger.info(f"{operation} SUCCESS: {len(self.lines)} line(s)")
        return self.lines

    # Lifecycle

    def load_guest(self) -> list[CartLine]:
        """Seed the snapshot from the local store, once until the next logout."""
        if self._guest_loaded:
            return self.lines
        self._guest_loaded = True
        self.lines = self.local_store.load_cart()
        logger.info(f"Loaded guest cart with {len(self.lines)} line(s)")
        return self.lines

    async def _refresh_snapshot(self) -> bool:
        try:
            self.lines = await self.gateway.fetch_cart()
            return True
        except GatewayError as e:
            self.last_error = e
            logger.error(f"Could not fetch account cart, keeping last snapshot: {e}")
            return False

    async def on_login(self, auth: AuthState) -> list[CartLine]:
        """
        Enter the authenticated state, merging the guest cart once per identity.

        Guest lines are sent one at a time; a line that fails is logged and
        skipped. The guest cart is cleared only after every line was tried.
        """
        if not auth.is_authenticated:
            return self.lines

        if self.merged_for_identity == auth.user_id:
            # Token refresh or repeated login event for the same identity
            self.auth = auth
            return self.lines

        self.merged_for_identity = auth.user_id
        self.auth = auth
        self.state = CartState.MERGING
        logger.info(f"=== MERGE CART: user_id={auth.user_id} ===")

        ok = await self._refresh_snapshot()

        guest_lines = self.local_store.load_cart()
        if guest_lines:
            merged = 0
            for line in guest_lines:
                try:
                    self.lines = await self.gateway.add_item(line.product_id, line.quantity)
                    merged += 1
                except StorefrontError as e:
                    logger.warning(f"MERGE: failed to add product {line.product_id} to cart: {e}")
            self.local_store.clear_cart()
            logger.info(f"MERGE: {merged}/{len(guest_lines)} guest line(s) merged")
            ok = await self._refresh_snapshot()

        self.state = CartState.AUTHENTICATED if ok else CartState.ERROR
        if ok:
            self.last_error = None
        return self.lines

    def on_logout(self) -> list[CartLine]:
        """Drop the account cart and fall back to the guest cart."""
        logger.info("=== CART LOGOUT ===")
        self.lines = []
        self.auth = AuthState()
        self.state = CartState.ANONYMOUS
        self.last_error = None
        self.merged_for_identity = None
        self._guest_loaded = False
        return self.load_guest()

    # Operations

    async def refresh_cart(self) -> list[CartLine]:
        """Re-read the cart from its current backend."""
        logger.info("=== REFRESH CART ===")
        return await self._apply("REFRESH CART", self.backend.load)

    async def add_to_cart(self, product: CatalogProduct, quantity: int) -> list[CartLine]:
        """
        Add ``quantity`` units of ``product``.

        Raises:
            ValueError: If quantity is not positive
            InventoryError: If the product's stock cannot cover the request
            GatewayError: If the remote service fails
        """
        logger.info(f"=== ADD TO CART: product_id={product.id}, quantity={quantity} ===")
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        if not inventory.can_accept(quantity, product.inventory):
            logger.warning(f"ADD TO CART REJECTED: only {product.inventory} in stock")
            raise InventoryError(product.id, quantity, product.inventory)

        existing = self._line_for_product(product.id)
        if existing and not inventory.can_accept(existing.quantity + quantity, product.inventory):
            logger.warning(f"ADD TO CART REJECTED: {existing.quantity} already in cart")
            raise InventoryError(product.id, quantity, product.inventory, in_cart=existing.quantity)

        backend = self.backend
        return await self._apply("ADD TO CART", lambda: backend.add(product, quantity, self.lines))

    async def update_quantity(self, item_id: str, quantity: int) -> list[CartLine]:
        """
        Set a line's quantity. Zero or less removes the line.

        Raises:
            InventoryError: If the line's known stock cannot cover ``quantity``
            NotFoundError: If a guest cart has no such line
            GatewayError: If the remote service fails
        """
        if quantity <= 0:
            return await self.remove_from_cart(item_id)

        logger.info(f"=== UPDATE CART: item_id={item_id}, quantity={quantity} ===")
        line = self.find_line(item_id)
        if line and not inventory.can_accept(quantity, line.inventory):
            logger.warning(f"UPDATE CART REJECTED: only {line.inventory} in stock")
            raise InventoryError(line.product_id, quantity, line.inventory)

        backend = self.backend
        return await self._apply("UPDATE CART", lambda: backend.update(item_id, quantity, self.lines))

    async def remove_from_cart(self, item_id: str) -> list[CartLine]:
        logger.info(f"=== REMOVE FROM CART: item_id={item_id} ===")
        backend = self.backend
        return await self._apply("REMOVE FROM CART", lambda: backend.remove(item_id, self.lines))

    async def clear_cart(self) -> list[CartLine]:
        logger.info("=== CLEAR CART ===")
        return await self._apply("CLEAR CART", self.backend.clear)

    def calculate_total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    def validate_inventory(self) -> InventoryReport:
        return inventory.classify(self.lines)

    def can_increase_quantity(self, item_id: str) -> bool:
        line = self.find_line(item_id)
        if line is None:
            return False
        return inventory.can_increase(line)
