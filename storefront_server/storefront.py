"""Wires the cart, address and order engines to the session lifecycle."""

import logging
from typing import Optional

from .addresses import AddressBook
from .auth import AuthManager
from .cart_engine import CartEngine
from .config import Settings
from .gateway import RemoteCartGateway
from .local_store import LocalCartStore
from .models import AuthState
from .orders import OrderAggregator

logger = logging.getLogger(__name__)


class Storefront:
    """Entry point used by the MCP and HTTP servers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        auth_manager: Optional[AuthManager] = None,
        local_store: Optional[LocalCartStore] = None,
        gateway: Optional[RemoteCartGateway] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.auth_manager = auth_manager or AuthManager(self.settings.session_file)
        self.local_store = local_store or LocalCartStore(self.settings.local_store_file)
        self.gateway = gateway or RemoteCartGateway(
            self.auth_manager, base_url=self.settings.api_url, timeout=self.settings.timeout
        )

        self.cart = CartEngine(self.local_store, self.gateway)
        self.addresses = AddressBook(self.local_store, self.gateway)
        self.orders = OrderAggregator(self.gateway)

        self._identity: Optional[str] = None
        self._transitions = 0
        self.auth_manager.subscribe(self.handle_auth_change)

    @property
    def is_loading(self) -> bool:
        return self._transitions > 0

    async def start(self) -> None:
        """Enter the initial state from the persisted session."""
        await self.handle_auth_change(self.auth_manager.auth_state())

    async def handle_auth_change(self, auth: AuthState) -> None:
        self._transitions += 1
        try:
            if auth.is_authenticated:
                await self._enter_authenticated(auth)
            else:
                self._enter_anonymous()
        finally:
            self._transitions -= 1

    async def _enter_authenticated(self, auth: AuthState) -> None:
        if self._identity == auth.user_id:
            # Token refresh: keep projections, only adopt the new credential
            self.cart.auth = self.addresses.auth = self.orders.auth = auth
            return
        if self._identity is not None:
            # Switching accounts without a logout in between
            self._enter_anonymous()
        self._identity = auth.user_id
        await self.cart.on_login(auth)
        await self.addresses.on_login(auth)
        await self.orders.on_login(auth)
        logger.info(f"Storefront ready for user {auth.user_id} (cart state: {self.cart.state.value})")

    def _enter_anonymous(self) -> None:
        if self._identity is not None:
            self._identity = None
            self.cart.on_logout()
            self.addresses.on_logout()
            self.orders.on_logout()
        else:
            self.cart.load_guest()
            self.addresses.load_guest()

    async def close(self) -> None:
        await self.gateway.close()
