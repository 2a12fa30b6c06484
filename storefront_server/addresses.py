"""Address book with a single default address per owner."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from .errors import GatewayError, NotFoundError, StorefrontError, UnauthenticatedError
from .gateway import RemoteCartGateway
from .local_store import LocalCartStore
from .models import Address, AddressInput, AuthState

logger = logging.getLogger(__name__)


def _find(addresses: list[Address], address_id: str) -> Optional[Address]:
    return next((addr for addr in addresses if addr.id == address_id), None)


def _with_default(addresses: list[Address], address_id: Optional[str]) -> list[Address]:
    """Copy of ``addresses`` where only ``address_id`` is the default."""
    return [addr.model_copy(update={"is_default": addr.id == address_id}) for addr in addresses]


def ensure_single_default(addresses: list[Address]) -> list[Address]:
    """Repair a collection that has no default, or more than one."""
    if not addresses:
        return addresses
    defaults = [addr for addr in addresses if addr.is_default]
    if len(defaults) == 1:
        return addresses
    chosen = defaults[0] if defaults else addresses[0]
    logger.warning(f"Address book had {len(defaults)} default(s), using {chosen.id}")
    return _with_default(addresses, chosen.id)


class AddressBackend(ABC):
    """Where address changes are applied. Every method returns the full resulting list."""

    @abstractmethod
    async def load(self) -> list[Address]: ...

    @abstractmethod
    async def add(self, address: AddressInput, addresses: list[Address]) -> list[Address]: ...

    @abstractmethod
    async def update(self, address: Address, addresses: list[Address]) -> list[Address]: ...

    @abstractmethod
    async def remove(self, address_id: str, addresses: list[Address]) -> list[Address]: ...

    @abstractmethod
    async def set_default(self, address_id: str, addresses: list[Address]) -> list[Address]: ...


class LocalAddressBackend(AddressBackend):
    """Guest addresses kept in the local store."""

    def __init__(self, store: LocalCartStore) -> None:
        self.store = store

    def _save(self, addresses: list[Address]) -> list[Address]:
        self.store.save_addresses(addresses)
        return addresses

    async def load(self) -> list[Address]:
        return ensure_single_default(self.store.load_addresses())

    async def add(self, address: AddressInput, addresses: list[Address]) -> list[Address]:
        new_address = Address(id=str(uuid.uuid4()), **address.model_dump())
        if new_address.is_default or not addresses:
            addresses = _with_default(addresses, None)
            new_address.is_default = True
        return self._save([*addresses, new_address])

    async def update(self, address: Address, addresses: list[Address]) -> list[Address]:
        current = _find(addresses, address.id)
        if current is None:
            raise NotFoundError(f"Address {address.id} not found")
        if current.is_default and not address.is_default:
            # The only way to move the default is to pick another address
            address = address.model_copy(update={"is_default": True})
        if address.is_default:
            addresses = _with_default(addresses, None)
        return self._save([address if addr.id == address.id else addr for addr in addresses])

    async def remove(self, address_id: str, addresses: list[Address]) -> list[Address]:
        removed = _find(addresses, address_id)
        remaining = [addr for addr in addresses if addr.id != address_id]
        if removed and removed.is_default and remaining:
            remaining = _with_default(remaining, remaining[0].id)
        return self._save(remaining)

    async def set_default(self, address_id: str, addresses: list[Address]) -> list[Address]:
        if _find(addresses, address_id) is None:
            raise NotFoundError(f"Address {address_id} not found")
        return self._save(_with_default(addresses, address_id))


class RemoteAddressBackend(AddressBackend):
    """
    Account addresses owned by the remote service.

    Defaults are always cleared before a new default is written, so the
    service never stores two defaults at once.
    """

    def __init__(self, gateway: RemoteCartGateway) -> None:
        self.gateway = gateway

    async def load(self) -> list[Address]:
        return await self.gateway.list_addresses()

    async def add(self, address: AddressInput, addresses: list[Address]) -> list[Address]:
        if address.is_default or not addresses:
            await self.gateway.clear_default_addresses()
            address = address.model_copy(update={"is_default": True})
        await self.gateway.insert_address(address)
        return await self.gateway.list_addresses()

    async def update(self, address: Address, addresses: list[Address]) -> list[Address]:
        current = _find(addresses, address.id)
        if current is None:
            raise NotFoundError(f"Address {address.id} not found")
        if current.is_default and not address.is_default:
            address = address.model_copy(update={"is_default": True})
        if address.is_default:
            await self.gateway.clear_default_addresses(exclude_id=address.id)
        await self.gateway.update_address(address)
        return await self.gateway.list_addresses()

    async def remove(self, address_id: str, addresses: list[Address]) -> list[Address]:
        removed = _find(addresses, address_id)
        await self.gateway.delete_address(address_id)
        remaining = [addr for addr in addresses if addr.id != address_id]
        if removed and removed.is_default and remaining:
            await self.gateway.set_address_default(remaining[0].id)
        return await self.gateway.list_addresses()

    async def set_default(self, address_id: str, addresses: list[Address]) -> list[Address]:
        # Must exist before any default is cleared
        if _find(addresses, address_id) is None:
            raise NotFoundError(f"Address {address_id} not found")
        await self.gateway.clear_default_addresses()
        await self.gateway.set_address_default(address_id)
        return await self.gateway.list_addresses()


class AddressBook:
    """Current visitor's addresses, routed to the local store or the remote service."""

    def __init__(
        self,
        local_store: LocalCartStore,
        gateway: RemoteCartGateway,
        local_backend: Optional[AddressBackend] = None,
        remote_backend: Optional[AddressBackend] = None,
    ) -> None:
        self.local_store = local_store
        self.local_backend = local_backend or LocalAddressBackend(local_store)
        self.remote_backend = remote_backend or RemoteAddressBackend(gateway)
        self.auth = AuthState()
        self.addresses: list[Address] = []
        self.last_error: Optional[StorefrontError] = None
        self._guest_loaded = False

    @property
    def backend(self) -> AddressBackend:
        return self.remote_backend if self.auth.is_authenticated else self.local_backend

    @property
    def default_address(self) -> Optional[Address]:
        return next((addr for addr in self.addresses if addr.is_default), None)

    async def _apply(self, operation: str, call: Callable[[], Awaitable[list[Address]]]) -> list[Address]:
        logger.info(f"=== {operation} ===")
        try:
            addresses = await call()
        except UnauthenticatedError:
            logger.warning(f"{operation}: session rejected by service, addresses left unchanged")
            return self.addresses
        except GatewayError as e:
            self.last_error = e
            logger.error(f"{operation} FAILED: {e}")
            raise
        self.addresses = addresses
        self.last_error = None
        logger.info(f"{operation} SUCCESS: {len(self.addresses)} address(es)")
        return self.addresses

    def load_guest(self) -> list[Address]:
        """Seed from the local store, once until the next logout."""
        if self._guest_loaded:
            return self.addresses
        self._guest_loaded = True
        self.addresses = ensure_single_default(self.local_store.load_addresses())
        return self.addresses

    async def on_login(self, auth: AuthState) -> list[Address]:
        self.auth = auth
        try:
            return await self.refresh()
        except GatewayError:
            return self.addresses

    def on_logout(self) -> list[Address]:
        self.auth = AuthState()
        self.addresses = []
        self.last_error = None
        self._guest_loaded = False
        return self.load_guest()

    async def refresh(self) -> list[Address]:
        return await self._apply("REFRESH ADDRESSES", self.backend.load)

    async def add(self, address: AddressInput) -> list[Address]:
        backend = self.backend
        return await self._apply("ADD ADDRESS", lambda: backend.add(address, self.addresses))

    async def update(self, address: Address) -> list[Address]:
        backend = self.backend
        return await self._apply(
            f"UPDATE ADDRESS: address_id={address.id}", lambda: backend.update(address, self.addresses)
        )

    async def remove(self, address_id: str) -> list[Address]:
        backend = self.backend
        return await self._apply(
            f"REMOVE ADDRESS: address_id={address_id}", lambda: backend.remove(address_id, self.addresses)
        )

    async def set_default(self, address_id: str) -> list[Address]:
        backend = self.backend
        return await self._apply(
            f"SET DEFAULT ADDRESS: address_id={address_id}",
            lambda: backend.set_default(address_id, self.addresses),
        )
