"""Guest cart and address persistence in a local key/value file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from .models import Address, CartLine

logger = logging.getLogger(__name__)

CART_KEY = "cart"
ADDRESSES_KEY = "addresses"

_cart_adapter = TypeAdapter(list[CartLine])
_addresses_adapter = TypeAdapter(list[Address])


class LocalCartStore:
    """
    Persists an anonymous visitor's cart and address list.

    The backing file is a flat JSON object; each collection lives under its own
    key so that a corrupt entry can be dropped without losing the others.
    Reads never raise: unreadable data is logged, purged and reported as empty.
    """

    def __init__(self, store_file: Optional[str] = None) -> None:
        if store_file is None:
            store_file = str(Path.home() / ".storefront_local.json")
        self.store_file = store_file

    def _read_all(self) -> dict[str, Any]:
        if not os.path.exists(self.store_file):
            return {}
        try:
            with open(self.store_file, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Local store {self.store_file} is unreadable, discarding it: {e}")
            self._purge_file()
            return {}
        if not isinstance(data, dict):
            logger.error(f"Local store {self.store_file} is not a JSON object, discarding it")
            self._purge_file()
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        with open(self.store_file, "w") as f:
            json.dump(data, f, default=str)
        os.chmod(self.store_file, 0o600)

    def _purge_file(self) -> None:
        try:
            os.remove(self.store_file)
        except OSError as e:
            logger.warning(f"Could not delete local store file: {e}")

    def get(self, key: str) -> Any:
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def _load_list(self, key: str, adapter: TypeAdapter) -> list:
        raw = self.get(key)
        if raw is None:
            return []
        try:
            return adapter.validate_python(raw)
        except ValidationError as e:
            logger.error(f"Error parsing {key} data from local store: {e}")
            self.remove(key)
            return []

    def _save_list(self, key: str, items: list[BaseModel]) -> None:
        self.set(key, [item.model_dump(mode="json") for item in items])

    def load_cart(self) -> list[CartLine]:
        """Load the guest cart, or an empty list if none (or corrupt)."""
        return self._load_list(CART_KEY, _cart_adapter)

    def save_cart(self, lines: list[CartLine]) -> None:
        self._save_list(CART_KEY, lines)

    def clear_cart(self) -> None:
        self.remove(CART_KEY)

    def load_addresses(self) -> list[Address]:
        """Load the guest address list, or an empty list if none (or corrupt)."""
        return self._load_list(ADDRESSES_KEY, _addresses_adapter)

    def save_addresses(self, addresses: list[Address]) -> None:
        self._save_list(ADDRESSES_KEY, addresses)
