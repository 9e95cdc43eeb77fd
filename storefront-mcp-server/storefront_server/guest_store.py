"""Durable storage for the anonymous shopper's cart."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

from pydantic import ValidationError

from .exceptions import StorageCorruption
from .models import CartSnapshot

logger = logging.getLogger(__name__)

GUEST_CART_KEY = "storefront_guest_cart"


class GuestCartStore:
    """
    Keeps one guest cart snapshot in a small JSON key-value file.

    The file plays the part of browser local storage: it is scoped to the
    device profile, not to an account, and other keys in it are left alone.
    """

    def __init__(self, storage_file: Optional[str] = None, key: str = GUEST_CART_KEY) -> None:
        """
        Initialize the guest cart store.

        Args:
            storage_file: Path to the storage file. Defaults to ~/.storefront_storage.json
            key: Namespace key the cart is stored under
        """
        if storage_file is None:
            storage_file = str(Path.home() / ".storefront_storage.json")
        self.storage_file = storage_file
        self.key = key

    def _read_storage(self) -> dict[str, str]:
        if not os.path.exists(self.storage_file):
            return {}
        try:
            with open(self.storage_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageCorruption(f"Could not read {self.storage_file}: {e}") from e
        if not isinstance(data, dict):
            raise StorageCorruption(f"{self.storage_file} does not hold a key-value map")
        return data

    def _write_storage(self, data: dict[str, str]) -> None:
        try:
            with open(self.storage_file, "w") as f:
                json.dump(data, f, indent=2)
            os.chmod(self.storage_file, 0o600)
        except OSError as e:
            logger.error(f"Could not write guest cart storage: {e}")

    def _parse(self, raw: Optional[str]) -> CartSnapshot:
        if raw is None:
            return CartSnapshot.empty()
        try:
            return CartSnapshot.model_validate_json(raw)
        except (ValidationError, ValueError, TypeError) as e:
            raise StorageCorruption(f"Malformed guest cart under '{self.key}': {e}") from e

    def load(self) -> CartSnapshot:
        """
        Load the stored guest cart.

        Returns:
            The stored snapshot, or an empty one when nothing usable is stored
        """
        try:
            return self._parse(self._read_storage().get(self.key))
        except StorageCorruption as e:
            logger.warning(f"Ignoring guest cart: {e}")
            return CartSnapshot.empty()

    def save(self, snapshot: CartSnapshot) -> None:
        """Overwrite the stored guest cart (last write wins)."""
        try:
            data = self._read_storage()
        except StorageCorruption as e:
            logger.warning(f"Replacing unreadable storage: {e}")
            data = {}
        data[self.key] = snapshot.model_dump_json(by_alias=True)
        self._write_storage(data)
        logger.debug(f"Guest cart saved ({snapshot.total_items} items)")

    def clear(self) -> None:
        """Remove the stored guest cart entirely."""
        try:
            data = self._read_storage()
        except StorageCorruption:
            data = {}
        data.pop(self.key, None)
        if data:
            self._write_storage(data)
        elif os.path.exists(self.storage_file):
            try:
                os.remove(self.storage_file)
            except OSError as e:
                logger.warning(f"Could not delete guest cart storage: {e}")
        logger.info("Guest cart cleared")
