"""Storage backends the cart state machine dispatches to."""

import logging
import time
from abc import ABC, abstractmethod

from .guest_store import GuestCartStore
from .models import CartItem, CartSnapshot, Product
from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)


class CartBackend(ABC):
    """
    Where cart mutations are applied.

    Every method takes the current snapshot and returns the snapshot the
    cart should adopt. Failures raise ``CartError`` subclasses and leave
    nothing half-applied.
    """

    @abstractmethod
    def load(self) -> CartSnapshot:
        """Fetch the snapshot this backend currently holds."""

    @abstractmethod
    def add(self, snapshot: CartSnapshot, product: Product, quantity: int) -> CartSnapshot:
        ...

    @abstractmethod
    def remove(self, snapshot: CartSnapshot, product_id: str) -> CartSnapshot:
        ...

    @abstractmethod
    def set_quantity(self, snapshot: CartSnapshot, product_id: str, quantity: int) -> CartSnapshot:
        ...

    @abstractmethod
    def clear(self, snapshot: CartSnapshot) -> CartSnapshot:
        ...

    @abstractmethod
    def refresh(self, snapshot: CartSnapshot) -> CartSnapshot:
        ...


class GuestBackend(CartBackend):
    """Computes mutations locally and persists every result to the guest store."""

    def __init__(self, store: GuestCartStore) -> None:
        self.store = store

    def _commit(self, items: list[CartItem]) -> CartSnapshot:
        snapshot = CartSnapshot(items=items)
        self.store.save(snapshot)
        return snapshot

    @staticmethod
    def _line_key(product_id: str) -> str:
        # Suffix keeps keys unique before the server ever assigns one
        return f"{product_id}_{int(time.time() * 1000)}"

    def load(self) -> CartSnapshot:
        return self.store.load()

    def add(self, snapshot: CartSnapshot, product: Product, quantity: int) -> CartSnapshot:
        if snapshot.contains(product.id):
            items = [
                item.model_copy(update={"quantity": item.quantity + quantity})
                if item.product.id == product.id
                else item
                for item in snapshot.items
            ]
        else:
            new_item = CartItem(product=product, quantity=quantity, line_key=self._line_key(product.id))
            items = [*snapshot.items, new_item]
        return self._commit(items)

    def remove(self, snapshot: CartSnapshot, product_id: str) -> CartSnapshot:
        return self._commit([item for item in snapshot.items if item.product.id != product_id])

    def set_quantity(self, snapshot: CartSnapshot, product_id: str, quantity: int) -> CartSnapshot:
        if quantity <= 0:
            return self.remove(snapshot, product_id)
        return self._commit(
            [
                item.model_copy(update={"quantity": quantity})
                if item.product.id == product_id
                else item
                for item in snapshot.items
            ]
        )

    def clear(self, snapshot: CartSnapshot) -> CartSnapshot:
        return self._commit([])

    def refresh(self, snapshot: CartSnapshot) -> CartSnapshot:
        # The in-memory guest cart is always current
        return snapshot


class RemoteBackend(CartBackend):
    """Forwards mutations to the server cart and adopts whatever it answers."""

    def __init__(self, client: StorefrontClient, token: str) -> None:
        self.client = client
        self.token = token

    def load(self) -> CartSnapshot:
        return self.client.get_cart(self.token)

    def add(self, snapshot: CartSnapshot, product: Product, quantity: int) -> CartSnapshot:
        return self.client.add_item(self.token, product.id, quantity)

    def remove(self, snapshot: CartSnapshot, product_id: str) -> CartSnapshot:
        return self.client.remove_item(self.token, product_id)

    def set_quantity(self, snapshot: CartSnapshot, product_id: str, quantity: int) -> CartSnapshot:
        if quantity <= 0:
            # The update endpoint refuses 0
            return self.client.remove_item(self.token, product_id)
        return self.client.update_item(self.token, product_id, quantity)

    def clear(self, snapshot: CartSnapshot) -> CartSnapshot:
        return self.client.clear_cart(self.token)

    def refresh(self, snapshot: CartSnapshot) -> CartSnapshot:
        return self.client.get_cart(self.token)
