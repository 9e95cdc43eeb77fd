"""Cart state machine shared by every cart view."""

import logging
from decimal import Decimal
from typing import Callable, Optional

from .cart_backends import CartBackend, GuestBackend, RemoteBackend
from .exceptions import CartError, ServerRejected
from .guest_store import GuestCartStore
from .merge import MergeCoordinator
from .models import CartItem, CartSnapshot, Identity, MergeReport, Product
from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)

Listener = Callable[["CartStateMachine"], None]


class CartStateMachine:
    """
    Single owner of the current cart snapshot and its loading/error status.

    Guest carts are mutated locally and persisted to the guest store.
    Authenticated carts are write-then-reconcile: the request goes to the
    server first and the snapshot it answers with replaces the local one.
    A failed request leaves the snapshot untouched and sets ``error``.
    """

    def __init__(
        self,
        guest_store: GuestCartStore,
        client: StorefrontClient,
        identity: Optional[Identity] = None,
        merge_coordinator: Optional[MergeCoordinator] = None,
    ) -> None:
        """
        Initialize the cart.

        Args:
            guest_store: Durable storage for the guest cart
            client: Storefront API client used for the server cart
            identity: Identity restored at startup (default: guest). Restoring
                a session is not a login, so no merge happens here.
            merge_coordinator: Coordinator run on guest -> authenticated transitions
        """
        self.guest_store = guest_store
        self.client = client
        self.merge_coordinator = merge_coordinator or MergeCoordinator(guest_store, client)

        self._identity = Identity.guest()
        self._backend: CartBackend = GuestBackend(guest_store)
        self._snapshot = CartSnapshot.empty()
        self._loading = False
        self._error: Optional[str] = None
        self._generation = 0
        self._listeners: list[Listener] = []

        self.bind_identity(identity or Identity.guest())

    # Observable state

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def items(self) -> list[CartItem]:
        return list(self._snapshot.items)

    @property
    def total_items(self) -> int:
        return self._snapshot.total_items

    @property
    def total_price(self) -> Decimal:
        return self._snapshot.total_price

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked after every state change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Cart listener failed: {e}", exc_info=True)

    # Derived queries

    def quantity_of(self, product_id: str) -> int:
        return self._snapshot.quantity_of(product_id)

    def contains(self, product_id: str) -> bool:
        return self._snapshot.contains(product_id)

    # Operations

    def add_item(self, product: Product, quantity: int = 1) -> bool:
        """
        Add ``quantity`` units of ``product``.

        A product already in the cart has its quantity increased instead of
        getting a second line.

        Returns:
            True if applied, False if the server call failed (see ``error``)
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValueError(f"Quantity must be a positive integer, got {quantity!r}")
        return self._apply(
            "add item to cart", lambda backend, snapshot: backend.add(snapshot, product, quantity)
        )

    def remove_item(self, product_id: str) -> bool:
        """Drop the line for ``product_id``."""
        return self._apply(
            "remove item from cart", lambda backend, snapshot: backend.remove(snapshot, product_id)
        )

    def set_quantity(self, product_id: str, quantity: int) -> bool:
        """Replace the quantity of ``product_id``; zero or less removes it."""
        return self._apply(
            "update cart item",
            lambda backend, snapshot: backend.set_quantity(snapshot, product_id, quantity),
        )

    def clear(self) -> bool:
        """Empty the cart."""
        return self._apply("clear cart", lambda backend, snapshot: backend.clear(snapshot))

    def refresh(self) -> bool:
        """Re-fetch the server cart. A no-op for guests."""
        if not self._identity.is_authenticated:
            return True
        return self._apply("load cart", lambda backend, snapshot: backend.refresh(snapshot))

    def clear_error(self) -> None:
        if self._error is not None:
            self._error = None
            self._notify()

    def _apply(
        self,
        action: str,
        operation: Callable[[CartBackend, CartSnapshot], CartSnapshot],
    ) -> bool:
        """Run ``operation`` on the current backend and adopt its result."""
        generation = self._generation
        backend = self._backend

        self._error = None
        self._loading = True
        self._notify()

        try:
            snapshot = operation(backend, self._snapshot)
        except CartError as e:
            if generation != self._generation:
                logger.info(f"Ignoring failure of stale '{action}' after identity change")
                return False
            logger.warning(f"Failed to {action}: {e}")
            if isinstance(e, ServerRejected):
                self._error = e.message
            else:
                self._error = f"Failed to {action}"
            self._loading = False
            self._notify()
            return False

        if generation != self._generation:
            logger.info(f"Discarding stale result of '{action}' after identity change")
            return False

        self._snapshot = snapshot
        self._loading = False
        self._notify()
        return True

    # Identity transitions

    def _switch_identity(self, identity: Identity) -> None:
        self._generation += 1
        self._identity = identity
        if identity.is_authenticated:
            self._backend = RemoteBackend(self.client, identity.token)
        else:
            self._backend = GuestBackend(self.guest_store)
        self._snapshot = CartSnapshot.empty()
        self._loading = False
        self._error = None
        logger.info(f"Cart identity is now {identity}")

    def bind_identity(self, identity: Identity) -> None:
        """
        Adopt ``identity`` without merging and load its cart.

        Used at startup, when a saved session is restored.
        """
        self._switch_identity(identity)
        if identity.is_authenticated:
            self._notify()
            self.refresh()
        else:
            self._snapshot = self._backend.load()
            self._notify()

    def sign_in(self, token: str) -> MergeReport:
        """
        Switch to the authenticated identity after a successful login.

        The guest cart is merged into the server cart exactly once for the
        transition, after which the server cart is loaded.

        Returns:
            Outcome of the guest cart merge
        """
        identity = Identity.authenticated(token)
        if identity == self._identity:
            logger.info("Already signed in with this token, skipping merge")
            return MergeReport(skipped=True)

        was_guest = not self._identity.is_authenticated
        self._switch_identity(identity)
        self._notify()

        if not was_guest:
            # Account switch, not a guest login
            self.refresh()
            return MergeReport(skipped=True)

        report = self.merge_coordinator.merge(self)
        if report.skipped:
            self.refresh()
        return report

    def sign_out(self) -> None:
        """Reset to an empty guest cart. Nothing is merged on the way out."""
        self._switch_identity(Identity.guest())
        # Lines stored before a restored session must not leak into the next login
        self.guest_store.clear()
        self._notify()
