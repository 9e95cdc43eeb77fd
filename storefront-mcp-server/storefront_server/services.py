"""Wiring of the cart engine shared by the MCP and HTTP servers."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .auth import AuthManager
from .cart_state import CartStateMachine
from .config import Settings
from .guest_store import GuestCartStore
from .models import AuthCredentials, MergeReport
from .storefront_client import StorefrontClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    auth_manager: AuthManager
    client: StorefrontClient
    guest_store: GuestCartStore
    cart: CartStateMachine

    def login(self, email: str, password: str) -> MergeReport:
        """
        Log in, persist the session and merge the guest cart.

        Raises:
            CartError: If the backend refuses the login
        """
        session = self.client.login(AuthCredentials(email=email, password=password))
        self.auth_manager.save_session(session)
        return self.cart.sign_in(session.token)

    def logout(self) -> None:
        token = self.auth_manager.get_token()
        if token:
            self.client.logout(token)
        self.auth_manager.clear_session()
        self.cart.sign_out()
        logger.info("Logged out successfully")

    def cart_count(self) -> int:
        """
        Number of units in the cart, for a header badge.

        Guests count the local snapshot; accounts ask the server.

        Raises:
            CartError: If the server count cannot be fetched
        """
        identity = self.cart.identity
        if not identity.is_authenticated:
            return self.cart.total_items
        return self.client.get_cart_count(identity.token)

    def close(self) -> None:
        self.client.close()


def build_services(
    settings: Settings, transport: Optional[httpx.BaseTransport] = None
) -> Services:
    """Create the auth manager, API client, guest store and cart for ``settings``."""
    auth_manager = AuthManager(session_file=settings.session_file, env_token=settings.token)
    client = StorefrontClient(settings.api_url, timeout=settings.timeout, transport=transport)
    guest_store = GuestCartStore(settings.storage_file)
    cart = CartStateMachine(guest_store, client, identity=auth_manager.identity())
    if cart.error:
        logger.warning(f"Could not load cart at startup: {cart.error}")
    return Services(
        settings=settings,
        auth_manager=auth_manager,
        client=client,
        guest_store=guest_store,
        cart=cart,
    )
