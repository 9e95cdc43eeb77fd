"""Storefront backend API client."""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .exceptions import CartError, NetworkFailure, NotAuthenticated, ServerRejected
from .models import AuthCredentials, CartItem, CartSnapshot, Product, SessionData

logger = logging.getLogger(__name__)


class StorefrontClient:
    """
    Client for the storefront REST API.

    Cart calls are stateless: each one takes the bearer token, makes one
    round trip and returns the snapshot the server answered with.
    """

    DEFAULT_BASE_URL = "http://localhost:7000"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the storefront client.

        Args:
            base_url: Backend root URL (the API lives under /api)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, e.g. a MockTransport
        """
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "User-Agent": "storefront-mcp-server/0.1.0",
                "Accept": "application/json",
            },
        )

    def _auth_headers(self, token: Optional[str]) -> dict[str, str]:
        if not token:
            raise NotAuthenticated("Must be authenticated to use the server cart")
        return {"Authorization": f"Bearer {token}"}

    def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """Send one request and return the decoded response envelope."""
        headers = self._auth_headers(token) if authenticated else {}

        try:
            response = self.client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkFailure(f"Could not reach the storefront: {e}") from e

        logger.info(f"{method} {path}: status={response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            if not isinstance(body, dict):
                raise NetworkFailure(f"Unreadable response from {method} {path}")
            return body

        message = None
        code = None
        if isinstance(body, dict):
            message = body.get("message")
            code = body.get("code")
        logger.warning(f"{method} {path} rejected: {message or response.status_code}")
        raise ServerRejected(
            message or f"Request failed with status {response.status_code}",
            status_code=response.status_code,
            code=code,
        )

    def _item_path(self, product_id: str) -> str:
        return f"/api/cart/items/{quote(str(product_id), safe='')}"

    # Cart endpoints

    def get_cart(self, token: str) -> CartSnapshot:
        """
        Fetch the server cart.

        Args:
            token: Bearer token of the shop user

        Returns:
            The server's cart snapshot

        Raises:
            NotAuthenticated, NetworkFailure, ServerRejected
        """
        logger.info("=== GET CART ===")
        body = self._request("GET", "/api/cart", token=token)
        return self._parse_cart(body.get("data"))

    def add_item(self, token: str, product_id: str, quantity: int = 1) -> CartSnapshot:
        """
        Add a product to the server cart.

        The server adds ``quantity`` to any quantity already present for the
        product.

        Args:
            token: Bearer token of the shop user
            product_id: Product ID
            quantity: Quantity to add

        Returns:
            The server's cart snapshot after the add
        """
        logger.info(f"=== ADD TO CART: product_id={product_id}, quantity={quantity} ===")
        body = self._request(
            "POST",
            "/api/cart/items",
            token=token,
            json={"productId": product_id, "quantity": quantity},
        )
        return self._parse_cart(body.get("data"))

    def update_item(self, token: str, product_id: str, quantity: int) -> CartSnapshot:
        """Set (not increment) the quantity of a product in the server cart."""
        logger.info(f"=== UPDATE CART: product_id={product_id}, new_quantity={quantity} ===")
        body = self._request(
            "PUT", self._item_path(product_id), token=token, json={"quantity": quantity}
        )
        return self._parse_cart(body.get("data"))

    def remove_item(self, token: str, product_id: str) -> CartSnapshot:
        """Remove a product from the server cart."""
        logger.info(f"=== REMOVE FROM CART: product_id={product_id} ===")
        body = self._request("DELETE", self._item_path(product_id), token=token)
        return self._parse_cart(body.get("data"))

    def clear_cart(self, token: str) -> CartSnapshot:
        """Empty the server cart."""
        logger.info("=== CLEAR CART ===")
        body = self._request("DELETE", "/api/cart", token=token)
        return self._parse_cart(body.get("data"))

    def get_cart_count(self, token: str) -> int:
        """Get the number of units in the server cart (header badge count)."""
        body = self._request("GET", "/api/cart/count", token=token)
        data = body.get("data") or {}
        try:
            return int(data.get("totalItems", 0))
        except (TypeError, ValueError) as e:
            raise NetworkFailure(f"Unreadable cart count: {e}") from e

    # Catalog and account endpoints

    def get_product(self, product_id: str) -> Product:
        """
        Fetch a product from the public catalog.

        Args:
            product_id: Product ID

        Returns:
            Product snapshot suitable for adding to a cart
        """
        body = self._request(
            "GET", f"/api/products/{quote(str(product_id), safe='')}", authenticated=False
        )
        try:
            return Product.model_validate(body.get("data"))
        except ValidationError as e:
            raise NetworkFailure(f"Unreadable product {product_id}: {e}") from e

    def login(self, credentials: AuthCredentials) -> SessionData:
        """
        Authenticate a shop user.

        Args:
            credentials: User credentials (email and password)

        Returns:
            Session data carrying the bearer token

        Raises:
            ServerRejected: If the credentials are refused or the account is blocked
        """
        logger.info(f"=== LOGIN: email={credentials.email} ===")
        try:
            body = self._request(
                "POST",
                "/api/shop/login",
                json={"email": credentials.email, "password": credentials.password},
                authenticated=False,
            )
        except ServerRejected as e:
            if e.code == "ACCOUNT_BLOCKED":
                raise ServerRejected(
                    "Your account has been blocked by admin. Please contact admin for assistance.",
                    status_code=e.status_code,
                    code=e.code,
                ) from e
            raise

        data = body.get("data") or {}
        token = data.get("token")
        if not token:
            raise NetworkFailure("Login response did not include a token")

        logger.info("Login successful")
        return SessionData(
            token=token,
            shop=data.get("shop") or {},
            user_email=credentials.email,
            is_authenticated=True,
        )

    def logout(self, token: str) -> None:
        """Tell the backend the session ended. Failures are ignored."""
        try:
            self._request("POST", "/api/shop/logout", token=token)
        except CartError as e:
            logger.warning(f"Logout request failed, continuing: {e}")

    # Helper methods for parsing responses

    def _parse_cart(self, data: Any) -> CartSnapshot:
        """Parse a cart snapshot from the response ``data`` payload."""
        if data is None:
            return CartSnapshot.empty()
        if not isinstance(data, dict):
            raise NetworkFailure("Cart response has an unexpected shape")

        items: list[CartItem] = []
        seen: set[str] = set()
        for item_data in data.get("items") or []:
            product_data = item_data.get("product") if isinstance(item_data, dict) else None
            if not isinstance(product_data, dict):
                # Product deleted from the catalog or not populated
                logger.warning(f"Skipping cart item without product details: {item_data}")
                continue
            try:
                item = CartItem.model_validate(item_data)
            except ValidationError as e:
                logger.warning(f"Failed to parse cart item: {e}")
                continue
            if item.product.id in seen:
                logger.warning(f"Skipping duplicate cart line for product {item.product.id}")
                continue
            seen.add(item.product.id)
            items.append(item)

        return CartSnapshot(items=items)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
