import json
from typing import Optional

import httpx
import pytest

from storefront_server.cart_state import CartStateMachine
from storefront_server.config import Settings
from storefront_server.guest_store import GuestCartStore
from storefront_server.models import Product
from storefront_server.storefront_client import StorefrontClient


CATALOG = {
    "prod-a": {"_id": "prod-a", "name": "Toned Milk 1L", "price": 50, "unit": {"name": "Litre", "symbol": "L"},
               "photo": "uploads/milk.jpg", "shortDescription": "Fresh toned milk", "isActive": True},
    "prod-b": {"_id": "prod-b", "name": "Paneer 200g", "price": 30, "originalPrice": 35,
               "unit": {"name": "Gram", "symbol": "g"}, "photo": "uploads/paneer.jpg", "isActive": True},
    "prod-c": {"_id": "prod-c", "name": "Curd 500g", "price": 24.5, "unit": {"name": "Gram", "symbol": "g"},
               "photo": "uploads/curd.jpg", "isActive": True},
}


class FakeStorefrontBackend:
    """In-memory stand-in for the storefront REST API."""

    def __init__(self) -> None:
        self.products = {pid: dict(data) for pid, data in CATALOG.items()}
        self.users = {"shop@example.com": ("secret", "token-1")}
        self.carts: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.reject_products: set[str] = set()
        self.offline = False
        self.blocked: set[str] = set()
        self._next_item_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def seed_cart(self, token: str, product_id: str, quantity: int) -> None:
        self.carts.setdefault(token, []).append(self._line(product_id, quantity))

    def server_quantity(self, token: str, product_id: str) -> int:
        for line in self.carts.get(token, []):
            if line["product"] == product_id:
                return line["quantity"]
        return 0

    def add_calls(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call == ("POST", "/api/cart/items")]

    def _line(self, product_id: str, quantity: int) -> dict:
        line = {"_id": f"line-{self._next_item_id}", "product": product_id, "quantity": quantity}
        self._next_item_id += 1
        return line

    def _cart_payload(self, token: str) -> dict:
        items = []
        for line in self.carts.get(token, []):
            items.append({
                "_id": line["_id"],
                "product": self.products.get(line["product"]),
                "quantity": line["quantity"],
                "addedAt": "2024-05-01T10:00:00.000Z",
            })
        total_items = sum(line["quantity"] for line in self.carts.get(token, []))
        total_price = sum(self.products[line["product"]]["price"] * line["quantity"]
                          for line in self.carts.get(token, []) if line["product"] in self.products)
        return {"_id": "cart-1", "user": "shop-1", "items": items, "totalItems": total_items,
                "totalPrice": total_price, "isActive": True}

    @staticmethod
    def _reply(status: int, message: Optional[str] = None, data=None, **extra) -> httpx.Response:
        body = {"success": 200 <= status < 300}
        if message:
            body["message"] = message
        if data is not None:
            body["data"] = data
        body.update(extra)
        return httpx.Response(status, json=body)

    def _token(self, request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        token = header[len("Bearer "):]
        known = {t for _, t in self.users.values()}
        return token if token in known else None

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        body = json.loads(request.content) if request.content else {}

        if path == "/api/shop/login" and method == "POST":
            email = body.get("email")
            if email in self.blocked:
                return self._reply(403, "Account blocked", code="ACCOUNT_BLOCKED")
            user = self.users.get(email)
            if not user or user[0] != body.get("password"):
                return self._reply(401, "Invalid email or password")
            return self._reply(200, "Login successful",
                               {"shop": {"_id": "shop-1", "email": email}, "token": user[1]})

        if path.startswith("/api/products/") and method == "GET":
            product = self.products.get(path.rsplit("/", 1)[1])
            if product is None:
                return self._reply(404, "Product not found")
            return self._reply(200, data=product)

        token = self._token(request)
        if token is None:
            return self._reply(401, "Not authorized, no token")

        if path == "/api/shop/logout":
            return self._reply(200, "Logged out")

        cart = self.carts.setdefault(token, [])

        if path == "/api/cart" and method == "GET":
            return self._reply(200, data=self._cart_payload(token))

        if path == "/api/cart" and method == "DELETE":
            cart.clear()
            return self._reply(200, "Cart cleared successfully", {"items": [], "totalItems": 0, "totalPrice": 0})

        if path == "/api/cart/count":
            return self._reply(200, data={"totalItems": sum(line["quantity"] for line in cart)})

        if path == "/api/cart/items" and method == "POST":
            product_id = body.get("productId")
            if product_id not in self.products or product_id in self.reject_products:
                return self._reply(404, "Product not found or inactive")
            for line in cart:
                if line["product"] == product_id:
                    line["quantity"] += body.get("quantity", 1)
                    break
            else:
                cart.append(self._line(product_id, body.get("quantity", 1)))
            return self._reply(200, "Item added to cart successfully", self._cart_payload(token))

        if path.startswith("/api/cart/items/"):
            product_id = path.rsplit("/", 1)[1]
            line = next((line for line in cart if line["product"] == product_id), None)
            if line is None:
                return self._reply(404, "Item not found in cart")
            if method == "PUT":
                quantity = body.get("quantity")
                if not quantity or quantity < 0:
                    return self._reply(400, "Valid quantity is required")
                line["quantity"] = quantity
                return self._reply(200, "Cart item updated successfully", self._cart_payload(token))
            if method == "DELETE":
                cart.remove(line)
                return self._reply(200, "Item removed from cart successfully", self._cart_payload(token))

        return self._reply(404, f"No route for {method} {path}")


def make_product(product_id: str) -> Product:
    return Product.model_validate(CATALOG[product_id])


@pytest.fixture
def backend():
    return FakeStorefrontBackend()


@pytest.fixture
def client(backend):
    storefront_client = StorefrontClient("http://storefront.test", transport=backend.transport)
    yield storefront_client
    storefront_client.close()


@pytest.fixture
def guest_store(tmp_path):
    return GuestCartStore(str(tmp_path / "storage.json"))


@pytest.fixture
def cart(guest_store, client):
    return CartStateMachine(guest_store, client)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_url="http://storefront.test",
        email=None,
        password=None,
        token=None,
        session_file=str(tmp_path / "session.json"),
        storage_file=str(tmp_path / "storage.json"),
        timeout=5.0,
    )


@pytest.fixture
def milk():
    return make_product("prod-a")


@pytest.fixture
def paneer():
    return make_product("prod-b")
