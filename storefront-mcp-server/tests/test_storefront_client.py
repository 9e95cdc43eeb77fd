from decimal import Decimal

import httpx
import pytest

from storefront_server.exceptions import NetworkFailure, NotAuthenticated, ServerRejected
from storefront_server.models import AuthCredentials
from storefront_server.storefront_client import StorefrontClient

TOKEN = "token-1"


def test_every_cart_call_sends_bearer_token(backend):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return backend.handle(request)

    client = StorefrontClient("http://storefront.test", transport=httpx.MockTransport(handler))
    client.get_cart(TOKEN)
    client.add_item(TOKEN, "prod-a", 1)
    client.update_item(TOKEN, "prod-a", 3)
    client.remove_item(TOKEN, "prod-a")
    client.clear_cart(TOKEN)

    assert seen == [f"Bearer {TOKEN}"] * 5


def test_cart_call_without_token_makes_no_request(client, backend):
    with pytest.raises(NotAuthenticated):
        client.get_cart("")
    assert backend.calls == []


def test_add_item_returns_server_snapshot(client, backend):
    backend.seed_cart(TOKEN, "prod-a", 3)

    snapshot = client.add_item(TOKEN, "prod-a", 2)

    assert snapshot.quantity_of("prod-a") == 5
    assert snapshot.total_price == Decimal("250")
    assert snapshot.items[0].product.unit == "L"
    assert snapshot.items[0].line_key.startswith("line-")


def test_update_and_remove_item(client, backend):
    backend.seed_cart(TOKEN, "prod-a", 1)
    backend.seed_cart(TOKEN, "prod-b", 1)

    assert client.update_item(TOKEN, "prod-b", 4).quantity_of("prod-b") == 4
    snapshot = client.remove_item(TOKEN, "prod-a")
    assert snapshot.product_ids() == ["prod-b"]
    assert ("PUT", "/api/cart/items/prod-b") in backend.calls
    assert ("DELETE", "/api/cart/items/prod-a") in backend.calls


def test_clear_cart_returns_empty_snapshot(client, backend):
    backend.seed_cart(TOKEN, "prod-a", 2)

    snapshot = client.clear_cart(TOKEN)

    assert snapshot.items == []
    assert snapshot.total_items == 0
    assert backend.server_quantity(TOKEN, "prod-a") == 0


def test_rejection_carries_server_message(client, backend):
    with pytest.raises(ServerRejected) as exc_info:
        client.add_item(TOKEN, "does-not-exist", 1)

    assert exc_info.value.message == "Product not found or inactive"
    assert exc_info.value.status_code == 404


def test_transport_error_is_network_failure(client, backend):
    backend.offline = True
    with pytest.raises(NetworkFailure):
        client.get_cart(TOKEN)


def test_non_json_success_is_network_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    client = StorefrontClient("http://storefront.test", transport=transport)
    with pytest.raises(NetworkFailure):
        client.get_cart(TOKEN)


def test_non_json_error_is_rejected_with_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway"))
    client = StorefrontClient("http://storefront.test", transport=transport)
    with pytest.raises(ServerRejected) as exc_info:
        client.get_cart(TOKEN)
    assert exc_info.value.status_code == 502


def test_items_without_populated_product_are_skipped(client, backend):
    backend.seed_cart(TOKEN, "prod-a", 1)
    backend.seed_cart(TOKEN, "prod-gone", 2)

    snapshot = client.get_cart(TOKEN)

    assert snapshot.product_ids() == ["prod-a"]
    assert snapshot.total_items == 1


def test_cart_count(client, backend):
    backend.seed_cart(TOKEN, "prod-a", 2)
    backend.seed_cart(TOKEN, "prod-b", 3)
    assert client.get_cart_count(TOKEN) == 5


def test_get_product_is_public(client, backend):
    product = client.get_product("prod-b")

    assert product.name == "Paneer 200g"
    assert product.original_price == Decimal("35")
    with pytest.raises(ServerRejected):
        client.get_product("missing")


def test_login_returns_session(client):
    session = client.login(AuthCredentials(email="shop@example.com", password="secret"))

    assert session.token == TOKEN
    assert session.is_authenticated
    assert session.shop["_id"] == "shop-1"


def test_login_rejections(client, backend):
    with pytest.raises(ServerRejected) as exc_info:
        client.login(AuthCredentials(email="shop@example.com", password="wrong"))
    assert exc_info.value.message == "Invalid email or password"

    backend.blocked.add("shop@example.com")
    with pytest.raises(ServerRejected) as exc_info:
        client.login(AuthCredentials(email="shop@example.com", password="secret"))
    assert "blocked" in exc_info.value.message


def test_logout_ignores_failures(client, backend):
    backend.offline = True
    client.logout(TOKEN)
