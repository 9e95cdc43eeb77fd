"""MCP Server for the storefront cart."""

import asyncio
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, Tool, TextContent
from pydantic import AnyUrl

from .config import Settings
from .exceptions import CartError
from .models import CartSnapshot, MergeReport
from .services import Services, build_services

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
services: Services


def format_price(amount: Any) -> str:
    return f"₹{amount:,.2f}"


def format_cart(snapshot: CartSnapshot) -> str:
    """Render a cart snapshot as text for MCP clients."""
    if not snapshot.items:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({snapshot.total_items} items):\n"]
    result_lines.append(f"Total: {format_price(snapshot.total_price)}")
    result_lines.append("\nItems:")
    for item in snapshot.items:
        unit = f" {item.product.unit}" if item.product.unit else ""
        line = (
            f"  - {item.product.name} (ID: {item.product.id}): "
            f"{item.quantity} x {format_price(item.product.price)}{unit} = {format_price(item.subtotal)}"
        )
        if item.product.original_price and item.product.original_price > item.product.price:
            line += f" (was {format_price(item.product.original_price)})"
        result_lines.append(line)
    return "\n".join(result_lines)


def _cart_result(success: bool, message: str) -> list[TextContent]:
    cart = services.cart
    if success:
        text = f"✅ {message}\n\n{format_cart(cart.snapshot)}"
    else:
        text = f"❌ {cart.error or message}"
    return [TextContent(type="text", text=text)]


def _merge_text(report: MergeReport) -> str:
    if report.skipped:
        return ""
    text = f"\n{report.summary()}"
    if report.partial_failure:
        text += "\n⚠️ Items that failed to merge were removed from the guest cart."
    return text


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents (guest or account cart)",
        )
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "storefront://cart":
        return services.cart.snapshot.model_dump_json(by_alias=True, indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    product_id_schema = {"type": "string", "description": "Product ID from the catalog"}
    return [
        Tool(
            name="storefront_login",
            description="Log in as a shop user; the guest cart is merged into the account cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {
                        "type": "string",
                        "description": "Email address (optional if STOREFRONT_EMAIL configured)",
                    },
                    "password": {
                        "type": "string",
                        "description": "Password (optional if STOREFRONT_PASSWORD configured)",
                    },
                },
            },
        ),
        Tool(
            name="storefront_logout",
            description="Log out and switch back to an empty guest cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current shopping cart contents",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product to the cart (adds to the quantity if already present)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id_schema,
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                        "minimum": 1,
                    },
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_quantity",
            description="Set the quantity of a cart item (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id_schema,
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product from the cart",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id_schema},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_clear_cart",
            description="Remove every item from the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_cart_count",
            description="Get the number of items in the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_refresh_cart",
            description="Reload the account cart from the server",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    cart = services.cart
    try:
        if name == "storefront_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # Use provided credentials or fall back to environment
            if not email or not password:
                credentials = services.settings.credentials
                if credentials:
                    email = email or credentials[0]
                    password = password or credentials[1]
                else:
                    return [
                        TextContent(
                            type="text",
                            text="Error: No credentials provided and STOREFRONT_EMAIL/STOREFRONT_PASSWORD not configured.",
                        )
                    ]

            try:
                report = services.login(email, password)
            except CartError as e:
                return [TextContent(type="text", text=f"❌ Login failed: {e.message}")]

            return [
                TextContent(
                    type="text",
                    text=f"✅ Successfully logged in as {email}{_merge_text(report)}\n\n"
                    f"{format_cart(cart.snapshot)}",
                )
            ]

        elif name == "storefront_logout":
            services.logout()
            return [TextContent(type="text", text="✅ Successfully logged out")]

        elif name == "storefront_get_cart":
            return [TextContent(type="text", text=format_cart(cart.snapshot))]

        elif name == "storefront_add_to_cart":
            product_id = arguments["product_id"]
            quantity = int(arguments.get("quantity", 1))
            if quantity < 1:
                return [TextContent(type="text", text="Error: quantity must be at least 1")]

            try:
                product = services.client.get_product(product_id)
            except CartError as e:
                return [TextContent(type="text", text=f"❌ Product {product_id} unavailable: {e.message}")]

            success = cart.add_item(product, quantity)
            return _cart_result(success, f"Added {product.name} (quantity: {quantity}) to cart")

        elif name == "storefront_update_quantity":
            product_id = arguments["product_id"]
            quantity = int(arguments["quantity"])
            if not cart.contains(product_id):
                return [TextContent(type="text", text=f"❌ Product {product_id} is not in the cart")]
            success = cart.set_quantity(product_id, quantity)
            return _cart_result(success, f"Updated product {product_id} to quantity {max(quantity, 0)}")

        elif name == "storefront_remove_from_cart":
            product_id = arguments["product_id"]
            if not cart.contains(product_id):
                return [TextContent(type="text", text=f"❌ Product {product_id} is not in the cart")]
            success = cart.remove_item(product_id)
            return _cart_result(success, f"Removed product {product_id} from cart")

        elif name == "storefront_clear_cart":
            success = cart.clear()
            return _cart_result(success, "Cart cleared")

        elif name == "storefront_cart_count":
            count = services.cart_count()
            return [TextContent(type="text", text=f"Cart has {count} item(s)")]

        elif name == "storefront_refresh_cart":
            if not cart.identity.is_authenticated:
                return [TextContent(type="text", text=f"Guest cart is stored locally.\n\n{format_cart(cart.snapshot)}")]
            success = cart.refresh()
            return _cart_result(success, "Cart reloaded")

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return [
            TextContent(
                type="text",
                text=f"Error: {str(e)}",
            )
        ]


async def main(settings: Optional[Settings] = None) -> None:
    """Main entry point."""
    global services

    settings = settings or Settings.from_env()
    services = build_services(settings)

    if settings.credentials:
        logger.info(f"Credentials loaded from environment for: {settings.email}")
    else:
        logger.info("No credentials in environment (STOREFRONT_EMAIL, STOREFRONT_PASSWORD)")
    logger.info(f"Storefront API: {settings.api_url}")
    logger.info(f"Cart identity: {services.cart.identity}")

    logger.info("Starting Storefront MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        services.close()


if __name__ == "__main__":
    asyncio.run(main())
