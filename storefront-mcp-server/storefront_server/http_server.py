"""HTTP server exposing the storefront cart."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import Settings
from .exceptions import CartError
from .services import Services, build_services

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-http-server")

# Global state
services: Optional[Services] = None


def init_services(settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> Services:
    """Build the cart services the endpoints use."""
    global services
    services = build_services(settings, transport=transport)
    return services


def get_services() -> Services:
    if services is None:
        raise HTTPException(status_code=503, detail="Server is not initialized")
    return services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    logger.info("Starting Storefront HTTP Server...")
    init_services(Settings.from_env())

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    if services is not None:
        services.close()


app = FastAPI(
    title="Storefront Cart Server",
    description="HTTP API for the storefront shopping cart",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class UpdateQuantityRequest(BaseModel):
    product_id: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    product_id: str


def _cart_response(success: bool, message: str) -> dict[str, Any]:
    cart = get_services().cart
    if not success:
        return {"success": False, "message": cart.error or message}
    return {"success": True, "message": message, "cart": cart.snapshot.to_wire()}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Storefront Cart Server",
        "version": "0.1.0",
        "description": "HTTP API for the storefront shopping cart",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {"login": "POST /auth/login", "logout": "POST /auth/logout", "status": "GET /auth/status"},
            "cart": {
                "get": "GET /cart",
                "count": "GET /cart/count",
                "add": "POST /cart/add",
                "update": "POST /cart/update",
                "remove": "POST /cart/remove",
                "clear": "POST /cart/clear",
                "refresh": "POST /cart/refresh",
                "item": "GET /cart/items/{product_id}",
            },
        },
        "authenticated": services.auth_manager.is_authenticated() if services else False,
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": services.auth_manager.is_authenticated() if services else False,
    }


# Authentication endpoints
@app.post("/auth/login")
async def login(request: LoginRequest):
    """Log in and merge the guest cart into the account cart."""
    svc = get_services()
    email = request.email
    password = request.password
    if not email or not password:
        credentials = svc.settings.credentials
        if not credentials:
            raise HTTPException(status_code=400, detail="Email and password are required")
        email = email or credentials[0]
        password = password or credentials[1]

    try:
        report = svc.login(email, password)
    except CartError as e:
        return {"success": False, "message": e.message}
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "message": f"Successfully logged in as {email}",
        "merge": {
            "skipped": report.skipped,
            "summary": report.summary(),
            "results": [result.model_dump() for result in report.results],
        },
        "cart": svc.cart.snapshot.to_wire(),
    }


@app.post("/auth/logout")
async def logout():
    """Log out and reset to an empty guest cart."""
    try:
        get_services().logout()
        return {"success": True, "message": "Successfully logged out"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Logout error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/auth/status")
async def auth_status():
    """Get authentication status."""
    svc = get_services()
    authenticated = svc.auth_manager.is_authenticated()
    return {
        "authenticated": authenticated,
        "email": svc.auth_manager.session.user_email if authenticated else None,
        "identity": str(svc.cart.identity),
    }


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get the current cart with its loading and error state."""
    cart = get_services().cart
    return {
        **cart.snapshot.to_wire(),
        "identity": str(cart.identity),
        "loading": cart.loading,
        "error": cart.error,
    }


@app.get("/cart/count")
async def get_cart_count():
    """Get the number of units in the cart."""
    try:
        return {"count": get_services().cart_count()}
    except CartError as e:
        return {"success": False, "message": e.message}


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    """Add a product to the cart."""
    svc = get_services()
    try:
        product = svc.client.get_product(request.product_id)
    except CartError as e:
        return {"success": False, "message": f"Product {request.product_id} unavailable: {e.message}"}
    except Exception as e:
        logger.error(f"Add to cart error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    success = svc.cart.add_item(product, request.quantity)
    return _cart_response(success, f"Added product {request.product_id} (quantity: {request.quantity}) to cart")


@app.post("/cart/update")
async def update_quantity(request: UpdateQuantityRequest):
    """Set the quantity of a cart item; 0 removes it."""
    cart = get_services().cart
    if not cart.contains(request.product_id):
        raise HTTPException(status_code=404, detail=f"Product {request.product_id} is not in the cart")
    success = cart.set_quantity(request.product_id, request.quantity)
    return _cart_response(success, f"Updated product {request.product_id}")


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a product from the cart."""
    cart = get_services().cart
    if not cart.contains(request.product_id):
        raise HTTPException(status_code=404, detail=f"Product {request.product_id} is not in the cart")
    success = cart.remove_item(request.product_id)
    return _cart_response(success, f"Removed product {request.product_id} from cart")


@app.post("/cart/clear")
async def clear_cart():
    """Empty the cart."""
    success = get_services().cart.clear()
    return _cart_response(success, "Cart cleared")


@app.post("/cart/refresh")
async def refresh_cart():
    """Reload the account cart from the server."""
    success = get_services().cart.refresh()
    return _cart_response(success, "Cart reloaded")


@app.get("/cart/items/{product_id}")
async def cart_item(product_id: str):
    """Report how many units of a product are in the cart."""
    cart = get_services().cart
    return {
        "product_id": product_id,
        "in_cart": cart.contains(product_id),
        "quantity": cart.quantity_of(product_id),
    }


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the HTTP server."""
    import uvicorn

    if reload:
        uvicorn.run("storefront_server.http_server:app", host=host, port=port, log_level="info", reload=True)
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
