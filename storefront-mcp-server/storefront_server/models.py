"""Data models for storefront cart entities."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
    model_validator,
)


def _to_decimal(value: Any) -> Any:
    # JSON floats go through str() so 49.99 stays 49.99
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _to_number(value: Optional[Decimal]) -> Any:
    # The backend sends amounts as JSON numbers
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class Product(BaseModel):
    """Snapshot of a catalog product taken when it was added to the cart."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id", description="Product ID")
    name: str = Field(description="Product display name")
    price: Decimal = Field(ge=0, description="Unit price")
    original_price: Optional[Decimal] = Field(
        None, alias="originalPrice", description="List price if discounted"
    )
    unit: Optional[str] = Field(None, description="Unit of measure symbol")
    photo: Optional[str] = Field(None, description="Product image reference")
    short_description: Optional[str] = Field(None, alias="shortDescription")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> Any:
        return _to_decimal(value)

    @field_serializer("price", "original_price", when_used="json")
    def _serialize_price(self, value: Optional[Decimal]) -> Any:
        return _to_number(value)

    @field_validator("unit", mode="before")
    @classmethod
    def _flatten_unit(cls, value: Any) -> Any:
        """The backend populates units as ``{name, symbol}`` objects."""
        if isinstance(value, dict):
            return value.get("symbol") or value.get("name")
        return value


class CartItem(BaseModel):
    """Represents one product line in the shopping cart."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product: Product
    quantity: int = Field(ge=1, description="Quantity of the product")
    line_key: str = Field(
        validation_alias=AliasChoices("line_key", "id", "_id"),
        serialization_alias="id",
        description="Stable key for list rendering and lookups",
    )

    @model_validator(mode="before")
    @classmethod
    def _default_line_key(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if any(data.get(key) for key in ("line_key", "id", "_id")):
            return data
        product = data.get("product")
        if isinstance(product, dict):
            product_id = product.get("_id") or product.get("id")
        else:
            product_id = getattr(product, "id", None)
        return {**data, "line_key": str(product_id)}

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity

    @field_serializer("subtotal", when_used="json")
    def _serialize_subtotal(self, value: Decimal) -> Any:
        return _to_number(value)


class CartSnapshot(BaseModel):
    """
    Immutable view of the cart.

    ``total_items`` and ``total_price`` are derived from ``items`` on every
    read and are never accepted from input, so they always agree with the
    item list.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    items: list[CartItem] = Field(default_factory=list, description="Cart items")

    @model_validator(mode="after")
    def _unique_products(self) -> "CartSnapshot":
        seen: set[str] = set()
        for item in self.items:
            if item.product.id in seen:
                raise ValueError(f"Duplicate cart line for product {item.product.id}")
            seen.add(item.product.id)
        return self

    @computed_field(alias="totalItems")
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @field_serializer("total_price", when_used="json")
    def _serialize_total_price(self, value: Decimal) -> Any:
        return _to_number(value)

    @classmethod
    def empty(cls) -> "CartSnapshot":
        return cls(items=[])

    def find(self, product_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.product.id == product_id:
                return item
        return None

    def quantity_of(self, product_id: str) -> int:
        item = self.find(product_id)
        return item.quantity if item else 0

    def contains(self, product_id: str) -> bool:
        return self.find(product_id) is not None

    def product_ids(self) -> list[str]:
        return [item.product.id for item in self.items]

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the ``{items, totalItems, totalPrice}`` wire shape."""
        return self.model_dump(mode="json", by_alias=True)


class Identity(BaseModel):
    """Who the cart belongs to: a guest or a bearer-token holder."""

    model_config = ConfigDict(frozen=True)

    token: Optional[str] = Field(None, repr=False)

    @classmethod
    def guest(cls) -> "Identity":
        return cls()

    @classmethod
    def authenticated(cls, token: str) -> "Identity":
        if not token:
            raise ValueError("An authenticated identity needs a token")
        return cls(token=token)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def __str__(self) -> str:
        return "Authenticated" if self.is_authenticated else "Guest"


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionData(BaseModel):
    """Session data for an authenticated shop user."""

    token: Optional[str] = Field(None, description="Bearer token")
    shop: dict[str, Any] = Field(default_factory=dict, description="Shop profile")
    user_email: Optional[str] = Field(None, description="User email")
    is_authenticated: bool = Field(default=False, description="Authentication status")


class MergeItemResult(BaseModel):
    """Outcome of merging one guest cart line into the server cart."""

    product_id: str
    quantity: int
    succeeded: bool
    reason: Optional[str] = None


class MergeReport(BaseModel):
    """Per-item outcome of a guest cart merge."""

    results: list[MergeItemResult] = Field(default_factory=list)
    skipped: bool = Field(default=False, description="True when there was nothing to merge")

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> list[MergeItemResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> list[MergeItemResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed)

    def summary(self) -> str:
        if self.skipped:
            return "No guest cart items to merge"
        text = f"Merged {len(self.succeeded)}/{self.attempted} guest cart item(s)"
        if self.failed:
            failed = ", ".join(f"{r.product_id} ({r.reason})" for r in self.failed)
            text += f"; failed: {failed}"
        return text
