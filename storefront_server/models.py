"""Data models for storefront entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Product(BaseModel):
    """Represents a product from the general shop catalog."""

    id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    price: Decimal = Field(default=Decimal("0"), ge=0, description="Unit price")
    images: list[str] = Field(default_factory=list, description="Image URLs")
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100, description="GST rate")
    inventory: Optional[int] = Field(None, ge=0, description="Units in stock, None if untracked")

    @property
    def primary_image(self) -> str:
        return self.images[0] if self.images else ""


class SimProduct(BaseModel):
    """Represents a product from the sim-racing catalog."""

    id: str
    name: str
    price: Decimal = Field(default=Decimal("0"), ge=0)
    image_url: list[str] = Field(default_factory=list)
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    inventory: Optional[int] = Field(None, ge=0)

    @property
    def primary_image(self) -> str:
        return self.image_url[0] if self.image_url else ""


class CartLine(BaseModel):
    """Represents one line of the shopping cart."""

    id: str = Field(description="Line ID")
    product_id: str = Field(description="Product the line refers to")
    quantity: int = Field(gt=0, description="Quantity of the product")
    name: str = Field(description="Product display name")
    unit_price: Decimal = Field(ge=0, description="Unit price")
    image_url: str = Field(default="", description="Product image URL")
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    inventory: Optional[int] = Field(None, ge=0, description="Known stock level")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Address(BaseModel):
    """Represents a shipping address in an owner's address book."""

    id: str
    label: str = ""
    line1: str
    line2: Optional[str] = None
    city: str
    state: str = ""
    postal_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool = False
    owner_id: Optional[str] = None

    @field_validator("postal_code", mode="before")
    @classmethod
    def _postal_code_as_text(cls, value):
        # The remote service stores postal codes as numbers
        if value is None:
            return ""
        return str(value)


class AddressInput(BaseModel):
    """Fields accepted when creating an address (the ID is assigned on insert)."""

    label: str = ""
    line1: str
    line2: Optional[str] = None
    city: str
    state: str = ""
    postal_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool = False

    @field_validator("postal_code", mode="before")
    @classmethod
    def _postal_code_as_text(cls, value):
        if value is None:
            return ""
        return str(value)


class OrderStatus(str, Enum):
    """Order lifecycle states. Transitions happen outside this package."""

    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    """Represents an item in an order."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    order_id: str
    product_id: Optional[str] = None
    sim_product_id: Optional[str] = Field(None, alias="simProduct_id")
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    resolved_name: Optional[str] = None
    resolved_image: Optional[str] = None

    @model_validator(mode="after")
    def _single_product_ref(self):
        if self.product_id and self.sim_product_id:
            raise ValueError("an order item references either a shop product or a sim product, not both")
        return self


class Order(BaseModel):
    """Represents an order with its items and shipping address."""

    id: str = Field(description="Order ID")
    total: Decimal = Field(ge=0, description="Order total value")
    status: OrderStatus = Field(description="Order status")
    created_at: datetime = Field(description="Order creation timestamp")
    items: list[OrderItem] = Field(default_factory=list, description="Order items")
    shipping_address: Optional[Address] = Field(None, description="Resolved shipping address")


class InventoryReport(BaseModel):
    """Stock classification of the current cart."""

    out_of_stock: list[CartLine] = Field(default_factory=list)
    low_stock: list[CartLine] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.out_of_stock


class AuthState(BaseModel):
    """Immutable snapshot of who (if anyone) is signed in."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id and self.access_token)


class SessionData(BaseModel):
    """Session data for an authenticated user."""

    access_token: Optional[str] = Field(None, description="Bearer credential")
    user_id: Optional[str] = Field(None, description="User ID")
    user_email: Optional[str] = Field(None, description="User email")
    is_authenticated: bool = Field(default=False, description="Authentication status")
