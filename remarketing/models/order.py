"""
Order-history input models.

These mirror the rows the order source hands to the behavior analyzer.
Only orders with ``status == "delivered"`` count as completed purchases.
All models are frozen: the analyzer never mutates its inputs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
COMPLETED_ORDER_STATUS: str = "delivered"


class OrderLine(BaseModel):
    """One product line within an order.

    Attributes:
        product_id: Opaque product identifier.
        quantity: Units purchased (>= 1).
        price: Unit price at purchase time.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int = 1
    price: float

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"quantity must be >= 1, got {v}.")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if v < 0:
            raise ValueError("price must be non-negative.")
        return v


class OrderRecord(BaseModel):
    """A customer order as returned by the order source.

    Attributes:
        order_id: Order identifier.
        customer_id: Owning customer.
        items: Product lines.
        total: Order total (may differ from the line sum: shipping, tax, discounts).
        created_at: UTC timestamp the order was placed.
        status: Fulfilment status.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str
    customer_id: str
    items: list[OrderLine] = []
    total: float
    created_at: datetime
    status: OrderStatus = "delivered"

    @field_validator("total")
    @classmethod
    def validate_total(cls, v: float) -> float:
        if v < 0:
            raise ValueError("total must be non-negative.")
        return v


class CustomerInfo(BaseModel):
    """Basic customer directory entry used for denormalized snapshots."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        """``"first last"`` trimmed, or ``None`` when no name is known."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or None


class ProductRecord(BaseModel):
    """Catalog entry mapping a product to its category."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    category_id: str
