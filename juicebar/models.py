"""
Order and menu value types. Orders are immutable snapshots: line item names and
prices are copied in from the menu at checkout and every status change
produces a new Order.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from juicebar.order_state import Channel, OrderStatus

# Prices fit NUMERIC(10, 2); order totals fit NUMERIC(12, 2)
MAX_LINE_QUANTITY = 20
MAX_CART_LINES = 50


class CupSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class Actor(BaseModel):
    """Who is calling. Passed explicitly to every operation that checks rights."""
    user_id: str = Field(..., min_length=1)
    role: Literal["user", "admin"] = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Variant(BaseModel):
    size: CupSize
    price: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    is_available: bool = True


class MenuItemIn(BaseModel):
    """Admin payload for creating or replacing a menu item."""
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    image: str = Field("", max_length=500)
    category_id: str = Field(..., min_length=1, max_length=64)
    variants: list[Variant] = Field(..., min_length=1, max_length=3)
    is_available: bool = True
    is_featured: bool = False

    @model_validator(mode="after")
    def _check_variants(self) -> "MenuItemIn":
        sizes = [v.size for v in self.variants]
        if len(set(sizes)) != len(sizes):
            raise ValueError("each cup size may appear only once")
        if any(v.is_available and v.price <= 0 for v in self.variants):
            raise ValueError("price must be greater than 0 for available variants")
        return self


class MenuItem(MenuItemIn):
    id: str

    def variant(self, size: CupSize) -> Variant | None:
        for v in self.variants:
            if v.size == size:
                return v
        return None


class UnavailableItem(Exception):
    """A cart line names a product or size that is not on sale right now."""
    def __init__(self, product_id: str, size: CupSize, reason: str):
        self.product_id = product_id
        self.size = CupSize(size)
        self.reason = reason
        super().__init__(f"'{product_id}' ({self.size.value}) {reason}")


class LineItem(BaseModel):
    product_id: str = Field(..., description="Menu item this line was ordered from")
    name: str = Field(..., description="Display name at time of order")
    size: CupSize
    unit_price: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2, description="Price snapshotted at checkout")
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Address(BaseModel):
    name: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str


def subtotal(items: list[LineItem]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0"))


class Order(BaseModel):
    id: str
    user_id: str
    items: list[LineItem] = Field(..., min_length=1, max_length=MAX_CART_LINES)
    total_amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    delivery_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=8, decimal_places=2)
    channel: Channel
    status: OrderStatus = OrderStatus.PLACED
    address: Address | None = None
    table_no: str | None = None
    payment_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_channel_and_total(self) -> "Order":
        if self.channel == Channel.DELIVERY and self.address is None:
            raise ValueError("delivery orders require an address")
        if self.channel == Channel.DINE_IN and not self.table_no:
            raise ValueError("dine-in orders require a table number")
        if self.channel != Channel.DINE_IN and self.table_no:
            raise ValueError("table number is only valid for dine-in orders")
        if self.channel != Channel.DELIVERY and self.delivery_fee != 0:
            raise ValueError("delivery fee applies to delivery orders only")
        expected = subtotal(self.items) + self.delivery_fee
        if self.total_amount != expected:
            raise ValueError(f"total_amount {self.total_amount} does not match line items ({expected})")
        return self


class CartLine(BaseModel):
    """What the customer picked. Name and price come from the menu, never from the client."""
    product_id: str = Field(..., min_length=1)
    size: CupSize
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY)


class CheckoutRequest(BaseModel):
    items: list[CartLine] = Field(..., min_length=1, max_length=MAX_CART_LINES)
    channel: Channel
    address: Address | None = None
    table_no: str | None = Field(None, max_length=20)
    payment_id: str | None = Field(None, description="Reference returned by the payment gateway")


def price_cart(lines: list[CartLine], menu: dict[str, MenuItem]) -> list[LineItem]:
    """
    Snapshot name and unit price for each cart line from the menu.
    Raises UnavailableItem for an unknown product, a missing size, or anything switched off.
    """
    items = []
    for line in lines:
        product = menu.get(line.product_id)
        if product is None:
            raise UnavailableItem(line.product_id, line.size, "is not on the menu")
        if not product.is_available:
            raise UnavailableItem(line.product_id, line.size, "is not available")
        variant = product.variant(line.size)
        if variant is None:
            raise UnavailableItem(line.product_id, line.size, "is not offered in this size")
        if not variant.is_available:
            raise UnavailableItem(line.product_id, line.size, "is sold out in this size")
        items.append(LineItem(
            product_id=product.id,
            name=product.name,
            size=line.size,
            unit_price=variant.price,
            quantity=line.quantity,
        ))
    return items


def place_order(
    user_id: str,
    request: CheckoutRequest,
    menu: dict[str, MenuItem],
    delivery_fee: Decimal,
    now: datetime | None = None,
) -> Order:
    """
    Build a new order in status 'placed' from a checkout request, priced from `menu`.
    Address and table number are kept only for the channel that uses them.
    Raises UnavailableItem for lines the menu cannot fill, and
    pydantic.ValidationError when the channel's requirements are not met.
    """
    now = now or datetime.now(timezone.utc)
    items = price_cart(request.items, menu)
    is_delivery = request.channel == Channel.DELIVERY
    fee = delivery_fee if is_delivery else Decimal("0")
    return Order(
        id=f"order-{uuid.uuid4().hex}",
        user_id=user_id,
        items=items,
        total_amount=subtotal(items) + fee,
        delivery_fee=fee,
        channel=request.channel,
        status=OrderStatus.PLACED,
        address=request.address if is_delivery else None,
        table_no=request.table_no if request.channel == Channel.DINE_IN else None,
        payment_id=request.payment_id,
        created_at=now,
        updated_at=now,
    )
