"""
Shared fixtures: in-memory order and menu stores with the same contracts as
the Postgres ones, and a TestClient wired to them. No Postgres or Redis needed.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from juicebar import main
from juicebar.db import ConflictError, MenuItemNotFoundError, OrderNotFoundError, get_menu_store, get_store
from juicebar.models import Actor, Address, LineItem, MenuItem, MenuItemIn, Order, subtotal
from juicebar.order_state import Channel, OrderStatus, TERMINAL_STATUSES
from juicebar.routes import admin

T0 = datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc)


class InMemoryOrderStore:
    def __init__(self):
        self.orders: dict[str, Order] = {}
        # order_id -> order returned by the next load_order instead of the stored one
        self.stale_reads: dict[str, Order] = {}

    async def insert_order(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def load_order(self, order_id: str) -> Order:
        if order_id in self.stale_reads:
            return self.stale_reads.pop(order_id)
        if order_id not in self.orders:
            raise OrderNotFoundError(order_id)
        return self.orders[order_id]

    async def save_order(self, order: Order, expected_prior_status: OrderStatus) -> Order:
        stored = self.orders.get(order.id)
        if stored is None or stored.status != expected_prior_status:
            raise ConflictError(order.id, stored.status if stored else None)
        self.orders[order.id] = order
        return order

    async def list_orders(self, user_id=None, status=None, channel=None, search=None, active=None, limit=100):
        out = []
        for o in sorted(self.orders.values(), key=lambda o: o.created_at, reverse=True):
            if user_id is not None and o.user_id != user_id:
                continue
            if status is not None and o.status != status:
                continue
            if channel is not None and o.channel.value != channel:
                continue
            if search and search.lower() not in o.id.lower():
                continue
            if active is not None and (o.status not in TERMINAL_STATUSES) != active:
                continue
            out.append(o)
        return out[:limit]

    async def dashboard_stats(self) -> dict:
        orders = list(self.orders.values())
        return {
            "total_orders": len(orders),
            "total_earnings": sum(
                (o.total_amount for o in orders if o.status != OrderStatus.CANCELLED), Decimal("0")
            ),
            "pending_orders": sum(1 for o in orders if o.status not in TERMINAL_STATUSES),
            "completed_orders": sum(
                1 for o in orders if o.status in (OrderStatus.DELIVERED, OrderStatus.COMPLETED)
            ),
        }


class InMemoryMenuStore:
    def __init__(self, items=()):
        self.items: dict[str, MenuItem] = {i.id: i for i in items}

    async def create_menu_item(self, item_id: str, data: MenuItemIn) -> MenuItem:
        item = MenuItem(id=item_id, **data.model_dump())
        self.items[item.id] = item
        return item

    async def update_menu_item(self, item_id: str, data: MenuItemIn) -> MenuItem:
        if item_id not in self.items:
            raise MenuItemNotFoundError(item_id)
        self.items[item_id] = MenuItem(id=item_id, **data.model_dump())
        return self.items[item_id]

    async def delete_menu_item(self, item_id: str) -> None:
        if self.items.pop(item_id, None) is None:
            raise MenuItemNotFoundError(item_id)

    async def load_menu_item(self, item_id: str) -> MenuItem:
        if item_id not in self.items:
            raise MenuItemNotFoundError(item_id)
        return self.items[item_id]

    async def list_menu_items(self, category_id=None, available_only=False):
        out = [
            i for i in self.items.values()
            if (category_id is None or i.category_id == category_id) and (i.is_available or not available_only)
        ]
        return sorted(out, key=lambda i: (not i.is_featured, i.name))

    async def get_menu_items(self, item_ids):
        return {i: self.items[i] for i in item_ids if i in self.items}


def build_menu() -> list[MenuItem]:
    return [
        MenuItem(
            id="juice-mango",
            name="Mango Blast",
            category_id="cat-fruit",
            is_featured=True,
            variants=[
                {"size": "small", "price": "90"},
                {"size": "medium", "price": "120"},
                {"size": "large", "price": "150", "is_available": False},
            ],
        ),
        MenuItem(
            id="juice-abc",
            name="ABC Detox",
            category_id="cat-detox",
            variants=[{"size": "large", "price": "150"}],
        ),
        MenuItem(
            id="juice-kiwi",
            name="Kiwi Cooler",
            category_id="cat-fruit",
            is_available=False,
            variants=[{"size": "medium", "price": "130"}],
        ),
    ]


ADDRESS = Address(
    name="Asha Rao",
    phone="9876543210",
    address="12 MG Road",
    city="Bengaluru",
    state="Karnataka",
    pincode="560001",
)


def build_order(
    channel: Channel = Channel.TAKEAWAY,
    status: OrderStatus = OrderStatus.PLACED,
    order_id: str = "order-1",
    user_id: str = "user-1",
    created_at: datetime = T0,
) -> Order:
    items = [
        LineItem(product_id="juice-mango", name="Mango Blast", size="medium", unit_price=Decimal("120"), quantity=2),
        LineItem(product_id="juice-abc", name="ABC Detox", size="large", unit_price=Decimal("150"), quantity=1),
    ]
    fee = Decimal("40") if channel == Channel.DELIVERY else Decimal("0")
    return Order(
        id=order_id,
        user_id=user_id,
        items=items,
        total_amount=subtotal(items) + fee,
        delivery_fee=fee,
        channel=channel,
        status=status,
        address=ADDRESS if channel == Channel.DELIVERY else None,
        table_no="T4" if channel == Channel.DINE_IN else None,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
def make_order():
    return build_order


@pytest.fixture
def admin_actor():
    return Actor(user_id="admin-1", role="admin")


@pytest.fixture
def customer():
    return Actor(user_id="user-1", role="user")


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def menu_store():
    return InMemoryMenuStore(build_menu())


@pytest.fixture
def published(monkeypatch):
    """Status change messages the admin routes tried to publish."""
    sent = []

    async def fake_publish(order, previous_status):
        sent.append((order.id, previous_status, order.status))

    monkeypatch.setattr(admin, "publish_status_change", fake_publish)
    return sent


@pytest.fixture
def client(store, menu_store, published):
    main.app.dependency_overrides[get_store] = lambda: store
    main.app.dependency_overrides[get_menu_store] = lambda: menu_store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
USER_HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def user_headers():
    return dict(USER_HEADERS)


@pytest.fixture
def later():
    return T0 + timedelta(minutes=5)
