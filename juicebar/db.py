"""
Async Postgres stores: orders (one row per order, line items and address snapshot as JSONB)
and menu_items (one row per product, size variants as JSONB).
Status writes are conditional on the previously read status (optimistic concurrency).
"""
import json
import logging
from decimal import Decimal

import asyncpg

from juicebar.config import settings
from juicebar.models import MenuItem, MenuItemIn, Order
from juicebar.order_state import OrderStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None

_TERMINAL = [s.value for s in TERMINAL_STATUSES]


class OrderNotFoundError(Exception):
    """Raised when no order row has the requested id."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(order_id)


class ConflictError(Exception):
    """Raised when the stored status no longer matches the status the caller read. Nothing was written."""
    def __init__(self, order_id: str, current_status: OrderStatus | None = None):
        self.order_id = order_id
        self.current_status = current_status
        super().__init__(order_id, current_status)


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=1,
            max_size=5,
            command_timeout=60,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id VARCHAR(64) PRIMARY KEY,
                user_id VARCHAR(255) NOT NULL,
                items JSONB NOT NULL,
                total_amount NUMERIC(12, 2) NOT NULL,
                delivery_fee NUMERIC(10, 2) NOT NULL DEFAULT 0,
                channel VARCHAR(20) NOT NULL,
                status VARCHAR(30) NOT NULL,
                address JSONB,
                table_no VARCHAR(20),
                payment_id VARCHAR(255),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        # Tables created before totals were widened to 12 digits
        await conn.execute("ALTER TABLE orders ALTER COLUMN total_amount TYPE NUMERIC(12, 2);")
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_user_id
            ON orders(user_id);
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_status
            ON orders(status);
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS menu_items (
                id VARCHAR(64) PRIMARY KEY,
                name VARCHAR(100) NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                image VARCHAR(500) NOT NULL DEFAULT '',
                category_id VARCHAR(64) NOT NULL,
                variants JSONB NOT NULL,
                is_available BOOLEAN NOT NULL DEFAULT TRUE,
                is_featured BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)


def _row_to_order(row: asyncpg.Record) -> Order:
    return Order(
        id=row["id"],
        user_id=row["user_id"],
        items=json.loads(row["items"]),
        total_amount=row["total_amount"],
        delivery_fee=row["delivery_fee"],
        channel=row["channel"],
        status=row["status"],
        address=json.loads(row["address"]) if row["address"] else None,
        table_no=row["table_no"],
        payment_id=row["payment_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class OrderStore:
    """Persistence collaborator for the order lifecycle. Every method is one round trip."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def insert_order(self, order: Order) -> Order:
        data = order.model_dump(mode="json")
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO orders (id, user_id, items, total_amount, delivery_fee, channel, status,
                                    address, table_no, payment_id, created_at, updated_at)
                VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8::jsonb, $9, $10, $11, $12);
                """,
                order.id,
                order.user_id,
                json.dumps(data["items"]),
                order.total_amount,
                order.delivery_fee,
                order.channel.value,
                order.status.value,
                json.dumps(data["address"]) if order.address else None,
                order.table_no,
                order.payment_id,
                order.created_at,
                order.updated_at,
            )
        return order

    async def load_order(self, order_id: str) -> Order:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1;", order_id)
        if row is None:
            raise OrderNotFoundError(order_id)
        return _row_to_order(row)

    async def save_order(self, order: Order, expected_prior_status: OrderStatus) -> Order:
        """
        Write order.status / order.updated_at only if the stored status still equals
        expected_prior_status. Raises ConflictError otherwise; the caller re-fetches and retries.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    """
                    UPDATE orders SET status = $1, updated_at = $2
                    WHERE id = $3 AND status = $4
                    RETURNING id;
                    """,
                    order.status.value,
                    order.updated_at,
                    order.id,
                    OrderStatus(expected_prior_status).value,
                )
                if updated is None:
                    current = await conn.fetchval("SELECT status FROM orders WHERE id = $1;", order.id)
                    logger.warning(
                        "Conflict writing order_id=%s: expected status=%s, stored=%s",
                        order.id, OrderStatus(expected_prior_status).value, current,
                    )
                    raise ConflictError(order.id, OrderStatus(current) if current else None)
        return order

    async def list_orders(
        self,
        user_id: str | None = None,
        status: OrderStatus | None = None,
        channel: str | None = None,
        search: str | None = None,
        active: bool | None = None,
        limit: int = 100,
    ) -> list[Order]:
        """Newest first. `search` matches a substring of the order id, case-insensitively."""
        clauses: list[str] = []
        args: list = []
        if user_id is not None:
            args.append(user_id)
            clauses.append(f"user_id = ${len(args)}")
        if status is not None:
            args.append(OrderStatus(status).value)
            clauses.append(f"status = ${len(args)}")
        if channel is not None:
            args.append(channel)
            clauses.append(f"channel = ${len(args)}")
        if search:
            args.append(f"%{search}%")
            clauses.append(f"id ILIKE ${len(args)}")
        if active is not None:
            args.append(_TERMINAL)
            op = "<> ALL" if active else "= ANY"
            clauses.append(f"status {op}(${len(args)}::varchar[])")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        args.append(limit)
        query = f"SELECT * FROM orders {where} ORDER BY created_at DESC LIMIT ${len(args)};"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [_row_to_order(r) for r in rows]

    async def dashboard_stats(self) -> dict:
        """
        Admin dashboard totals. Earnings exclude cancelled orders; pending means
        any non-terminal status.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total_orders,
                    COALESCE(SUM(total_amount) FILTER (WHERE status <> 'cancelled'), 0) AS total_earnings,
                    COUNT(*) FILTER (WHERE status <> ALL($1::varchar[])) AS pending_orders,
                    COUNT(*) FILTER (WHERE status IN ('delivered', 'completed')) AS completed_orders
                FROM orders;
                """,
                _TERMINAL,
            )
        return {
            "total_orders": row["total_orders"],
            "total_earnings": Decimal(row["total_earnings"]),
            "pending_orders": row["pending_orders"],
            "completed_orders": row["completed_orders"],
        }


async def get_store() -> OrderStore:
    """FastAPI dependency: store bound to the shared pool."""
    return OrderStore(await get_pool())


class MenuItemNotFoundError(Exception):
    """Raised when no menu row has the requested id."""
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(item_id)


def _row_to_menu_item(row: asyncpg.Record) -> MenuItem:
    return MenuItem(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        image=row["image"],
        category_id=row["category_id"],
        variants=json.loads(row["variants"]),
        is_available=row["is_available"],
        is_featured=row["is_featured"],
    )


class MenuStore:
    """Menu catalog: products with per-size price and availability."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create_menu_item(self, item_id: str, data: MenuItemIn) -> MenuItem:
        item = MenuItem(id=item_id, **data.model_dump())
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO menu_items (id, name, description, image, category_id, variants,
                                        is_available, is_featured)
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8);
                """,
                item.id,
                item.name,
                item.description,
                item.image,
                item.category_id,
                json.dumps(item.model_dump(mode="json")["variants"]),
                item.is_available,
                item.is_featured,
            )
        return item

    async def update_menu_item(self, item_id: str, data: MenuItemIn) -> MenuItem:
        item = MenuItem(id=item_id, **data.model_dump())
        async with self.pool.acquire() as conn:
            updated = await conn.fetchval(
                """
                UPDATE menu_items
                SET name = $2, description = $3, image = $4, category_id = $5, variants = $6::jsonb,
                    is_available = $7, is_featured = $8, updated_at = NOW()
                WHERE id = $1
                RETURNING id;
                """,
                item.id,
                item.name,
                item.description,
                item.image,
                item.category_id,
                json.dumps(item.model_dump(mode="json")["variants"]),
                item.is_available,
                item.is_featured,
            )
        if updated is None:
            raise MenuItemNotFoundError(item_id)
        return item

    async def delete_menu_item(self, item_id: str) -> None:
        """Orders keep their own snapshot, so removing a product never touches order rows."""
        async with self.pool.acquire() as conn:
            deleted = await conn.fetchval("DELETE FROM menu_items WHERE id = $1 RETURNING id;", item_id)
        if deleted is None:
            raise MenuItemNotFoundError(item_id)

    async def load_menu_item(self, item_id: str) -> MenuItem:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM menu_items WHERE id = $1;", item_id)
        if row is None:
            raise MenuItemNotFoundError(item_id)
        return _row_to_menu_item(row)

    async def list_menu_items(
        self,
        category_id: str | None = None,
        available_only: bool = False,
    ) -> list[MenuItem]:
        clauses: list[str] = []
        args: list = []
        if category_id is not None:
            args.append(category_id)
            clauses.append(f"category_id = ${len(args)}")
        if available_only:
            clauses.append("is_available")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT * FROM menu_items {where} ORDER BY is_featured DESC, name;", *args)
        return [_row_to_menu_item(r) for r in rows]

    async def get_menu_items(self, item_ids: list[str]) -> dict[str, MenuItem]:
        """Products by id for pricing a cart. Unknown ids are simply absent."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM menu_items WHERE id = ANY($1::varchar[]);", list(set(item_ids)))
        return {r["id"]: _row_to_menu_item(r) for r in rows}


async def get_menu_store() -> MenuStore:
    """FastAPI dependency: menu store bound to the shared pool."""
    return MenuStore(await get_pool())
