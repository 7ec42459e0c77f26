"""Postgres-backed storage for orders and their line items."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import asyncpg

from ..services.order_types import NewOrder, OrderRecord, OrderStatus, ReadyCandidate

_ORDER_COLUMNS = """
    id, user_id, total_amount, status, shipping_address, phone_number,
    logo_file_path, mpesa_checkout_id, paid_at, created_at
"""


def _row_to_order(row) -> OrderRecord:
    return OrderRecord(
        id=row["id"],
        user_id=row["user_id"],
        total_amount=row["total_amount"],
        status=OrderStatus(row["status"]),
        shipping_address=row["shipping_address"],
        phone_number=row["phone_number"],
        logo_file_path=row["logo_file_path"],
        mpesa_checkout_id=row["mpesa_checkout_id"],
        paid_at=row["paid_at"],
        created_at=row["created_at"],
    )


class PostgresOrderStore:
    """
    Every status change is a single conditional UPDATE (the expected current
    status is part of the WHERE clause), so a callback and a sweep racing on
    the same order cannot both win.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create_order(self, order: NewOrder) -> int:
        """Insert the order and all of its items in one transaction."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                order_id = await conn.fetchval(
                    """
                    INSERT INTO orders (user_id, total_amount, status, shipping_address,
                                        phone_number, logo_file_path)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING id
                    """,
                    order.user_id,
                    order.total_amount,
                    OrderStatus.PENDING.value,
                    order.shipping_address,
                    order.phone_number,
                    order.logo_file_path,
                )
                for item in order.items:
                    await conn.execute(
                        """
                        INSERT INTO order_items (order_id, product_name, quantity,
                                                 unit_price, subtotal, color)
                        VALUES ($1, $2, $3, $4, $5, $6)
                        """,
                        order_id,
                        item.product_name,
                        item.quantity,
                        item.unit_price,
                        item.subtotal,
                        item.color,
                    )
        return order_id

    async def get_order_for_owner(self, order_id: int, user_id: int) -> Optional[OrderRecord]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1 AND user_id = $2",
                order_id,
                user_id,
            )
        return _row_to_order(row) if row else None

    async def get_status(self, order_id: int) -> Optional[str]:
        async with self._pool.acquire() as conn:
            return await conn.fetchval("SELECT status FROM orders WHERE id = $1", order_id)

    async def record_payment_attempt(
        self, order_id: int, checkout_id: str, amount: int, phone_number: str
    ) -> bool:
        """
        Register an accepted STK push. Only a Pending order takes new attempts;
        earlier attempts stay on file so their callbacks still resolve.
        orders.mpesa_checkout_id tracks the latest attempt.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                recorded = await conn.fetchval(
                    """
                    INSERT INTO payment_attempts (checkout_id, order_id, amount, phone_number)
                    SELECT $2, id, $3, $4 FROM orders
                    WHERE id = $1 AND status = $5
                    RETURNING order_id
                    """,
                    order_id,
                    checkout_id,
                    amount,
                    phone_number,
                    OrderStatus.PENDING.value,
                )
                if recorded is None:
                    return False
                await conn.execute(
                    "UPDATE orders SET mpesa_checkout_id = $2 WHERE id = $1",
                    order_id,
                    checkout_id,
                )
        return True

    async def mark_paid(self, checkout_id: str, paid_at: datetime) -> Optional[int]:
        """
        Pending -> Processing for the order the attempt belongs to. Returns its
        id, or None when the attempt is unknown or the order already moved on.
        """
        async with self._pool.acquire() as conn:
            return await conn.fetchval(
                """
                UPDATE orders o
                SET status = $2, paid_at = $3, mpesa_checkout_id = a.checkout_id
                FROM payment_attempts a
                WHERE a.checkout_id = $1 AND o.id = a.order_id AND o.status = $4
                RETURNING o.id
                """,
                checkout_id,
                OrderStatus.PROCESSING.value,
                paid_at,
                OrderStatus.PENDING.value,
            )

    async def find_by_checkout_id(self, checkout_id: str) -> Optional[OrderRecord]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_ORDER_COLUMNS} FROM orders
                WHERE id = (SELECT order_id FROM payment_attempts WHERE checkout_id = $1)
                """,
                checkout_id,
            )
        return _row_to_order(row) if row else None

    async def list_ready_candidates(self, paid_before: datetime) -> List[ReadyCandidate]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, phone_number FROM orders
                WHERE status = $1 AND paid_at IS NOT NULL AND paid_at <= $2
                ORDER BY paid_at
                """,
                OrderStatus.PROCESSING.value,
                paid_before,
            )
        return [ReadyCandidate(order_id=r["id"], phone_number=r["phone_number"]) for r in rows]

    async def promote_to_ready(self, order_id: int) -> bool:
        """Processing -> Ready. False if another tick (or nobody) got there first."""
        async with self._pool.acquire() as conn:
            updated = await conn.fetchval(
                """
                UPDATE orders SET status = $2
                WHERE id = $1 AND status = $3
                RETURNING id
                """,
                order_id,
                OrderStatus.READY.value,
                OrderStatus.PROCESSING.value,
            )
        return updated is not None

    async def item_names(self, order_id: int) -> List[str]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT product_name FROM order_items WHERE order_id = $1 ORDER BY id",
                order_id,
            )
        return [r["product_name"] for r in rows]
