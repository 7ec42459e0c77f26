"""Cart rows per user. Plain CRUD, no part of the order lifecycle."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

import asyncpg


def _row_to_dict(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "productName": row["product_name"],
        "quantity": row["quantity"],
        "unitPrice": float(row["unit_price"]),
        "totalPrice": float(row["total_price"]),
        "createdAt": row["created_at"].isoformat() if row["created_at"] else None,
    }


class PostgresCartStore:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def list_items(self, user_id: int) -> List[Dict[str, Any]]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM cart WHERE user_id = $1 ORDER BY created_at", user_id
            )
        return [_row_to_dict(r) for r in rows]

    async def add_item(
        self, user_id: int, product_name: str, quantity: int, unit_price: Decimal
    ) -> int:
        async with self._pool.acquire() as conn:
            return await conn.fetchval(
                """
                INSERT INTO cart (user_id, product_name, quantity, unit_price, total_price)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                user_id,
                product_name,
                quantity,
                unit_price,
                unit_price * quantity,
            )
