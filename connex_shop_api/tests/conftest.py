"""Shared fixtures: in-memory stand-ins for the store and providers so tests run without Postgres or network."""
from __future__ import annotations

import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

# Set dummy env vars BEFORE any app imports
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SWEEP_ENABLED", "false")

import jwt
import pytest

from connex.errors import NotificationError
from connex.services.order_types import (
    NewOrder,
    NewOrderItem,
    OrderRecord,
    OrderStatus,
    ReadyCandidate,
)
from connex.services.orders import OrderLifecycle

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ---------- Fake order store ----------

class FakeOrderStore:
    """Dict-backed store with the same conditional-update semantics as Postgres."""

    def __init__(self):
        self.orders: Dict[int, OrderRecord] = {}
        self.items: Dict[int, List[NewOrderItem]] = {}
        self.attempts: Dict[str, int] = {}
        self._next_id = 1
        self.fail_after_items: Optional[int] = None

    async def create_order(self, order: NewOrder) -> int:
        order_id = self._next_id
        staged = []
        for idx, item in enumerate(order.items):
            if self.fail_after_items is not None and idx >= self.fail_after_items:
                raise RuntimeError("simulated insert failure")
            staged.append(item)
        # commit
        self._next_id += 1
        self.orders[order_id] = OrderRecord(
            id=order_id,
            user_id=order.user_id,
            total_amount=order.total_amount,
            status=OrderStatus.PENDING,
            shipping_address=order.shipping_address,
            phone_number=order.phone_number,
            logo_file_path=order.logo_file_path,
            created_at=NOW,
        )
        self.items[order_id] = staged
        return order_id

    async def get_order_for_owner(self, order_id, user_id):
        o = self.orders.get(order_id)
        return o if o and o.user_id == user_id else None

    async def get_status(self, order_id):
        o = self.orders.get(order_id)
        return o.status.value if o else None

    async def record_payment_attempt(self, order_id, checkout_id, amount, phone_number):
        o = self.orders.get(order_id)
        if not o or o.status != OrderStatus.PENDING or checkout_id in self.attempts:
            return False
        self.attempts[checkout_id] = order_id
        self.orders[order_id] = replace(o, mpesa_checkout_id=checkout_id)
        return True

    async def mark_paid(self, checkout_id, paid_at):
        oid = self.attempts.get(checkout_id)
        o = self.orders.get(oid)
        if not o or o.status != OrderStatus.PENDING:
            return None
        self.orders[oid] = replace(o, status=OrderStatus.PROCESSING, paid_at=paid_at,
                                   mpesa_checkout_id=checkout_id)
        return oid

    async def find_by_checkout_id(self, checkout_id):
        return self.orders.get(self.attempts.get(checkout_id))

    async def list_ready_candidates(self, paid_before):
        return [
            ReadyCandidate(order_id=o.id, phone_number=o.phone_number)
            for o in self.orders.values()
            if o.status == OrderStatus.PROCESSING and o.paid_at and o.paid_at <= paid_before
        ]

    async def promote_to_ready(self, order_id):
        o = self.orders.get(order_id)
        if not o or o.status != OrderStatus.PROCESSING:
            return False
        self.orders[order_id] = replace(o, status=OrderStatus.READY)
        return True

    async def item_names(self, order_id):
        return [it.product_name for it in self.items.get(order_id, [])]

    # test helper
    def seed(self, *, user_id=1, total="500", status=OrderStatus.PENDING, paid_at=None,
             checkout_id=None, phone="0712345678", names=("Mug",)) -> int:
        order_id = self._next_id
        self._next_id += 1
        self.orders[order_id] = OrderRecord(
            id=order_id,
            user_id=user_id,
            total_amount=Decimal(total),
            status=status,
            shipping_address="Moi Avenue, Nairobi",
            phone_number=phone,
            mpesa_checkout_id=checkout_id,
            paid_at=paid_at,
            created_at=NOW,
        )
        self.items[order_id] = [
            NewOrderItem(product_name=n, quantity=1, unit_price=Decimal("1"))
            for n in names
        ]
        if checkout_id:
            self.attempts[checkout_id] = order_id
        return order_id


# ---------- Fake providers ----------

class FakeGateway:
    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self._n = 0

    async def initiate_stk_push(self, *, amount, phone, reference, description):
        self.calls.append({"amount": amount, "phone": phone,
                           "reference": reference, "description": description})
        if self.fail_with is not None:
            raise self.fail_with
        self._n += 1
        return {
            "MerchantRequestID": f"m-{self._n}",
            "CheckoutRequestID": f"ws_CO_{self._n}",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
        }


class FakeNotifier:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail_for: set = set()

    async def send_pickup_notice(self, phone_number, order_id, item_summary):
        if order_id in self.fail_for:
            raise NotificationError("simulated gateway failure")
        self.sent.append({"phone": phone_number, "order_id": order_id, "summary": item_summary})
        return {"ok": True}


class FakeCartStore:
    def __init__(self):
        self.rows: List[Dict[str, Any]] = []

    async def list_items(self, user_id):
        return [r for r in self.rows if r["userId"] == user_id]

    async def add_item(self, user_id, product_name, quantity, unit_price):
        self.rows.append({
            "id": len(self.rows) + 1,
            "userId": user_id,
            "productName": product_name,
            "quantity": quantity,
            "unitPrice": float(unit_price),
            "totalPrice": float(unit_price * quantity),
        })
        return len(self.rows)


# ---------- Fixtures ----------

class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


@pytest.fixture()
def store():
    return FakeOrderStore()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def engine(store, gateway, notifier, clock):
    return OrderLifecycle(store, gateway, notifier, clock=clock)


@pytest.fixture()
def cart_store():
    return FakeCartStore()


@pytest.fixture()
def client(engine, cart_store):
    """FastAPI TestClient (sync) wired to the fakes."""
    from fastapi.testclient import TestClient
    from connex.main import create_app
    return TestClient(create_app(engine=engine, cart_store=cart_store, start_scheduler=False))


@pytest.fixture()
def auth_headers():
    from connex.settings import settings

    def _make(user_id: int = 1) -> Dict[str, str]:
        token = jwt.encode({"id": user_id}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return {"Authorization": f"Bearer {token}"}

    return _make
