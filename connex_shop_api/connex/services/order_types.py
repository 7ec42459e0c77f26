# connex/services/order_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


class OrderStatus(str, Enum):
    """Stored literally in orders.status. Only ever moves forward."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    READY = "Ready"


@dataclass(frozen=True)
class NewOrderItem:
    product_name: str
    quantity: int
    unit_price: Decimal
    color: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class NewOrder:
    user_id: int
    items: List[NewOrderItem]
    shipping_address: str
    phone_number: str
    logo_file_path: Optional[str] = None

    @property
    def total_amount(self) -> Decimal:
        return sum((it.subtotal for it in self.items), Decimal("0"))


@dataclass
class OrderRecord:
    id: int
    user_id: Optional[int]
    total_amount: Decimal
    status: OrderStatus
    shipping_address: str
    phone_number: str
    logo_file_path: Optional[str] = None
    mpesa_checkout_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class ReadyCandidate:
    """A Processing order old enough for pickup."""

    order_id: int
    phone_number: str


@dataclass
class SweepResult:
    promoted: List[int] = field(default_factory=list)
    notified: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "promoted": len(self.promoted),
            "notified": len(self.notified),
            "failed": len(self.failed),
        }


class OrderStoreLike(Protocol):
    async def create_order(self, order: NewOrder) -> int: ...

    async def get_order_for_owner(self, order_id: int, user_id: int) -> Optional[OrderRecord]: ...

    async def get_status(self, order_id: int) -> Optional[str]: ...

    async def record_payment_attempt(
        self, order_id: int, checkout_id: str, amount: int, phone_number: str
    ) -> bool: ...

    async def mark_paid(self, checkout_id: str, paid_at: datetime) -> Optional[int]: ...

    async def find_by_checkout_id(self, checkout_id: str) -> Optional[OrderRecord]: ...

    async def list_ready_candidates(self, paid_before: datetime) -> List[ReadyCandidate]: ...

    async def promote_to_ready(self, order_id: int) -> bool: ...

    async def item_names(self, order_id: int) -> List[str]: ...


class PaymentGatewayLike(Protocol):
    async def initiate_stk_push(
        self, *, amount: int, phone: str, reference: str, description: str
    ) -> Dict[str, Any]: ...


class NotifierLike(Protocol):
    async def send_pickup_notice(
        self, phone_number: str, order_id: int, item_summary: str
    ) -> Dict[str, Any]: ...
