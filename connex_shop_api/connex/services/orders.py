# connex/services/orders.py
"""
Order lifecycle: Pending -> Processing -> Ready.

  create_order              writes a Pending order and its items atomically
  initiate_payment          sends the STK push and records CheckoutRequestID
  handle_payment_callback   Pending -> Processing, stamps paid_at
  sweep_ready_orders        Processing -> Ready after the grace period, then SMS
  get_order_status          read-only projection for client polling

Status never changes outside the store's conditional updates, so duplicate
callbacks and overlapping sweeps are no-ops rather than regressions.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..errors import (
    OrderCreationError,
    OrderNotFoundError,
    PaymentConflictError,
    PersistenceError,
    ShopError,
    ValidationError,
)
from ..events import E, log_event
from ..log import get_logger
from .order_types import (
    NewOrder,
    NewOrderItem,
    NotifierLike,
    OrderStatus,
    OrderStoreLike,
    PaymentGatewayLike,
    SweepResult,
)
from .phone import normalize_msisdn

logger = get_logger(__name__)

DEFAULT_GRACE_PERIOD = timedelta(days=2)
CALLBACK_SUCCESS_CODE = 0
ITEM_SUMMARY_SEPARATOR = ", "
MONEY_QUANTUM = Decimal("0.01")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number")
    return d


def build_items(raw_items: Iterable[Mapping[str, Any]]) -> List[NewOrderItem]:
    """Validate client line items: {name, quantity, price, color?}."""
    items: List[NewOrderItem] = []
    for idx, raw in enumerate(raw_items or []):
        name = _require_text(raw.get("name"), f"items[{idx}].name")
        qty = raw.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, int):
            try:
                qty = int(str(qty))
            except (TypeError, ValueError):
                raise ValidationError(f"items[{idx}].quantity must be an integer")
        if qty <= 0:
            raise ValidationError(f"items[{idx}].quantity must be positive")
        price = _to_decimal(raw.get("price"), f"items[{idx}].price")
        if price < 0:
            raise ValidationError(f"items[{idx}].price must be >= 0")
        if price != price.quantize(MONEY_QUANTUM):
            raise ValidationError(f"items[{idx}].price must have at most 2 decimal places")
        color = (raw.get("color") or "").strip() or None
        items.append(NewOrderItem(product_name=name, quantity=qty, unit_price=price, color=color))
    if not items:
        raise ValidationError("at least one item is required")
    return items


def provider_amount(total: Decimal) -> int:
    """M-Pesa only takes whole shillings; round up so we never undercharge."""
    return int(total.to_integral_value(rounding=ROUND_CEILING))


def is_success_code(result_code: Any) -> bool:
    try:
        return int(result_code) == CALLBACK_SUCCESS_CODE
    except (TypeError, ValueError):
        return False


class OrderLifecycle:
    """Drives an order through its states. Collaborators are passed in."""

    def __init__(
        self,
        store: OrderStoreLike,
        payments: PaymentGatewayLike,
        notifier: NotifierLike,
        *,
        country_code: str = "254",
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], datetime] = _now,
    ):
        self.store = store
        self.payments = payments
        self.notifier = notifier
        self.country_code = country_code
        self.grace_period = grace_period
        self.clock = clock

    # ---- creation ----------------------------------------------------------

    async def create_order(
        self,
        owner_id: int,
        items: List[NewOrderItem],
        shipping_address: str,
        phone: str,
        logo_file_path: Optional[str] = None,
        client_total: Optional[Any] = None,
    ) -> Dict[str, Any]:
        if not items:
            raise ValidationError("at least one item is required")
        for item in items:
            # prices are stored as NUMERIC(12, 2)
            if item.unit_price != item.unit_price.quantize(MONEY_QUANTUM):
                raise ValidationError(f"{item.product_name}: price must have at most 2 decimal places")
        order = NewOrder(
            user_id=owner_id,
            items=list(items),
            shipping_address=_require_text(shipping_address, "address"),
            phone_number=normalize_msisdn(_require_text(phone, "phone"), self.country_code),
            logo_file_path=(logo_file_path or "").strip() or None,
        )
        total = order.total_amount

        # client totals are advisory only
        if client_total is not None:
            try:
                claimed = Decimal(str(client_total))
            except (InvalidOperation, ValueError):
                claimed = None
            if claimed is None or claimed != total:
                log_event(
                    logger, E.ORDER_TOTAL_MISMATCH, level=logging.WARNING,
                    user_id=owner_id, client_total=client_total, server_total=total,
                )

        try:
            order_id = await self.store.create_order(order)
        except Exception as exc:
            log_event(
                logger, E.ORDER_CREATE_FAIL, level=logging.ERROR,
                user_id=owner_id, items=len(order.items), error=exc,
            )
            raise OrderCreationError(str(exc)) from exc

        log_event(logger, E.ORDER_CREATE, order_id=order_id, user_id=owner_id,
                  items=len(order.items), amount=total)
        return {"orderId": order_id, "totalAmount": total}

    # ---- payment initiation ------------------------------------------------

    async def initiate_payment(self, order_id: int, owner_id: int, phone_number: str) -> Dict[str, Any]:
        msisdn = normalize_msisdn(phone_number, self.country_code)

        try:
            order = await self.store.get_order_for_owner(order_id, owner_id)
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.total_amount <= 0:
            raise ValidationError("Order total must be positive")
        if order.status != OrderStatus.PENDING:
            raise PaymentConflictError(order_id, f"order is {order.status.value}")

        amount = provider_amount(order.total_amount)
        try:
            response = await self.payments.initiate_stk_push(
                amount=amount,
                phone=msisdn,
                reference=f"Order {order_id}",
                description=f"Payment for Order {order_id}",
            )
        except ShopError as exc:
            log_event(logger, E.PAYMENT_INITIATE_FAIL, level=logging.ERROR,
                      order_id=order_id, kind=type(exc).__name__, error=exc)
            raise

        checkout_id = response["CheckoutRequestID"]
        try:
            recorded = await self.store.record_payment_attempt(order_id, checkout_id, amount, msisdn)
        except Exception as exc:
            log_event(logger, E.PAYMENT_INITIATE_FAIL, level=logging.ERROR,
                      order_id=order_id, checkout_id=checkout_id, error=exc)
            raise PersistenceError(str(exc)) from exc
        if not recorded:
            # paid between the status check and now; the callback for this push is a duplicate
            log_event(logger, E.PAYMENT_INITIATE_FAIL, level=logging.WARNING,
                      order_id=order_id, checkout_id=checkout_id, reason="no_longer_pending")
            raise PaymentConflictError(order_id, "order was paid concurrently")

        log_event(logger, E.PAYMENT_INITIATE, order_id=order_id, amount=amount,
                  checkout_id=checkout_id, response_code=response.get("ResponseCode"))
        return response

    # ---- provider callback -------------------------------------------------

    async def handle_payment_callback(self, checkout_id: Optional[str], result_code: Any) -> str:
        """
        Apply an STK callback. Never raises: the provider retries on anything
        but an acknowledgement, so failures end up in the log instead.

        Returns one of: processed, duplicate, unknown, declined, invalid, error.
        """
        if not checkout_id:
            log_event(logger, E.PAYMENT_CALLBACK_FAIL, level=logging.WARNING, reason="missing_checkout_id")
            return "invalid"

        if not is_success_code(result_code):
            log_event(logger, E.PAYMENT_CALLBACK_DECLINED, checkout_id=checkout_id, result_code=result_code)
            return "declined"

        try:
            order_id = await self.store.mark_paid(checkout_id, self.clock())
            if order_id is not None:
                log_event(logger, E.PAYMENT_CALLBACK, checkout_id=checkout_id, order_id=order_id,
                          status=OrderStatus.PROCESSING.value)
                return "processed"

            existing = await self.store.find_by_checkout_id(checkout_id)
        except Exception:
            logger.exception("event=%s | checkout_id=%s", E.PAYMENT_CALLBACK_FAIL, checkout_id)
            return "error"

        if existing is None:
            log_event(logger, E.PAYMENT_CALLBACK_UNKNOWN, level=logging.WARNING, checkout_id=checkout_id)
            return "unknown"
        log_event(logger, E.PAYMENT_CALLBACK_DUPLICATE, checkout_id=checkout_id,
                  order_id=existing.id, status=existing.status.value)
        return "duplicate"

    # ---- pickup sweep ------------------------------------------------------

    async def sweep_ready_orders(self) -> SweepResult:
        """
        Promote Processing orders paid at least ``grace_period`` ago to Ready
        and text the customer. The status change is committed before the SMS,
        so a failed send leaves the order Ready (logged, not retried).
        """
        cutoff = self.clock() - self.grace_period
        result = SweepResult()
        log_event(logger, E.SWEEP_START, cutoff=cutoff.isoformat())

        candidates = await self.store.list_ready_candidates(cutoff)
        for cand in candidates:
            try:
                promoted = await self.store.promote_to_ready(cand.order_id)
            except Exception as exc:
                log_event(logger, E.SWEEP_ORDER_FAIL, level=logging.ERROR,
                          order_id=cand.order_id, stage="promote", error=exc)
                result.failed.append(cand.order_id)
                continue
            if not promoted:
                continue
            result.promoted.append(cand.order_id)
            log_event(logger, E.SWEEP_ORDER_READY, order_id=cand.order_id)

            try:
                names = await self.store.item_names(cand.order_id)
                summary = ITEM_SUMMARY_SEPARATOR.join(names) or "your items"
                await self.notifier.send_pickup_notice(cand.phone_number, cand.order_id, summary)
            except Exception as exc:
                log_event(logger, E.SWEEP_ORDER_FAIL, level=logging.ERROR,
                          order_id=cand.order_id, stage="notify", error=exc)
                result.failed.append(cand.order_id)
                continue
            result.notified.append(cand.order_id)

        log_event(logger, E.SWEEP_COMPLETE, candidates=len(candidates), **result.as_dict())
        return result

    # ---- polling -----------------------------------------------------------

    async def get_order_status(self, order_id: int) -> str:
        try:
            status = await self.store.get_status(order_id)
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc
        if status is None:
            raise OrderNotFoundError(order_id)
        return status
