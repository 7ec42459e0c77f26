"""
Structured event log lines: ``event=order.create | order_id=12 | amount=500``.

Every state change in the order lifecycle goes through log_event so the
payment trail can be grepped end to end.
"""
from __future__ import annotations

import logging
from typing import Any


class E:
    """Event names, grouped by area."""

    # orders
    ORDER_CREATE = "order.create"
    ORDER_CREATE_FAIL = "order.create.fail"
    ORDER_TOTAL_MISMATCH = "order.total.mismatch"

    # payment initiation
    PAYMENT_INITIATE = "payment.initiate"
    PAYMENT_INITIATE_FAIL = "payment.initiate.fail"
    PAYMENT_TOKEN_FAIL = "payment.token.fail"

    # provider callback
    PAYMENT_CALLBACK = "payment.callback"
    PAYMENT_CALLBACK_UNKNOWN = "payment.callback.unknown"
    PAYMENT_CALLBACK_DUPLICATE = "payment.callback.duplicate"
    PAYMENT_CALLBACK_DECLINED = "payment.callback.declined"
    PAYMENT_CALLBACK_FAIL = "payment.callback.fail"

    # pickup sweep
    SWEEP_START = "sweep.start"
    SWEEP_COMPLETE = "sweep.complete"
    SWEEP_ORDER_READY = "sweep.order.ready"
    SWEEP_ORDER_FAIL = "sweep.order.fail"

    # sms
    SMS_SEND = "sms.send"
    SMS_SEND_FAIL = "sms.send.fail"


def _fmt(value: Any) -> str:
    text = str(value)
    if " " in text or "|" in text:
        return repr(text)
    return text


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    parts = [f"event={event}"]
    parts.extend(f"{k}={_fmt(v)}" for k, v in fields.items() if v is not None)
    logger.log(level, " | ".join(parts), stacklevel=2)
