from __future__ import annotations
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..auth import get_current_user_id
from ..errors import ProviderError
from ..log import get_logger
from ..schemas.orders import CallbackAck, StkPushIn, StkPushOut
from ..services.orders import OrderLifecycle
from .deps import get_engine

logger = get_logger(__name__)

router = APIRouter(prefix="/api/mpesa", tags=["mpesa"])


def _extract_callback(payload: Any) -> Tuple[Optional[str], Any]:
    """Pull (CheckoutRequestID, ResultCode) out of {Body: {stkCallback: {...}}}."""
    if not isinstance(payload, dict):
        return None, None
    body = payload.get("Body")
    if not isinstance(body, dict):
        return None, None
    cb = body.get("stkCallback")
    if not isinstance(cb, dict):
        return None, None
    return cb.get("CheckoutRequestID"), cb.get("ResultCode")


@router.post("/stkpush", response_model=StkPushOut)
async def stk_push(
    body: StkPushIn,
    user_id: int = Depends(get_current_user_id),
    engine: OrderLifecycle = Depends(get_engine),
):
    try:
        data = await engine.initiate_payment(body.orderId, user_id, body.phoneNumber)
    except ProviderError as exc:
        return JSONResponse(status_code=exc.status_code,
                            content={"message": "Failed to initiate M-Pesa payment."})
    return StkPushOut(message="M-Pesa STK Push sent.", data=data)


@router.post("/callback", response_model=CallbackAck)
async def mpesa_callback(request: Request, engine: OrderLifecycle = Depends(get_engine)):
    """
    Called by Safaricom, not by our users. Always acknowledge: anything
    else makes the provider retry, and the outcome is already logged.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("event=payment.callback.fail | reason=unparseable_body")
        payload = None

    checkout_id, result_code = _extract_callback(payload)
    await engine.handle_payment_callback(checkout_id, result_code)
    return CallbackAck()
