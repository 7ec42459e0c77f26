from __future__ import annotations
from fastapi import APIRouter, Depends

from ..auth import get_current_user_id
from ..schemas.orders import BulkOrderIn, OrderCreatedOut, OrderStatusOut, SingleOrderIn
from ..services.order_types import NewOrderItem
from ..services.orders import OrderLifecycle, build_items
from .deps import get_engine


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/create", response_model=OrderCreatedOut)
async def create_single_order(
    body: SingleOrderIn,
    user_id: int = Depends(get_current_user_id),
    engine: OrderLifecycle = Depends(get_engine),
):
    item = NewOrderItem(
        product_name=body.productName.strip(),
        quantity=body.quantity,
        unit_price=body.unitPrice,
        color=(body.color or "").strip() or None,
    )
    created = await engine.create_order(
        user_id, [item], body.address, body.phone, logo_file_path=body.logoPath
    )
    return OrderCreatedOut(
        message="Order created successfully",
        orderId=created["orderId"],
        amount=float(created["totalAmount"]),
    )


@router.post("/bulk", response_model=OrderCreatedOut)
async def create_bulk_order(
    body: BulkOrderIn,
    user_id: int = Depends(get_current_user_id),
    engine: OrderLifecycle = Depends(get_engine),
):
    items = build_items([i.model_dump() for i in body.items])
    created = await engine.create_order(
        user_id,
        items,
        body.address,
        body.phone,
        logo_file_path=body.logoPath,
        client_total=body.totalAmount,
    )
    return OrderCreatedOut(
        message="Order created successfully",
        orderId=created["orderId"],
        amount=float(created["totalAmount"]),
    )


@router.get("/status/{order_id}", response_model=OrderStatusOut)
async def order_status(order_id: int, engine: OrderLifecycle = Depends(get_engine)):
    """
    Polled by the checkout page while waiting for the M-Pesa callback.
    (No auth here, matching the checkout page; scope it to the owner if that changes.)
    """
    return OrderStatusOut(status=await engine.get_order_status(order_id))
