from __future__ import annotations
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from ..auth import get_current_user_id
from ..schemas.orders import CartItemIn
from .deps import get_cart_store

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", response_model=List[Dict[str, Any]])
async def list_cart(user_id: int = Depends(get_current_user_id), store=Depends(get_cart_store)):
    return await store.list_items(user_id)


@router.post("")
async def add_to_cart(
    body: CartItemIn,
    user_id: int = Depends(get_current_user_id),
    store=Depends(get_cart_store),
):
    item_id = await store.add_item(user_id, body.productName.strip(), body.quantity, body.unitPrice)
    return {"message": "Item added to cart", "id": item_id}
