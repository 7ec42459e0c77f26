from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class SingleOrderIn(BaseModel):
    productName: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unitPrice: Decimal = Field(..., ge=0, decimal_places=2)
    color: Optional[str] = None
    address: str
    phone: str
    # reference to an already-uploaded logo; the upload itself happens elsewhere
    logoPath: Optional[str] = None


class BulkItemIn(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    color: Optional[str] = None


class BulkOrderIn(BaseModel):
    items: List[BulkItemIn] = Field(..., min_length=1)
    totalAmount: Optional[Decimal] = None
    address: str
    phone: str
    logoPath: Optional[str] = None


class OrderCreatedOut(BaseModel):
    message: str
    orderId: int
    amount: float


class StkPushIn(BaseModel):
    phoneNumber: str
    orderId: int


class StkPushOut(BaseModel):
    message: str
    data: Dict[str, Any]


class OrderStatusOut(BaseModel):
    status: str


class CallbackAck(BaseModel):
    ResultCode: int = 0
    ResultDesc: str = "Accepted"


class CartItemIn(BaseModel):
    productName: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unitPrice: Decimal = Field(..., ge=0, decimal_places=2)
