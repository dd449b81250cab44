"""
Orders — イベント定義
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class OrderCreated(BaseModel):
    order_id: str
    user_id: str
    artisan_id: Optional[str] = None
    items: list[dict]
    subtotal: float
    shipping_cost: float
    discount: float
    discount_code: Optional[str] = None
    total_amount: float
    payment_method: str
    timestamp: datetime


class PaymentSessionCreated(BaseModel):
    order_id: str
    payment_reference: str
    session_id: Optional[str] = None
    timestamp: datetime


class OrderPaid(BaseModel):
    order_id: str
    transaction_id: Optional[str] = None
    timestamp: datetime


class OrderStatusChanged(BaseModel):
    order_id: str
    order_status: str
    changed_by: str
    notes: Optional[str] = None
    timestamp: datetime


class OrderCancelled(BaseModel):
    """キャンセル時は在庫を戻す"""
    order_id: str
    cancelled_by: str
    reason: Optional[str] = None
    timestamp: datetime
