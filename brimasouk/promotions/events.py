"""
Promotions — イベント定義
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PromoCodeCreated(BaseModel):
    promo_code_id: str
    code: str
    discount_type: str
    discount_value: float
    created_by: str
    timestamp: datetime


class PromoCodeApplied(BaseModel):
    """使用回数が 1 増えた"""
    promo_code_id: str
    code: str
    order_id: Optional[str] = None
    timestamp: datetime


class PromoCodeReleased(BaseModel):
    """注文キャンセルで使用回数を 1 戻した"""
    promo_code_id: str
    code: str
    order_id: str
    timestamp: datetime
