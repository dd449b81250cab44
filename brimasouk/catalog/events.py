"""
Catalog — イベント定義

商品ドメインで発生した事実。過去形で命名し、不変として扱う。
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ProductCreated(BaseModel):
    product_id: str
    artisan_id: str
    name: str
    category: str
    original_price: float
    stock: int
    timestamp: datetime


class ProductUpdated(BaseModel):
    """編集された(職人の編集なら承認がリセットされる)"""
    product_id: str
    updated_by: str
    fields: list[str]
    price: float
    is_approved: bool
    timestamp: datetime


class ProductApproved(BaseModel):
    product_id: str
    approved_by: str
    markup_percentage: float
    price: float
    timestamp: datetime


class ProductRejected(BaseModel):
    product_id: str
    reason: str
    timestamp: datetime


class ProductPromotionChanged(BaseModel):
    product_id: str
    promotional_status: str
    discount_percentage: float
    promotion_end_date: Optional[datetime] = None
    timestamp: datetime


class StockAdjusted(BaseModel):
    product_id: str
    delta: int
    reason: str
    timestamp: datetime


class ProductDeleted(BaseModel):
    product_id: str
    deleted_by: str
    timestamp: datetime
