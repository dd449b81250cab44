"""
Promotions — プロモコード集約 (PromoCode Aggregate)

有効 = 有効フラグ ON かつ 期限切れでない かつ 使用上限に達していない。
割引額は注文金額を超えない(合計がマイナスにならない)。
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..database import from_iso, loads

DISCOUNT_TYPES = ("percentage", "fixed")


class PromoCheck(BaseModel):
    valid: bool
    message: Optional[str] = None


class PromoCodeAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.code: str = ""
        self.discount_type: str = "percentage"
        self.discount_value: float = 0
        self.max_uses: int = 0
        self.current_uses: int = 0
        self.start_date: datetime | None = None
        self.end_date: datetime | None = None
        self.is_active: bool = True
        self.min_order_value: float = 0
        self.applicable_categories: list[str] = []
        self.applicable_products: list[str] = []
        self.created_by: str | None = None

    @classmethod
    def from_row(cls, row) -> "PromoCodeAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.code = row.code
        agg.discount_type = row.discount_type
        agg.discount_value = float(row.discount_value)
        agg.max_uses = int(row.max_uses)
        agg.current_uses = int(row.current_uses)
        agg.start_date = from_iso(row.start_date)
        agg.end_date = from_iso(row.end_date)
        agg.is_active = bool(row.is_active)
        agg.min_order_value = float(row.min_order_value)
        agg.applicable_categories = loads(row.applicable_categories, [])
        agg.applicable_products = loads(row.applicable_products, [])
        agg.created_by = row.created_by
        return agg

    # ── 導出値 ───────────────────────────────────

    def is_expired(self, now: datetime) -> bool:
        return self.end_date is not None and now > self.end_date

    @property
    def is_maxed_out(self) -> bool:
        # max_uses = 0 は無制限
        return self.max_uses != 0 and self.current_uses >= self.max_uses

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now) and not self.is_maxed_out

    # ── ルール ───────────────────────────────────

    def validate(
        self,
        order_value: float,
        now: datetime,
        category: str | None = None,
        product_id: str | None = None,
    ) -> PromoCheck:
        if not self.is_active:
            return PromoCheck(valid=False, message="Promo code is inactive")
        if self.is_expired(now):
            return PromoCheck(valid=False, message="Promo code has expired")
        if self.is_maxed_out:
            return PromoCheck(valid=False, message="Promo code has reached its usage limit")
        if order_value < self.min_order_value:
            return PromoCheck(
                valid=False,
                message=f"Minimum order value of {self.min_order_value:g} required",
            )
        if self.applicable_categories and category and category not in self.applicable_categories:
            return PromoCheck(valid=False, message="Promo code not applicable for this category")
        if self.applicable_products and product_id and str(product_id) not in self.applicable_products:
            return PromoCheck(valid=False, message="Promo code not applicable for this product")
        return PromoCheck(valid=True)

    def calculate_discount(self, order_value: float) -> float:
        if self.discount_type == "percentage":
            discount = order_value * (self.discount_value / 100)
        else:
            discount = self.discount_value
        return min(round(discount, 2), order_value)
