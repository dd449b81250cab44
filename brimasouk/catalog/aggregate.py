"""
Catalog — 商品集約 (Product Aggregate)

状態遷移:
    作成 (未承認, price = original_price, new_collection)
    未承認 → 承認       price を元値とマークアップから再計算
    承認   → 未承認     職人(artisan)による編集、または却下

price の再計算は「未承認 → 承認」の瞬間と、
承認済み商品の元値を編集した瞬間だけ行う。
"""

from datetime import datetime

from ..config import DEFAULT_MARKUP_PERCENTAGE
from ..database import from_iso
from ..errors import ConflictError, ValidationError
from . import pricing

CATEGORIES = ("Men", "Women", "Gifts", "Home", "Kids", "Beauty")
EDITABLE_FIELDS = ("name", "description", "category", "price", "stock")


def _check_percentage(value: float, field: str) -> float:
    if value is None or not 0 <= value <= 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return float(value)


class ProductAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.name: str = ""
        self.description: str = ""
        self.category: str = ""
        self.artisan_id: str | None = None
        self.original_price: float = 0
        self.price: float = 0
        self.markup_percentage: float = DEFAULT_MARKUP_PERCENTAGE
        self.is_approved: bool = False
        self.approved_by: str | None = None
        self.approval_date: datetime | None = None
        self.rejection_reason: str | None = None
        self.promotional_status: str = "none"
        self.discount_percentage: float = 0
        self.promotion_start_date: datetime | None = None
        self.promotion_end_date: datetime | None = None
        self.stock: int = 0

    # ── 生成 ─────────────────────────────────────

    @classmethod
    def create(
        cls,
        product_id: str,
        artisan_id: str,
        name: str,
        description: str,
        category: str,
        original_price: float,
        stock: int = 0,
    ) -> "ProductAggregate":
        missing = [
            field for field, value in (
                ("name", name), ("description", description),
                ("category", category), ("price", original_price),
            ) if value in (None, "")
        ]
        if missing:
            raise ValidationError("All fields are required", missing=missing)
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid category: {category}")
        if original_price < 0 or stock < 0:
            raise ValidationError("Price and stock cannot be negative")

        agg = cls()
        agg.id = product_id
        agg.artisan_id = artisan_id
        agg.name = name
        agg.description = description
        agg.category = category
        agg.original_price = float(original_price)
        agg.price = float(original_price)
        agg.stock = stock
        agg.promotional_status = "new_collection"
        return agg

    @classmethod
    def from_row(cls, row) -> "ProductAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.name = row.name
        agg.description = row.description
        agg.category = row.category
        agg.artisan_id = str(row.artisan_id)
        agg.original_price = float(row.original_price)
        agg.price = float(row.price)
        agg.markup_percentage = float(row.markup_percentage)
        agg.is_approved = bool(row.is_approved)
        agg.approved_by = row.approved_by
        agg.approval_date = from_iso(row.approval_date)
        agg.rejection_reason = row.rejection_reason
        agg.promotional_status = row.promotional_status
        agg.discount_percentage = float(row.discount_percentage)
        agg.promotion_start_date = from_iso(row.promotion_start_date)
        agg.promotion_end_date = from_iso(row.promotion_end_date)
        agg.stock = int(row.stock)
        return agg

    # ── 状態遷移 ─────────────────────────────────

    def approve(self, admin_id: str, now: datetime, markup_percentage: float | None = None) -> None:
        if self.is_approved:
            raise ConflictError("Product is already approved")
        if markup_percentage is not None:
            self.markup_percentage = _check_percentage(markup_percentage, "markupPercentage")
        self.is_approved = True
        self.price = pricing.compute_approved_price(self.original_price, self.markup_percentage)
        if self.promotional_status in (None, "", "none"):
            self.promotional_status = "new_collection"
        self.approved_by = admin_id
        self.approval_date = now
        self.rejection_reason = None

    def reject(self, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")
        self.is_approved = False
        self.rejection_reason = reason.strip()

    def apply_update(self, fields: dict, by_admin: bool) -> list[str]:
        """
        編集を適用し、変更したフィールド名を返す。

        price は新しい元値として扱う。承認済みなら既存のマークアップで即再計算。
        職人による編集は承認をリセットする(再審査)。管理者の編集はリセットしない。
        """
        changed = []
        for field in EDITABLE_FIELDS:
            value = fields.get(field)
            if value is None:
                continue
            if field == "category" and value not in CATEGORIES:
                raise ValidationError(f"Invalid category: {value}")
            if field in ("price", "stock") and value < 0:
                raise ValidationError(f"{field} cannot be negative")
            if field == "price":
                self.original_price = float(value)
                self.price = (
                    pricing.compute_approved_price(self.original_price, self.markup_percentage)
                    if self.is_approved
                    else self.original_price
                )
            else:
                setattr(self, field, value)
            changed.append(field)

        if changed and not by_admin:
            self.is_approved = False
        return changed

    def mark_best_seller(self, is_best_seller: bool = True) -> None:
        self.promotional_status = "best_seller" if is_best_seller else "none"

    def setup_flash_sale(
        self,
        discount_percentage: float,
        start: datetime,
        end: datetime | None,
    ) -> None:
        if end is not None and end <= start:
            raise ValidationError("Flash sale must end after it starts")
        self.discount_percentage = _check_percentage(discount_percentage, "discountPercentage")
        self.promotional_status = "flash_sale"
        self.promotion_start_date = start
        self.promotion_end_date = end

    # ── 導出値 ───────────────────────────────────

    def effective_promotion(self, now: datetime) -> tuple[str, float]:
        return pricing.effective_promotion(
            self.promotional_status, self.discount_percentage, self.promotion_end_date, now
        )

    def discounted_price(self, now: datetime) -> float:
        _, discount = self.effective_promotion(now)
        return pricing.discounted_price(self.price, discount)

    def is_promotion_active(self, now: datetime) -> bool:
        return pricing.is_flash_sale_active(
            self.promotional_status, self.promotion_start_date, self.promotion_end_date, now
        )

    @property
    def is_available(self) -> bool:
        return self.stock > 0

    def is_managed_by(self, user) -> bool:
        return user is not None and (user.is_admin or user.id == self.artisan_id)

    def is_visible_to(self, user) -> bool:
        return self.is_approved or self.is_managed_by(user)
