"""
Orders — 注文集約 (Order Aggregate)

状態遷移 (order_status):
    pending → processing → shipped → delivered
    pending / processing → cancelled (終端)

状態遷移 (payment_status):
    pending → paid | failed | cancelled

金額の不変条件: total_amount = subtotal + shipping_cost - discount
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from ..config import DELIVERY_DAYS, FREE_SHIPPING_THRESHOLD, SHIPPING_FEE
from ..database import from_iso, loads
from ..errors import ConflictError, ValidationError

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_METHODS = ("card", "bank_transfer", "cash_on_delivery")
CANCELLABLE_STATUSES = ("pending", "processing")


def shipping_cost_for(subtotal: float) -> float:
    """小計が閾値を超えれば送料無料"""
    return 0.0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_FEE


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float
    total_price: float = 0

    def model_post_init(self, __context) -> None:
        self.total_price = round(self.price * self.quantity, 2)


class OrderAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.user_id: str | None = None
        self.artisan_id: str | None = None
        self.items: list[OrderLine] = []
        self.shipping_address: dict = {}
        self.subtotal: float = 0
        self.shipping_cost: float = 0
        self.discount: float = 0
        self.discount_code: str | None = None
        self.total_amount: float = 0
        self.payment_method: str = "card"
        self.payment_status: str = "pending"
        self.payment_reference: str | None = None
        self.transaction_id: str | None = None
        self.order_status: str = "pending"
        self.order_notes: str = ""
        self.is_gift: bool = False
        self.gift_message: str | None = None
        self.estimated_delivery: datetime | None = None
        self.created_at: datetime | None = None

    @classmethod
    def create(
        cls,
        order_id: str,
        user_id: str,
        items: list[OrderLine],
        shipping_address: dict,
        payment_method: str,
        now: datetime,
        artisan_id: str | None = None,
        order_notes: str = "",
        is_gift: bool = False,
        gift_message: str | None = None,
    ) -> "OrderAggregate":
        if not items:
            raise ValidationError("No order items")
        if not shipping_address:
            raise ValidationError("Shipping address is required")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError("Invalid payment method", allowed=list(PAYMENT_METHODS))

        agg = cls()
        agg.id = order_id
        agg.user_id = user_id
        agg.artisan_id = artisan_id
        agg.items = list(items)
        agg.shipping_address = shipping_address
        agg.payment_method = payment_method
        agg.order_notes = order_notes or ""
        agg.is_gift = is_gift
        agg.gift_message = gift_message
        agg.created_at = now
        agg.estimated_delivery = now + timedelta(days=DELIVERY_DAYS)
        agg.recalculate()
        return agg

    @classmethod
    def from_row(cls, row, items: list[OrderLine]) -> "OrderAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.user_id = row.user_id
        agg.artisan_id = row.artisan_id
        agg.items = items
        agg.shipping_address = loads(row.shipping_address, {})
        agg.subtotal = float(row.subtotal)
        agg.shipping_cost = float(row.shipping_cost)
        agg.discount = float(row.discount)
        agg.discount_code = row.discount_code
        agg.total_amount = float(row.total_amount)
        agg.payment_method = row.payment_method
        agg.payment_status = row.payment_status
        agg.payment_reference = row.payment_reference
        agg.transaction_id = row.transaction_id
        agg.order_status = row.order_status
        agg.order_notes = row.order_notes or ""
        agg.is_gift = bool(row.is_gift)
        agg.gift_message = row.gift_message
        agg.estimated_delivery = from_iso(row.estimated_delivery)
        agg.created_at = from_iso(row.created_at)
        return agg

    # ── 金額 ─────────────────────────────────────

    def recalculate(self) -> None:
        self.subtotal = round(sum(item.total_price for item in self.items), 2)
        self.shipping_cost = shipping_cost_for(self.subtotal)
        self.total_amount = round(self.subtotal + self.shipping_cost - self.discount, 2)

    def apply_discount(self, code: str, amount: float) -> None:
        self.discount_code = code
        self.discount = round(amount, 2)
        self.recalculate()

    # ── 状態遷移 ─────────────────────────────────

    def _append_note(self, note: str) -> None:
        self.order_notes = f"{self.order_notes}\n{note}" if self.order_notes else note

    @property
    def can_cancel(self) -> bool:
        return self.order_status in CANCELLABLE_STATUSES

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self.can_cancel:
            raise ConflictError(
                "Order cannot be cancelled at this stage", orderStatus=self.order_status
            )
        self.order_status = "cancelled"
        if reason:
            self._append_note(f"Cancellation reason: {reason}")
        if self.payment_status == "pending":
            self.payment_status = "cancelled"

    def attach_payment(self, payment_reference: str) -> None:
        self.payment_reference = payment_reference

    def mark_paid(self, transaction_id: str | None) -> None:
        self.payment_status = "paid"
        self.transaction_id = transaction_id
        if self.order_status == "pending":
            self.order_status = "processing"

    def update_status(self, status: str, notes: Optional[str] = None) -> None:
        if status not in ORDER_STATUSES:
            raise ValidationError("Invalid order status", allowed=list(ORDER_STATUSES))
        self.order_status = status
        if notes:
            self._append_note(f"Status update: {notes}")
