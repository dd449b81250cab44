"""
Promotions — コマンドハンドラ (書き込み側)

プロモコードの作成・適用・使用回数の払い戻し。
使用回数の加算は単一の条件付き UPDATE で行い、上限を超えないようにする。
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..accounts.commands import load_user
from ..auth import CurrentUser
from ..database import as_utc, dumps, to_iso, utcnow
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from . import events
from .aggregate import DISCOUNT_TYPES, PromoCodeAggregate

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "PromoCode"


async def ensure_promo_manager(session: AsyncSession, user: CurrentUser) -> None:
    """管理者または承認済みマーケターのみ"""
    if user.is_admin:
        return
    account = await load_user(session, user.id)
    if not account.is_approved_marketer:
        raise AuthorizationError("Only admins and approved marketers can manage promo codes")


async def load_promo_code(session: AsyncSession, code: str) -> PromoCodeAggregate:
    result = await session.execute(
        text("SELECT * FROM promo_codes WHERE code = :code"),
        {"code": code.strip().upper()},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Promo code not found", code=code)
    return PromoCodeAggregate.from_row(row)


async def create_promo_code(
    session: AsyncSession,
    user: CurrentUser,
    code: str,
    discount_type: str,
    discount_value: float,
    max_uses: int = 0,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_order_value: float = 0,
    applicable_categories: list[str] | None = None,
    applicable_products: list[str] | None = None,
) -> PromoCodeAggregate:
    await ensure_promo_manager(session, user)

    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("Promo code is required")
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError("Invalid discount type", allowed=list(DISCOUNT_TYPES))
    if discount_value < 0 or max_uses < 0 or min_order_value < 0:
        raise ValidationError("Discount value, max uses and minimum order value must not be negative")

    existing = await session.execute(
        text("SELECT id FROM promo_codes WHERE code = :code"), {"code": code}
    )
    if existing.fetchone():
        raise ConflictError("Promo code already exists", code=code)

    now = utcnow()
    agg = PromoCodeAggregate()
    agg.id = str(uuid4())
    agg.code = code
    agg.discount_type = discount_type
    agg.discount_value = discount_value
    agg.max_uses = max_uses
    agg.start_date = as_utc(start_date) or now
    agg.end_date = as_utc(end_date)
    agg.min_order_value = min_order_value
    agg.applicable_categories = applicable_categories or []
    agg.applicable_products = [str(p) for p in applicable_products or []]
    agg.created_by = user.id

    await session.execute(
        text("""
            INSERT INTO promo_codes
                (id, code, discount_type, discount_value, max_uses, current_uses,
                 start_date, end_date, is_active, min_order_value,
                 applicable_categories, applicable_products, created_by,
                 created_at, updated_at)
            VALUES
                (:id, :code, :discount_type, :discount_value, :max_uses, 0,
                 :start_date, :end_date, :is_active, :min_order_value,
                 :categories, :products, :created_by, :now, :now)
        """),
        {
            "id": agg.id,
            "code": agg.code,
            "discount_type": agg.discount_type,
            "discount_value": agg.discount_value,
            "max_uses": agg.max_uses,
            "start_date": to_iso(agg.start_date),
            "end_date": to_iso(agg.end_date),
            "is_active": True,
            "min_order_value": agg.min_order_value,
            "categories": dumps(agg.applicable_categories),
            "products": dumps(agg.applicable_products),
            "created_by": agg.created_by,
            "now": to_iso(now),
        },
    )
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.PromoCodeCreated(
        promo_code_id=agg.id,
        code=agg.code,
        discount_type=agg.discount_type,
        discount_value=agg.discount_value,
        created_by=user.id,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Promo code %s created by %s", agg.code, user.id)
    return agg


async def consume_use(
    session: AsyncSession,
    agg: PromoCodeAggregate,
    order_id: str | None = None,
) -> None:
    """
    使用回数を 1 加算する(コミットはしない)。

    検証と加算の間に他のリクエストが上限まで使い切った場合は
    条件に一致する行が無くなり Conflict になる。
    """
    result = await session.execute(
        text("""
            UPDATE promo_codes
            SET current_uses = current_uses + 1, updated_at = :now
            WHERE id = :id AND (max_uses = 0 OR current_uses < max_uses)
        """),
        {"id": agg.id, "now": to_iso(utcnow())},
    )
    if result.rowcount == 0:
        raise ConflictError("Promo code has reached its usage limit", code=agg.code)
    agg.current_uses += 1

    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.PromoCodeApplied(
        promo_code_id=agg.id, code=agg.code, order_id=order_id, timestamp=utcnow(),
    ))


async def release_use(session: AsyncSession, code: str, order_id: str) -> None:
    """キャンセルされた注文の使用回数を 1 戻す(コミットはしない)。"""
    agg = await load_promo_code(session, code)
    result = await session.execute(
        text("""
            UPDATE promo_codes
            SET current_uses = current_uses - 1, updated_at = :now
            WHERE id = :id AND current_uses > 0
        """),
        {"id": agg.id, "now": to_iso(utcnow())},
    )
    if result.rowcount == 0:
        return
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.PromoCodeReleased(
        promo_code_id=agg.id, code=agg.code, order_id=order_id, timestamp=utcnow(),
    ))


async def apply_promo_code(
    session: AsyncSession,
    code: str,
    order_value: float | None = None,
    category: str | None = None,
    product_id: str | None = None,
) -> tuple[PromoCodeAggregate, float | None]:
    """
    検証してから使用回数を加算し、(プロモコード, 割引額) を返す。
    注文金額が無ければ有効性(有効・期限内・上限未満)だけを確認する。
    """
    agg = await load_promo_code(session, code)
    now = utcnow()
    if order_value is None:
        if not agg.is_valid(now):
            raise ConflictError("Promo code is invalid or expired", code=agg.code)
    else:
        check = agg.validate(order_value, now, category, product_id)
        if not check.valid:
            raise ConflictError(check.message, code=agg.code)

    await consume_use(session, agg)
    await session.commit()
    logger.info("Promo code %s applied (%d uses)", agg.code, agg.current_uses)
    discount = agg.calculate_discount(order_value) if order_value is not None else None
    return agg, discount
