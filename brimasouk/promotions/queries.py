"""
Promotions — クエリハンドラ (読み取り側)
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import to_iso, utcnow
from ..errors import ConflictError
from .aggregate import PromoCodeAggregate
from .commands import load_promo_code


def serialize(agg: PromoCodeAggregate) -> dict:
    return {
        "id": agg.id,
        "code": agg.code,
        "discount_type": agg.discount_type,
        "discount_value": agg.discount_value,
        "max_uses": agg.max_uses,
        "current_uses": agg.current_uses,
        "start_date": to_iso(agg.start_date),
        "end_date": to_iso(agg.end_date),
        "is_active": agg.is_active,
        "is_valid": agg.is_valid(utcnow()),
        "min_order_value": agg.min_order_value,
        "applicable_categories": agg.applicable_categories,
        "applicable_products": agg.applicable_products,
        "created_by": agg.created_by,
    }


async def list_promo_codes(session: AsyncSession) -> list[dict]:
    result = await session.execute(text("SELECT * FROM promo_codes ORDER BY created_at DESC"))
    return [serialize(PromoCodeAggregate.from_row(row)) for row in result.fetchall()]


async def validate_promo_code(
    session: AsyncSession,
    code: str,
    order_value: float,
    category: str | None = None,
    product_id: str | None = None,
) -> dict:
    """使用回数は変えずに、適用できるかと割引額だけを返す。"""
    agg = await load_promo_code(session, code)
    check = agg.validate(order_value, utcnow(), category, product_id)
    if not check.valid:
        raise ConflictError(check.message, code=agg.code)
    return {
        "valid": True,
        "promo_code": {
            "code": agg.code,
            "discount_type": agg.discount_type,
            "discount_value": agg.discount_value,
            "discount_amount": agg.calculate_discount(order_value),
        },
    }
