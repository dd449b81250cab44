"""
Orders — クエリハンドラ (読み取り側)

注文詳細を見られるのは購入者本人・管理者・注文の職人のみ。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CurrentUser
from ..database import to_iso
from ..errors import AuthorizationError
from .aggregate import OrderAggregate
from .commands import load_order


def serialize(agg: OrderAggregate) -> dict:
    return {
        "id": agg.id,
        "user_id": agg.user_id,
        "artisan_id": agg.artisan_id,
        "items": [line.model_dump() for line in agg.items],
        "shipping_address": agg.shipping_address,
        "subtotal": agg.subtotal,
        "shipping_cost": agg.shipping_cost,
        "discount": agg.discount,
        "discount_code": agg.discount_code,
        "total_amount": agg.total_amount,
        "payment_method": agg.payment_method,
        "payment_status": agg.payment_status,
        "payment_reference": agg.payment_reference,
        "transaction_id": agg.transaction_id,
        "order_status": agg.order_status,
        "order_notes": agg.order_notes,
        "is_gift": agg.is_gift,
        "gift_message": agg.gift_message,
        "estimated_delivery": to_iso(agg.estimated_delivery),
        "created_at": to_iso(agg.created_at),
    }


async def get_order(session: AsyncSession, user: CurrentUser, order_id: str) -> dict:
    agg = await load_order(session, order_id)
    if agg.user_id != user.id and not user.is_admin and agg.artisan_id != user.id:
        raise AuthorizationError("Not authorized to access this order")
    return serialize(agg)


async def _page(
    session: AsyncSession,
    column: str,
    owner_id: str,
    status: str | None,
    page: int,
    limit: int,
) -> dict:
    where = f"{column} = :owner_id"
    params: dict = {"owner_id": owner_id}
    if status:
        where += " AND order_status = :status"
        params["status"] = status

    total = (await session.execute(
        text(f"SELECT COUNT(*) FROM orders WHERE {where}"), params
    )).scalar()
    result = await session.execute(
        text(f"""
            SELECT id FROM orders WHERE {where}
            ORDER BY created_at DESC
            LIMIT :limit OFFSET :offset
        """),
        {**params, "limit": limit, "offset": (page - 1) * limit},
    )
    orders = [serialize(await load_order(session, row.id)) for row in result.fetchall()]
    return {
        "orders": orders,
        "total": total,
        "page": page,
        "pages": -(-total // limit) if limit else 0,
    }


async def list_my_orders(
    session: AsyncSession,
    user: CurrentUser,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    return await _page(session, "user_id", user.id, status, page, limit)


async def list_artisan_orders(
    session: AsyncSession,
    user: CurrentUser,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """職人が主担当の注文"""
    return await _page(session, "artisan_id", user.id, status, page, limit)
