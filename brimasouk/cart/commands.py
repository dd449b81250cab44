"""
Cart — コマンドハンドラ

カートはユーザーごとに (商品, 数量) を商品 1 件につき 1 行だけ持つ。
同じ商品を再度追加すると数量が加算される。
チェックアウトはカートの内容から注文を作成し、カートを空にする。
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CurrentUser
from ..catalog.commands import load_product
from ..database import to_iso, utcnow
from ..errors import ConflictError, NotFoundError, ValidationError
from ..notifications import Notifier
from ..orders import commands as order_commands
from ..payments import PaymentGateway

logger = logging.getLogger(__name__)


async def _cart_quantity(session: AsyncSession, user_id: str, product_id: str) -> int:
    result = await session.execute(
        text("SELECT quantity FROM cart_items WHERE user_id = :user_id AND product_id = :product_id"),
        {"user_id": user_id, "product_id": str(product_id)},
    )
    return result.scalar() or 0


async def _check_stock(session: AsyncSession, product_id: str, quantity: int) -> None:
    product = await load_product(session, product_id)
    if product.stock < quantity:
        raise ConflictError(
            f"Not enough stock for {product.name}",
            productId=product.id,
            available=product.stock,
        )


async def add_item(session: AsyncSession, user: CurrentUser, product_id: str, quantity: int = 1) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    current = await _cart_quantity(session, user.id, product_id)
    await _check_stock(session, product_id, current + quantity)

    now = to_iso(utcnow())
    await session.execute(
        text("""
            INSERT INTO cart_items (user_id, product_id, quantity, added_at, updated_at)
            VALUES (:user_id, :product_id, :quantity, :now, :now)
            ON CONFLICT (user_id, product_id)
            DO UPDATE SET quantity = cart_items.quantity + excluded.quantity,
                          updated_at = excluded.updated_at
        """),
        {"user_id": user.id, "product_id": str(product_id), "quantity": quantity, "now": now},
    )
    await session.commit()


async def update_item(session: AsyncSession, user: CurrentUser, product_id: str, quantity: int) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if not await _cart_quantity(session, user.id, product_id):
        raise NotFoundError("Item not found in cart", productId=str(product_id))
    await _check_stock(session, product_id, quantity)

    await session.execute(
        text("""
            UPDATE cart_items SET quantity = :quantity, updated_at = :now
            WHERE user_id = :user_id AND product_id = :product_id
        """),
        {
            "user_id": user.id,
            "product_id": str(product_id),
            "quantity": quantity,
            "now": to_iso(utcnow()),
        },
    )
    await session.commit()


async def remove_item(session: AsyncSession, user: CurrentUser, product_id: str) -> None:
    result = await session.execute(
        text("DELETE FROM cart_items WHERE user_id = :user_id AND product_id = :product_id"),
        {"user_id": user.id, "product_id": str(product_id)},
    )
    if result.rowcount == 0:
        raise NotFoundError("Item not found in cart", productId=str(product_id))
    await session.commit()


async def clear(session: AsyncSession, user: CurrentUser) -> None:
    await session.execute(
        text("DELETE FROM cart_items WHERE user_id = :user_id"), {"user_id": user.id}
    )
    await session.commit()


async def checkout(
    session: AsyncSession,
    user: CurrentUser,
    shipping_address: dict,
    payment_method: str = "card",
    discount_code: str | None = None,
    payments: PaymentGateway | None = None,
    notifier: Notifier | None = None,
):
    """カートのスナップショットから注文を作成し、カートを空にする。"""
    result = await session.execute(
        text("""
            SELECT product_id, quantity FROM cart_items
            WHERE user_id = :user_id ORDER BY added_at
        """),
        {"user_id": user.id},
    )
    items = [{"product_id": r.product_id, "quantity": r.quantity} for r in result.fetchall()]
    if not items:
        raise ValidationError("Cart is empty")

    order, payment = await order_commands.create_order(
        session,
        user,
        items,
        shipping_address,
        payment_method=payment_method,
        discount_code=discount_code,
        payments=payments,
        notifier=notifier,
    )
    await clear(session, user)
    logger.info("Cart of user %s checked out as order %s", user.id, order.id)
    return order, payment
