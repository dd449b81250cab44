"""
Orders — コマンドハンドラ (書き込み側)

注文の作成・キャンセル・支払い確認・ステータス更新。

副作用の順序:
  1. 状態遷移をテーブルとイベントストアに書き込んでコミット
  2. 決済セッション作成(代引き以外)
  3. 通知の発行
2 と 3 が失敗しても 1 はロールバックしない。
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config, event_store
from ..auth import CurrentUser
from ..catalog.commands import adjust_stock, load_product
from ..database import dumps, to_iso, utcnow
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..notifications import Notifier
from ..payments import PaymentGateway, PaymentSession, PaymentVerification
from ..promotions.commands import consume_use, load_promo_code, release_use
from . import events
from .aggregate import OrderAggregate, OrderLine

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "Order"


async def load_order(session: AsyncSession, order_id: str) -> OrderAggregate:
    result = await session.execute(
        text("SELECT * FROM orders WHERE id = :id"),
        {"id": str(order_id)},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Order not found", orderId=str(order_id))
    items = await session.execute(
        text("""
            SELECT product_id, quantity, price FROM order_items
            WHERE order_id = :id ORDER BY position
        """),
        {"id": str(order_id)},
    )
    lines = [
        OrderLine(product_id=r.product_id, quantity=r.quantity, price=float(r.price))
        for r in items.fetchall()
    ]
    return OrderAggregate.from_row(row, lines)


async def _save(session: AsyncSession, agg: OrderAggregate, now: datetime) -> None:
    await session.execute(
        text("""
            UPDATE orders SET
                payment_status = :payment_status,
                payment_reference = :payment_reference,
                transaction_id = :transaction_id,
                order_status = :order_status,
                order_notes = :order_notes,
                updated_at = :now
            WHERE id = :id
        """),
        {
            "id": agg.id,
            "payment_status": agg.payment_status,
            "payment_reference": agg.payment_reference,
            "transaction_id": agg.transaction_id,
            "order_status": agg.order_status,
            "order_notes": agg.order_notes,
            "now": to_iso(now),
        },
    )


async def _insert(session: AsyncSession, agg: OrderAggregate, now: datetime) -> None:
    await session.execute(
        text("""
            INSERT INTO orders
                (id, user_id, artisan_id, shipping_address, subtotal, shipping_cost,
                 discount, discount_code, total_amount, payment_method, payment_status,
                 order_status, order_notes, is_gift, gift_message, estimated_delivery,
                 created_at, updated_at)
            VALUES
                (:id, :user_id, :artisan_id, :shipping_address, :subtotal, :shipping_cost,
                 :discount, :discount_code, :total_amount, :payment_method, :payment_status,
                 :order_status, :order_notes, :is_gift, :gift_message, :estimated_delivery,
                 :now, :now)
        """),
        {
            "id": agg.id,
            "user_id": agg.user_id,
            "artisan_id": agg.artisan_id,
            "shipping_address": dumps(agg.shipping_address),
            "subtotal": agg.subtotal,
            "shipping_cost": agg.shipping_cost,
            "discount": agg.discount,
            "discount_code": agg.discount_code,
            "total_amount": agg.total_amount,
            "payment_method": agg.payment_method,
            "payment_status": agg.payment_status,
            "order_status": agg.order_status,
            "order_notes": agg.order_notes,
            "is_gift": agg.is_gift,
            "gift_message": agg.gift_message,
            "estimated_delivery": to_iso(agg.estimated_delivery),
            "now": to_iso(now),
        },
    )
    for position, line in enumerate(agg.items):
        await session.execute(
            text("""
                INSERT INTO order_items
                    (order_id, position, product_id, quantity, price, total_price)
                VALUES
                    (:order_id, :position, :product_id, :quantity, :price, :total_price)
            """),
            {
                "order_id": agg.id,
                "position": position,
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price": line.price,
                "total_price": line.total_price,
            },
        )


def _check_party(agg: OrderAggregate, user: CurrentUser, action: str, allow_artisan: bool = False) -> None:
    if agg.user_id == user.id or user.is_admin:
        return
    if allow_artisan and agg.artisan_id and agg.artisan_id == user.id:
        return
    raise AuthorizationError(f"Not authorized to {action} this order")


async def create_order(
    session: AsyncSession,
    user: CurrentUser,
    items: list[dict],
    shipping_address: dict,
    payment_method: str = "card",
    discount_code: str | None = None,
    order_notes: str = "",
    is_gift: bool = False,
    gift_message: str | None = None,
    payments: PaymentGateway | None = None,
    notifier: Notifier | None = None,
) -> tuple[OrderAggregate, PaymentSession | None]:
    """
    注文作成コマンド

    1. 各商品を確認(存在・承認済み・在庫)し、割引後の単価をスナップショット
    2. 割引コードを検証して適用、使用回数を加算
    3. 注文をテーブルとイベントストアに保存してコミット
    4. 代引き以外は決済セッションを作成(失敗しても注文は pending のまま)
    5. 通知を発行
    """
    if not items:
        raise ValidationError("No order items")
    if not shipping_address:
        raise ValidationError("Shipping address is required")

    now = utcnow()
    lines: list[OrderLine] = []
    artisan_id = None
    for item in items:
        quantity = int(item.get("quantity", 0))
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", productId=item.get("product_id"))
        product = await load_product(session, item["product_id"])
        if not product.is_approved:
            raise ConflictError(f"Product {product.name} is not available", productId=product.id)
        if product.stock < quantity:
            raise ConflictError(
                f"Not enough stock for {product.name}",
                productId=product.id,
                available=product.stock,
            )
        artisan_id = artisan_id or product.artisan_id
        lines.append(OrderLine(
            product_id=product.id, quantity=quantity, price=product.discounted_price(now),
        ))

    agg = OrderAggregate.create(
        str(uuid4()),
        user.id,
        lines,
        shipping_address,
        payment_method,
        now,
        artisan_id=artisan_id,
        order_notes=order_notes,
        is_gift=is_gift,
        gift_message=gift_message,
    )

    promo = None
    if discount_code:
        promo = await load_promo_code(session, discount_code)
        check = promo.validate(agg.subtotal, now)
        if not check.valid:
            raise ConflictError(check.message, code=promo.code)
        agg.apply_discount(promo.code, promo.calculate_discount(agg.subtotal))

    await _insert(session, agg, now)
    if promo:
        await consume_use(session, promo, agg.id)
    if config.RESERVE_STOCK_ON_ORDER:
        for line in agg.items:
            await adjust_stock(session, line.product_id, -line.quantity, reason=f"order {agg.id}")

    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.OrderCreated(
        order_id=agg.id,
        user_id=agg.user_id,
        artisan_id=agg.artisan_id,
        items=[line.model_dump() for line in agg.items],
        subtotal=agg.subtotal,
        shipping_cost=agg.shipping_cost,
        discount=agg.discount,
        discount_code=agg.discount_code,
        total_amount=agg.total_amount,
        payment_method=agg.payment_method,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Order %s created for user %s: %.2f", agg.id, user.id, agg.total_amount)

    payment = None
    if agg.payment_method != "cash_on_delivery" and payments is not None:
        payment = await payments.create_payment_session({
            "id": agg.id,
            "total_amount": agg.total_amount,
            "customer_name": user.name,
            "customer_email": user.email,
            "customer_phone": agg.shipping_address.get("phone_number"),
        })
        if payment.success and payment.payment_reference:
            agg.attach_payment(payment.payment_reference)
            await _save(session, agg, utcnow())
            await event_store.record(session, agg.id, AGGREGATE_TYPE, events.PaymentSessionCreated(
                order_id=agg.id,
                payment_reference=payment.payment_reference,
                session_id=payment.session_id,
                timestamp=utcnow(),
            ))
            await session.commit()
        else:
            logger.warning("Order %s left pending without payment session: %s", agg.id, payment.error)

    if notifier is not None:
        await notifier.notify(
            user.id,
            "Order Placed Successfully",
            f"Your order #{agg.id} has been placed successfully.",
            type="order_created",
            order_id=agg.id,
        )
    return agg, payment


async def cancel_order(
    session: AsyncSession,
    user: CurrentUser,
    order_id: str,
    reason: str | None = None,
    notifier: Notifier | None = None,
) -> OrderAggregate:
    """
    注文キャンセルコマンド

    pending / processing のみ。各明細の数量を商品の在庫に戻す。
    """
    agg = await load_order(session, order_id)
    _check_party(agg, user, "cancel")
    agg.cancel(reason)

    now = utcnow()
    await _save(session, agg, now)
    for line in agg.items:
        try:
            await adjust_stock(session, line.product_id, line.quantity, reason=f"cancel order {agg.id}")
        except NotFoundError:
            logger.warning("Product %s no longer exists, stock not restored", line.product_id)
    if config.RELEASE_PROMO_ON_CANCEL and agg.discount_code:
        await release_use(session, agg.discount_code, agg.id)

    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.OrderCancelled(
        order_id=agg.id, cancelled_by=user.id, reason=reason, timestamp=now,
    ))
    await session.commit()
    logger.info("Order %s cancelled by %s", agg.id, user.id)

    if notifier is not None:
        await notifier.notify(
            agg.user_id,
            "Order Cancelled",
            f"Your order #{agg.id} has been cancelled.",
            type="order_cancelled",
            order_id=agg.id,
        )
    return agg


async def verify_payment(
    session: AsyncSession,
    user: CurrentUser,
    order_id: str,
    session_id: str | None,
    payments: PaymentGateway,
    notifier: Notifier | None = None,
) -> tuple[OrderAggregate, PaymentVerification]:
    """
    支払い確認コマンド

    1. 注文の存在・当事者・決済リファレンスを確認
    2. 支払い済みなら何もしない(冪等)
    3. セッション ID が無ければゲートウェイに問い合わせず UNKNOWN を返す
    4. ゲートウェイが COMPLETED を返したら paid にして pending → processing
    """
    agg = await load_order(session, order_id)
    _check_party(agg, user, "verify payment of")
    if not agg.payment_reference:
        raise ValidationError("No payment reference for this order")
    if agg.payment_status == "paid":
        return agg, PaymentVerification(
            success=True, status="COMPLETED", transaction_id=agg.transaction_id
        )
    if not session_id:
        return agg, PaymentVerification(
            success=False, status="UNKNOWN", error="Session ID required for verification"
        )

    verification = await payments.verify_payment(session_id)
    if not (verification.success and verification.status == "COMPLETED"):
        logger.info("Payment for order %s not completed: %s", agg.id, verification.status)
        return agg, verification

    now = utcnow()
    agg.mark_paid(verification.transaction_id)
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.OrderPaid(
        order_id=agg.id, transaction_id=agg.transaction_id, timestamp=now,
    ))
    await session.commit()
    logger.info("Order %s paid (transaction %s)", agg.id, agg.transaction_id)

    if notifier is not None:
        await notifier.notify(
            agg.user_id,
            "Payment Received",
            f"Payment for your order #{agg.id} has been received.",
            type="payment_received",
            order_id=agg.id,
        )
    return agg, verification


async def update_status(
    session: AsyncSession,
    user: CurrentUser,
    order_id: str,
    status: str,
    notes: str | None = None,
    notifier: Notifier | None = None,
) -> OrderAggregate:
    """ステータス更新コマンド(管理者または注文の職人)"""
    agg = await load_order(session, order_id)
    if not user.is_admin and agg.artisan_id != user.id:
        raise AuthorizationError("Not authorized to update this order")
    agg.update_status(status, notes)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.OrderStatusChanged(
        order_id=agg.id, order_status=status, changed_by=user.id, notes=notes, timestamp=now,
    ))
    await session.commit()
    logger.info("Order %s status set to %s by %s", agg.id, status, user.id)

    if notifier is not None:
        await notifier.notify(
            agg.user_id,
            "Order Status Updated",
            f"Your order #{agg.id} status has been updated to {status}.",
            type="order_updated",
            order_id=agg.id,
            status=status,
        )
    return agg
