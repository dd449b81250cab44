"""
Catalog — コマンドハンドラ (書き込み側)

商品の作成・編集・承認・却下・販促設定・在庫調整。
各コマンドは集約のルールで状態を変更し、
テーブル(リードモデル)を更新してイベントストアに追記する。

在庫の増減は単一の条件付き UPDATE で行い、
「確認してから書く」間の競合で在庫がマイナスにならないようにする。
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..accounts.commands import load_user
from ..auth import CurrentUser
from ..database import as_utc, to_iso, utcnow
from ..errors import AuthorizationError, ConflictError, NotFoundError
from . import events
from .aggregate import ProductAggregate

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "Product"


async def load_product(session: AsyncSession, product_id: str) -> ProductAggregate:
    result = await session.execute(
        text("SELECT * FROM products WHERE id = :id"),
        {"id": str(product_id)},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Product not found", productId=str(product_id))
    return ProductAggregate.from_row(row)


async def _save(session: AsyncSession, agg: ProductAggregate, now: datetime) -> None:
    await session.execute(
        text("""
            UPDATE products SET
                name = :name, description = :description, category = :category,
                original_price = :original_price, price = :price,
                markup_percentage = :markup, is_approved = :is_approved,
                approved_by = :approved_by, approval_date = :approval_date,
                rejection_reason = :rejection_reason,
                promotional_status = :promotional_status,
                discount_percentage = :discount,
                promotion_start_date = :promo_start, promotion_end_date = :promo_end,
                stock = :stock, updated_at = :now
            WHERE id = :id
        """),
        {
            "id": agg.id,
            "name": agg.name,
            "description": agg.description,
            "category": agg.category,
            "original_price": agg.original_price,
            "price": agg.price,
            "markup": agg.markup_percentage,
            "is_approved": agg.is_approved,
            "approved_by": agg.approved_by,
            "approval_date": to_iso(agg.approval_date),
            "rejection_reason": agg.rejection_reason,
            "promotional_status": agg.promotional_status,
            "discount": agg.discount_percentage,
            "promo_start": to_iso(agg.promotion_start_date),
            "promo_end": to_iso(agg.promotion_end_date),
            "stock": agg.stock,
            "now": to_iso(now),
        },
    )


def _check_owner(agg: ProductAggregate, user: CurrentUser, action: str) -> None:
    if agg.artisan_id != user.id and not user.is_admin:
        raise AuthorizationError(f"Not authorized to {action} this product")


async def create_product(
    session: AsyncSession,
    user: CurrentUser,
    name: str,
    description: str,
    category: str,
    price: float,
    stock: int = 0,
) -> ProductAggregate:
    """
    商品作成コマンド

    1. 承認済みの職人であることを確認
    2. 未承認・new_collection の商品を作成 (price = 元値)
    3. ProductCreated をイベントストアに追記
    """
    if user.role != "artisan":
        raise AuthorizationError("Only artisans can create products")
    artisan = await load_user(session, user.id)
    if not artisan.is_approved:
        raise AuthorizationError("Your artisan account must be approved before adding products")

    agg = ProductAggregate.create(
        str(uuid4()), user.id, name, description, category, price, stock
    )
    now = utcnow()
    await session.execute(
        text("""
            INSERT INTO products
                (id, name, description, category, artisan_id, original_price, price,
                 markup_percentage, is_approved, promotional_status, discount_percentage,
                 stock, created_at, updated_at)
            VALUES
                (:id, :name, :description, :category, :artisan_id, :original_price, :price,
                 :markup, :is_approved, :promotional_status, 0, :stock, :now, :now)
        """),
        {
            "id": agg.id,
            "name": agg.name,
            "description": agg.description,
            "category": agg.category,
            "artisan_id": agg.artisan_id,
            "original_price": agg.original_price,
            "price": agg.price,
            "markup": agg.markup_percentage,
            "is_approved": False,
            "promotional_status": agg.promotional_status,
            "stock": agg.stock,
            "now": to_iso(now),
        },
    )
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductCreated(
        product_id=agg.id,
        artisan_id=agg.artisan_id,
        name=agg.name,
        category=agg.category,
        original_price=agg.original_price,
        stock=agg.stock,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Product %s created by artisan %s", agg.id, user.id)
    return agg


async def update_product(
    session: AsyncSession,
    user: CurrentUser,
    product_id: str,
    fields: dict,
) -> ProductAggregate:
    agg = await load_product(session, product_id)
    _check_owner(agg, user, "update")

    changed = agg.apply_update(fields, by_admin=user.is_admin)
    if not changed:
        return agg

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductUpdated(
        product_id=agg.id,
        updated_by=user.id,
        fields=changed,
        price=agg.price,
        is_approved=agg.is_approved,
        timestamp=now,
    ))
    await session.commit()
    return agg


async def delete_product(session: AsyncSession, user: CurrentUser, product_id: str) -> None:
    agg = await load_product(session, product_id)
    _check_owner(agg, user, "delete")

    await session.execute(text("DELETE FROM products WHERE id = :id"), {"id": agg.id})
    await session.execute(text("DELETE FROM cart_items WHERE product_id = :id"), {"id": agg.id})
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductDeleted(
        product_id=agg.id, deleted_by=user.id, timestamp=utcnow(),
    ))
    await session.commit()
    logger.info("Product %s deleted by %s", agg.id, user.id)


async def approve_product(
    session: AsyncSession,
    admin: CurrentUser,
    product_id: str,
    markup_percentage: float | None = None,
) -> ProductAggregate:
    """承認コマンド: マークアップを適用して販売価格を確定する。"""
    agg = await load_product(session, product_id)
    now = utcnow()
    agg.approve(admin.id, now, markup_percentage)

    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductApproved(
        product_id=agg.id,
        approved_by=admin.id,
        markup_percentage=agg.markup_percentage,
        price=agg.price,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Product %s approved at %.2f (markup %s%%)", agg.id, agg.price, agg.markup_percentage)
    return agg


async def reject_product(
    session: AsyncSession,
    admin: CurrentUser,
    product_id: str,
    reason: str,
) -> ProductAggregate:
    agg = await load_product(session, product_id)
    agg.reject(reason)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductRejected(
        product_id=agg.id, reason=agg.rejection_reason, timestamp=now,
    ))
    await session.commit()
    return agg


async def _save_promotion(session: AsyncSession, agg: ProductAggregate) -> ProductAggregate:
    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ProductPromotionChanged(
        product_id=agg.id,
        promotional_status=agg.promotional_status,
        discount_percentage=agg.discount_percentage,
        promotion_end_date=agg.promotion_end_date,
        timestamp=now,
    ))
    await session.commit()
    return agg


async def mark_best_seller(
    session: AsyncSession,
    product_id: str,
    is_best_seller: bool = True,
) -> ProductAggregate:
    agg = await load_product(session, product_id)
    agg.mark_best_seller(is_best_seller)
    return await _save_promotion(session, agg)


async def setup_flash_sale(
    session: AsyncSession,
    product_id: str,
    discount_percentage: float,
    start: datetime | None,
    end: datetime | None,
) -> ProductAggregate:
    agg = await load_product(session, product_id)
    agg.setup_flash_sale(discount_percentage, as_utc(start) or utcnow(), as_utc(end))
    return await _save_promotion(session, agg)


async def adjust_stock(
    session: AsyncSession,
    product_id: str,
    delta: int,
    reason: str,
) -> None:
    """
    在庫を delta だけ増減する(コミットはしない)。

    条件付き UPDATE 1 回で行うため、同時リクエストがあっても
    在庫がマイナスになることはない。該当行が無ければ在庫不足か商品なし。
    """
    result = await session.execute(
        text("""
            UPDATE products
            SET stock = stock + :delta, updated_at = :now
            WHERE id = :id AND stock + :delta >= 0
        """),
        {"delta": delta, "id": str(product_id), "now": to_iso(utcnow())},
    )
    if result.rowcount == 0:
        await load_product(session, product_id)
        raise ConflictError("Not enough stock", productId=str(product_id), requested=-delta)

    await event_store.record(session, product_id, AGGREGATE_TYPE, events.StockAdjusted(
        product_id=str(product_id), delta=delta, reason=reason, timestamp=utcnow(),
    ))


async def update_stock(
    session: AsyncSession,
    user: CurrentUser,
    product_id: str,
    delta: int,
) -> ProductAggregate:
    """在庫調整コマンド(商品の職人または管理者)"""
    agg = await load_product(session, product_id)
    _check_owner(agg, user, "update stock of")
    await adjust_stock(session, product_id, delta, reason=f"manual adjustment by {user.id}")
    await session.commit()
    return await load_product(session, product_id)
