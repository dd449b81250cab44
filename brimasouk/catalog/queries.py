"""
Catalog — クエリハンドラ (読み取り側)

公開一覧は承認済み商品のみ。未承認商品は職人本人と管理者だけが見られる。
元値とマークアップ率も本人と管理者以外には返さない。
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CurrentUser
from ..database import to_iso, utcnow
from ..errors import NotFoundError
from .aggregate import ProductAggregate
from .commands import load_product

SORT_OPTIONS = {
    "priceAsc": "price ASC",
    "priceDesc": "price DESC",
    "newest": "created_at DESC",
}


def serialize(agg: ProductAggregate, now: datetime | None = None) -> dict:
    now = now or utcnow()
    status, discount = agg.effective_promotion(now)
    return {
        "id": agg.id,
        "name": agg.name,
        "description": agg.description,
        "category": agg.category,
        "artisan_id": agg.artisan_id,
        "original_price": agg.original_price,
        "price": agg.price,
        "markup_percentage": agg.markup_percentage,
        "discounted_price": agg.discounted_price(now),
        "discount_percentage": discount,
        "promotional_status": status,
        "promotion_start_date": to_iso(agg.promotion_start_date),
        "promotion_end_date": to_iso(agg.promotion_end_date),
        "is_promotion_active": agg.is_promotion_active(now),
        "stock": agg.stock,
        "is_available": agg.is_available,
        "is_approved": agg.is_approved,
        "approval_date": to_iso(agg.approval_date),
        "rejection_reason": agg.rejection_reason,
    }


# 元値とマークアップは職人本人と管理者にだけ見せる
PRIVATE_FIELDS = ("original_price", "markup_percentage")


def serialize_for(agg: ProductAggregate, user: CurrentUser | None, now: datetime | None = None) -> dict:
    data = serialize(agg, now)
    if not agg.is_managed_by(user):
        for field in PRIVATE_FIELDS:
            del data[field]
    return data


async def get_product(
    session: AsyncSession,
    product_id: str,
    user: CurrentUser | None = None,
) -> dict:
    agg = await load_product(session, product_id)
    if not agg.is_visible_to(user):
        raise NotFoundError("Product not found", productId=str(product_id))
    return serialize_for(agg, user)


def _promotion_clause(promotional_status: str, params: dict) -> str:
    """終了したフラッシュセールは none として絞り込む"""
    params["now"] = to_iso(utcnow())
    if promotional_status == "flash_sale":
        return (
            "(promotional_status = 'flash_sale'"
            " AND (promotion_end_date IS NULL OR promotion_end_date >= :now))"
        )
    if promotional_status == "none":
        return (
            "(promotional_status = 'none'"
            " OR (promotional_status = 'flash_sale' AND promotion_end_date < :now))"
        )
    params["promotional_status"] = promotional_status
    return "promotional_status = :promotional_status"


async def list_products(
    session: AsyncSession,
    category: str | None = None,
    artisan_id: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    search: str | None = None,
    promotional_status: str | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 12,
    user: CurrentUser | None = None,
    approved_only: bool = True,
) -> dict:
    """商品の一覧(フィルタ・並び替え・ページング)。既定では承認済みのみ。"""
    clauses = ["1 = 1"]
    params: dict = {}
    if approved_only:
        clauses.append("is_approved = :approved")
        params["approved"] = True
    if category:
        clauses.append("category = :category")
        params["category"] = category
    if artisan_id:
        clauses.append("artisan_id = :artisan_id")
        params["artisan_id"] = artisan_id
    if min_price is not None:
        clauses.append("price >= :min_price")
        params["min_price"] = min_price
    if max_price is not None:
        clauses.append("price <= :max_price")
        params["max_price"] = max_price
    if promotional_status:
        clauses.append(_promotion_clause(promotional_status, params))
    if search:
        clauses.append("(LOWER(name) LIKE :search OR LOWER(description) LIKE :search)")
        params["search"] = f"%{search.lower()}%"

    where = " AND ".join(clauses)
    order_by = SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])

    total = (await session.execute(
        text(f"SELECT COUNT(*) FROM products WHERE {where}"), params
    )).scalar()
    result = await session.execute(
        text(f"""
            SELECT * FROM products WHERE {where}
            ORDER BY {order_by}
            LIMIT :limit OFFSET :offset
        """),
        {**params, "limit": limit, "offset": (page - 1) * limit},
    )
    now = utcnow()
    return {
        "products": [
            serialize_for(ProductAggregate.from_row(row), user, now) for row in result.fetchall()
        ],
        "pagination": {
            "total": total,
            "page": page,
            "pages": -(-total // limit) if limit else 0,
            "limit": limit,
        },
    }


async def list_pending_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        text("SELECT * FROM products WHERE is_approved = :approved ORDER BY created_at DESC"),
        {"approved": False},
    )
    now = utcnow()
    return [serialize(ProductAggregate.from_row(row), now) for row in result.fetchall()]


async def list_own_products(
    session: AsyncSession,
    user: CurrentUser,
    page: int = 1,
    limit: int = 12,
) -> dict:
    """職人本人の商品(審査中・却下を含む)"""
    return await list_products(
        session, artisan_id=user.id, page=page, limit=limit, user=user, approved_only=False
    )
