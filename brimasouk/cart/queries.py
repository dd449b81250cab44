"""
Cart — クエリハンドラ
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CurrentUser
from ..catalog.aggregate import ProductAggregate
from ..database import utcnow


async def get_cart(session: AsyncSession, user: CurrentUser) -> dict:
    """カートの中身と、現在の割引後価格で計算した小計"""
    result = await session.execute(
        text("""
            SELECT c.quantity AS cart_quantity, p.*
            FROM cart_items c
            JOIN products p ON p.id = c.product_id
            WHERE c.user_id = :user_id
            ORDER BY c.added_at
        """),
        {"user_id": user.id},
    )
    now = utcnow()
    items = []
    for row in result.fetchall():
        product = ProductAggregate.from_row(row)
        unit_price = product.discounted_price(now)
        items.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "price": unit_price,
            "quantity": row.cart_quantity,
            "line_total": round(unit_price * row.cart_quantity, 2),
            "is_available": product.is_available and product.is_approved,
        })
    return {
        "items": items,
        "total_items": sum(item["quantity"] for item in items),
        "subtotal": round(sum(item["line_total"] for item in items), 2),
    }
