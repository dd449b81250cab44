"""
Admin — ダッシュボード集計
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


async def _count(session: AsyncSession, sql: str, params: dict | None = None) -> int:
    return (await session.execute(text(sql), params or {})).scalar() or 0


async def _group(session: AsyncSession, sql: str, key: str, params: dict | None = None) -> list[dict]:
    result = await session.execute(text(sql), params or {})
    return [{key: row[0], "count": row[1]} for row in result.fetchall()]


async def dashboard_stats(session: AsyncSession) -> dict:
    approved, pending = {"approved": True}, {"approved": False}
    return {
        "users": {
            "total": await _count(session, "SELECT COUNT(*) FROM users"),
        },
        "artisans": {
            "pending": await _count(
                session,
                "SELECT COUNT(*) FROM users WHERE role = 'artisan' AND is_approved = :approved",
                pending,
            ),
            "approved": await _count(
                session,
                "SELECT COUNT(*) FROM users WHERE role = 'artisan' AND is_approved = :approved",
                approved,
            ),
        },
        "products": {
            "pending": await _count(
                session, "SELECT COUNT(*) FROM products WHERE is_approved = :approved", pending
            ),
            "approved": await _count(
                session, "SELECT COUNT(*) FROM products WHERE is_approved = :approved", approved
            ),
            "by_category": await _group(
                session,
                """
                    SELECT category, COUNT(*) FROM products
                    WHERE is_approved = :approved
                    GROUP BY category ORDER BY category
                """,
                "category",
                approved,
            ),
        },
        "collaborators": {
            "pending": await _count(
                session,
                """
                    SELECT COUNT(*) FROM users
                    WHERE collaborator_role IS NOT NULL AND collaborator_approved = :approved
                """,
                pending,
            ),
            "approved": await _count(
                session,
                """
                    SELECT COUNT(*) FROM users
                    WHERE collaborator_role IS NOT NULL AND collaborator_approved = :approved
                """,
                approved,
            ),
            "by_role": await _group(
                session,
                """
                    SELECT collaborator_role, COUNT(*) FROM users
                    WHERE collaborator_role IS NOT NULL AND collaborator_approved = :approved
                    GROUP BY collaborator_role ORDER BY collaborator_role
                """,
                "role",
                approved,
            ),
        },
        "events": {
            "pending": await _count(
                session, "SELECT COUNT(*) FROM events WHERE is_approved = :approved", pending
            ),
            "approved": await _count(
                session, "SELECT COUNT(*) FROM events WHERE is_approved = :approved", approved
            ),
            "by_type": await _group(
                session,
                """
                    SELECT experience_type, COUNT(*) FROM events
                    WHERE is_approved = :approved
                    GROUP BY experience_type ORDER BY experience_type
                """,
                "experience_type",
                approved,
            ),
        },
    }
