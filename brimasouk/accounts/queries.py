"""
Accounts — クエリハンドラ (読み取り側)
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import to_iso
from ..errors import NotFoundError
from .aggregate import UserAggregate
from .commands import load_user


def serialize(agg: UserAggregate) -> dict:
    return {
        "id": agg.id,
        "full_name": agg.full_name,
        "email": agg.email,
        "role": agg.role,
        "region": agg.region,
        "phone_number": agg.phone_number,
        "is_approved": agg.is_approved,
        "artisan_description": agg.artisan_description,
        "approval_date": to_iso(agg.approval_date),
        "rejection_reason": agg.rejection_reason,
        "collaborator_role": agg.collaborator_role,
        "collaborator_approved": agg.collaborator_approved,
        "collaborator_details": agg.collaborator_details,
        "collaborator_rejection_reason": agg.collaborator_rejection_reason,
    }


async def get_user(session: AsyncSession, user_id: str) -> dict:
    return serialize(await load_user(session, user_id))


async def _list(session: AsyncSession, where: str, params: dict) -> list[dict]:
    result = await session.execute(
        text(f"SELECT * FROM users WHERE {where} ORDER BY created_at DESC"), params
    )
    return [serialize(UserAggregate.from_row(row)) for row in result.fetchall()]


async def list_users(session: AsyncSession, role: str | None = None) -> list[dict]:
    if role:
        return await _list(session, "role = :role", {"role": role})
    return await _list(session, "1 = 1", {})


async def list_pending_artisans(session: AsyncSession) -> list[dict]:
    return await _list(
        session, "role = 'artisan' AND is_approved = :approved", {"approved": False}
    )


async def list_pending_collaborators(session: AsyncSession) -> list[dict]:
    return await _list(
        session,
        "collaborator_role IS NOT NULL AND collaborator_approved = :approved",
        {"approved": False},
    )


async def list_collaborators(session: AsyncSession, collaborator_role: str | None = None) -> list[dict]:
    """承認済みコラボレーター(公開一覧)"""
    where = "collaborator_role IS NOT NULL AND collaborator_approved = :approved"
    params: dict = {"approved": True}
    if collaborator_role:
        where += " AND collaborator_role = :collaborator_role"
        params["collaborator_role"] = collaborator_role
    return [
        {
            "id": user["id"],
            "full_name": user["full_name"],
            "collaborator_role": user["collaborator_role"],
            "collaborator_details": user["collaborator_details"],
        }
        for user in await _list(session, where, params)
    ]


def _artisan_profile(agg: UserAggregate) -> dict:
    return {
        "id": agg.id,
        "full_name": agg.full_name,
        "region": agg.region,
        "artisan_description": agg.artisan_description,
    }


async def list_artisans(
    session: AsyncSession,
    region: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """承認済み職人の公開ディレクトリ(名前順)"""
    where = "role = 'artisan' AND is_approved = :approved"
    params: dict = {"approved": True}
    if region:
        where += " AND region = :region"
        params["region"] = region

    total = (await session.execute(
        text(f"SELECT COUNT(*) FROM users WHERE {where}"), params
    )).scalar()
    result = await session.execute(
        text(f"""
            SELECT * FROM users WHERE {where}
            ORDER BY full_name
            LIMIT :limit OFFSET :offset
        """),
        {**params, "limit": limit, "offset": (page - 1) * limit},
    )
    return {
        "artisans": [_artisan_profile(UserAggregate.from_row(row)) for row in result.fetchall()],
        "pagination": {
            "total": total,
            "page": page,
            "pages": -(-total // limit) if limit else 0,
            "limit": limit,
        },
    }


async def get_artisan(session: AsyncSession, user_id: str) -> dict:
    result = await session.execute(
        text("SELECT * FROM users WHERE id = :id AND role = 'artisan' AND is_approved = :approved"),
        {"id": str(user_id), "approved": True},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Artisan not found", userId=str(user_id))
    return _artisan_profile(UserAggregate.from_row(row))
