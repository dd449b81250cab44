"""
Bookings — クエリハンドラ (読み取り側)

公開一覧は承認済みで、これから始まるイベントのみ(開始日の昇順)。
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CurrentUser
from ..database import as_utc, to_iso, utcnow
from ..errors import AuthorizationError, NotFoundError
from .aggregate import EventAggregate, ReservationAggregate
from .commands import load_event


def serialize_event(agg: EventAggregate, now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "id": agg.id,
        "artisan_id": agg.artisan_id,
        "title": agg.title,
        "description": agg.description,
        "location": agg.location,
        "start_date": to_iso(agg.start_date),
        "end_date": to_iso(agg.end_date),
        "duration": agg.duration,
        "experience_type": agg.experience_type,
        "price": agg.price,
        "max_participants": agg.max_participants,
        "current_participants": agg.current_participants,
        "is_full": agg.is_full,
        "has_started": agg.has_started(now),
        "has_ended": agg.has_ended(now),
        "is_approved": agg.is_approved,
        "rejection_reason": agg.rejection_reason,
    }


def serialize_reservation(agg: ReservationAggregate) -> dict:
    return {
        "id": agg.id,
        "event_id": agg.event_id,
        "user_id": agg.user_id,
        "full_name": agg.full_name,
        "email": agg.email,
        "phone_number": agg.phone_number,
        "number_of_participants": agg.number_of_participants,
        "special_requirements": agg.special_requirements,
        "status": agg.status,
        "promo_code": agg.promo_code,
        "created_at": to_iso(agg.created_at),
    }


async def _events(session: AsyncSession, sql: str, params: dict) -> list[dict]:
    result = await session.execute(text(sql), params)
    now = utcnow()
    return [serialize_event(EventAggregate.from_row(row), now) for row in result.fetchall()]


async def get_event(session: AsyncSession, event_id: str, user: CurrentUser | None = None) -> dict:
    agg = await load_event(session, event_id)
    if not agg.is_visible_to(user):
        raise NotFoundError("Event not found", eventId=str(event_id))
    return serialize_event(agg)


async def list_events(
    session: AsyncSession,
    experience_type: str | None = None,
    region: str | None = None,
    artisan_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """承認済みイベント。期間指定が無ければ今後のイベントだけ。"""
    clauses = ["is_approved = :approved"]
    params: dict = {"approved": True}
    if experience_type:
        clauses.append("experience_type = :experience_type")
        params["experience_type"] = experience_type
    if region:
        clauses.append("region = :region")
        params["region"] = region
    if artisan_id:
        clauses.append("artisan_id = :artisan_id")
        params["artisan_id"] = artisan_id
    if start_date or end_date:
        if start_date:
            clauses.append("start_date >= :start_date")
            params["start_date"] = to_iso(as_utc(start_date))
        if end_date:
            clauses.append("end_date <= :end_date")
            params["end_date"] = to_iso(as_utc(end_date))
    else:
        clauses.append("start_date >= :now")
        params["now"] = to_iso(utcnow())

    where = " AND ".join(clauses)
    total = (await session.execute(
        text(f"SELECT COUNT(*) FROM events WHERE {where}"), params
    )).scalar()
    events = await _events(
        session,
        f"""
            SELECT * FROM events WHERE {where}
            ORDER BY start_date ASC
            LIMIT :limit OFFSET :offset
        """,
        {**params, "limit": limit, "offset": (page - 1) * limit},
    )
    return {
        "events": events,
        "total_events": total,
        "total_pages": -(-total // limit) if limit else 0,
        "current_page": page,
    }


async def list_upcoming_events(session: AsyncSession, limit: int = 5) -> list[dict]:
    return await _events(
        session,
        """
            SELECT * FROM events
            WHERE is_approved = :approved AND start_date >= :now
            ORDER BY start_date ASC
            LIMIT :limit
        """,
        {"approved": True, "now": to_iso(utcnow()), "limit": limit},
    )


async def list_artisan_events(session: AsyncSession, user: CurrentUser) -> list[dict]:
    """職人自身のイベント(未承認を含む)"""
    return await _events(
        session,
        "SELECT * FROM events WHERE artisan_id = :artisan_id ORDER BY start_date ASC",
        {"artisan_id": user.id},
    )


async def list_pending_events(session: AsyncSession) -> list[dict]:
    return await _events(
        session,
        "SELECT * FROM events WHERE is_approved = :approved ORDER BY created_at DESC",
        {"approved": False},
    )


async def list_my_reservations(session: AsyncSession, user: CurrentUser) -> list[dict]:
    result = await session.execute(
        text("""
            SELECT r.*, e.title AS event_title, e.start_date AS event_start_date
            FROM reservations r
            JOIN events e ON e.id = r.event_id
            WHERE r.user_id = :user_id
            ORDER BY r.created_at DESC
        """),
        {"user_id": user.id},
    )
    return [
        {
            **serialize_reservation(ReservationAggregate.from_row(row)),
            "event": {"title": row.event_title, "start_date": row.event_start_date},
        }
        for row in result.fetchall()
    ]


async def list_event_reservations(session: AsyncSession, user: CurrentUser, event_id: str) -> dict:
    """イベントの職人または管理者のみ"""
    agg = await load_event(session, event_id)
    if agg.artisan_id != user.id and not user.is_admin:
        raise AuthorizationError("Not authorized to view these reservations")
    result = await session.execute(
        text("SELECT * FROM reservations WHERE event_id = :event_id ORDER BY created_at ASC"),
        {"event_id": agg.id},
    )
    return {
        "event": {
            "id": agg.id,
            "title": agg.title,
            "max_participants": agg.max_participants,
            "current_participants": agg.current_participants,
        },
        "reservations": [
            serialize_reservation(ReservationAggregate.from_row(row)) for row in result.fetchall()
        ],
    }
