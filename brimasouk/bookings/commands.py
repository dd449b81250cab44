"""
Bookings — コマンドハンドラ (書き込み側)

参加者数の増減は単一の条件付き UPDATE で行う:
  予約   current_participants + n <= max_participants の行だけ加算
  取消   0 を下回らないように減算
"""

import logging
import secrets
import string
from datetime import datetime
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..accounts.commands import load_user
from ..auth import CurrentUser
from ..database import dumps, to_iso, utcnow
from ..errors import AuthorizationError, ConflictError, NotFoundError
from ..notifications import Notifier
from . import events
from .aggregate import EventAggregate, ReservationAggregate

logger = logging.getLogger(__name__)

EVENT_AGGREGATE = "Event"
PROMO_ALPHABET = string.ascii_uppercase + string.digits


def booking_code() -> str:
    return "EVENT-" + "".join(secrets.choice(PROMO_ALPHABET) for _ in range(6))


async def load_event(session: AsyncSession, event_id: str) -> EventAggregate:
    result = await session.execute(
        text("SELECT * FROM events WHERE id = :id"),
        {"id": str(event_id)},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Event not found", eventId=str(event_id))
    return EventAggregate.from_row(row)


async def load_reservation(session: AsyncSession, reservation_id: str) -> ReservationAggregate:
    result = await session.execute(
        text("SELECT * FROM reservations WHERE id = :id"),
        {"id": str(reservation_id)},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("Reservation not found", reservationId=str(reservation_id))
    return ReservationAggregate.from_row(row)


async def _save(session: AsyncSession, agg: EventAggregate, now: datetime) -> None:
    # current_participants は条件付き UPDATE でしか変更しない
    await session.execute(
        text("""
            UPDATE events SET
                title = :title, description = :description,
                location = :location, region = :region,
                start_date = :start_date, end_date = :end_date,
                duration = :duration, experience_type = :experience_type,
                price = :price, max_participants = :max_participants,
                is_approved = :is_approved, approved_by = :approved_by,
                rejection_reason = :rejection_reason, updated_at = :now
            WHERE id = :id
        """),
        {
            "id": agg.id,
            "title": agg.title,
            "description": agg.description,
            "location": dumps(agg.location),
            "region": agg.region,
            "start_date": to_iso(agg.start_date),
            "end_date": to_iso(agg.end_date),
            "duration": agg.duration,
            "experience_type": agg.experience_type,
            "price": agg.price,
            "max_participants": agg.max_participants,
            "is_approved": agg.is_approved,
            "approved_by": agg.approved_by,
            "rejection_reason": agg.rejection_reason,
            "now": to_iso(now),
        },
    )


async def create_event(
    session: AsyncSession,
    user: CurrentUser,
    title: str,
    description: str,
    start_date: datetime,
    end_date: datetime,
    duration: int,
    location: dict | None = None,
    experience_type: str = "workshop",
    price: float = 0,
    max_participants: int = 10,
) -> EventAggregate:
    """イベント作成コマンド(承認済みの職人のみ、作成時は未承認)"""
    if user.role != "artisan":
        raise AuthorizationError("Only artisans can create events")
    artisan = await load_user(session, user.id)
    if not artisan.is_approved:
        raise AuthorizationError("Your artisan account must be approved to create events")

    agg = EventAggregate.create(
        str(uuid4()), user.id, title, description, start_date, end_date, duration,
        location=location, experience_type=experience_type, price=price,
        max_participants=max_participants,
    )
    now = utcnow()
    await session.execute(
        text("""
            INSERT INTO events
                (id, artisan_id, title, description, location, region, start_date, end_date,
                 duration, experience_type, price, max_participants, current_participants,
                 is_approved, created_at, updated_at)
            VALUES
                (:id, :artisan_id, :title, :description, :location, :region, :start_date,
                 :end_date, :duration, :experience_type, :price, :max_participants, 0,
                 :is_approved, :now, :now)
        """),
        {
            "id": agg.id,
            "artisan_id": agg.artisan_id,
            "title": agg.title,
            "description": agg.description,
            "location": dumps(agg.location),
            "region": agg.region,
            "start_date": to_iso(agg.start_date),
            "end_date": to_iso(agg.end_date),
            "duration": agg.duration,
            "experience_type": agg.experience_type,
            "price": agg.price,
            "max_participants": agg.max_participants,
            "is_approved": False,
            "now": to_iso(now),
        },
    )
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.EventCreated(
        event_id=agg.id,
        artisan_id=agg.artisan_id,
        title=agg.title,
        start_date=agg.start_date,
        max_participants=agg.max_participants,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Event %s created by artisan %s", agg.id, user.id)
    return agg


async def update_event(
    session: AsyncSession,
    user: CurrentUser,
    event_id: str,
    fields: dict,
) -> tuple[EventAggregate, bool]:
    """編集を適用し、(イベント, 再審査が必要になったか) を返す。"""
    agg = await load_event(session, event_id)
    if agg.artisan_id != user.id and not user.is_admin:
        raise AuthorizationError("Not authorized to update this event")

    was_approved = agg.is_approved
    changed = agg.apply_update(fields, by_admin=user.is_admin)
    if not changed:
        return agg, False

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.EventUpdated(
        event_id=agg.id,
        updated_by=user.id,
        fields=changed,
        is_approved=agg.is_approved,
        timestamp=now,
    ))
    await session.commit()
    return agg, was_approved and not agg.is_approved


async def approve_event(session: AsyncSession, admin: CurrentUser, event_id: str) -> EventAggregate:
    agg = await load_event(session, event_id)
    agg.approve(admin.id)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.EventApproved(
        event_id=agg.id, approved_by=admin.id, timestamp=now,
    ))
    await session.commit()
    logger.info("Event %s approved by %s", agg.id, admin.id)
    return agg


async def reject_event(
    session: AsyncSession,
    admin: CurrentUser,
    event_id: str,
    reason: str,
) -> EventAggregate:
    agg = await load_event(session, event_id)
    agg.reject(reason)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.EventRejected(
        event_id=agg.id, reason=agg.rejection_reason, timestamp=now,
    ))
    await session.commit()
    return agg


async def book_event(
    session: AsyncSession,
    user: CurrentUser,
    event_id: str,
    full_name: str,
    email: str,
    number_of_participants: int = 1,
    phone_number: str | None = None,
    special_requirements: str | None = None,
    notifier: Notifier | None = None,
) -> ReservationAggregate:
    """
    予約コマンド

    1. 承認済み・未終了・空きありを確認
    2. 定員を条件にした UPDATE で参加者数を加算(同時予約でも超過しない)
    3. 確定済みの予約を作成し、EVENT-XXXXXX のコードを発行
    """
    agg = await load_event(session, event_id)
    now = utcnow()
    agg.check_bookable(number_of_participants, now)

    result = await session.execute(
        text("""
            UPDATE events
            SET current_participants = current_participants + :n, updated_at = :now
            WHERE id = :id AND current_participants + :n <= max_participants
        """),
        {"n": number_of_participants, "id": agg.id, "now": to_iso(now)},
    )
    if result.rowcount == 0:
        raise ConflictError("This event is fully booked", eventId=agg.id)

    reservation = ReservationAggregate()
    reservation.id = str(uuid4())
    reservation.event_id = agg.id
    reservation.user_id = user.id
    reservation.full_name = full_name
    reservation.email = email
    reservation.phone_number = phone_number
    reservation.number_of_participants = number_of_participants
    reservation.special_requirements = special_requirements
    reservation.status = "confirmed"
    reservation.promo_code = booking_code()
    reservation.created_at = now

    await session.execute(
        text("""
            INSERT INTO reservations
                (id, event_id, user_id, full_name, email, phone_number,
                 number_of_participants, special_requirements, status, promo_code,
                 created_at, updated_at)
            VALUES
                (:id, :event_id, :user_id, :full_name, :email, :phone_number,
                 :n, :special_requirements, :status, :promo_code, :now, :now)
        """),
        {
            "id": reservation.id,
            "event_id": reservation.event_id,
            "user_id": reservation.user_id,
            "full_name": reservation.full_name,
            "email": reservation.email,
            "phone_number": reservation.phone_number,
            "n": reservation.number_of_participants,
            "special_requirements": reservation.special_requirements,
            "status": reservation.status,
            "promo_code": reservation.promo_code,
            "now": to_iso(now),
        },
    )
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.EventBooked(
        event_id=agg.id,
        reservation_id=reservation.id,
        user_id=user.id,
        number_of_participants=number_of_participants,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Event %s booked by %s (%d participants)", agg.id, user.id, number_of_participants)

    if notifier is not None:
        await notifier.notify(
            user.id,
            "Event Booked",
            f"Your reservation for {agg.title} is confirmed.",
            type="event_booked",
            event_id=agg.id,
            reservation_id=reservation.id,
            promo_code=reservation.promo_code,
        )
    return reservation


async def cancel_reservation(
    session: AsyncSession,
    user: CurrentUser,
    reservation_id: str,
) -> ReservationAggregate:
    """予約取消コマンド: 参加者数を予約人数ぶん減らす(0 未満にはしない)。"""
    reservation = await load_reservation(session, reservation_id)
    if reservation.user_id != user.id and not user.is_admin:
        raise AuthorizationError("Not authorized to cancel this reservation")
    agg = await load_event(session, reservation.event_id)
    reservation.cancel()

    now = utcnow()
    await session.execute(
        text("UPDATE reservations SET status = :status, updated_at = :now WHERE id = :id"),
        {"status": reservation.status, "id": reservation.id, "now": to_iso(now)},
    )
    await session.execute(
        text("""
            UPDATE events
            SET current_participants = CASE
                    WHEN current_participants >= :n THEN current_participants - :n
                    ELSE 0
                END,
                updated_at = :now
            WHERE id = :id
        """),
        {"n": reservation.number_of_participants, "id": agg.id, "now": to_iso(now)},
    )
    await event_store.record(session, agg.id, EVENT_AGGREGATE, events.ReservationCanceled(
        event_id=agg.id,
        reservation_id=reservation.id,
        canceled_by=user.id,
        number_of_participants=reservation.number_of_participants,
        timestamp=now,
    ))
    await session.commit()
    logger.info("Reservation %s canceled by %s", reservation.id, user.id)
    return reservation
