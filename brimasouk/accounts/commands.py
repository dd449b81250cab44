"""
Accounts — コマンドハンドラ (書き込み側)

ユーザー登録、職人・コラボレーターの応募と承認。
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .. import event_store
from ..auth import CurrentUser
from ..database import dumps, to_iso, utcnow
from ..errors import ConflictError, NotFoundError, ValidationError
from . import events
from .aggregate import SELF_SERVICE_ROLES, UserAggregate

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "User"


async def load_user(session: AsyncSession, user_id: str) -> UserAggregate:
    result = await session.execute(
        text("SELECT * FROM users WHERE id = :id"),
        {"id": str(user_id)},
    )
    row = result.fetchone()
    if not row:
        raise NotFoundError("User not found", userId=str(user_id))
    return UserAggregate.from_row(row)


async def _save(session: AsyncSession, agg: UserAggregate, now: datetime) -> None:
    await session.execute(
        text("""
            UPDATE users SET
                role = :role, region = :region, phone_number = :phone_number,
                is_approved = :is_approved, artisan_description = :artisan_description,
                approved_by = :approved_by, approval_date = :approval_date,
                rejection_reason = :rejection_reason,
                collaborator_role = :collaborator_role,
                collaborator_approved = :collaborator_approved,
                collaborator_details = :collaborator_details,
                collaborator_rejection_reason = :collaborator_rejection_reason,
                updated_at = :now
            WHERE id = :id
        """),
        {
            "id": agg.id,
            "role": agg.role,
            "region": agg.region,
            "phone_number": agg.phone_number,
            "artisan_description": agg.artisan_description,
            "is_approved": agg.is_approved,
            "approved_by": agg.approved_by,
            "approval_date": to_iso(agg.approval_date),
            "rejection_reason": agg.rejection_reason,
            "collaborator_role": agg.collaborator_role,
            "collaborator_approved": agg.collaborator_approved,
            "collaborator_details": dumps(agg.collaborator_details),
            "collaborator_rejection_reason": agg.collaborator_rejection_reason,
            "now": to_iso(now),
        },
    )


async def register_user(
    session: AsyncSession,
    full_name: str,
    email: str,
    role: str = "user",
    region: str | None = None,
    artisan_description: str | None = None,
    user_id: str | None = None,
) -> UserAggregate:
    """
    ユーザー登録コマンド

    職人として登録した場合は未承認のまま、管理者の承認待ちになる。
    """
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Invalid role", allowed=list(SELF_SERVICE_ROLES))
    email = email.strip().lower()
    existing = await session.execute(
        text("SELECT id FROM users WHERE email = :email"), {"email": email}
    )
    if existing.fetchone():
        raise ConflictError("Email already registered")

    now = utcnow()
    agg = UserAggregate()
    agg.id = user_id or str(uuid4())
    agg.full_name = full_name
    agg.email = email
    agg.role = role
    agg.region = region
    agg.artisan_description = artisan_description

    await session.execute(
        text("""
            INSERT INTO users
                (id, full_name, email, role, region, is_approved, artisan_description,
                 collaborator_approved, created_at, updated_at)
            VALUES
                (:id, :full_name, :email, :role, :region, :is_approved, :description,
                 :collaborator_approved, :now, :now)
        """),
        {
            "id": agg.id,
            "full_name": full_name,
            "email": email,
            "role": role,
            "region": region,
            "is_approved": False,
            "description": artisan_description,
            "collaborator_approved": False,
            "now": to_iso(now),
        },
    )
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.UserRegistered(
        user_id=agg.id, email=email, role=role, timestamp=now,
    ))
    await session.commit()
    logger.info("User %s registered as %s", agg.id, role)
    return agg


async def apply_as_artisan(
    session: AsyncSession,
    user: CurrentUser,
    region: str,
    phone_number: str,
    artisan_description: str | None = None,
) -> UserAggregate:
    """
    職人応募コマンド

    既存ユーザー(却下された元職人を含む)が職人として応募し直す。
    role は artisan になるが、管理者の承認までは未承認のまま。
    """
    agg = await load_user(session, user.id)
    agg.apply_as_artisan(region, phone_number, artisan_description)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ArtisanApplied(
        user_id=agg.id, region=region, timestamp=now,
    ))
    await session.commit()
    logger.info("User %s applied as artisan (%s)", agg.id, region)
    return agg


async def approve_artisan(session: AsyncSession, admin: CurrentUser, user_id: str) -> UserAggregate:
    agg = await load_user(session, user_id)
    now = utcnow()
    agg.approve_artisan(admin.id, now)

    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ArtisanApproved(
        user_id=agg.id, approved_by=admin.id, timestamp=now,
    ))
    await session.commit()
    logger.info("Artisan %s approved by %s", agg.id, admin.id)
    return agg


async def reject_artisan(
    session: AsyncSession,
    admin: CurrentUser,
    user_id: str,
    reason: str,
) -> UserAggregate:
    agg = await load_user(session, user_id)
    agg.reject_artisan(reason)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.ArtisanRejected(
        user_id=agg.id, reason=agg.rejection_reason, timestamp=now,
    ))
    await session.commit()
    return agg


async def apply_as_collaborator(
    session: AsyncSession,
    user: CurrentUser,
    collaborator_role: str,
    details: dict,
) -> UserAggregate:
    agg = await load_user(session, user.id)
    agg.apply_as_collaborator(collaborator_role, details)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.CollaboratorApplied(
        user_id=agg.id, collaborator_role=collaborator_role, timestamp=now,
    ))
    await session.commit()
    return agg


async def approve_collaborator(
    session: AsyncSession,
    admin: CurrentUser,
    user_id: str,
) -> UserAggregate:
    agg = await load_user(session, user_id)
    agg.approve_collaborator()

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.CollaboratorApproved(
        user_id=agg.id, approved_by=admin.id, timestamp=now,
    ))
    await session.commit()
    return agg


async def reject_collaborator(
    session: AsyncSession,
    admin: CurrentUser,
    user_id: str,
    reason: str,
) -> UserAggregate:
    agg = await load_user(session, user_id)
    agg.reject_collaborator(reason)

    now = utcnow()
    await _save(session, agg, now)
    await event_store.record(session, agg.id, AGGREGATE_TYPE, events.CollaboratorRejected(
        user_id=agg.id, reason=agg.collaborator_rejection_reason, timestamp=now,
    ))
    await session.commit()
    return agg
