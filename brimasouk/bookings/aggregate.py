"""
Bookings — イベント集約・予約集約

イベント (ワークショップ・実演・見学・フェア) は職人が作成し、管理者が承認する。
参加者数 current_participants は 0 未満にも定員超過にもならない。

予約の状態遷移:
    confirmed → canceled
"""

from datetime import datetime

from ..database import as_utc, from_iso, loads
from ..errors import ConflictError, ValidationError

EXPERIENCE_TYPES = ("workshop", "demonstration", "visit", "fair")
EDITABLE_FIELDS = (
    "title", "description", "location", "start_date", "end_date",
    "duration", "experience_type", "price", "max_participants",
)


class EventAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.artisan_id: str | None = None
        self.title: str = ""
        self.description: str = ""
        self.location: dict = {}
        self.start_date: datetime | None = None
        self.end_date: datetime | None = None
        self.duration: int = 0
        self.experience_type: str = "workshop"
        self.price: float = 0
        self.max_participants: int = 10
        self.current_participants: int = 0
        self.is_approved: bool = False
        self.approved_by: str | None = None
        self.rejection_reason: str | None = None

    @classmethod
    def create(
        cls,
        event_id: str,
        artisan_id: str,
        title: str,
        description: str,
        start_date: datetime,
        end_date: datetime,
        duration: int,
        location: dict | None = None,
        experience_type: str = "workshop",
        price: float = 0,
        max_participants: int = 10,
    ) -> "EventAggregate":
        missing = [
            field for field, value in (
                ("title", title), ("description", description),
                ("start_date", start_date), ("end_date", end_date),
                ("duration", duration),
            ) if value in (None, "")
        ]
        if missing:
            raise ValidationError("All fields are required", missing=missing)

        agg = cls()
        agg.id = event_id
        agg.artisan_id = artisan_id
        agg.title = title
        agg.description = description
        agg.location = location or {}
        agg.start_date = as_utc(start_date)
        agg.end_date = as_utc(end_date)
        agg.duration = duration
        agg.experience_type = experience_type
        agg.price = float(price)
        agg.max_participants = max_participants
        agg._check()
        return agg

    @classmethod
    def from_row(cls, row) -> "EventAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.artisan_id = str(row.artisan_id)
        agg.title = row.title
        agg.description = row.description
        agg.location = loads(row.location, {})
        agg.start_date = from_iso(row.start_date)
        agg.end_date = from_iso(row.end_date)
        agg.duration = int(row.duration)
        agg.experience_type = row.experience_type
        agg.price = float(row.price)
        agg.max_participants = int(row.max_participants)
        agg.current_participants = int(row.current_participants)
        agg.is_approved = bool(row.is_approved)
        agg.approved_by = row.approved_by
        agg.rejection_reason = row.rejection_reason
        return agg

    def _check(self) -> None:
        if self.experience_type not in EXPERIENCE_TYPES:
            raise ValidationError(
                f"Invalid experience type: {self.experience_type}",
                allowed=list(EXPERIENCE_TYPES),
            )
        if self.end_date < self.start_date:
            raise ValidationError("Event must end after it starts")
        if self.duration <= 0:
            raise ValidationError("Duration must be positive")
        if self.price < 0:
            raise ValidationError("Price cannot be negative")
        if self.max_participants < 1:
            raise ValidationError("maxParticipants must be at least 1")
        if self.max_participants < self.current_participants:
            raise ValidationError("maxParticipants cannot be below current participants")

    @property
    def region(self) -> str | None:
        return self.location.get("region")

    # ── 状態遷移 ─────────────────────────────────

    def apply_update(self, fields: dict, by_admin: bool) -> list[str]:
        """承認済みイベントを職人が編集すると再審査になる。"""
        changed = [field for field in EDITABLE_FIELDS if fields.get(field) is not None]
        for field in changed:
            value = fields[field]
            if field in ("start_date", "end_date"):
                value = as_utc(value)
            setattr(self, field, value)
        self._check()
        if changed and not by_admin:
            self.is_approved = False
        return changed

    def approve(self, admin_id: str) -> None:
        if self.is_approved:
            raise ConflictError("Event is already approved")
        self.is_approved = True
        self.approved_by = admin_id
        self.rejection_reason = None

    def reject(self, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")
        self.is_approved = False
        self.rejection_reason = reason.strip()

    # ── 導出値 ───────────────────────────────────

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    @property
    def places_left(self) -> int:
        return max(self.max_participants - self.current_participants, 0)

    def has_started(self, now: datetime) -> bool:
        return now >= self.start_date

    def has_ended(self, now: datetime) -> bool:
        return now > self.end_date

    def check_bookable(self, participants: int, now: datetime) -> None:
        if participants < 1:
            raise ValidationError("numberOfParticipants must be at least 1")
        if not self.is_approved:
            raise ConflictError("This event is not available for booking")
        if self.has_ended(now):
            raise ConflictError("This event has already ended")
        if self.is_full:
            raise ConflictError("This event is fully booked")
        if participants > self.places_left:
            raise ConflictError(
                f"Only {self.places_left} places left for this event",
                placesLeft=self.places_left,
            )

    def is_visible_to(self, user) -> bool:
        if self.is_approved:
            return True
        return user is not None and (user.is_admin or user.id == self.artisan_id)


class ReservationAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.event_id: str | None = None
        self.user_id: str | None = None
        self.full_name: str = ""
        self.email: str = ""
        self.phone_number: str | None = None
        self.number_of_participants: int = 1
        self.special_requirements: str | None = None
        self.status: str = "pending"
        self.promo_code: str | None = None
        self.created_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "ReservationAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.event_id = str(row.event_id)
        agg.user_id = str(row.user_id)
        agg.full_name = row.full_name
        agg.email = row.email
        agg.phone_number = row.phone_number
        agg.number_of_participants = int(row.number_of_participants)
        agg.special_requirements = row.special_requirements
        agg.status = row.status
        agg.promo_code = row.promo_code
        agg.created_at = from_iso(row.created_at)
        return agg

    def cancel(self) -> None:
        if self.status == "canceled":
            raise ConflictError("Reservation is already canceled")
        self.status = "canceled"
