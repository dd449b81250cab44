"""
Accounts — ユーザー集約 (User Aggregate)

職人(artisan)とコラボレーターはそれぞれ管理者の承認が必要。

状態遷移 (職人):
    user → artisan 応募 (未承認)
    artisan 未承認 → 承認
    artisan 未承認 → 却下 (role を user に戻す)

状態遷移 (コラボレーター):
    応募 (collaborator_role 設定, 未承認) → 承認 / 却下
"""

from datetime import datetime

from ..database import from_iso, loads
from ..errors import ConflictError, ValidationError

COLLABORATOR_ROLES = ("designer", "technical_expert", "marketer")
SELF_SERVICE_ROLES = ("user", "artisan")


def _require_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required")
    return reason.strip()


class UserAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.full_name: str = ""
        self.email: str = ""
        self.role: str = "user"
        self.region: str | None = None
        self.phone_number: str | None = None
        self.is_approved: bool = False
        self.artisan_description: str | None = None
        self.approved_by: str | None = None
        self.approval_date: datetime | None = None
        self.rejection_reason: str | None = None
        self.collaborator_role: str | None = None
        self.collaborator_approved: bool = False
        self.collaborator_details: dict = {}
        self.collaborator_rejection_reason: str | None = None

    @classmethod
    def from_row(cls, row) -> "UserAggregate":
        agg = cls()
        agg.id = str(row.id)
        agg.full_name = row.full_name
        agg.email = row.email
        agg.role = row.role
        agg.region = row.region
        agg.phone_number = row.phone_number
        agg.is_approved = bool(row.is_approved)
        agg.artisan_description = row.artisan_description
        agg.approved_by = row.approved_by
        agg.approval_date = from_iso(row.approval_date)
        agg.rejection_reason = row.rejection_reason
        agg.collaborator_role = row.collaborator_role
        agg.collaborator_approved = bool(row.collaborator_approved)
        agg.collaborator_details = loads(row.collaborator_details, {})
        agg.collaborator_rejection_reason = row.collaborator_rejection_reason
        return agg

    @property
    def is_approved_marketer(self) -> bool:
        return self.collaborator_role == "marketer" and self.collaborator_approved

    # ── 職人の承認 ───────────────────────────────

    def apply_as_artisan(self, region: str, phone_number: str, description: str | None = None) -> None:
        if not region or not phone_number:
            raise ValidationError("Region and phone number are required for artisan applications")
        if self.role == "artisan":
            raise ConflictError("User is already an artisan")
        self.role = "artisan"
        self.is_approved = False
        self.region = region
        self.phone_number = phone_number
        self.artisan_description = description or ""
        self.approved_by = None
        self.approval_date = None
        self.rejection_reason = None

    def approve_artisan(self, admin_id: str, now: datetime) -> None:
        if self.role != "artisan":
            raise ConflictError("User is not an artisan")
        if self.is_approved:
            raise ConflictError("Artisan is already approved")
        self.is_approved = True
        self.approved_by = admin_id
        self.approval_date = now
        self.rejection_reason = None

    def reject_artisan(self, reason: str) -> None:
        reason = _require_reason(reason)
        if self.role != "artisan":
            raise ConflictError("User is not an artisan")
        self.role = "user"
        self.is_approved = False
        self.rejection_reason = reason

    # ── コラボレーター ───────────────────────────

    def apply_as_collaborator(self, collaborator_role: str, details: dict) -> None:
        if collaborator_role not in COLLABORATOR_ROLES:
            raise ValidationError("Invalid collaborator role", allowed=list(COLLABORATOR_ROLES))
        if self.collaborator_role:
            raise ConflictError("User is already a collaborator")
        self.collaborator_role = collaborator_role
        self.collaborator_approved = False
        self.collaborator_details = details
        self.collaborator_rejection_reason = None

    def approve_collaborator(self) -> None:
        if not self.collaborator_role:
            raise ConflictError("User is not a collaborator")
        self.collaborator_approved = True
        self.collaborator_rejection_reason = None
        if self.role == "user":
            self.role = "collaborator"

    def reject_collaborator(self, reason: str) -> None:
        reason = _require_reason(reason)
        if not self.collaborator_role:
            raise ConflictError("User is not a collaborator")
        self.collaborator_approved = False
        self.collaborator_rejection_reason = reason
