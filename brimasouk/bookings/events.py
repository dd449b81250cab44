"""
Bookings — イベント定義

ここでの「イベント」はドメインイベント(監査ログ)。
体験イベントそのものは集約 EventAggregate。
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EventCreated(BaseModel):
    event_id: str
    artisan_id: str
    title: str
    start_date: datetime
    max_participants: int
    timestamp: datetime


class EventUpdated(BaseModel):
    event_id: str
    updated_by: str
    fields: list[str]
    is_approved: bool
    timestamp: datetime


class EventApproved(BaseModel):
    event_id: str
    approved_by: str
    timestamp: datetime


class EventRejected(BaseModel):
    event_id: str
    reason: Optional[str] = None
    timestamp: datetime


class EventBooked(BaseModel):
    event_id: str
    reservation_id: str
    user_id: str
    number_of_participants: int
    timestamp: datetime


class ReservationCanceled(BaseModel):
    event_id: str
    reservation_id: str
    canceled_by: str
    number_of_participants: int
    timestamp: datetime
