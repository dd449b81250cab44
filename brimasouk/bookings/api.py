"""
Bookings — HTTP エンドポイント (/api/events)

固定パス (/upcoming, /reservations, /artisan/events) は /{event_id} より前に登録する。
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from ..auth import CurrentUser, get_current_user, get_optional_user, require_roles
from ..database import async_session
from ..dependencies import get_notifier
from ..notifications import Notifier
from . import commands, queries

router = APIRouter(prefix="/api/events", tags=["events"])


class Location(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None


class CreateEventRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    location: Location = Field(default_factory=Location)
    start_date: datetime
    end_date: datetime
    duration: int = Field(..., gt=0)
    experience_type: str = "workshop"
    price: float = Field(0, ge=0)
    max_participants: int = Field(10, ge=1)


class UpdateEventRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[Location] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    experience_type: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    max_participants: Optional[int] = Field(None, ge=1)


class BookingRequest(BaseModel):
    full_name: str
    email: EmailStr
    phone_number: Optional[str] = None
    number_of_participants: int = Field(1, ge=1)
    special_requirements: Optional[str] = None


# ── Query Endpoints ──────────────────────────────


@router.get("")
async def list_events(
    experience_type: Optional[str] = Query(None, alias="experienceType"),
    region: Optional[str] = None,
    artisan: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    async with async_session() as session:
        return await queries.list_events(
            session,
            experience_type=experience_type,
            region=region,
            artisan_id=artisan,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )


@router.get("/upcoming")
async def list_upcoming_events(limit: int = Query(5, ge=1, le=50)):
    async with async_session() as session:
        return await queries.list_upcoming_events(session, limit)


@router.get("/reservations")
async def list_my_reservations(user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        return await queries.list_my_reservations(session, user)


@router.get("/artisan/events")
async def list_artisan_events(user: CurrentUser = Depends(require_roles("artisan"))):
    async with async_session() as session:
        return await queries.list_artisan_events(session, user)


@router.get("/{event_id}")
async def get_event(event_id: str, user: Optional[CurrentUser] = Depends(get_optional_user)):
    async with async_session() as session:
        return await queries.get_event(session, event_id, user)


@router.get("/{event_id}/reservations")
async def list_event_reservations(event_id: str, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        return await queries.list_event_reservations(session, user, event_id)


# ── Command Endpoints ────────────────────────────


@router.post("", status_code=201)
async def create_event(
    req: CreateEventRequest,
    user: CurrentUser = Depends(require_roles("artisan")),
):
    async with async_session() as session:
        agg = await commands.create_event(
            session,
            user,
            req.title,
            req.description,
            req.start_date,
            req.end_date,
            req.duration,
            location=req.location.model_dump(exclude_none=True),
            experience_type=req.experience_type,
            price=req.price,
            max_participants=req.max_participants,
        )
        return {
            "message": "Event created successfully and pending approval",
            "event": queries.serialize_event(agg),
        }


@router.put("/{event_id}")
async def update_event(
    event_id: str,
    req: UpdateEventRequest,
    user: CurrentUser = Depends(get_current_user),
):
    fields = req.model_dump(exclude_none=True)
    async with async_session() as session:
        agg, needs_review = await commands.update_event(session, user, event_id, fields)
        message = (
            "Event updated and submitted for re-approval"
            if needs_review
            else "Event updated successfully"
        )
        return {"message": message, "event": queries.serialize_event(agg)}


@router.post("/{event_id}/book", status_code=201)
async def book_event(
    event_id: str,
    req: BookingRequest,
    user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        reservation = await commands.book_event(
            session,
            user,
            event_id,
            req.full_name,
            req.email,
            number_of_participants=req.number_of_participants,
            phone_number=req.phone_number,
            special_requirements=req.special_requirements,
            notifier=notifier,
        )
        return {
            "message": "Event booked successfully",
            "reservation": queries.serialize_reservation(reservation),
        }


@router.put("/reservations/{reservation_id}/cancel")
async def cancel_reservation(reservation_id: str, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        reservation = await commands.cancel_reservation(session, user, reservation_id)
        return {
            "message": "Reservation canceled successfully",
            "reservation": queries.serialize_reservation(reservation),
        }
