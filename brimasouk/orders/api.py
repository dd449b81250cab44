"""
Orders — HTTP エンドポイント (/api/orders)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user, require_roles
from ..database import async_session
from ..dependencies import get_notifier, get_payments
from ..notifications import Notifier
from ..payments import PaymentGateway
from . import commands, queries

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    full_name: str
    address: str
    city: str
    postal_code: str
    country: str = "Tunisia"
    phone_number: Optional[str] = None


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest]
    shipping_address: ShippingAddress
    payment_method: str = "card"
    discount_code: Optional[str] = None
    order_notes: str = ""
    is_gift: bool = False
    gift_message: Optional[str] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: str
    notes: Optional[str] = None


def payment_info(payment) -> Optional[dict]:
    if payment is None or not payment.success:
        return None
    return {"payment_url": payment.payment_url, "session_id": payment.session_id}


@router.post("", status_code=201)
async def create_order(
    req: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentGateway = Depends(get_payments),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        agg, payment = await commands.create_order(
            session,
            user,
            [item.model_dump() for item in req.items],
            req.shipping_address.model_dump(),
            payment_method=req.payment_method,
            discount_code=req.discount_code,
            order_notes=req.order_notes,
            is_gift=req.is_gift,
            gift_message=req.gift_message,
            payments=payments,
            notifier=notifier,
        )
        return {"order": queries.serialize(agg), "payment": payment_info(payment)}


@router.get("")
async def list_my_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        return await queries.list_my_orders(session, user, status, page, limit)


@router.get("/artisan")
async def list_artisan_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(require_roles("artisan")),
):
    async with async_session() as session:
        return await queries.list_artisan_orders(session, user, status, page, limit)


@router.get("/{order_id}")
async def get_order(order_id: str, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        return await queries.get_order(session, user, order_id)


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    req: Optional[CancelOrderRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        agg = await commands.cancel_order(
            session, user, order_id, req.reason if req else None, notifier=notifier
        )
        return {"message": "Order cancelled successfully", "order": queries.serialize(agg)}


@router.get("/{order_id}/payment")
async def verify_payment(
    order_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentGateway = Depends(get_payments),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        agg, verification = await commands.verify_payment(
            session, user, order_id, session_id, payments, notifier=notifier
        )
        body = {
            "verified": verification.success,
            "status": verification.status,
            "order": queries.serialize(agg),
        }
        if verification.error:
            body["message"] = verification.error
        return body


@router.put("/{order_id}/status")
async def update_status(
    order_id: str,
    req: UpdateStatusRequest,
    user: CurrentUser = Depends(require_roles("artisan", "admin")),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        agg = await commands.update_status(
            session, user, order_id, req.status, req.notes, notifier=notifier
        )
        return {"message": "Order status updated", "order": queries.serialize(agg)}
