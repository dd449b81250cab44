"""
Cart — HTTP エンドポイント (/api/cart)
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user
from ..database import async_session
from ..dependencies import get_notifier, get_payments
from ..notifications import Notifier
from ..orders import queries as order_queries
from ..orders.api import ShippingAddress, payment_info
from ..payments import PaymentGateway
from . import commands, queries

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateItemRequest(BaseModel):
    quantity: int = Field(..., ge=1)


class CheckoutRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: str = "card"
    discount_code: Optional[str] = None


@router.get("")
async def get_cart(user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        return await queries.get_cart(session, user)


@router.post("/items", status_code=201)
async def add_item(req: AddItemRequest, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        await commands.add_item(session, user, req.product_id, req.quantity)
        return await queries.get_cart(session, user)


@router.put("/items/{product_id}")
async def update_item(
    product_id: str,
    req: UpdateItemRequest,
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        await commands.update_item(session, user, product_id, req.quantity)
        return await queries.get_cart(session, user)


@router.delete("/items/{product_id}")
async def remove_item(product_id: str, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        await commands.remove_item(session, user, product_id)
        return await queries.get_cart(session, user)


@router.delete("")
async def clear_cart(user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        await commands.clear(session, user)
        return {"message": "Cart cleared"}


@router.post("/checkout", status_code=201)
async def checkout(
    req: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentGateway = Depends(get_payments),
    notifier: Notifier = Depends(get_notifier),
):
    async with async_session() as session:
        order, payment = await commands.checkout(
            session,
            user,
            req.shipping_address.model_dump(),
            payment_method=req.payment_method,
            discount_code=req.discount_code,
            payments=payments,
            notifier=notifier,
        )
        return {"order": order_queries.serialize(order), "payment": payment_info(payment)}
