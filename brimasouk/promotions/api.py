"""
Promotions — HTTP エンドポイント (/api/promocodes)
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user
from ..database import async_session
from . import commands, queries

router = APIRouter(prefix="/api/promocodes", tags=["promocodes"])


class CreatePromoCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    discount_type: str = "percentage"
    discount_value: float = Field(..., ge=0)
    max_uses: int = Field(0, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_order_value: float = Field(0, ge=0)
    applicable_categories: List[str] = Field(default_factory=list)
    applicable_products: List[str] = Field(default_factory=list)


class PromoCodeRequest(BaseModel):
    code: str
    order_value: float = Field(..., ge=0)
    category: Optional[str] = None
    product_id: Optional[str] = None


class ApplyPromoCodeRequest(BaseModel):
    code: str
    order_value: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    product_id: Optional[str] = None


@router.post("", status_code=201)
async def create_promo_code(
    req: CreatePromoCodeRequest,
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        agg = await commands.create_promo_code(session, user, **req.model_dump())
        return {"message": "Promo code created successfully", "promo_code": queries.serialize(agg)}


@router.get("")
async def list_promo_codes(user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        await commands.ensure_promo_manager(session, user)
        return await queries.list_promo_codes(session)


@router.post("/validate")
async def validate_promo_code(req: PromoCodeRequest):
    async with async_session() as session:
        return await queries.validate_promo_code(
            session, req.code, req.order_value, req.category, req.product_id
        )


@router.post("/apply")
async def apply_promo_code(
    req: ApplyPromoCodeRequest,
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        agg, discount = await commands.apply_promo_code(
            session, req.code, req.order_value, req.category, req.product_id
        )
        return {
            "message": "Promo code applied successfully",
            "discount_amount": discount,
            "promo_code": queries.serialize(agg),
        }
