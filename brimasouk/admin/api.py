"""
Admin — HTTP エンドポイント (/api/admin)

すべて管理者ロールのみ。承認ワークフロー(商品・職人・コラボレーター・イベント)、
販促設定、ダッシュボード集計、イベントストアの履歴。
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from .. import event_store
from ..accounts import commands as account_commands
from ..accounts import queries as account_queries
from ..auth import CurrentUser, require_roles
from ..bookings import commands as booking_commands
from ..bookings import queries as booking_queries
from ..catalog import commands as catalog_commands
from ..catalog import queries as catalog_queries
from ..database import async_session
from . import queries

require_admin = require_roles("admin")

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ApproveProductRequest(BaseModel):
    markup_percentage: Optional[float] = Field(None, ge=0, le=100)


class RejectRequest(BaseModel):
    reason: str = ""


class BestSellerRequest(BaseModel):
    is_best_seller: bool = True


class FlashSaleRequest(BaseModel):
    discount_percentage: float = Field(..., ge=0, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ── Dashboard / Users ────────────────────────────


@router.get("/dashboard")
async def dashboard():
    async with async_session() as session:
        return await queries.dashboard_stats(session)


@router.get("/users")
async def list_users(role: Optional[str] = None):
    async with async_session() as session:
        return await account_queries.list_users(session, role)


@router.get("/users/{user_id}")
async def get_user(user_id: str):
    async with async_session() as session:
        return await account_queries.get_user(session, user_id)


# ── Products ─────────────────────────────────────


@router.get("/products/pending")
async def pending_products():
    async with async_session() as session:
        return await catalog_queries.list_pending_products(session)


@router.put("/products/{product_id}/approve")
async def approve_product(
    product_id: str,
    req: Optional[ApproveProductRequest] = None,
    admin: CurrentUser = Depends(require_admin),
):
    markup = req.markup_percentage if req else None
    async with async_session() as session:
        agg = await catalog_commands.approve_product(session, admin, product_id, markup)
        return {"message": "Product approved successfully", "product": catalog_queries.serialize(agg)}


@router.put("/products/{product_id}/reject")
async def reject_product(
    product_id: str,
    req: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
):
    async with async_session() as session:
        agg = await catalog_commands.reject_product(session, admin, product_id, req.reason)
        return {"message": "Product rejected", "product": catalog_queries.serialize(agg)}


@router.put("/products/{product_id}/best-seller")
async def mark_best_seller(product_id: str, req: BestSellerRequest):
    async with async_session() as session:
        agg = await catalog_commands.mark_best_seller(session, product_id, req.is_best_seller)
        return {"message": "Promotional status updated", "product": catalog_queries.serialize(agg)}


@router.put("/products/{product_id}/flash-sale")
async def setup_flash_sale(product_id: str, req: FlashSaleRequest):
    async with async_session() as session:
        agg = await catalog_commands.setup_flash_sale(
            session, product_id, req.discount_percentage, req.start_date, req.end_date
        )
        return {"message": "Flash sale configured", "product": catalog_queries.serialize(agg)}


# ── Artisans ─────────────────────────────────────


@router.get("/artisans/pending")
async def pending_artisans():
    async with async_session() as session:
        return await account_queries.list_pending_artisans(session)


@router.put("/artisans/{user_id}/approve")
async def approve_artisan(user_id: str, admin: CurrentUser = Depends(require_admin)):
    async with async_session() as session:
        agg = await account_commands.approve_artisan(session, admin, user_id)
        return {"message": "Artisan approved successfully", "user": account_queries.serialize(agg)}


@router.put("/artisans/{user_id}/reject")
async def reject_artisan(
    user_id: str,
    req: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
):
    async with async_session() as session:
        agg = await account_commands.reject_artisan(session, admin, user_id, req.reason)
        return {"message": "Artisan application rejected", "user": account_queries.serialize(agg)}


# ── Collaborators ────────────────────────────────


@router.get("/collaborators/pending")
async def pending_collaborators():
    async with async_session() as session:
        return await account_queries.list_pending_collaborators(session)


@router.put("/collaborators/{user_id}/approve")
async def approve_collaborator(user_id: str, admin: CurrentUser = Depends(require_admin)):
    async with async_session() as session:
        agg = await account_commands.approve_collaborator(session, admin, user_id)
        return {"message": "Collaborator approved successfully", "user": account_queries.serialize(agg)}


@router.put("/collaborators/{user_id}/reject")
async def reject_collaborator(
    user_id: str,
    req: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
):
    async with async_session() as session:
        agg = await account_commands.reject_collaborator(session, admin, user_id, req.reason)
        return {"message": "Collaborator application rejected", "user": account_queries.serialize(agg)}


# ── Events ───────────────────────────────────────


@router.get("/events/pending")
async def pending_events():
    async with async_session() as session:
        return await booking_queries.list_pending_events(session)


@router.put("/events/{event_id}/approve")
async def approve_event(event_id: str, admin: CurrentUser = Depends(require_admin)):
    async with async_session() as session:
        agg = await booking_commands.approve_event(session, admin, event_id)
        return {"message": "Event approved successfully", "event": booking_queries.serialize_event(agg)}


@router.put("/events/{event_id}/reject")
async def reject_event(
    event_id: str,
    req: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
):
    async with async_session() as session:
        agg = await booking_commands.reject_event(session, admin, event_id, req.reason)
        return {"message": "Event rejected", "event": booking_queries.serialize_event(agg)}


# ── Event Store ──────────────────────────────────


@router.get("/history")
async def history(
    aggregate_type: Optional[str] = Query(None, alias="aggregateType"),
    limit: int = Query(200, ge=1, le=1000),
):
    """全集約のイベント履歴(新しい順)"""
    async with async_session() as session:
        return await event_store.load_all_events(session, aggregate_type, limit)


@router.get("/history/{aggregate_id}")
async def aggregate_history(aggregate_id: str):
    async with async_session() as session:
        return await event_store.load_events(session, aggregate_id)
