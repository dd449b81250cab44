"""
Catalog — HTTP エンドポイント (/api/products)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user, get_optional_user, require_roles
from ..database import async_session
from . import commands, queries

router = APIRouter(prefix="/api/products", tags=["products"])


# ── Request Models ───────────────────────────────


class CreateProductRequest(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = Field(..., max_length=500)
    category: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)


class UpdateProductRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)


class StockRequest(BaseModel):
    delta: int


# ── Query Endpoints ──────────────────────────────


@router.get("")
async def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    promotional_status: Optional[str] = Query(None, alias="promotionalStatus"),
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    user: Optional[CurrentUser] = Depends(get_optional_user),
):
    async with async_session() as session:
        return await queries.list_products(
            session,
            category=category,
            min_price=min_price,
            max_price=max_price,
            search=search,
            promotional_status=promotional_status,
            sort=sort,
            page=page,
            limit=limit,
            user=user,
        )


@router.get("/mine")
async def list_own_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    user: CurrentUser = Depends(require_roles("artisan")),
):
    async with async_session() as session:
        return await queries.list_own_products(session, user, page, limit)


@router.get("/artisan/{artisan_id}")
async def list_artisan_products(
    artisan_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    user: Optional[CurrentUser] = Depends(get_optional_user),
):
    async with async_session() as session:
        return await queries.list_products(
            session, artisan_id=artisan_id, page=page, limit=limit, user=user
        )


@router.get("/{product_id}")
async def get_product(product_id: str, user: Optional[CurrentUser] = Depends(get_optional_user)):
    async with async_session() as session:
        return await queries.get_product(session, product_id, user)


# ── Command Endpoints ────────────────────────────


@router.post("", status_code=201)
async def create_product(
    req: CreateProductRequest,
    user: CurrentUser = Depends(require_roles("artisan")),
):
    async with async_session() as session:
        agg = await commands.create_product(
            session, user, req.name, req.description, req.category, req.price, req.stock
        )
        return {
            "message": "Product created successfully and awaiting approval",
            "product": queries.serialize(agg),
        }


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    req: UpdateProductRequest,
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        agg = await commands.update_product(
            session, user, product_id, req.model_dump(exclude_none=True)
        )
        message = (
            "Product updated successfully"
            if user.is_admin
            else "Product updated successfully and awaiting approval"
        )
        return {"message": message, "product": queries.serialize(agg)}


@router.delete("/{product_id}")
async def delete_product(product_id: str, user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        await commands.delete_product(session, user, product_id)
        return {"message": "Product removed"}


@router.put("/{product_id}/stock")
async def update_stock(
    product_id: str,
    req: StockRequest,
    user: CurrentUser = Depends(require_roles("artisan", "admin")),
):
    async with async_session() as session:
        agg = await commands.update_stock(session, user, product_id, req.delta)
        return {"message": "Stock updated", "product": queries.serialize(agg)}
