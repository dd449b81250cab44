"""
Accounts — HTTP エンドポイント (/api/users, /api/collaborators)

トークン発行(ログイン)は認証サービス側。ここは登録とプロフィール、
職人・コラボレーターへの応募、承認済み職人の公開ディレクトリを扱う。
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from ..auth import CurrentUser, get_current_user
from ..database import async_session
from . import commands, queries

router = APIRouter(prefix="/api", tags=["users"])


class RegisterRequest(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    role: str = "user"
    region: Optional[str] = None
    artisan_description: Optional[str] = None


class ArtisanApplication(BaseModel):
    region: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    artisan_description: Optional[str] = None


class CollaboratorApplication(BaseModel):
    collaborator_role: str
    skills: List[str] = Field(default_factory=list)
    portfolio: str = ""
    experience: str = ""
    bio: str = ""
    specialties: List[str] = Field(default_factory=list)


@router.post("/users", status_code=201)
async def register(req: RegisterRequest):
    async with async_session() as session:
        agg = await commands.register_user(
            session,
            req.full_name,
            req.email,
            role=req.role,
            region=req.region,
            artisan_description=req.artisan_description,
        )
        return {"message": "User registered successfully", "user": queries.serialize(agg)}


@router.get("/users/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    async with async_session() as session:
        return await queries.get_user(session, user.id)


@router.post("/users/apply-artisan")
async def apply_as_artisan(
    req: ArtisanApplication,
    user: CurrentUser = Depends(get_current_user),
):
    async with async_session() as session:
        agg = await commands.apply_as_artisan(
            session, user, req.region, req.phone_number, req.artisan_description
        )
        return {
            "message": "Artisan application submitted successfully",
            "user": queries.serialize(agg),
        }


@router.get("/users/artisans")
async def list_artisans(
    region: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    async with async_session() as session:
        return await queries.list_artisans(session, region, page, limit)


@router.get("/users/artisans/{user_id}")
async def get_artisan(user_id: str):
    async with async_session() as session:
        return await queries.get_artisan(session, user_id)


@router.post("/collaborators/apply", status_code=201)
async def apply_as_collaborator(
    req: CollaboratorApplication,
    user: CurrentUser = Depends(get_current_user),
):
    details = req.model_dump(exclude={"collaborator_role"})
    async with async_session() as session:
        agg = await commands.apply_as_collaborator(session, user, req.collaborator_role, details)
        return {
            "message": "Collaborator application submitted successfully",
            "user": queries.serialize(agg),
        }


@router.get("/collaborators")
async def list_collaborators(role: Optional[str] = None):
    async with async_session() as session:
        return await queries.list_collaborators(session, role)
