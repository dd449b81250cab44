"""
Accounts — イベント定義
"""

from datetime import datetime

from pydantic import BaseModel


class UserRegistered(BaseModel):
    user_id: str
    email: str
    role: str
    timestamp: datetime


class ArtisanApproved(BaseModel):
    user_id: str
    approved_by: str
    timestamp: datetime


class ArtisanRejected(BaseModel):
    user_id: str
    reason: str
    timestamp: datetime


class CollaboratorApplied(BaseModel):
    user_id: str
    collaborator_role: str
    timestamp: datetime


class CollaboratorApproved(BaseModel):
    user_id: str
    approved_by: str
    timestamp: datetime


class CollaboratorRejected(BaseModel):
    user_id: str
    reason: str
    timestamp: datetime


class ArtisanApplied(BaseModel):
    user_id: str
    region: str
    timestamp: datetime
