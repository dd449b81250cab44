"""
Brimasouk — Bearer トークン検証とロールゲート

トークンの発行(ログイン)は認証サービス側の責務。
ここでは {id, role} を運ぶ JWT を検証し、ロールの許可リストで絞り込むだけ。
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import JWT_ALGORITHM, JWT_SECRET
from .errors import AuthorizationError


class CurrentUser(BaseModel):
    id: str
    role: str = "user"
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_token(data: dict, expires_minutes: int = 60 * 24) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _decode(token: str) -> CurrentUser:
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    if not payload.get("id"):
        raise JWTError("Token has no subject")
    return CurrentUser(
        id=str(payload["id"]),
        role=payload.get("role", "user"),
        email=payload.get("email"),
        name=payload.get("name"),
    )


def get_current_user(authorization: Optional[str] = Header(None)) -> CurrentUser:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    try:
        return _decode(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[CurrentUser]:
    """公開エンドポイント用: トークンが無い・不正なら匿名として扱う。"""
    if not authorization:
        return None
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            return None
        return _decode(token)
    except (ValueError, JWTError):
        return None


def require_roles(*roles: str):
    """ロールの許可リストで絞り込む依存関数を作る。"""

    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise AuthorizationError(
                "Access denied: insufficient role",
                requiredRoles=list(roles),
            )
        return user

    return dependency
