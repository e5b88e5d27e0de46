"""
Authentication logic using centralized settings for secrets and config.

Credential store (bcrypt password hashes, hashed one-time tokens) and the
signing side of the token service (access / refresh JWTs). Also provides the
async current-user dependencies used by every protected router.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .database import get_db
from .errors import Forbidden, TokenExpiredOrInvalid, Unauthenticated
from .settings import settings
from .utils import utcnow

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# One-time tokens (email verification, password reset)
class TemporaryToken(NamedTuple):
    plain: str
    hashed: str
    expiry: datetime


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_temporary_token(now: Optional[datetime] = None) -> TemporaryToken:
    """The plain value goes into the emailed link; only hash and expiry are stored."""
    plain = secrets.token_hex(20)
    expiry = (now or utcnow()) + timedelta(minutes=settings.temporary_token_expire_minutes)
    return TemporaryToken(plain, hash_token(plain), expiry)


def consume_temporary_token(
    stored_hash: Optional[str],
    stored_expiry: Optional[datetime],
    now: datetime,
    candidate: str,
) -> None:
    """
    Raise TokenExpiredOrInvalid unless candidate hashes to stored_hash before expiry.
    On success the caller must clear the stored hash and expiry.
    """
    if not stored_hash or not stored_expiry or not candidate:
        raise TokenExpiredOrInvalid()
    if not secrets.compare_digest(hash_token(candidate), stored_hash):
        raise TokenExpiredOrInvalid()
    if now >= stored_expiry:
        raise TokenExpiredOrInvalid()


# JWT utilities
ALGORITHM = settings.jwt_algorithm


def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=ALGORITHM)


def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(days=settings.refresh_token_expire_days))
    # jti keeps two tokens minted in the same second distinct
    to_encode = {"sub": str(user_id), "type": "refresh", "jti": secrets.token_hex(16), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_refresh_secret_key, algorithm=ALGORITHM)


def _decode(token: str, key: str, token_type: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type or "sub" not in payload:
        return None
    return payload


def verify_access_token(token: str) -> Optional[dict]:
    return _decode(token, settings.jwt_secret_key, "access")


def verify_refresh_token(token: str) -> Optional[dict]:
    return _decode(token, settings.jwt_refresh_secret_key, "refresh")


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> models.User:
    """
    Async: Extract and validate the current user from the Bearer header,
    falling back to the accessToken cookie.
    """
    token = credentials.credentials if credentials else request.cookies.get("accessToken")
    if not token:
        raise Unauthenticated("Unauthorized request")

    payload = verify_access_token(token)
    if not payload:
        raise Unauthenticated("Invalid or expired access token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid or expired access token")

    user = await db.get(models.User, user_id)
    if not user:
        raise Unauthenticated("Invalid or expired access token")
    return user


def require_role(allowed_roles: List[str]):
    """
    Dependency factory to enforce the global platform role on endpoints.
    Usage: Depends(require_role(["mentor"]))
    """
    async def role_checker(user: models.User = Depends(get_current_user)):
        if user.role not in allowed_roles:
            raise Forbidden("You do not have permission to perform this action")
        return user
    return role_checker
