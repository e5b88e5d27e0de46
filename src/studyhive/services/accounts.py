"""
Account lifecycle: registration, email verification, password reset and change.

Lookups of one-time tokens go through their SHA-256 hash; the stored hash and
expiry are cleared in the same commit that applies the token's effect.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..auth import consume_temporary_token, hash_password, hash_token, issue_temporary_token, verify_password
from ..errors import Conflict, TokenExpiredOrInvalid, Unauthenticated, ValidationFailed
from ..utils import utcnow

logger = logging.getLogger(__name__)


async def register(db: AsyncSession, data: schemas.UserCreate) -> Tuple[models.User, str]:
    """Create the account; returns the user and the plain verification token for the email link."""
    if await crud.get_user_by_email(db, data.email):
        raise Conflict("User already exists")

    token = issue_temporary_token()
    user = models.User(
        name=data.name,
        email=data.email.lower(),
        password_hash=hash_password(data.password),
        role=data.role,
        is_email_verified=False,
        email_verification_token=token.hashed,
        email_verification_expiry=token.expiry,
    )
    db.add(user)
    await crud.commit_or_conflict(db, "User already exists")
    await db.refresh(user)
    logger.info("Registered user %s with role %s", user.id, user.role)
    return user, token.plain


async def authenticate(db: AsyncSession, email: str, password: str) -> models.User:
    user = await crud.get_user_by_email(db, email)
    # same answer for unknown email and wrong password
    if not user or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid email or password")
    return user


async def _user_by_live_token(db: AsyncSession, column, expiry_column, plain: str) -> models.User:
    now = utcnow()
    result = await db.execute(
        select(models.User).where(column == hash_token(plain), expiry_column > now)
    )
    user = result.scalars().first()
    if not user:
        raise TokenExpiredOrInvalid()
    consume_temporary_token(getattr(user, column.key), getattr(user, expiry_column.key), now, plain)
    return user


async def verify_email(db: AsyncSession, plain_token: str) -> models.User:
    user = await _user_by_live_token(
        db, models.User.email_verification_token, models.User.email_verification_expiry, plain_token
    )
    user.email_verification_token = None
    user.email_verification_expiry = None
    user.refresh_token_hash = None
    user.is_email_verified = True
    await db.commit()
    return user


async def issue_verification_token(db: AsyncSession, email: str) -> Optional[Tuple[models.User, str]]:
    """New verification token for an unverified account; None when there is nothing to send."""
    user = await crud.get_user_by_email(db, email)
    if not user or user.is_email_verified:
        return None
    token = issue_temporary_token()
    user.email_verification_token = token.hashed
    user.email_verification_expiry = token.expiry
    await db.commit()
    return user, token.plain


async def issue_password_reset_token(db: AsyncSession, email: str) -> Optional[Tuple[models.User, str]]:
    user = await crud.get_user_by_email(db, email)
    if not user:
        return None
    token = issue_temporary_token()
    user.forgot_password_token = token.hashed
    user.forgot_password_expiry = token.expiry
    await db.commit()
    return user, token.plain


async def reset_password(db: AsyncSession, plain_token: str, new_password: str) -> models.User:
    user = await _user_by_live_token(
        db, models.User.forgot_password_token, models.User.forgot_password_expiry, plain_token
    )
    user.password_hash = hash_password(new_password)
    user.forgot_password_token = None
    user.forgot_password_expiry = None
    user.refresh_token_hash = None
    await db.commit()
    return user


async def change_password(db: AsyncSession, user: models.User, old_password: str, new_password: str) -> None:
    if not verify_password(old_password, user.password_hash):
        raise ValidationFailed("Invalid old password", [{"field": "oldPassword", "message": "Invalid old password"}])
    user.password_hash = hash_password(new_password)
    user.refresh_token_hash = None
    await db.commit()
