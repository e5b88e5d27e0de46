"""
Refresh token lifecycle: one active refresh token per user.

Only the SHA-256 of the active refresh token is stored. Issuing a pair
overwrites it (older sessions die), refreshing swaps it atomically, and
logging out clears it.
"""
import logging
from typing import NamedTuple, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..auth import create_access_token, create_refresh_token, hash_token, verify_refresh_token
from ..errors import InvalidToken, TokenReuseDetected

logger = logging.getLogger(__name__)


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


async def login(db: AsyncSession, user: models.User) -> TokenPair:
    """Issue a fresh pair and make its refresh token the user's only live one."""
    pair = TokenPair(create_access_token(user), create_refresh_token(user.id))
    await db.execute(
        update(models.User)
        .where(models.User.id == user.id)
        .values(refresh_token_hash=hash_token(pair.refresh_token))
    )
    await db.commit()
    return pair


async def refresh(db: AsyncSession, presented: str) -> Tuple[models.User, TokenPair]:
    """
    Rotate a refresh token.

    Raises:
        InvalidToken: bad signature, expired, or the user no longer exists
        TokenReuseDetected: well-formed token that is not the stored active one
    """
    payload = verify_refresh_token(presented)
    if not payload:
        raise InvalidToken()

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidToken()

    user = await db.get(models.User, user_id)
    if not user:
        raise InvalidToken()

    pair = TokenPair(create_access_token(user), create_refresh_token(user.id))

    # compare-and-swap: only the holder of the current token wins
    result = await db.execute(
        update(models.User)
        .where(
            models.User.id == user.id,
            models.User.refresh_token_hash == hash_token(presented),
        )
        .values(refresh_token_hash=hash_token(pair.refresh_token))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.warning("Refresh token reuse detected for user %s", user.id)
        raise TokenReuseDetected()

    await db.commit()
    return user, pair


async def logout(db: AsyncSession, user_id: int) -> None:
    await db.execute(
        update(models.User).where(models.User.id == user_id).values(refresh_token_hash=None)
    )
    await db.commit()
