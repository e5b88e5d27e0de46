"""
Shared FastAPI dependencies: Redis-backed rate limits and the acting identity.

Rate limits are fixed windows per key. Without a configured redis_url the
limits are not enforced.
"""
import logging

from fastapi import Depends, Request

from . import models
from .auth import get_current_user
from .errors import RateLimited
from .permissions import Actor
from .settings import settings
from .utils import check_and_increment_rate_limit

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """
    Address used for the per-IP windows.

    X-Forwarded-For is only read when the socket peer is a trusted proxy, and
    then the nearest hop that is not itself a trusted proxy wins.
    """
    peer = request.client.host if request.client else "unknown"
    if peer not in settings.trusted_proxies:
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    for hop in reversed([part.strip() for part in forwarded.split(",") if part.strip()]):
        if hop not in settings.trusted_proxies:
            return hop
    return peer


async def _enforce(key: str, limit: int, period: int, message: str) -> None:
    if not settings.redis_url:
        return
    allowed = await check_and_increment_rate_limit(key, limit, period, settings.redis_url)
    if not allowed:
        logger.warning("Rate limit exceeded for %s", key)
        raise RateLimited(message)


async def global_rate_limit(request: Request) -> None:
    await _enforce(
        f"global:{client_ip(request)}",
        settings.global_rate_limit,
        settings.global_rate_period,
        "Too many requests from this IP, please try again after 15 minutes",
    )


async def auth_rate_limit(request: Request) -> None:
    await _enforce(
        f"auth:{client_ip(request)}",
        settings.auth_rate_limit,
        settings.auth_rate_period,
        "Too many attempts, please try again after 5 minutes",
    )


async def user_rate_limit(user: models.User = Depends(get_current_user)) -> None:
    await _enforce(
        f"user:{user.id}",
        settings.user_rate_limit,
        settings.user_rate_period,
        "Too many requests from this account, please try again after 5 minutes",
    )


async def get_actor(user: models.User = Depends(get_current_user)) -> Actor:
    return Actor.from_user(user)
