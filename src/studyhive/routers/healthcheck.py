"""
healthcheck.py

Liveness endpoint reporting process uptime and database reachability.
"""
import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .. import schemas
from ..database import engine
from ..utils import envelope, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/healthcheck")

STARTED_AT = time.monotonic()


async def database_connected() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health probe failed: {str(e)}")
        return False


@router.get("/")
async def health_check():
    healthy = await database_connected()
    health = schemas.HealthStatus(
        status="UP" if healthy else "DOWN",
        database="CONNECTED" if healthy else "DISCONNECTED",
        uptime=round(time.monotonic() - STARTED_AT, 3),
        timestamp=utcnow(),
    )
    body = envelope("Service is healthy" if healthy else "Service is unhealthy", health)
    if not healthy:
        body["success"] = False
    return JSONResponse(status_code=200 if healthy else 503, content=body)
