from fastapi import FastAPI, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .routers import assignments, auth, goals, groups, healthcheck, resources, submissions
from .database import engine
from .dependencies import global_rate_limit
from .errors import ApiError
from .models import Base
from .settings import settings
from .utils import close_redis_clients
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
    handlers=[
        logging.FileHandler("studyhive.log"),
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

app = FastAPI(title="StudyHive API")


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("StudyHive API started (env=%s)", settings.env)


@app.on_event("shutdown")
async def on_shutdown():
    await close_redis_clients()

"""
Configure CORS using origins from centralized settings.
Cookies carry the session, so credentials are allowed and origins must be explicit.
"""
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"]
)

# Warn if CORS is insecure in production
if settings.env == "production" and (not settings.cors_origins or "*" in settings.cors_origins):
    logging.warning("CORS is set to allow all origins in production! Set CORS_ORIGINS to trusted domains only.")


def error_body(message: str, errors=None) -> dict:
    return {"success": False, "message": message, "errors": errors or []}


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message} at {request.url}")
    else:
        logger.warning(f"{type(exc).__name__}: {exc.message} (status: {exc.status_code}) at {request.url}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.append({"field": ".".join(location) or None, "message": error.get("msg")})
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


# Global error handler for HTTPException
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTPException: {exc.detail} (status: {exc.status_code}) at {request.url}")
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))


# Global error handler for generic exceptions
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled Exception: {exc} at {request.url}")
    message = "Internal server error"
    if settings.env != "production":
        message = f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content=error_body(message))


rate_limited = [Depends(global_rate_limit)]

app.include_router(auth.router, prefix=API_PREFIX, tags=["auth"], dependencies=rate_limited)
app.include_router(groups.router, prefix=API_PREFIX, tags=["groups"], dependencies=rate_limited)
app.include_router(goals.router, prefix=API_PREFIX, tags=["goals"], dependencies=rate_limited)
app.include_router(assignments.router, prefix=API_PREFIX, tags=["assignments"], dependencies=rate_limited)
app.include_router(submissions.router, prefix=API_PREFIX, tags=["submissions"], dependencies=rate_limited)
app.include_router(resources.router, prefix=API_PREFIX, tags=["resources"], dependencies=rate_limited)
app.include_router(healthcheck.router, prefix=API_PREFIX, tags=["healthcheck"], dependencies=rate_limited)


@app.get("/")
def read_root():
    logger.info("Root endpoint accessed.")
    return {"message": "Welcome to the StudyHive API"}
