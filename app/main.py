import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401 - registers tables with Base
from .config import FRONTEND_URL
from .csrf import CSRF_COOKIE_NAME, CSRF_ENABLED, CSRFMiddleware, generate_csrf_token, set_csrf_cookie
from .database import Base, engine
from .domain.bookings.router import router as bookings_router
from .domain.clients.router import router as clients_router
from .routes.activity_log import router as activity_log_router
from .routes.auth import router as auth_router
from .routes.campaigns import router as campaigns_router
from .routes.cleaner_jobs import router as cleaner_jobs_router
from .routes.cron import router as cron_router
from .routes.customer import router as customer_router
from .routes.feedback import router as feedback_router
from .routes.imports import router as imports_router
from .routes.platform import router as platform_router
from .routes.prospects import platform_router as platform_prospects_router
from .routes.prospects import router as prospects_router
from .routes.referrals import router as referrals_router
from .routes.search import router as search_router
from .routes.team import router as team_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Several workers may race on first boot
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    from .rate_limiter import get_redis_client

    if get_redis_client() is None:
        logger.warning("Redis unavailable - rate limiting will use in-memory counters")
    else:
        logger.info("Redis connection established")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="CleanDay CRM API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is reported as 400 with the field-level errors attached"""
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid input", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold the raw exception object, which is not JSON serializable
    errors = []
    for error in exc.errors():
        item = {k: v for k, v in error.items() if k not in ("ctx", "input", "url")}
        if error.get("ctx"):
            item["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(item)
    return errors


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(
        SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"]
    )
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

if CSRF_ENABLED:
    app.add_middleware(CSRFMiddleware)
    logger.info("CSRF protection enabled")
else:
    logger.info("CSRF protection disabled")


# Credentials (session cookie) require explicit origins
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    f"{FRONTEND_URL},http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(auth_router)
app.include_router(clients_router)
app.include_router(bookings_router)
app.include_router(team_router)
app.include_router(cleaner_jobs_router)
app.include_router(customer_router)
app.include_router(campaigns_router)
app.include_router(referrals_router)
app.include_router(imports_router)
app.include_router(search_router)
app.include_router(activity_log_router)
app.include_router(cron_router)
app.include_router(prospects_router)
app.include_router(feedback_router)
app.include_router(platform_prospects_router)
app.include_router(platform_router)


@app.get("/")
def root():
    return {"message": "CleanDay CRM API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/csrf-token")
async def get_csrf_token(request: Request, response: Response):
    """
    Get a CSRF token for the frontend.
    The token is also set as a cookie.
    Frontend should include this token in X-CSRF-Token header for state-changing requests.
    """
    existing_token = request.cookies.get(CSRF_COOKIE_NAME)

    if existing_token:
        return {"csrf_token": existing_token}

    new_token = generate_csrf_token()
    set_csrf_cookie(response, new_token)
    return {"csrf_token": new_token}
