import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from .database import Base, engine, get_db
from .domain.admin.router import router as admin_router
from .domain.auth.router import router as auth_router
from .domain.billing.router import router as billing_router
from .domain.billing.router import webhooks_router as stripe_webhooks_router
from .domain.booking.router import router as booking_router
from .domain.garages.router import router as garages_router
from .domain.notifications.router import router as notifications_router
from .domain.scheduling.router import router as scheduling_router
from .domain.vehicles.router import router as vehicles_router
from .redis_client import get_redis_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Another worker may have created them first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        get_redis_client().ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - push fan-out and webhook dedupe will fail open: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="MOT Booking API", version="1.0.0", lifespan=lifespan)


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic may put the raw exception object under ctx
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(auth_router)
app.include_router(vehicles_router)
app.include_router(booking_router)
app.include_router(scheduling_router)
app.include_router(garages_router)
app.include_router(billing_router)
app.include_router(stripe_webhooks_router)
app.include_router(notifications_router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {"message": "MOT Booking API is running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Liveness plus the state of the database and Redis"""
    checks = {}

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"connected": True}
    except Exception as e:
        logger.error(f"❌ Health check: database unreachable: {e}")
        checks["database"] = {"connected": False, "error": str(e)}

    try:
        start_time = time.time()
        get_redis_client().ping()
        checks["redis"] = {"connected": True, "response_time_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception as e:
        logger.warning(f"⚠️ Health check: Redis unreachable: {e}")
        checks["redis"] = {"connected": False, "error": str(e)}

    # Redis only degrades push and webhook dedupe
    status = "healthy" if checks["database"]["connected"] else "unhealthy"
    if status == "healthy" and not checks["redis"]["connected"]:
        status = "degraded"
    return {"status": status, **checks}
