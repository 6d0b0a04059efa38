import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_quickbooks,  # noqa: F401
)
from .config import CORS_ORIGINS
from .database import Base, engine
from .domain.integrations.quickbooks import router as quickbooks_router
from .exceptions import AuthenticationError, SyncError

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
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="QBO Sync API", version="1.0.0", lifespan=lifespan)

# Preflight (OPTIONS) is answered here with permissive headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    """Every sync failure is reported as HTTP 400 with an error message"""
    if isinstance(exc, AuthenticationError):
        logger.warning(f"Authentication failed for {request.url.path}: {exc.message}")
    else:
        logger.warning(f"Sync error for {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to the {error} shape used by the sync surface"""
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        # A missing body is a missing companyId too
        if "companyId" in loc or loc == ["body"]:
            return JSONResponse(status_code=400, content={"error": "Company ID is required"})

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


app.include_router(quickbooks_router)


@app.get("/health")
async def health_check():
    return {"ok": True}
