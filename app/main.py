"""
FastAPI application entry point.
Gallery and upload-session API used by the admin back office.
"""
from fastapi import FastAPI, Request, status, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import logging
import asyncio

from app.config import settings
from app.database import get_db, init_db, close_db
from app.services.cloudinary_service import validate_cloudinary_config
from app.routes import gallery, files
from app.utils.rate_limit import limiter

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its response status."""
    method = request.method
    path = request.url.path
    try:
        response = await call_next(request)
        logger.info(f"{method} {path} -> {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Error processing {method} {path}: {str(e)} ({type(e).__name__})", exc_info=True)
        raise


app.include_router(gallery.router, prefix="/api", tags=["gallery"])
app.include_router(files.router, prefix="/api")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Return HTTP errors as {"error", "detail"} bodies."""
    logger.warning(f"HTTPException on {request.method} {request.url.path}: {exc.status_code} {exc.detail}")

    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail, "detail": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "detail": jsonable_errors(exc)}
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the non-serializable ctx/input payloads."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {str(exc)} ({type(exc).__name__})",
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "detail": "An unexpected error occurred"}
    )


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": settings.API_TITLE,
        "status": "healthy",
        "version": settings.API_VERSION
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    """Run SELECT 1 against the configured database."""
    try:
        result = await db.execute(text("SELECT 1"))
        return {"database": "connected", "status": "healthy", "result": result.scalar()}
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}", exc_info=True)
        return {"database": "error", "status": "unhealthy", "error": "Database connection failed"}


@app.get("/health/cloudinary")
async def health_check_cloudinary():
    if validate_cloudinary_config():
        return {"cloudinary": "configured", "status": "healthy", "cloud_name": settings.CLOUDINARY_CLOUD_NAME}
    return {
        "cloudinary": "not_configured",
        "status": "warning",
        "message": "Cloudinary credentials not set in environment variables"
    }


@app.on_event("startup")
async def startup_event():
    """
    Verify the database on startup.
    The app still starts when the database is unreachable; gallery endpoints will fail.
    """
    if not settings.DATABASE_URL:
        logger.info("DATABASE_URL not configured - database features will be unavailable")
        return
    try:
        await init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database on startup: {str(e)}")


@app.on_event("shutdown")
async def shutdown_event():
    if settings.DATABASE_URL:
        try:
            await close_db()
        except Exception as e:
            if not isinstance(e, (KeyboardInterrupt, asyncio.CancelledError)):
                logger.warning(f"Error during database shutdown: {str(e)}")
