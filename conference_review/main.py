"""
conference_review/main.py
FastAPI application for the submission review core
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from conference_review import __version__
from conference_review.config.settings import settings
from conference_review.database import close_db, init_db
from conference_review.errors import APIError, ErrorCode, get_error_summary
from conference_review.routes import router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting conference review service...")
    logger.info(f"Settings: {settings.get_all()}")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database connection: {str(e)}")


app = FastAPI(
    title="Conference Review API",
    description="Submission review lifecycle: assignments, reviews, decisions",
    version=__version__,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

origins = [
    settings.FRONTEND_URL,
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": error_details
        }
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "smtp_configured": settings.smtp_configured(),
        "version": __version__
    }


@app.get("/api/errors/health", tags=["Health"])
async def error_handling_health():
    return get_error_summary()


app.include_router(router)
