import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.exceptions import (
    AllocationConflictError,
    BuildError,
    PackagingFailure,
    SignatureFailure,
    ValidationFailure,
    ResourceNotFoundError,
    PermissionDeniedError,
)
from app.api.v1.router import api_router
from app.db.session import init_db

settings = get_settings()

# Configure logging - suppress noisy third-party loggers
logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

# Silence noisy third-party libraries
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("cachecontrol").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("google").setLevel(logging.WARNING)
logging.getLogger("firebase_admin").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Badge Issuance Backend...")
    await init_db()
    yield
    # Shutdown
    logger.info("Shutting down Badge Issuance Backend...")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
## Badge Issuance API

Digital employee badges for Apple Wallet and Google Wallet.

### Features
- **Issuance**: Allocate an employee number and produce a signed `.pkpass` and a Google Wallet save JWT
- **QR codes**: Wallet hand-off and attendance check-in codes
- **Lifecycle**: Revoke badges and expire badges past their validity

### Authentication
All endpoints except the pass download link require Firebase Authentication:
```
Authorization: Bearer <firebase_id_token>
```
""",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "employee-cards", "description": "Issue and manage employee badges"},
        {"name": "health", "description": "Health checks"},
    ],
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: str, exc) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": exc.message,
            "details": exc.details,
        },
    )


# Exception handlers
@app.exception_handler(AllocationConflictError)
async def allocation_conflict_exception_handler(
    request: Request, exc: AllocationConflictError
):
    logger.warning(f"AllocationConflictError: {exc.message} (details={exc.details})")
    return _error_response(409, "allocation_conflict", exc)


@app.exception_handler(BuildError)
async def build_exception_handler(request: Request, exc: BuildError):
    return _error_response(422, "build_error", exc)


@app.exception_handler(PackagingFailure)
async def packaging_exception_handler(request: Request, exc: PackagingFailure):
    logger.error(f"PackagingFailure: {exc.message} (details={exc.details})")
    return _error_response(503, "packaging_failure", exc)


@app.exception_handler(SignatureFailure)
async def signature_exception_handler(request: Request, exc: SignatureFailure):
    logger.error(f"SignatureFailure: {exc.message}")

    content = {
        "error": "signature_failure",
        "message": exc.message,
        "details": {"error_type": exc.details.get("error_type", "unknown")},
    }

    # Include detailed error info in debug mode
    if settings.DEBUG:
        content["debug"] = exc.details

    return JSONResponse(status_code=502, content=content)


@app.exception_handler(ValidationFailure)
async def validation_failure_exception_handler(
    request: Request, exc: ValidationFailure
):
    logger.error(f"ValidationFailure: {exc.message} (details={exc.details})")
    return _error_response(422, "validation_failure", exc)


@app.exception_handler(ResourceNotFoundError)
async def not_found_exception_handler(request: Request, exc: ResourceNotFoundError):
    return JSONResponse(
        status_code=404,
        content={
            "error": "not_found",
            "message": exc.message,
        },
    )


@app.exception_handler(PermissionDeniedError)
async def permission_denied_exception_handler(
    request: Request, exc: PermissionDeniedError
):
    return JSONResponse(
        status_code=403,
        content={
            "error": "permission_denied",
            "message": exc.message,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle FastAPI HTTPExceptions with consistent format."""
    error_type = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        422: "validation_error",
    }.get(exc.status_code, "http_error")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error_type,
            "message": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        },
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error occurred")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
        },
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# Root health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}
