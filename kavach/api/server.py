import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kavach.config import settings
from kavach.database import Base, engine
from kavach.exceptions import KavachError
from kavach.api.auth import router as auth_router
from kavach.api.payment import router as payment_router
from kavach.api.scan import router as scan_router
from kavach.api.user import router as user_router
from kavach.utils.logging_config import StructuredLogger, init_logging, metrics, request_id_var

# Model modules must be imported before create_all
import kavach.models.scan_log  # noqa: F401
import kavach.models.user  # noqa: F401

# Initialize structured logging
init_logging()

logger = StructuredLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Kavach API",
    version="0.1.0",
    description="Link safety scanning with tiered quotas",
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# Request id middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(KavachError)
async def kavach_error_handler(request: Request, exc: KavachError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else (first.get("msg") or "Invalid request")
    logger.debug("Request validation failed", path=request.url.path, errors=len(errors))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


app.include_router(auth_router)
app.include_router(user_router)
app.include_router(payment_router)
app.include_router(scan_router)


@app.get("/health")
def health():
    """Health check endpoint - no auth required."""
    return {"status": "ok"}


@app.get("/status")
def status_info():
    """
    API status and configuration info.
    Useful for debugging and monitoring.
    """
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "scan_quota": {
            "per_day": settings.scan_quota_per_day,
            "day_boundary_timezone": settings.scan_day_boundary_timezone,
        },
        "metrics": metrics.get_stats(),
    }


@app.get("/api/config")
def public_config():
    """Public client configuration. The key id is safe to expose."""
    return {"razorpayKeyId": settings.payment_key_id}
