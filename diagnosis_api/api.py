"""FastAPI application and route handlers."""

import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .config import settings
from .diagnosis import DiagnosisService
from .exceptions import DiagnosisAPIError, InternalError, RateLimitError
from .generator import create_generator
from .middleware import add_request_id
from .models import DiagnoseRequest, DiagnoseResponse
from .rate_limit import RateLimiter, client_ip
from .scraper import ApifyProfileScraper
from .storage import create_store

DIAGNOSE_ENDPOINT = "diagnose"


def configure_logging() -> None:
    """Configure logging - should be called at startup, not import time."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.log_level,
        serialize=False,
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level=settings.log_level,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Compose the service graph and manage its lifecycle."""
    configure_logging()

    store = create_store()
    scraper = ApifyProfileScraper(
        token=settings.apify_api_token,
        actor_id=settings.apify_actor_id,
        timeout_secs=settings.scraper_timeout,
    )
    generator = create_generator(settings)

    try:
        await store.startup()
        await scraper.startup()
        await generator.startup()
    except Exception as e:
        logger.error(f"Application startup failed: {e}")
        raise

    app.state.diagnosis_service = DiagnosisService(
        store=store,
        scraper=scraper,
        generator=generator,
        cache_ttl=settings.cache_ttl,
        request_timeout=settings.request_timeout,
        max_posts=settings.max_recent_posts,
        caption_limit=settings.caption_max_length,
        generation_user=settings.dify_user,
    )
    app.state.rate_limiter = RateLimiter(
        store,
        limit=settings.rate_limit_count,
        window_seconds=settings.rate_limit_window_seconds,
    )

    logger.info("Application started successfully")

    yield

    await generator.shutdown()
    await scraper.shutdown()
    await store.shutdown()
    app.state.diagnosis_service = None
    app.state.rate_limiter = None
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Profile Diagnosis API",
    version="1.0.0",
    description="AI-generated critique of Instagram profiles with result caching",
    lifespan=lifespan,
)

app.middleware("http")(add_request_id)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle validation errors with clean messages."""
    error_messages = []

    for error in exc.errors():
        field = error["loc"][-1] if error["loc"] else "field"
        message = error.get("msg", f"Invalid {field}")

        match error["type"]:
            case "missing":
                message = f"Required field '{field}' is missing"
            case "json_invalid":
                message = "Invalid JSON format"

        error_messages.append(message)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "; ".join(error_messages) or "Validation failed",
            "code": "invalid_input",
            "details": error_messages,
        },
    )


app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]


@app.exception_handler(DiagnosisAPIError)
async def diagnosis_api_exception_handler(request: Request, exc: DiagnosisAPIError) -> JSONResponse:
    """Handle domain-specific errors."""
    if exc.status_code >= 500:
        logger.error(f"Diagnosis API error [{exc.code}]: {exc}")
    else:
        logger.warning(f"Diagnosis API error [{exc.code}]: {exc}")

    headers = {}
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        headers["X-Request-ID"] = request_id

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def get_diagnosis_service(request: Request) -> DiagnosisService:
    """Get the diagnosis service built by the lifespan."""
    service = getattr(request.app.state, "diagnosis_service", None)
    if service is None:
        raise RuntimeError("Service not initialized")
    return service


def get_rate_limiter(request: Request) -> RateLimiter:
    """Get the rate limiter built by the lifespan."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise RuntimeError("Rate limiter not initialized")
    return limiter


async def enforce_rate_limit(
    request: Request,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """Record the attempt, rejecting it once the daily quota is used up.

    Runs before body validation, so rejected payloads still count.
    """
    decision = await limiter.check_and_record(client_ip(request), DIAGNOSE_ENDPOINT)
    if not decision.allowed:
        raise RateLimitError(retry_after=decision.retry_after or limiter.window_seconds)


@app.post(
    "/api/diagnose",
    tags=["diagnosis"],
    response_model=DiagnoseResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def diagnose_endpoint(
    payload: DiagnoseRequest,
    service: Annotated[DiagnosisService, Depends(get_diagnosis_service)],
) -> DiagnoseResponse:
    """Diagnose an Instagram profile, serving a cached result while fresh."""
    try:
        result = await service.diagnose(payload.username, payload.mode, payload.competitor_id)
    except DiagnosisAPIError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in diagnose handler: {e}")
        raise InternalError("Internal server error", details={"reason": str(e)}) from e

    return DiagnoseResponse(
        result=result["result"],
        cached=result["cached"],
        created_at=result["created_at"],
    )


@app.get("/health", tags=["health"])
async def health_endpoint(
    response: Response,
    service: Annotated[DiagnosisService, Depends(get_diagnosis_service)],
    detailed: bool = Query(False, description="Include policy configuration"),
) -> dict[str, Any]:
    """Check health status of all components."""
    component_status = await service.health_check()
    all_healthy = all(component_status.values())

    if not all_healthy:
        response.status_code = 503

    result: dict[str, Any] = {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": component_status,
    }

    if detailed:
        result["version"] = "1.0.0"
        result["environment"] = {
            "generation_provider": settings.generation_provider,
            "cache_ttl_hours": settings.cache_ttl_hours,
            "rate_limit": f"{settings.rate_limit_count}/{settings.rate_limit_window_seconds}s",
        }

    return result


@app.get("/", tags=["health"])
async def root_endpoint() -> dict[str, str]:
    """API information endpoint."""
    return {
        "name": "Profile Diagnosis API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


app.openapi_tags = [
    {"name": "diagnosis", "description": "Profile diagnosis"},
    {"name": "health", "description": "Health checks"},
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    return app
