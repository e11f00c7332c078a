from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import (BackgroundTasks, Depends, FastAPI, HTTPException, Request,
                     Response, status)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.generator.app.factory import (create_generation_service,
                                            get_quota_tracker)
from services.generator.app.loop import NewsGenerationService
from services.generator.app.scheduler import (SchedulerThread, build_scheduler,
                                              run_generation_job)
from services.news_api.app.routes import router as news_router
from services.news_api.app.schema import GenerateNewsIn
from shared.app_logging.logger import CorrelationContext, setup_logging
from shared.config.settings import get_settings
from shared.database.session import init_db
from shared.utils.health import HealthStatus, create_api_health_checker

# Setup logging
logger = setup_logging("newsdesk")

# Get configuration
settings = get_settings()

# Create health checker
health_checker = create_api_health_checker()


@lru_cache()
def get_generation_service() -> NewsGenerationService:
    """Lazily wired generation pipeline, shared by the scheduler and the API."""
    return create_generation_service(settings, quota=get_quota_tracker())


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    scheduler_thread = None
    if settings.generation.scheduler_enabled:
        scheduler_thread = SchedulerThread(build_scheduler(get_generation_service, settings))
        scheduler_thread.start()
    else:
        logger.info("Scheduler disabled; generation runs only on request")

    try:
        yield
    finally:
        if scheduler_thread is not None:
            scheduler_thread.stop()
        logger.info("NewsDesk API shut down cleanly")


app = FastAPI(
    title="NewsDesk API",
    description="AI-generated Indian regional news.",
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    with CorrelationContext(request.headers.get("X-Correlation-ID")) as correlation_id:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app.include_router(news_router, prefix=settings.api_prefix)


@app.get(f"{settings.api_prefix}/health")
def health():
    """Dependency health check endpoint."""
    return health_checker.run_all_checks()


@app.get(f"{settings.api_prefix}/server-info")
def server_info():
    """Diagnostic data for the frontend status widget."""
    database = health_checker.check_database()
    return {
        "port": settings.port,
        "status": "running",
        "environment": settings.environment,
        "version": settings.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if database.status == HealthStatus.HEALTHY else "disconnected",
        "scheduler": "enabled" if settings.generation.scheduler_enabled else "disabled",
        "quota": get_quota_tracker().snapshot(),
    }


@app.get(f"{settings.api_prefix}/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def _generation_service_dependency() -> NewsGenerationService:
    try:
        return get_generation_service()
    except ValueError as e:
        logger.error(f"Generation unavailable: {e}")
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "News generation is not configured")


@app.post(f"{settings.api_prefix}/generate-news", status_code=status.HTTP_202_ACCEPTED)
def generate_news(
    background_tasks: BackgroundTasks,
    body: GenerateNewsIn = GenerateNewsIn(),
    service: NewsGenerationService = Depends(_generation_service_dependency),
):
    """Start an ad hoc generation run in the background."""
    background_tasks.add_task(run_generation_job, lambda: service, body.count, "manual")
    logger.info(f"Queued manual generation of {body.count} articles")
    return {"message": f"Generating {body.count} news articles", "count": body.count}
