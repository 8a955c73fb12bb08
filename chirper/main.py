"""Chirper API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chirper.comments.locks import CommentLocks
from chirper.comments.router import router as comments_router
from chirper.comments.service import CommentService
from chirper.comments.store import CassandraCommentStore, CommentStore, InMemoryCommentStore
from chirper.config import Settings, get_settings
from chirper.core.background import BackgroundTasks
from chirper.core.context import get_request_id
from chirper.core.logging import configure_structlog, get_logger
from chirper.core.middleware import RequestContextMiddleware
from chirper.core.redis import init_redis, shutdown_redis
from chirper.health import router as health_router
from chirper.posts.service import CassandraPostDirectory, InMemoryPostDirectory, PostDirectory
from chirper.storage.service import FirebaseImageStore, ImageStore, InMemoryImageStore
from chirper.users.service import CassandraUserDirectory, InMemoryUserDirectory, UserDirectory


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def _needs_cassandra(settings: Settings) -> bool:
    return "cassandra" in (settings.comment_store_backend, settings.directory_backend)


def build_comment_service(
    settings: Settings,
    background: BackgroundTasks,
    session: Any = None,
    redis_client: Any = None,
) -> CommentService:
    """Wire the comment service from the configured backends."""
    keyspace = settings.cassandra_keyspace

    store: CommentStore
    if settings.comment_store_backend == "cassandra":
        store = CassandraCommentStore(session, keyspace)
    else:
        store = InMemoryCommentStore()

    users: UserDirectory
    posts: PostDirectory
    if settings.directory_backend == "cassandra":
        users = CassandraUserDirectory(session, keyspace)
        posts = CassandraPostDirectory(session, keyspace)
    else:
        users = InMemoryUserDirectory()
        posts = InMemoryPostDirectory()

    images: ImageStore
    if settings.image_store_backend == "firebase":
        if not settings.firebase_configured:
            logger.warning(
                "firebase_not_configured",
                message="Comment image uploads will fail until Firebase is configured",
            )
        images = FirebaseImageStore(settings)
    else:
        images = InMemoryImageStore(settings)

    locks = CommentLocks(
        redis_client=redis_client,
        timeout=settings.like_lock_timeout_seconds,
        blocking_timeout=settings.like_lock_blocking_timeout_seconds,
    )

    logger.info(
        "comment_service_initialized",
        comment_store=settings.comment_store_backend,
        directory=settings.directory_backend,
        image_store=settings.image_store_backend,
        distributed_locks=locks.distributed,
    )

    return CommentService(
        store=store,
        users=users,
        posts=posts,
        images=images,
        background=background,
        locks=locks,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    background = BackgroundTasks()
    app.state.background = background
    app.state.comment_service = None

    # Initialize Redis (non-critical - like locks fall back to in-process)
    redis_client = None
    if settings.redis_enabled:
        try:
            redis_client = await init_redis()
            logger.info("redis_initialized")
        except Exception as e:
            logger.warning(
                "redis_init_skipped",
                error=str(e),
                message="Running without Redis - like locks are per-process only",
            )

    # Initialize Cassandra (async)
    session = None
    try:
        if _needs_cassandra(settings):
            # Imported here so memory-only deployments never load the driver
            from chirper.core.database import init_async_cassandra  # noqa: PLC0415

            session = await init_async_cassandra()
            logger.info("cassandra_initialized")

        app.state.comment_service = build_comment_service(
            settings, background, session=session, redis_client=redis_client
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application", pending_background_tasks=background.pending)
    await background.drain(timeout=10.0)
    await shutdown_redis()
    if session is not None:
        from chirper.core.database import shutdown_async_cassandra  # noqa: PLC0415

        await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Chirper - Comments API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=[err.get("msg") for err in exc.errors()],
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged internally; the response stays generic.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(comments_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Chirper API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
