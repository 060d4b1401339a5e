"""FastAPI application entrypoint.

Configures CORS, error translation, the shared change feed, includes
routers, and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from . import schemas  # noqa: E402
from .database import init_db  # noqa: E402
from .deps import get_settings  # noqa: E402
from .exceptions import (  # noqa: E402
    BackendError,
    FormValidationError,
    ImmutableRecordError,
    UnauthenticatedError,
)
from .hosted.channels import ChangeFeed  # noqa: E402
from .routers import auth as auth_router  # noqa: E402
from .routers import dashboard as dashboard_router  # noqa: E402
from .routers import integrations as integrations_router  # noqa: E402
from .routers import kpis as kpis_router  # noqa: E402
from .routers import profile as profile_router  # noqa: E402
from .routers import realtime as realtime_router  # noqa: E402
from .routers import sync_logs as sync_logs_router  # noqa: E402
from .telemetry import capture_exception, init_observability  # noqa: E402
from .utils.errors import parse_backend_error  # noqa: E402

# Status hints from the backend that keep their meaning over HTTP
_PASSTHROUGH_STATUSES = {401, 403, 404}


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(UnauthenticatedError)
    async def unauthenticated_handler(request: Request, exc: UnauthenticatedError):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": exc.message})

    @app.exception_handler(ImmutableRecordError)
    async def immutable_handler(request: Request, exc: ImmutableRecordError):
        return JSONResponse(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, content={"detail": exc.message})

    @app.exception_handler(FormValidationError)
    async def form_validation_handler(request: Request, exc: FormValidationError):
        body = schemas.ErrorResponse(
            detail=exc.message,
            errors=[schemas.FieldErrorOut(field=e.field, code=e.code, message=e.message) for e in exc.errors],
        )
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body.model_dump())

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        status_code = exc.status if exc.status in _PASSTHROUGH_STATUSES else status.HTTP_400_BAD_REQUEST
        if exc.status is None:
            # Database-level failure rather than an expected outcome
            capture_exception(exc, extra={"path": request.url.path, "code": exc.code})
        return JSONResponse(status_code=status_code, content={"detail": parse_backend_error(exc)})


def create_app() -> FastAPI:
    init_observability()

    app = FastAPI(
        title="kpidash API",
        description="""
        kpidash tracks business KPIs for small e-commerce teams.

        This API provides endpoints for:
        - Account signup, login and password management
        - Profile management
        - KPI records and summary metrics
        - Store platform integrations (Shopify, Etsy, WooCommerce, Squarespace) and their sync history
        - A websocket that streams the caller's changes in real time

        ## Authentication

        JWT-based authentication with an HTTP-only `access_token` cookie, or
        `Authorization: Bearer <token>`. Every data endpoint is scoped to the
        authenticated user.
        """,
        version="1.0.0",
    )

    settings = get_settings()
    logger.info("[CORS] Allowed origins: %s", settings.cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One feed per process; every request's HostedClient publishes into it
    app.state.change_feed = ChangeFeed()

    _register_exception_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(profile_router.router)
    app.include_router(integrations_router.router)
    app.include_router(kpis_router.router)
    app.include_router(sync_logs_router.router)
    app.include_router(dashboard_router.router)
    app.include_router(realtime_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="""
        Simple health check endpoint to verify the API is running.

        Does not require authentication. Suitable for load balancer checks.
        """,
    )
    def health():
        return schemas.HealthResponse(status="ok")

    @app.on_event("startup")
    async def startup_event():
        init_db()
        logger.info("[STARTUP] Database schema ready (%s environment)", settings.ENVIRONMENT)

    # Custom OpenAPI schema with security definitions
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "cookieAuth": {
                "type": "apiKey",
                "in": "cookie",
                "name": "access_token",
                "description": "JWT token stored in HTTP-only cookie. Format: 'Bearer <token>'",
            }
        }

        public_endpoints = ["/health", "/auth/signup", "/auth/login", "/auth/password/reset"]
        for path in openapi_schema["paths"]:
            if path in public_endpoints:
                continue
            for method in openapi_schema["paths"][path]:
                if "security" not in openapi_schema["paths"][path][method]:
                    openapi_schema["paths"][path][method]["security"] = [{"cookieAuth": []}]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
    return app


app = create_app()
