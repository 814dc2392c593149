"""
Main Application - FastAPI application setup.

Every request runs inside a log context carrying its request id, route and
client IP; get_current_user adds the caller's profile once it is resolved.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from jovitools.api.admin_routes import router as admin_router
from jovitools.api.dependencies import close_providers
from jovitools.api.partner_routes import router as partner_router
from jovitools.api.routes import router
from jovitools.api.status_routes import router as status_router
from jovitools.config import settings
from jovitools.db.migration_runner import run_migrations
from jovitools.db.session import close_engines
from jovitools.observability import (
    get_logger,
    log_context,
    metrics,
    setup_logging,
    setup_tracing,
)
from jovitools.observability.tracing import instrument_fastapi
from jovitools.services.access_log import extract_client_ip

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Fields echoed back for a rejected request body; "input" is left out so
# passwords and webhook secrets never reach the logs or the response.
VALIDATION_ERROR_FIELDS = ("type", "loc", "msg")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Applies pending migrations when enabled, then on shutdown stops video
    polling and closes provider clients and database engines.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        run_migrations=settings.run_migrations,
        coins_ceiling=settings.coins_ceiling,
    )

    if settings.run_migrations:
        # Alembic's command API is synchronous
        await asyncio.to_thread(run_migrations)

    yield

    logger.info("application_shutting_down")
    await close_providers()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)

setup_tracing()
instrument_fastapi(app)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {field: error[field] for field in VALIDATION_ERROR_FIELDS if field in error}
        for error in exc.errors()
    ]
    logger.warning("request_validation_failed", errors=errors)
    return JSONResponse(status_code=422, content={"detail": errors})


def route_template(request: Request) -> str:
    """
    Matched route path such as /v1/invites/{code}.

    Metrics are labelled by template so invite codes and job ids do not
    become label values.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind request context for all log lines, then time and count the request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    client_ip = extract_client_ip(request.headers, request.client.host if request.client else None)
    method = request.method
    in_flight = metrics.http_requests_in_progress.labels(method=method)
    start = time.perf_counter()

    with log_context(request_id=request_id, method=method, path=request.url.path, ip=client_ip):
        in_flight.inc()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start
            metrics.record_http_request(route_template(request), method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error("request_failed", duration_seconds=duration, exc_info=True)
            raise
        finally:
            in_flight.dec()

        duration = time.perf_counter() - start
        endpoint = route_template(request)
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            endpoint=endpoint,
            status_code=response.status_code,
            duration_seconds=round(duration, 4),
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Added last, so the proxy middleware is outermost and rewrites the peer address first
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.forwarded_allow_ips)

app.include_router(router)  # User, generation and webhook routes
app.include_router(admin_router)
app.include_router(partner_router)
app.include_router(status_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"service": settings.api_title, "version": settings.api_version}


if settings.metrics_enabled:

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics in text format."""
        return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jovitools.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
