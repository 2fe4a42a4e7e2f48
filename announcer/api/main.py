import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from announcer.api.deps import Runtime
from announcer.api.routes import site, tenant
from announcer.api.templates import status_response

logger = logging.getLogger(__name__)


def create_app(runtime: Runtime) -> FastAPI:
    """Build the application around an already loaded runtime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("Serving %d tenants", len(runtime.hosts))
        yield
        # Listener is closed; drain in-flight work before exit
        logger.info("Shutting down, waiting for running operations")
        await run_in_threadpool(runtime.shutdown)

    app = FastAPI(
        title="Announcer",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.runtime = runtime

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> HTMLResponse:
        return status_response(runtime.translation, exc.status_code)

    # --- Routers ---
    # Plugin pages first: their paths are more specific than the tenant routes
    for host in runtime.hosts.values():
        for router in host.routers():
            app.include_router(router)

    app.include_router(site.router)
    app.include_router(tenant.router)
    return app
