"""Kipu — FastAPI gateway application.

Answers cat-style count requests by asking an Elasticsearch/OpenSearch
compatible ``_count`` API and reporting the result as a small table.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request

from kipu.auth import make_api_key_checker
from kipu.backends.base import CountService
from kipu.backends.http import HttpCountService
from kipu.config import KipuConfig, load_config
from kipu.dispatcher import CountDispatcher
from kipu.endpoint import CountEndpoint
from kipu.routes import cat, meta

logger = logging.getLogger("kipu")
audit_logger = logging.getLogger("kipu.audit")


def install_service(app: FastAPI, service: CountService) -> None:
    """Attach a counting service and the endpoint that uses it."""
    app.state.service = service
    app.state.count_endpoint = CountEndpoint(CountDispatcher(service))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: open the backend client unless one is installed. Shutdown: close it."""
    config: KipuConfig = app.state.config
    if getattr(app.state, "service", None) is None:
        logger.info("Counting against %s", config.backend_url)
        install_service(
            app,
            HttpCountService(
                config.backend_url,
                username=config.backend_user,
                password=config.backend_password,
                timeout=config.request_timeout,
            ),
        )
    logger.info("Kipu gateway ready")
    yield
    await app.state.service.close()
    logger.info("Kipu gateway shut down")


def create_app(config: KipuConfig | None = None, service: CountService | None = None) -> FastAPI:
    """Application factory."""
    if config is None:
        config = load_config()

    app = FastAPI(
        title="Kipu",
        description="Cat-style document counts over a search cluster",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.service = None
    if service is not None:
        install_service(app, service)

    check_key = make_api_key_checker(config.api_key)

    @app.middleware("http")
    async def audit_log(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start
        audit_logger.info(
            "%s %s %d %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
        )
        return response

    app.include_router(meta.router, dependencies=[Depends(check_key)])
    app.include_router(cat.router, dependencies=[Depends(check_key)])

    return app
