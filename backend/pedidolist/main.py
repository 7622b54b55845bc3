"""FastAPI application entry point."""

import json
import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from pedidolist import __version__
from pedidolist.api.routes import api_router
from pedidolist.core.config import settings
from pedidolist.core.metrics import MetricsMiddleware, metrics
from pedidolist.core.rate_limit import limiter
from pedidolist.db.base import Base
from pedidolist.db.session import SessionLocal, engine
from pedidolist.services.sync.exceptions import LocalStoreError, StorageQuotaExceededError
from pedidolist.services.sync.runtime import SyncRuntime

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            entry = {
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            }
            if record.exc_info:
                entry["exc"] = self.formatException(record.exc_info)
            return json.dumps(entry)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # Skip logging for health checks and metrics scrapes
        if request.url.path in ["/health", "/metrics", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            request_logger.log(
                log_level,
                f"{request.method} {request.url.path} - "
                f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            return response
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting PedidoList terminal {__version__}")

    runtime = getattr(app.state, "sync_runtime", None)
    if runtime is None:
        # Local store schema is created in place; there are no migrations
        Base.metadata.create_all(bind=engine)
        runtime = SyncRuntime(settings, SessionLocal)
        app.state.sync_runtime = runtime

    await runtime.start()

    yield

    await runtime.stop()
    logger.info("Shutting down PedidoList terminal")


app = FastAPI(
    title="PedidoList Terminal",
    description="Offline-first local API with background sync to the PedidoList server",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(LocalStoreError)
async def local_store_error_handler(request: Request, exc: LocalStoreError):
    """Storage failures are reported as a temporary outage of the terminal."""
    logger.error(f"Local store failure on {request.method} {request.url.path}: {exc}")
    detail = "Local storage is full" if isinstance(exc, StorageQuotaExceededError) else "Local storage unavailable"
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": detail})


# Metrics middleware (Prometheus-compatible)
app.add_middleware(MetricsMiddleware)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check(request: Request):
    """Basic liveness check endpoint."""
    runtime = getattr(request.app.state, "sync_runtime", None)
    return {
        "status": "healthy",
        "version": __version__,
        "online": runtime.monitor.is_online if runtime else None,
    }


@app.get("/metrics")
@limiter.limit("30/minute")
async def prometheus_metrics(request: Request):
    """Prometheus-compatible metrics endpoint."""
    runtime = getattr(request.app.state, "sync_runtime", None)
    sync_snapshot = await runtime.prometheus_snapshot() if runtime else None
    return PlainTextResponse(metrics.get_prometheus_metrics(sync_snapshot), media_type="text/plain")
