"""
Base service class for the interview relay services.

Subclasses get a FastAPI app with lifecycle hooks, request ids, HTTP
metrics, ``/health`` and ``/metrics``, and a uniform JSON error body.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from contextlib import asynccontextmanager
from typing import Any, Dict
import time
import os

from relay_shared.config import get_config
from relay_shared.logging import configure_logging, get_logger, set_request_id, clear_context
from relay_shared.metrics import get_metrics_collector
from relay_shared.observability import get_observability_manager
from relay_shared.errors import ErrorResponse, RelayException, InvalidArgumentError

SERVICE_VERSION = "1.0.0"


def error_response(exc: RelayException) -> JSONResponse:
    """Render a relay error as its HTTP status and JSON body."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, **config_overrides: Any):
        self.service_name = service_name
        self.port = port
        self.config = get_config(service_name, port, **config_overrides)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self.observability = get_observability_manager(service_name, self.metrics)
        self._start_time = time.time()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    @property
    def local(self) -> bool:
        return self.config.env == "local"

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Interview Relay - {self.service_name.title()} Service",
            version=SERVICE_VERSION,
            docs_url="/docs" if self.local else None,
            redoc_url="/redoc" if self.local else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up CORS and per-request bookkeeping."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.local else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def track_request(request: Request, call_next):
            started = time.perf_counter()
            request_id = set_request_id(request.headers.get("x-request-id"))
            try:
                response = await call_next(request)
                duration = time.perf_counter() - started

                response.headers["x-request-id"] = request_id
                self.metrics.record_http_request(request.method, request.url.path, response.status_code, duration)
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up health and metrics routes."""

        @self.app.get("/health")
        async def health_check():
            """Report liveness and the state of external dependencies."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "dependencies": dependencies,
                "version": SERVICE_VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):
        """Render every failure as ``{ok: false, error, message, details}``."""

        @self.app.exception_handler(RelayException)
        async def relay_exception_handler(request: Request, exc: RelayException):
            self.observability.log_rejection(exc, path=request.url.path)
            return error_response(exc)

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            error = InvalidArgumentError(
                "Request validation failed",
                details={"errors": [err.get("msg") for err in exc.errors()]}
            )
            self.observability.log_rejection(error, path=request.url.path)
            return error_response(error)

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("internal_error")
            body = ErrorResponse(error="internal_error", message="Internal server error")
            return JSONResponse(status_code=500, content=body.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    async def start(self):
        """Start background components. Override in subclasses."""

    async def stop(self):
        """Stop background components. Override in subclasses."""

    def run(self):
        """Serve the app with uvicorn."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
