"""ShipBatch HTTP API.

``app`` is what ``shipbatch serve`` hands to uvicorn. Every ``DomainError``
raised below a route leaves as ``{"success": false, "code", "message"}``
with the status its registry entry assigns.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import addresses, batches, shipping
from src.config import ShipBatchConfig, load_config
from src.db.connection import close_db, init_db
from src.errors import DomainError

API_PREFIX = "/api/v1"
API_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Send application logs to stdout, where uvicorn's output goes."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("src").setLevel(logging.INFO)


def _installed_version() -> str:
    try:
        return version("shipbatch")
    except PackageNotFoundError:
        return "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup; release pooled connections on shutdown."""
    app.state.started_at = time.monotonic()
    init_db()
    logger.info("ShipBatch API started")
    yield
    close_db()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a domain error as the error envelope."""
    log = logger.error if exc.http_status >= 500 else logger.info
    log("%s %s -> %s %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app(config: ShipBatchConfig | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Loaded settings; read from the config file when omitted.
            Only ``api.allowed_origins`` is used here, an empty list
            leaves CORS off.

    Returns:
        The application with routers, CORS and the error handler wired.
    """
    config = config or load_config()
    application = FastAPI(
        title="ShipBatch API",
        description="CSV batch shipment ingestion, address validation, rating and purchase",
        version=API_VERSION,
        lifespan=lifespan,
    )
    application.state.started_at = None

    if config.api.allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    application.add_exception_handler(DomainError, domain_error_handler)
    for module in (batches, addresses, shipping):
        application.include_router(module.router, prefix=API_PREFIX)

    @application.get("/health")
    def health_check(request: Request) -> dict:
        """Liveness probe with version and uptime."""
        started = request.app.state.started_at
        uptime = int(time.monotonic() - started) if started is not None else 0
        return {"status": "healthy", "version": _installed_version(), "uptime_seconds": uptime}

    @application.get("/api")
    def api_root() -> dict:
        """Pointers to the generated docs."""
        return {"name": "ShipBatch API", "version": API_VERSION, "docs": "/docs", "redoc": "/redoc"}

    return application


configure_logging()
app = create_app()
