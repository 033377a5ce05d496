"""
Picture Feed API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool and create tables if not present
  3. Expose Prometheus /metrics endpoint

Run with:
  uvicorn picfeed.main:app --host 0.0.0.0 --port 8000
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from picfeed import __version__
from picfeed.config import settings
from picfeed.database import dispose_db, engine, init_db
from picfeed.errors import install_error_handlers
from picfeed.telemetry import instrument_app, setup_tracing
from picfeed.routers import accounts, feed, pictures

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of the database connection pool."""
    logger.info("Starting Picture Feed API (env=%s)", settings.environment)

    setup_tracing(engine)
    await init_db()

    logger.info("Database connected. API ready.")
    yield

    logger.info("Shutting down...")
    await dispose_db()


app = FastAPI(
    title="Picture Feed API",
    description=(
        "Personalised picture ranking: popularity score × tag affinity, "
        "with a permanent per-account seen set."
    ),
    version=__version__,
    lifespan=lifespan,
)

install_error_handlers(app)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(pictures.router, prefix="/pictures", tags=["Pictures"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
