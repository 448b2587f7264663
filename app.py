"""
HedgeWatch — Round monitor for a hedged YES/NO merge strategy.

Single entry point for the HTTP service. The service:
  - Reads the strategy's trading-event log (in-memory seed file or MongoDB)
  - Reconstructs which purchases each merge consumed, per round
  - Lists rounds grouped by series
  - Resolves market metadata for a round slug
  - Pushes newly appended records over Server-Sent Events

Run with:
  uvicorn app:app --reload --port 3000
"""

import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

load_dotenv()

from hedgewatch.api.errors import hedgewatch_error_handler
from hedgewatch.api.middleware import otel_tracing_middleware
from hedgewatch.api.system import router as system_router
from hedgewatch.api.v1.routes import router as v1_router
from hedgewatch.config import get_settings
from hedgewatch.connectors.market_info import close_market_info_resolver
from hedgewatch.errors import HedgeWatchError
from hedgewatch.logging import setup_logging
from hedgewatch.store import get_event_store, reset_event_store
from hedgewatch.version import APP_NAME, VERSION

logger = structlog.get_logger(__name__)

settings = get_settings()


# ── Lifespan ─────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Service lifespan — open the event store, shut down integrations."""
    setup_logging(settings.log_level, json_output=settings.log_json)

    store = get_event_store()
    logger.info(
        "service_starting",
        version=VERSION,
        service=APP_NAME,
        environment=settings.environment,
        store_backend=store.backend,
    )

    yield

    logger.info("service_shutting_down")
    await close_market_info_resolver()
    await store.close()
    reset_event_store()
    logger.info("service_shutdown_complete")


# ── OpenAPI Tag Metadata ─────────────────────────────────────────────
OPENAPI_TAGS = [
    {
        "name": "Rounds",
        "description": "Round reconstruction and the grouped round listing. "
        "Each purchase is annotated with the merges that consumed it.",
    },
    {
        "name": "Markets",
        "description": "Polymarket metadata for a round slug (condition id, "
        "outcome tokens), resolved via Gamma + CLOB and cached.",
    },
    {
        "name": "Stream",
        "description": "Server-Sent Events feed of newly appended records. "
        "Supports `Last-Event-ID` resume and closes every few minutes "
        "with a `reconnect` event.",
    },
    {
        "name": "System",
        "description": "Health checks, Prometheus metrics, and service info.",
    },
]

API_DESCRIPTION = """\
## HedgeWatch API

Read-only JSON + SSE API over the hedging strategy's event log.

### Authentication

When `API_KEY_SECRET` is set, all `/api/v1/*` endpoints require the
`X-API-Key` header. Without it the API is open.

### Error Format

All errors return a structured JSON envelope:

```json
{
  "error": {
    "error_code": "MISSING_PARAMETER",
    "message": "market parameter required",
    "detail": null,
    "retryable": false,
    "http_status": 400
  }
}
```
"""

# ── FastAPI App ───────────────────────────────────────────────────────
app = FastAPI(
    title="HedgeWatch — Round Monitor",
    description=API_DESCRIPTION,
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ─────────────────────────────────────────────────────────────
# Disabled by default. Opt-in via API_CORS_ORIGINS="https://dash.example.com".
cors_origins_str = os.getenv("API_CORS_ORIGINS", "")
allowed_origins = [
    origin.strip() for origin in cors_origins_str.split(",") if origin.strip()
]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

# Register global exception handler
app.add_exception_handler(HedgeWatchError, hedgewatch_error_handler)

# Mount service routes (health, metrics, root)
app.include_router(system_router)

# Mount versioned API routes
app.include_router(v1_router)

# ── Middlewares ───────────────────────────────────────────────────────
app.add_middleware(BaseHTTPMiddleware, dispatch=otel_tracing_middleware)


if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=settings.port, reload=True)
