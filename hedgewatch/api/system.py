from fastapi import APIRouter, Response
from pydantic import BaseModel

from hedgewatch.config import get_settings
from hedgewatch.observability import get_metrics, get_metrics_content_type
from hedgewatch.store import get_event_store
from hedgewatch.version import APP_NAME, VERSION

router = APIRouter(tags=["System"])


class HealthResponse(BaseModel):
    status: str
    version: str
    service: str
    environment: str
    store_backend: str
    store_reachable: bool


@router.get("/health", response_model=HealthResponse)
async def health():
    store = get_event_store()
    reachable = await store.ping()

    return HealthResponse(
        status="healthy" if reachable else "degraded",
        version=VERSION,
        service=APP_NAME,
        environment=get_settings().environment,
        store_backend=store.backend,
        store_reachable=reachable,
    )


@router.get("/")
async def root():
    return {
        "api": "HedgeWatch Round Monitor API",
        "version": VERSION,
        "status": "online",
    }


@router.get("/metrics")
async def metrics():
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
