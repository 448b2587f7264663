import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from hedgewatch.config import get_settings


@pytest.fixture(autouse=True)
def disable_tracing():
    """Install a provider without exporters so spans never write to stdout."""
    trace.set_tracer_provider(TracerProvider())
    yield


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep the developer's store configuration out of the test run."""
    for var in ("EVENT_STORE_BACKEND", "EVENTS_FILE", "MONGO_URI", "API_KEY_SECRET"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
