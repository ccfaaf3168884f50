import sys
import pathlib

import pytest
from fastapi.testclient import TestClient

# Ensure backend root (containing 'smartflow_server' package) is on sys.path
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from smartflow_server.core.config import settings
from smartflow_server.core.dependencies import get_context_registry, set_entity_store_override
from smartflow_server.main import app
from tests.fakes import seeded_store


@pytest.fixture
def store():
    return seeded_store()


@pytest.fixture
def open_api(monkeypatch):
    """Run with the shared API key disabled."""
    monkeypatch.setattr(settings, 'shared_api_key', None)


@pytest.fixture
def client(store, open_api):
    set_entity_store_override(store)
    get_context_registry.cache_clear()
    with TestClient(app) as c:
        yield c
    set_entity_store_override(None)
    get_context_registry.cache_clear()
