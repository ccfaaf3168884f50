"""
Dependency injection setup for the application.
Provides FastAPI dependencies for the entity store and viewer contexts.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status

from smartflow_server.core.config import settings
from smartflow_server.core.context import ContextRegistry
from smartflow_server.store.client import EntityStore, RestEntityStore

# Global variable to allow test isolation
_test_store_override: Optional[EntityStore] = None


@lru_cache()
def _build_store() -> RestEntityStore:
    return RestEntityStore(
        settings.entity_store_url,
        settings.entity_store_key,
        timeout=settings.request_timeout_s,
    )


def get_entity_store() -> EntityStore:
    """Get the process-wide entity store client."""
    if _test_store_override is not None:
        return _test_store_override
    if not settings.entity_store_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Entity store URL is not configured',
        )
    return _build_store()


def set_entity_store_override(store: Optional[EntityStore]) -> None:
    """Swap in a store implementation (tests use an in-memory double)."""
    global _test_store_override
    _test_store_override = store
    _build_store.cache_clear()


async def close_entity_store() -> None:
    if _build_store.cache_info().currsize:
        await _build_store().close()
        _build_store.cache_clear()


@lru_cache()
def get_context_registry() -> ContextRegistry:
    return ContextRegistry()


# FastAPI dependency type annotations
EntityStoreDep = Annotated[EntityStore, Depends(get_entity_store)]
ContextRegistryDep = Annotated[ContextRegistry, Depends(get_context_registry)]
