"""
Factory: return the DispenseStore selected by settings.DISPENSE_STORAGE_BACKEND.

Adding a backend:
  1. subclass DispenseStore in a new module
  2. add one line to _build_registry()
No change to the core or to the views.
"""

from functools import lru_cache

from django.conf import settings

from .base import DispenseStore


def _build_registry() -> dict[str, type[DispenseStore]]:
    # deferred import, the Django backend pulls in the ORM models
    from .django_store import DjangoDispenseStore
    from .memory_store import InMemoryDispenseStore

    return {
        "django": DjangoDispenseStore,
        "memory": InMemoryDispenseStore,
    }


@lru_cache(maxsize=None)
def _store_for(backend: str) -> DispenseStore:
    # one instance per backend per process; the in-memory store holds its data
    registry = _build_registry()
    store_cls = registry.get(backend)

    if store_cls is None:
        raise ValueError(
            f"Unknown DISPENSE_STORAGE_BACKEND: {backend!r}. "
            f"Known backends: {list(registry.keys())}"
        )

    return store_cls()


def get_store() -> DispenseStore:
    """
    Raises:
        ValueError: DISPENSE_STORAGE_BACKEND is unknown
    """
    backend = getattr(settings, "DISPENSE_STORAGE_BACKEND", "django")
    return _store_for(backend)
