"""Repository implementations package."""
from .catalog import InMemoryCatalogRepository, default_catalog_document
from .memory import (
    InMemoryGrantBackend,
    InMemoryPendingGrantRepository,
    InMemorySpinStateRepository,
)

__all__ = [
    "InMemoryCatalogRepository",
    "InMemoryGrantBackend",
    "InMemoryPendingGrantRepository",
    "InMemorySpinStateRepository",
    "default_catalog_document",
]
