"""Object storage and cached template access."""

from .object_store import (
    ContainerRef,
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreError,
    S3ObjectStore,
    normalize_container,
)
from .template_store import (
    TemplateNotFoundError,
    TemplateStoreClient,
    TemplateStoreError,
    cache_ttl_from_settings,
)

__all__ = [
    "ContainerRef",
    "ObjectNotFoundError",
    "ObjectStore",
    "ObjectStoreError",
    "S3ObjectStore",
    "TemplateNotFoundError",
    "TemplateStoreClient",
    "TemplateStoreError",
    "cache_ttl_from_settings",
    "normalize_container",
]
