"""Cached text access to the template and asset containers."""

from __future__ import annotations

from datetime import timedelta

from loguru import logger

from paymail_api.core.settings import Settings, get_settings

from ..caching import Clock, ExpiringCache
from .object_store import ObjectNotFoundError, ObjectStore, ObjectStoreError, normalize_container

_BOM = "\ufeff"


class TemplateStoreError(RuntimeError):
    """Raised when template text could not be fetched for reasons other than absence."""


class TemplateNotFoundError(TemplateStoreError):
    """Raised when the requested template text does not exist."""


def cache_ttl_from_settings(settings: Settings) -> timedelta | None:
    """``template_cache_ttl_seconds <= 0`` keeps templates warm for the process lifetime."""

    seconds = settings.template_cache_ttl_seconds
    return timedelta(seconds=seconds) if seconds > 0 else None


class TemplateStoreClient:
    """Reads UTF-8 text blobs and caches hits by fully-qualified path.

    Misses are not cached, so a template uploaded after a miss is picked up on
    the next event.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        cache: ExpiringCache[str, str] | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        if cache is None:
            cache = ExpiringCache(ttl=cache_ttl_from_settings(settings or get_settings()), clock=clock)
        self._cache = cache

    @property
    def cache(self) -> ExpiringCache[str, str]:
        return self._cache

    async def fetch_text(self, container: str, path: str) -> str:
        """Return the text at ``container/path``.

        Raises ``TemplateNotFoundError`` when absent and ``TemplateStoreError`` on
        transport or permission failures.
        """

        try:
            ref = normalize_container(container)
        except ValueError as exc:
            raise TemplateStoreError(str(exc)) from exc
        if not path:
            raise TemplateStoreError("Template path is empty")

        cache_key = ref.qualified(path)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            payload = await self._store.download(container, path)
        except ObjectNotFoundError as exc:
            raise TemplateNotFoundError(cache_key) from exc
        except ObjectStoreError as exc:
            raise TemplateStoreError(str(exc)) from exc

        text = payload.decode("utf-8", errors="replace")
        if text.startswith(_BOM):
            text = text[len(_BOM):]
        self._cache.set(cache_key, text)
        return text

    async def fetch_optional_text(self, container: str | None, path: str) -> str | None:
        """Like ``fetch_text`` but returns ``None`` on absence or failure.

        Absence (including an unconfigured container) is logged at debug level;
        transport failures are logged as warnings.
        """

        if not container:
            logger.debug("Template container not configured", path=path)
            return None
        try:
            return await self.fetch_text(container, path)
        except TemplateNotFoundError:
            logger.debug("Template not found", container=container, path=path)
            return None
        except TemplateStoreError as exc:
            logger.warning("Template fetch failed", container=container, path=path, error=str(exc))
            return None


__all__ = [
    "TemplateNotFoundError",
    "TemplateStoreClient",
    "TemplateStoreError",
    "cache_ttl_from_settings",
]
