"""Delivery suppression: local short-lived cache in front of the SES registry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, MutableMapping, Protocol, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from paymail_api.core.settings import Settings, get_settings

from ..caching import Clock, ExpiringCache

DEFAULT_SUPPRESSION_TTL = timedelta(hours=24)

REASON_LOCAL_CACHE = "local-cache"
REASON_REGISTRY = "registry"
REASON_NOT_SUPPRESSED = "not-suppressed"
REASON_REGISTRY_UNAVAILABLE = "registry-unavailable"


def normalize_address(address: str) -> str:
    return address.strip().lower()


@dataclass(frozen=True, slots=True)
class SuppressionRecord:
    email_address: str
    first_observed_at: datetime
    reason: str | None = None


class SuppressionCache:
    """Local suppression list; records older than the TTL are treated as absent."""

    def __init__(self, *, ttl: timedelta = DEFAULT_SUPPRESSION_TTL, clock: Clock | None = None) -> None:
        self._entries: ExpiringCache[str, SuppressionRecord] = ExpiringCache(ttl=ttl, clock=clock)

    def get(self, address: str) -> SuppressionRecord | None:
        return self._entries.get(normalize_address(address))

    def add(self, address: str, *, reason: str | None = None) -> SuppressionRecord:
        key = normalize_address(address)
        existing = self._entries.get(key)
        if existing is not None:
            return existing
        record = SuppressionRecord(email_address=key, first_observed_at=self._entries.now(), reason=reason)
        self._entries.set(key, record)
        return record

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.get(address) is not None


@dataclass(frozen=True, slots=True)
class SuppressionLookup:
    suppressed: bool
    reason: str | None = None


class SuppressionLookupError(RuntimeError):
    """Raised when the suppression registry could not answer."""


class SuppressionRegistry(Protocol):
    async def lookup(self, region: str, address: str) -> SuppressionLookup | None:
        """Return the registry verdict, ``None`` when the address is not listed."""


class SesSuppressionRegistry:
    """Account-level SES suppression list lookups, one client per region."""

    def __init__(self, *, client_factory: Callable[[str], Any] | None = None, timeout_seconds: float = 3.0) -> None:
        self._client_factory = client_factory
        self._timeout_seconds = timeout_seconds
        self._clients: MutableMapping[str, Any] = {}

    async def lookup(self, region: str, address: str) -> SuppressionLookup | None:
        try:
            client = self._get_client(region)
            response = await asyncio.to_thread(client.get_suppressed_destination, EmailAddress=address)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code == "NotFoundException":
                return None
            raise SuppressionLookupError(f"SES suppression lookup failed ({code or 'unknown'})") from exc
        except (BotoCoreError, ValueError) as exc:
            raise SuppressionLookupError(f"SES suppression lookup failed ({exc})") from exc

        destination = response.get("SuppressedDestination") or {}
        return SuppressionLookup(suppressed=True, reason=destination.get("Reason"))

    def _get_client(self, region: str) -> Any:
        client = self._clients.get(region)
        if client is None:
            client = self._build_client(region)
            self._clients[region] = client
        return client

    def _build_client(self, region: str) -> Any:
        if self._client_factory is not None:
            return self._client_factory(region)
        timeout = max(1, int(self._timeout_seconds))
        config = Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 1})
        return boto3.client("sesv2", region_name=region, config=config)


@dataclass(frozen=True, slots=True)
class SuppressionDecision:
    allowed: bool
    reason: str
    detail: str | None = None


class SuppressionGate:
    """Decides whether a send may proceed.

    Order: local cache (deny without a remote call), then the authoritative
    registry under a timeout. Registry failures fail open.
    """

    def __init__(
        self,
        registry: SuppressionRegistry,
        *,
        cache: SuppressionCache | None = None,
        timeout_seconds: float = 3.0,
        failure_keywords: Sequence[str] = ("suppress", "complaint"),
    ) -> None:
        self._registry = registry
        self._cache = cache or SuppressionCache()
        self._timeout_seconds = timeout_seconds
        self._failure_keywords = tuple(keyword.lower() for keyword in failure_keywords if keyword)

    @classmethod
    def from_settings(
        cls,
        registry: SuppressionRegistry | None = None,
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> "SuppressionGate":
        active = settings or get_settings()
        timeout = active.suppression_check_timeout_seconds
        return cls(
            registry or SesSuppressionRegistry(timeout_seconds=timeout),
            cache=SuppressionCache(ttl=timedelta(seconds=active.suppression_cache_ttl_seconds), clock=clock),
            timeout_seconds=timeout,
            failure_keywords=active.suppression_failure_keywords,
        )

    @property
    def cache(self) -> SuppressionCache:
        return self._cache

    async def check(self, region: str, address: str) -> SuppressionDecision:
        cached = self._cache.get(address)
        if cached is not None:
            logger.info(
                "Recipient suppressed by local cache",
                recipient=address,
                first_observed_at=cached.first_observed_at.isoformat(),
            )
            return SuppressionDecision(allowed=False, reason=REASON_LOCAL_CACHE, detail=cached.reason)

        try:
            verdict = await asyncio.wait_for(self._registry.lookup(region, address), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Suppression registry lookup timed out; allowing send",
                recipient=address,
                region=region,
                timeout_seconds=self._timeout_seconds,
            )
            return SuppressionDecision(allowed=True, reason=REASON_REGISTRY_UNAVAILABLE, detail="timeout")
        except SuppressionLookupError as exc:
            logger.warning(
                "Suppression registry lookup failed; allowing send",
                recipient=address,
                region=region,
                error=str(exc),
            )
            return SuppressionDecision(allowed=True, reason=REASON_REGISTRY_UNAVAILABLE, detail=str(exc))
        except Exception as exc:
            logger.warning(
                "Suppression registry raised unexpectedly; allowing send",
                recipient=address,
                region=region,
                error=repr(exc),
            )
            return SuppressionDecision(allowed=True, reason=REASON_REGISTRY_UNAVAILABLE, detail=type(exc).__name__)

        if verdict is None or not verdict.suppressed:
            return SuppressionDecision(allowed=True, reason=REASON_NOT_SUPPRESSED)

        self._cache.add(address, reason=verdict.reason)
        logger.info("Recipient suppressed by registry", recipient=address, region=region, reason=verdict.reason)
        return SuppressionDecision(allowed=False, reason=REASON_REGISTRY, detail=verdict.reason)

    def indicates_recipient_rejection(self, error_text: str | None) -> bool:
        if not error_text:
            return False
        lowered = error_text.lower()
        return any(keyword in lowered for keyword in self._failure_keywords)

    def record_send_failure(self, address: str, error_text: str | None) -> bool:
        """Suppress ``address`` locally when the send error reads as a recipient rejection."""

        if not self.indicates_recipient_rejection(error_text):
            return False
        record = self._cache.add(address, reason="send-failure")
        logger.warning(
            "Recipient added to local suppression cache after send failure",
            recipient=record.email_address,
            error=error_text,
        )
        return True


__all__ = [
    "DEFAULT_SUPPRESSION_TTL",
    "REASON_LOCAL_CACHE",
    "REASON_NOT_SUPPRESSED",
    "REASON_REGISTRY",
    "REASON_REGISTRY_UNAVAILABLE",
    "SesSuppressionRegistry",
    "SuppressionCache",
    "SuppressionDecision",
    "SuppressionGate",
    "SuppressionLookup",
    "SuppressionLookupError",
    "SuppressionRecord",
    "SuppressionRegistry",
]
