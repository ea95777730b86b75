"""
Read-through cache of business configuration snapshots.

Loading a tenant's configuration stays with an external collaborator; this
cache only remembers the last snapshot per tenant for a fixed TTL and allows
explicit invalidation. Snapshots are frozen BusinessConfig models, so the
pipeline can never mutate shared state through them.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from loguru import logger
from pydantic import ValidationError

from marketbot.models import BusinessConfig
from marketbot.utils import ConfigurationError, get_config


ConfigLoader = Callable[[str], Awaitable[Union[BusinessConfig, Dict[str, Any], None]]]


@dataclass
class CacheEntry:
    config: BusinessConfig
    loaded_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0


class BusinessConfigCache:
    """Per-tenant BusinessConfig snapshots with TTL expiry."""

    def __init__(
        self,
        loader: ConfigLoader,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            loader: Async callable returning the tenant's configuration
            ttl_seconds: Snapshot lifetime (defaults to BUSINESS_CONFIG_TTL_SECONDS)
            clock: Monotonic clock, injectable for tests
        """
        self.loader = loader
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_config()["BUSINESS_CONFIG_TTL_SECONDS"]
        self.clock = clock
        self.stats = CacheStats()
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get(self, tenant_id: str) -> BusinessConfig:
        """
        Return the tenant's snapshot, loading it when absent or expired.

        Raises:
            ConfigurationError: If the loader returns nothing or invalid data
        """
        async with self._lock_for(tenant_id):
            entry = self._entries.get(tenant_id)
            if entry is not None and self.clock() - entry.loaded_at < self.ttl_seconds:
                self.stats.hits += 1
                return entry.config

            self.stats.misses += 1
            raw = await self.loader(tenant_id)
            config = self._to_snapshot(tenant_id, raw)
            self._entries[tenant_id] = CacheEntry(config=config, loaded_at=self.clock())
            logger.debug("Business config loaded", tenant_id=tenant_id, business_name=config.business_name)
            return config

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        # Created on first use so each lock binds to the running loop
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        """Drop one tenant's snapshot, or every snapshot when no tenant is given."""
        if tenant_id is None:
            self._entries.clear()
        else:
            self._entries.pop(tenant_id, None)
        self.stats.invalidations += 1
        logger.info("Business config cache invalidated", tenant_id=tenant_id)

    @staticmethod
    def _to_snapshot(tenant_id: str, raw: Any) -> BusinessConfig:
        if raw is None:
            raise ConfigurationError(f"No business configuration for tenant {tenant_id}")
        if isinstance(raw, BusinessConfig):
            return raw
        try:
            return BusinessConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid business configuration for tenant {tenant_id}: {e}") from e
