# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Metadata cache backends.

Caches map a request URL to a resolution object. Every backend treats its
own failures as soft: a read error is a miss and a write error only costs
future hit rate.
"""

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import orjson
from redis.asyncio import Redis

from linkembed.core.config import Settings
from linkembed.schemas.embed import ConsumerRequest
from linkembed.services.metadata import Metadata, metadata_from_dict

logger = logging.getLogger(__name__)


class MetadataCache(ABC):
    """Cache storage for resolved metadata."""

    # True when the backend stores a serialized copy instead of the live
    # object; such copies are written again once data has been fetched
    snapshot: bool = False

    @abstractmethod
    async def read(self, request: ConsumerRequest) -> Optional[Metadata]:
        """Return the cached Metadata for the request URL, None on miss"""
        pass

    @abstractmethod
    async def write(self, request: ConsumerRequest, metadata: Metadata) -> None:
        """Store the Metadata for the request URL"""
        pass

    async def close(self) -> None:
        return None


class InMemoryMetadataCache(MetadataCache):
    """
    Process-local cache of live Metadata objects.

    Because the cached object itself is shared, concurrent requests for the
    same URL join its single in-flight fetch. Entries expire after ``ttl``
    seconds; beyond ``max_entries`` the least recently written is evicted.
    """

    def __init__(
        self,
        ttl: float = 3600,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Metadata]]" = OrderedDict()

    async def read(self, request: ConsumerRequest) -> Optional[Metadata]:
        entry = self._entries.get(request.cache_key)
        if entry is None:
            return None
        expires_at, metadata = entry
        if self._clock() >= expires_at:
            del self._entries[request.cache_key]
            return None
        return metadata

    async def write(self, request: ConsumerRequest, metadata: Metadata) -> None:
        key = request.cache_key
        self._entries[key] = (self._clock() + self._ttl, metadata)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted metadata cache entry: {evicted}")

    def __len__(self) -> int:
        return len(self._entries)


class RedisMetadataCache(MetadataCache):
    """Redis-backed cache storing Metadata as orjson documents"""

    snapshot = True

    def __init__(self, url: str, ttl: int = 3600):
        # Use binary responses (decode_responses=False) to store orjson bytes
        self._url = url
        self._ttl = ttl
        self._connection_params = {
            "encoding": "utf-8",
            "decode_responses": False,
            "max_connections": 10,
            "socket_timeout": 5.0,
            "socket_connect_timeout": 2.0,
            "retry_on_timeout": True,
        }

    async def _get_client(self) -> Redis:
        # Create new client every time to avoid event loop closure issues
        return Redis.from_url(self._url, **self._connection_params)

    @staticmethod
    def generate_cache_key(request: ConsumerRequest) -> str:
        url_hash = hashlib.md5(request.cache_key.encode()).hexdigest()
        return f"linkembed:metadata:{url_hash}"

    async def read(self, request: ConsumerRequest) -> Optional[Metadata]:
        key = self.generate_cache_key(request)
        try:
            client = await self._get_client()
            try:
                payload = await client.get(key)
            finally:
                await client.aclose()
        except Exception as e:
            logger.warning(f"Failed to read metadata cache for {request.url}: {e}")
            return None

        if payload is None:
            return None
        try:
            return metadata_from_dict(orjson.loads(payload))
        except (orjson.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    async def write(self, request: ConsumerRequest, metadata: Metadata) -> None:
        key = self.generate_cache_key(request)
        try:
            client = await self._get_client()
            try:
                await client.set(key, orjson.dumps(metadata.to_dict()), ex=self._ttl)
            finally:
                await client.aclose()
        except Exception as e:
            logger.warning(f"Failed to write metadata cache for {request.url}: {e}")


def create_metadata_cache(source: Settings) -> Optional[MetadataCache]:
    """
    Create the cache backend selected by METADATA_CACHE_BACKEND.

    Returns:
        MetadataCache, or None when caching is disabled
    """
    backend = source.METADATA_CACHE_BACKEND.strip().lower()
    if backend == "memory":
        return InMemoryMetadataCache(
            ttl=source.METADATA_CACHE_TTL,
            max_entries=source.METADATA_CACHE_MAX_ENTRIES,
        )
    if backend == "redis":
        return RedisMetadataCache(source.REDIS_URL, ttl=source.METADATA_CACHE_TTL)
    if backend not in ("none", ""):
        logger.warning(f"Unknown METADATA_CACHE_BACKEND {backend!r}, caching disabled")
    return None
