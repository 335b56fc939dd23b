# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Metadata service: picks the right provider for a URL, runs its resolution
object and flattens the outcome into an EmbedDataResult.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Optional, Set

import httpx

from linkembed.core.cache import MetadataCache, create_metadata_cache
from linkembed.core.config import ServiceConfig, Settings
from linkembed.schemas.embed import ConsumerRequest, EmbedDataResult
from linkembed.services.http.client import create_http_client
from linkembed.services.metadata import Metadata, RequestContext
from linkembed.services.providers import (
    MetadataProvider,
    ProviderCollection,
    build_default_providers,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not Found"


class MetadataService:
    """
    Resolves consumer requests into embed data.

    Example:
        ```python
        service = MetadataService(
            providers=[UnknownMetadataProvider()],
            cache=InMemoryMetadataCache(),
        )
        result = await service.get_data(ConsumerRequest(url="https://example.com"))
        await service.aclose()
        ```
    """

    def __init__(
        self,
        providers: Iterable[MetadataProvider] = (),
        cache: Optional[MetadataCache] = None,
        config: Optional[ServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            providers: Providers in selection order; disabled ones are skipped
            cache: Optional metadata cache
            config: Retry, timeout and transport options
            transport: httpx transport override for the shared client
            clock: Monotonic clock used for the error cache age
            sleep: Awaitable sleep used between retries
        """
        self.config = config or ServiceConfig()
        self.clock = clock
        self.sleep = sleep
        self._cache = cache
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._background_tasks: Set[asyncio.Task] = set()

        self.providers = ProviderCollection()
        for provider in providers:
            if provider.is_enabled:
                self.providers.add(provider)
            else:
                logger.warning(f"Ignore disabled metadata provider: {provider}")

    @classmethod
    def from_settings(cls, source: Settings) -> "MetadataService":
        """Build a service with the providers and cache selected by settings."""
        service = cls(
            providers=build_default_providers(source),
            cache=create_metadata_cache(source),
            config=ServiceConfig.from_settings(source),
        )
        logger.info(
            f"Metadata service ready: providers="
            f"{[provider.name for provider in service.providers]}, "
            f"cache={source.METADATA_CACHE_BACKEND}"
        )
        return service

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Shared client; never follows redirects by itself."""
        if self._http_client is None:
            self._http_client = create_http_client(self.config, self._transport)
        return self._http_client

    async def _read_cache(self, request: ConsumerRequest) -> Optional[Metadata]:
        if self._cache is None:
            return None
        try:
            return await self._cache.read(request)
        except Exception as e:
            logger.warning(f"Metadata cache read failed for {request.url}: {e}")
            return None

    async def _write_cache(self, request: ConsumerRequest, metadata: Metadata) -> None:
        try:
            await self._cache.write(request, metadata)
        except Exception as e:
            logger.warning(f"Metadata cache write failed for {request.url}: {e}")

    def _schedule_cache_write(self, request: ConsumerRequest, metadata: Metadata) -> None:
        """Persist without waiting; at most one attempt, failures only logged."""
        if self._cache is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._write_cache(request, metadata)
        )
        # Keep a reference so the task is not garbage collected mid-flight
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _select_provider(self, request: ConsumerRequest) -> Optional[Metadata]:
        for provider in self.providers.get_by_host(request.host):
            metadata = provider.try_create(request)
            if metadata is not None:
                logger.info(f"Selected provider {provider.name} for {request.url}")
                return metadata
        return None

    async def get_data(self, request: ConsumerRequest) -> EmbedDataResult:
        """
        Find the right provider and use it to fetch embed data.

        Never raises for resolution problems: a missing provider, an empty
        result and an exhausted retry budget all become a failed result.

        Args:
            request: Consumer request

        Returns:
            EmbedDataResult
        """
        metadata = await self._read_cache(request)
        from_cache = metadata is not None

        if metadata is None:
            try:
                metadata = self._select_provider(request)
            except Exception as e:
                logger.warning(f"Provider selection failed for {request.url}: {e!r}")
            if metadata is not None:
                self._schedule_cache_write(request, metadata)

        if metadata is None:
            logger.info(f"No provider matched: {request.url}")
            return EmbedDataResult.failure(NOT_FOUND_MESSAGE)

        try:
            data = await metadata.fetch(RequestContext(service=self, request=request))
        except Exception as e:
            logger.warning(f"Failed to resolve {request.url}: {e!r}")
            return EmbedDataResult.failure(NOT_FOUND_MESSAGE)

        if data is None:
            return EmbedDataResult.failure(NOT_FOUND_MESSAGE)

        if not from_cache and self._cache is not None and self._cache.snapshot:
            # The first write happened before the fetch, store the data too
            self._schedule_cache_write(request, metadata)

        return EmbedDataResult.success(data)

    async def aclose(self) -> None:
        """Close the shared client and wait for pending cache writes."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._cache is not None:
            await self._cache.close()
