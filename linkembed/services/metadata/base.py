# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Base types for resolution objects.

A ``Metadata`` is the per-resource unit of resolution state handed out by
providers and stored by caches. Each variant owns its parsing strategy and
exposes a single async ``fetch`` operation; the shared single-flight and
fault-replay behaviour lives in :class:`FetchMemo`, which variants compose.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Dict, Optional

import httpx

from linkembed.core.config import ServiceConfig
from linkembed.core.exceptions import FetchError
from linkembed.schemas.embed import ConsumerRequest, EmbedData
from linkembed.services.http.retry import execute_with_retry

if TYPE_CHECKING:
    from linkembed.services.metadata_service import MetadataService

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Service and request a fetch runs on behalf of"""

    service: "MetadataService"
    request: ConsumerRequest

    @property
    def config(self) -> ServiceConfig:
        return self.service.config

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self.service.http_client

    @property
    def clock(self) -> Callable[[], float]:
        return self.service.clock

    @property
    def sleep(self) -> Callable[[float], Awaitable[None]]:
        return self.service.sleep


async def fetch_with_retry(
    url: str,
    attempt: Callable[[], Awaitable[Optional[EmbedData]]],
    context: RequestContext,
) -> Optional[EmbedData]:
    """
    Run one fetch attempt under the retry policy of the service.

    Raises:
        FetchError: Wrapping the last transport failure once retries are
            exhausted
    """
    try:
        return await execute_with_retry(attempt, context.config, sleep=context.sleep)
    except httpx.HTTPError as e:
        raise FetchError(url, e) from e


class FetchMemo:
    """
    Single-flight memo for one resolution object.

    Holds at most one task. Concurrent callers await the same task; a
    completed task is replayed, including its failure, until the error cache
    age has elapsed since the failure was recorded.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._last_faulted: Optional[float] = None

    @property
    def last_faulted(self) -> Optional[float]:
        return self._last_faulted

    def _is_faulted(self) -> bool:
        task = self._task
        if task is None or not task.done():
            return False
        return task.cancelled() or task.exception() is not None

    async def _run(
        self,
        factory: Callable[[], Awaitable[Optional[EmbedData]]],
        clock: Callable[[], float],
    ) -> Optional[EmbedData]:
        try:
            return await factory()
        except Exception:
            self._last_faulted = clock()
            raise

    def current(
        self,
        factory: Callable[[], Awaitable[Optional[EmbedData]]],
        clock: Callable[[], float],
        error_age: float,
    ) -> asyncio.Task:
        """Return the memoized task, starting a new one when none is usable.

        No await happens between the check and the assignment, so callers on
        the same event loop cannot start two tasks.
        """
        if self._is_faulted():
            task = self._task
            if task.cancelled():
                self._task = None
            elif (
                self._last_faulted is not None
                and clock() - self._last_faulted > error_age
            ):
                logger.info(
                    f"Error cache age ({error_age}s) elapsed, refetching after: "
                    f"{task.exception()!r}"
                )
                self._task = None

        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(factory, clock)
            )
        return self._task

    async def run(
        self,
        factory: Callable[[], Awaitable[Optional[EmbedData]]],
        clock: Callable[[], float],
        error_age: float,
    ) -> Optional[EmbedData]:
        task = self.current(factory, clock, error_age)
        # A caller giving up must not cancel the fetch other callers share
        return await asyncio.shield(task)


class Metadata(ABC):
    """Resolution object capability: fetch embed data for one resource."""

    # Serialization tag used by persistent caches
    kind: ClassVar[str]

    url: str
    data: Optional[EmbedData]

    @abstractmethod
    async def fetch(self, context: RequestContext) -> Optional[EmbedData]:
        """
        Return embed data fetched from the remote resource or held by this
        instance.

        Raises:
            Exception: The failure of the last fetch, replayed while it is
                younger than the error cache age
        """
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Serialize the persistent part of this object (no in-flight state)."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r})"
