# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Scrape-based resolution for URLs no specific provider claims.

The page is fetched with manual redirects. HTML responses go through the
Open Graph normalizer; image, video and audio responses become a single
media record pointing at the resource itself.
"""

import asyncio
import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional, Tuple

from linkembed.core.exceptions import FetchError
from linkembed.schemas.embed import (
    ConsumerRequest,
    EmbedData,
    EmbedDataType,
    ImageInfo,
    Media,
    MediaType,
)
from linkembed.services.http.redirect import follow_redirects, read_limited
from linkembed.services.metadata.base import (
    FetchMemo,
    Metadata,
    RequestContext,
    fetch_with_retry,
)
from linkembed.services.metadata.html import decode_html, load_html
from linkembed.services.metadata.utils import (
    cache_age_from_headers,
    media_type_of,
    title_from_url,
)

logger = logging.getLogger(__name__)

_DIRECT_MEDIA_TYPES = {
    "image": (EmbedDataType.SINGLE_PHOTO, MediaType.IMAGE),
    "video": (EmbedDataType.SINGLE_VIDEO, MediaType.VIDEO),
    "audio": (EmbedDataType.SINGLE_AUDIO, MediaType.AUDIO),
}

# URLs whose resolution is waiting on a moved-to restart in this call chain
_resolving_chain: ContextVar[Tuple[str, ...]] = ContextVar(
    "linkembed_resolving_chain", default=()
)


def build_direct_media_data(media_type: str, url: str) -> Optional[EmbedData]:
    """
    Build EmbedData for a response that is itself an image, video or audio.

    Args:
        media_type: Media type of the response, e.g. "image/jpeg"
        url: Resolved URL of the resource

    Returns:
        EmbedData with one media entry, None for other media types
    """
    category = media_type.split("/", 1)[0]
    if category not in _DIRECT_MEDIA_TYPES or "/" not in media_type:
        return None

    data_type, item_type = _DIRECT_MEDIA_TYPES[category]
    data = EmbedData(
        type=data_type,
        url=url,
        medias=[Media(type=item_type, raw_url=url)],
    )
    if item_type == MediaType.IMAGE:
        data.metadata_image = Media(
            type=MediaType.IMAGE,
            thumbnail=ImageInfo(url=url),
        )
    return data


class UnknownMetadata(Metadata):
    """Resolution object backed by the page itself (Open Graph or raw media)."""

    kind = "unknown"

    def __init__(
        self,
        url: str,
        moved_to_url: Optional[str] = None,
        data: Optional[EmbedData] = None,
    ):
        self.url = url
        self.moved_to_url = moved_to_url
        self.data = data
        self._memo = FetchMemo()

    async def fetch(self, context: RequestContext) -> Optional[EmbedData]:
        if self.data is not None:
            return self.data
        return await self._memo.run(
            lambda: fetch_with_retry(
                self.url, lambda: self._fetch_once(context), context
            ),
            clock=context.clock,
            error_age=context.config.error_response_cache_age,
        )

    async def _fetch_once(self, context: RequestContext) -> Optional[EmbedData]:
        """One attempt without retries; raises httpx errors on failure."""
        result = await follow_redirects(
            context.http_client, self.url, context.config.max_redirects
        )
        response = result.response
        body: Optional[bytes] = None
        try:
            self.moved_to_url = result.moved_to_url or self.moved_to_url
            response.raise_for_status()
            moved = bool(self.moved_to_url) and self.moved_to_url != self.url
            media_type = media_type_of(response.headers.get("content-type"))
            # Only HTML is parsed; media bodies stay on the wire
            if not moved and media_type == "text/html":
                body = await read_limited(response, context.config.max_html_bytes)
        finally:
            await response.aclose()

        if moved:
            self.data = await self._resolve_moved(context)
            return self.data

        data: Optional[EmbedData] = None
        if body is not None:
            document = decode_html(body, response.charset_encoding)
            data = load_html(document, self.url)
        else:
            data = build_direct_media_data(media_type, self.url)

        if data is None:
            logger.info(f"No embeddable data in {media_type or 'untyped'} response: {self.url}")
            return None

        if data.title is None:
            data.title = title_from_url(self.url)
        if data.cache_age is None:
            data.cache_age = cache_age_from_headers(response.headers)

        self.data = data
        return self.data

    async def _resolve_moved(self, context: RequestContext) -> Optional[EmbedData]:
        """Resolve the moved-to URL as a fresh top-level request."""
        # The new location may belong to a more specific provider
        logger.info(f"Resolving moved resource: {self.url} -> {self.moved_to_url}")
        moved_request = ConsumerRequest(
            url=self.moved_to_url,
            max_width=context.request.max_width,
            max_height=context.request.max_height,
            format=context.request.format,
        )
        chain = _resolving_chain.get() + (self.url,)
        if self.moved_to_url in chain:
            raise FetchError(
                self.moved_to_url, RuntimeError("redirect loop across restarts")
            )
        token = _resolving_chain.set(chain)
        try:
            # The chain only covers this call stack. Two unrelated requests
            # for A and B that redirect into each other meet through the
            # shared cache and would wait on each other's single-flight task,
            # so the wait is bounded.
            moved_result = await asyncio.wait_for(
                context.service.get_data(moved_request),
                timeout=context.config.restart_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Gave up waiting for moved resource {self.moved_to_url} "
                f"after {context.config.restart_timeout}s"
            )
            raise FetchError(self.moved_to_url, e) from e
        finally:
            _resolving_chain.reset(token)
        return moved_result.data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "url": self.url,
            "moved_to_url": self.moved_to_url,
            "data": self.data.model_dump(mode="json") if self.data else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UnknownMetadata":
        data = payload.get("data")
        return cls(
            url=payload["url"],
            moved_to_url=payload.get("moved_to_url"),
            data=EmbedData.model_validate(data) if data else None,
        )
