# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Resolution through a provider's oEmbed endpoint (https://oembed.com/)."""

import logging
from typing import Any, Dict, Optional

import httpx

from linkembed.schemas.embed import (
    EmbedData,
    EmbedDataType,
    ImageInfo,
    Media,
    MediaType,
)
from linkembed.services.http.redirect import follow_redirects
from linkembed.services.metadata.base import (
    FetchMemo,
    Metadata,
    RequestContext,
    fetch_with_retry,
)
from linkembed.services.metadata.utils import cache_age_from_headers, parse_int

logger = logging.getLogger(__name__)

OEMBED_TYPE_MAP = {
    "photo": EmbedDataType.SINGLE_PHOTO,
    "video": EmbedDataType.SINGLE_VIDEO,
    "rich": EmbedDataType.RICH,
    "link": EmbedDataType.LINK,
}


def _text(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def embed_data_from_oembed(
    payload: Dict[str, Any], url: str, provider_name: Optional[str] = None
) -> EmbedData:
    """
    Map an oEmbed JSON response onto EmbedData.

    Args:
        payload: Decoded oEmbed response
        url: The resource URL the response describes
        provider_name: Fallback when the response has no provider_name

    Returns:
        EmbedData; photo responses carry the photo as their single media
    """
    data = EmbedData(
        type=OEMBED_TYPE_MAP.get(
            str(payload.get("type", "")).lower(), EmbedDataType.UNKNOWN
        ),
        url=url,
        title=_text(payload, "title"),
        provider_name=_text(payload, "provider_name") or provider_name,
        author_name=_text(payload, "author_name"),
        author_url=_text(payload, "author_url"),
        cache_age=parse_int(payload.get("cache_age")),
    )

    thumbnail_url = _text(payload, "thumbnail_url")
    if thumbnail_url:
        data.metadata_image = Media(
            type=MediaType.IMAGE,
            thumbnail=ImageInfo(
                url=thumbnail_url,
                width=parse_int(payload.get("thumbnail_width")),
                height=parse_int(payload.get("thumbnail_height")),
            ),
        )

    photo_url = _text(payload, "url")
    if data.type == EmbedDataType.SINGLE_PHOTO and photo_url:
        data.medias.append(
            Media(
                type=MediaType.IMAGE,
                raw_url=photo_url,
                thumbnail=ImageInfo(
                    url=photo_url,
                    width=parse_int(payload.get("width")),
                    height=parse_int(payload.get("height")),
                ),
                location=url,
            )
        )

    return data


class OEmbedMetadata(Metadata):
    """Resolution object that asks an oEmbed endpoint about a URL."""

    kind = "oembed"

    def __init__(
        self,
        url: str,
        endpoint: str,
        provider_name: Optional[str] = None,
        data: Optional[EmbedData] = None,
    ):
        self.url = url
        self.endpoint = endpoint
        self.provider_name = provider_name
        self.data = data
        self._memo = FetchMemo()

    def build_endpoint_url(self, context: RequestContext) -> str:
        params = {"url": self.url, "format": "json"}
        if context.request.max_width:
            params["maxwidth"] = str(context.request.max_width)
        if context.request.max_height:
            params["maxheight"] = str(context.request.max_height)
        return str(httpx.URL(self.endpoint).copy_merge_params(params))

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
        endpoint_url = self.build_endpoint_url(context)
        result = await follow_redirects(
            context.http_client, endpoint_url, context.config.max_redirects
        )
        response = result.response
        try:
            response.raise_for_status()
            await response.aread()
        finally:
            await response.aclose()

        payload = response.json()
        if not isinstance(payload, dict):
            logger.warning(f"Unexpected oEmbed payload from {endpoint_url}")
            return None

        data = embed_data_from_oembed(payload, self.url, self.provider_name)
        if data.cache_age is None:
            data.cache_age = cache_age_from_headers(response.headers)

        self.data = data
        return self.data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "url": self.url,
            "endpoint": self.endpoint,
            "provider_name": self.provider_name,
            "data": self.data.model_dump(mode="json") if self.data else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "OEmbedMetadata":
        data = payload.get("data")
        return cls(
            url=payload["url"],
            endpoint=payload["endpoint"],
            provider_name=payload.get("provider_name"),
            data=EmbedData.model_validate(data) if data else None,
        )
