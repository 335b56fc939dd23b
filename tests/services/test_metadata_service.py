# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for MetadataService orchestration."""

import asyncio
import json
from typing import List, Optional

import httpx
import pytest
from conftest import (
    ChunkedBody,
    RoutingHandler,
    html_response,
    media_response,
    redirect_response,
    status_response,
    streamed_response,
)

from linkembed.core.cache import InMemoryMetadataCache, MetadataCache
from linkembed.core.config import Settings
from linkembed.core.exceptions import FetchError
from linkembed.schemas.embed import (
    ConsumerRequest,
    EmbedDataType,
    MediaType,
    RestrictionPolicy,
)
from linkembed.services.metadata import Metadata, RequestContext, UnknownMetadata
from linkembed.services.metadata_service import MetadataService
from linkembed.services.providers import OEmbedProvider, UnknownMetadataProvider


async def _drain(service: MetadataService) -> None:
    """Wait for fire-and-forget cache writes"""
    while service._background_tasks:
        await asyncio.gather(*list(service._background_tasks))


class RecordingCache(MetadataCache):
    """Cache double recording what was written"""

    def __init__(self, snapshot: bool = False, fail_reads: bool = False):
        self.snapshot = snapshot
        self.fail_reads = fail_reads
        self.writes: List[dict] = []
        self.stored: Optional[Metadata] = None

    async def read(self, request):
        if self.fail_reads:
            raise ConnectionError("cache down")
        return self.stored

    async def write(self, request, metadata):
        self.writes.append(metadata.to_dict())
        self.stored = metadata


class TestProviderSelection:
    """Provider selection and the not-found path."""

    @pytest.mark.asyncio
    async def test_no_provider_returns_not_found(self, make_service):
        """Test that a service without providers answers Not Found offline."""
        handler = RoutingHandler()
        service = make_service(handler, providers=[])

        result = await service.get_data(ConsumerRequest(url="https://example.com/"))

        assert result.succeeded is False
        assert result.error_message == "Not Found"
        assert result.data is None
        assert handler.total_calls == 0

    @pytest.mark.asyncio
    async def test_disabled_provider_is_skipped(self, make_service, caplog):
        """Test that disabled providers are not registered."""
        handler = RoutingHandler()
        service = make_service(
            handler, providers=[UnknownMetadataProvider(enabled=False)]
        )

        assert len(service.providers) == 0
        assert "Ignore disabled metadata provider" in caplog.text

        result = await service.get_data(ConsumerRequest(url="https://example.com/"))
        assert result.error_message == "Not Found"

    @pytest.mark.asyncio
    async def test_unsupported_scheme_returns_not_found(self, make_service):
        """Test that the catch-all declines non-http URLs."""
        handler = RoutingHandler()
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url="ftp://example.com/a"))

        assert result.succeeded is False
        assert handler.total_calls == 0

    @pytest.mark.asyncio
    async def test_unparsable_url_returns_not_found(self, make_service):
        """Test that a URL urllib cannot split is answered, not raised."""
        handler = RoutingHandler()
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url="http://[::1/page"))

        assert result.succeeded is False
        assert result.error_message == "Not Found"
        assert handler.total_calls == 0

    @pytest.mark.asyncio
    async def test_specific_provider_wins_over_catch_all(self, make_service):
        """Test that registration order decides between matching providers."""
        handler = RoutingHandler(
            {
                "https://video.example/oembed": lambda request: httpx.Response(
                    200, json={"type": "video", "title": "Clip"}
                )
            }
        )
        service = make_service(
            handler,
            providers=[
                OEmbedProvider(
                    name="VideoSite",
                    endpoint="https://video.example/oembed",
                    hosts=["video.example"],
                ),
                UnknownMetadataProvider(),
            ],
        )

        result = await service.get_data(
            ConsumerRequest(url="https://video.example/watch/1")
        )

        assert result.succeeded is True
        assert result.data.type == EmbedDataType.SINGLE_VIDEO
        assert result.data.provider_name == "VideoSite"
        assert handler.calls["https://video.example/watch/1"] == 0


class TestDirectMedia:
    """Responses that are media themselves."""

    @pytest.mark.asyncio
    async def test_image_becomes_single_photo(self, make_service):
        """Test the direct image fallback with title from the file name."""
        url = "https://x.example/cat.jpg"
        handler = RoutingHandler({url: media_response("image/jpeg")})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        data = result.data
        assert result.succeeded is True
        assert data.type == EmbedDataType.SINGLE_PHOTO
        assert data.title == "cat"
        assert len(data.medias) == 1
        assert data.medias[0].type == MediaType.IMAGE
        assert data.medias[0].raw_url == url
        assert data.metadata_image.thumbnail.url == url

    @pytest.mark.asyncio
    async def test_video_has_no_metadata_image(self, make_service):
        """Test that only images get a page image pointing at themselves."""
        url = "https://x.example/media/clip.mp4"
        handler = RoutingHandler({url: media_response("video/mp4")})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.type == EmbedDataType.SINGLE_VIDEO
        assert result.data.title == "clip"
        assert result.data.metadata_image is None
        assert result.data.medias[0].type == MediaType.VIDEO

    @pytest.mark.asyncio
    async def test_other_media_type_is_not_found(self, make_service):
        """Test that non-embeddable responses produce no data."""
        url = "https://x.example/report.pdf"
        handler = RoutingHandler({url: media_response("application/pdf")})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.succeeded is False
        assert result.error_message == "Not Found"

    @pytest.mark.asyncio
    async def test_cache_age_from_headers(self, make_service):
        """Test that Cache-Control max-age fills the cache age."""
        url = "https://x.example/cat.png"
        handler = RoutingHandler(
            {url: media_response("image/png", {"cache-control": "public, max-age=600"})}
        )
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.cache_age == 600

    @pytest.mark.asyncio
    async def test_media_body_is_not_read(self, make_service):
        """Test that a large video is resolved from its headers alone."""
        url = "https://x.example/movie.mp4"
        body = ChunkedBody([b"\x00" * 65536] * 1000)
        sent = []
        handler = RoutingHandler({url: streamed_response("video/mp4", body, sent)})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.type == EmbedDataType.SINGLE_VIDEO
        assert len(result.data.medias) == 1
        assert body.served == 0
        assert sent[0].is_closed


class TestHtmlResolution:
    """HTML pages through the whole pipeline."""

    @pytest.mark.asyncio
    async def test_og_ttl_wins_over_headers(self, make_service):
        """Test that the document-declared TTL has priority."""
        url = "https://news.example/story"
        page = '<html><head><meta property="og:ttl" content="60"></head></html>'
        handler = RoutingHandler(
            {url: html_response(page, headers={"cache-control": "max-age=10"})}
        )
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.cache_age == 60
        assert result.data.title == "story"

    @pytest.mark.asyncio
    async def test_restricted_page(self, make_service):
        """Test that the restriction reaches the result and its images."""
        url = "https://adult.example/page"
        page = """
        <html><head>
        <meta property="og:restrictions:age" content="21+">
        <meta property="og:image" content="https://adult.example/a.jpg">
        <meta property="og:image" content="https://adult.example/b.jpg">
        </head></html>
        """
        handler = RoutingHandler({url: html_response(page)})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.restriction_policy == RestrictionPolicy.RESTRICTED
        assert all(
            media.restriction_policy == RestrictionPolicy.RESTRICTED
            for media in result.data.medias
        )

    @pytest.mark.asyncio
    async def test_http_error_flattens_to_not_found(self, make_service):
        """Test that an exhausted fetch becomes a failed result, not an exception."""
        url = "https://down.example/"
        handler = RoutingHandler({url: status_response(502)})
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.succeeded is False
        assert result.error_message == "Not Found"

    @pytest.mark.asyncio
    async def test_html_read_is_capped(self, make_service):
        """Test that only the head of a huge page is read and parsed."""
        url = "https://long.example/thread"
        head = b'<html><head><meta property="og:title" content="Thread"></head><body>'
        body = ChunkedBody([head] + [b"<p>reply</p>" * 40] * 500)
        sent = []
        handler = RoutingHandler({url: streamed_response("text/html", body, sent)})
        service = make_service(handler, max_html_bytes=2048)

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.data.title == "Thread"
        assert body.served <= 6
        assert sent[0].is_closed


class TestRedirectRestart:
    """Moved resources are resolved as new top-level requests."""

    @pytest.mark.asyncio
    async def test_moved_resource_resolves_target(self, make_service):
        """Test that the moved-to URL's data is returned for the redirecting URL."""
        short = "https://short.example/a"
        target = "https://media.example/cat.jpg"
        handler = RoutingHandler(
            {
                short: redirect_response(target),
                target: media_response("image/jpeg"),
            }
        )
        service = make_service(handler)

        result = await service.get_data(ConsumerRequest(url=short))

        assert result.succeeded is True
        assert result.data.url == target
        assert result.data.title == "cat"
        assert handler.calls[short] == 1

    @pytest.mark.asyncio
    async def test_restart_reruns_provider_selection(self, make_service):
        """Test that a redirect onto another host can pick a specific provider."""
        short = "https://short.example/v"
        target = "https://video.example/watch/1"
        handler = RoutingHandler(
            {
                short: redirect_response(target, status_code=302),
                target: html_response("<html><title>Watch</title></html>"),
                "https://video.example/oembed": lambda request: httpx.Response(
                    200,
                    json={
                        "type": "video",
                        "title": "Clip",
                        "author_name": "Ann",
                        "url_seen": request.url.params.get("url"),
                    },
                ),
            }
        )
        service = make_service(
            handler,
            providers=[
                OEmbedProvider(
                    name="VideoSite",
                    endpoint="https://video.example/oembed",
                    hosts=["video.example"],
                ),
                UnknownMetadataProvider(),
            ],
        )

        result = await service.get_data(ConsumerRequest(url=short))

        assert result.data.type == EmbedDataType.SINGLE_VIDEO
        assert result.data.title == "Clip"
        assert result.data.author_name == "Ann"
        assert result.data.url == target

    @pytest.mark.asyncio
    async def test_redirecting_entry_keeps_moved_data(self, make_service):
        """Test that the redirecting URL is answered from its cache entry later."""
        short = "https://short.example/a"
        target = "https://media.example/cat.jpg"
        handler = RoutingHandler(
            {
                short: redirect_response(target),
                target: media_response("image/jpeg"),
            }
        )
        cache = InMemoryMetadataCache()
        service = make_service(handler, cache=cache)

        await service.get_data(ConsumerRequest(url=short))
        await _drain(service)
        calls_before = handler.total_calls

        cached = await cache.read(ConsumerRequest(url=short))
        result = await service.get_data(ConsumerRequest(url=short))

        assert isinstance(cached, UnknownMetadata)
        assert cached.moved_to_url == target
        assert result.data.title == "cat"
        assert handler.total_calls == calls_before

    @pytest.mark.asyncio
    async def test_restart_wait_is_bounded(self, make_service, mocker):
        """Test that a moved-to resolution that never finishes fails the fetch."""
        short = "https://short.example/a"
        target = "https://media.example/cat.jpg"
        handler = RoutingHandler({short: redirect_response(target)})
        service = make_service(handler, restart_timeout=0.05)
        never = asyncio.Event()

        async def stuck(request):
            await never.wait()

        get_data = mocker.patch.object(service, "get_data", side_effect=stuck)
        metadata = UnknownMetadata(url=short)
        context = RequestContext(service=service, request=ConsumerRequest(url=short))

        with pytest.raises(FetchError) as exc_info:
            await metadata.fetch(context)

        assert exc_info.value.url == target
        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)
        get_data.assert_called_once_with(ConsumerRequest(url=target))
        await service.aclose()


class TestCaching:
    """Cache interaction of the orchestrator."""

    @pytest.mark.asyncio
    async def test_repeated_requests_are_idempotent(self, make_service):
        """Test that a cached success is returned again without network work."""
        url = "https://example.com/post"
        page = '<html><head><meta property="og:title" content="Post"></head></html>'
        handler = RoutingHandler({url: html_response(page)})
        service = make_service(handler, cache=InMemoryMetadataCache())

        first = await service.get_data(ConsumerRequest(url=url))
        await _drain(service)
        second = await service.get_data(ConsumerRequest(url=url, max_width=300))

        assert first == second
        assert handler.calls[url] == 1

    @pytest.mark.asyncio
    async def test_cache_read_failure_is_a_miss(self, make_service):
        """Test that a broken cache does not break resolution."""
        url = "https://x.example/cat.jpg"
        handler = RoutingHandler({url: media_response("image/jpeg")})
        service = make_service(handler, cache=RecordingCache(fail_reads=True))

        result = await service.get_data(ConsumerRequest(url=url))

        assert result.succeeded is True

    @pytest.mark.asyncio
    async def test_snapshot_cache_rewritten_after_fetch(self, make_service):
        """Test that serialized caches receive the fetched data as well."""
        url = "https://x.example/cat.jpg"
        handler = RoutingHandler({url: media_response("image/jpeg")})
        cache = RecordingCache(snapshot=True)
        service = make_service(handler, cache=cache)

        await service.get_data(ConsumerRequest(url=url))
        await _drain(service)

        assert len(cache.writes) == 2
        assert cache.writes[-1]["data"]["type"] == "SinglePhoto"

    @pytest.mark.asyncio
    async def test_live_cache_written_once(self, make_service):
        """Test that live-object caches are written once per selection."""
        url = "https://x.example/cat.jpg"
        handler = RoutingHandler({url: media_response("image/jpeg")})
        cache = RecordingCache()
        service = make_service(handler, cache=cache)

        await service.get_data(ConsumerRequest(url=url))
        await _drain(service)

        assert len(cache.writes) == 1


class TestLifecycle:
    """Service construction and shutdown."""

    @pytest.mark.asyncio
    async def test_http_client_is_shared_and_closed(self, make_service):
        """Test that one client is reused and released by aclose()."""
        service = make_service(RoutingHandler())

        client = service.http_client
        assert service.http_client is client
        assert client.follow_redirects is False
        assert "LinkEmbed/" in client.headers["user-agent"]

        await service.aclose()
        assert client.is_closed

    def test_from_settings(self):
        """Test that settings select providers, cache and config."""
        source = Settings(
            OEMBED_PROVIDERS=json.dumps(
                [
                    {
                        "name": "VideoSite",
                        "endpoint": "https://video.example/oembed",
                        "hosts": ["video.example"],
                    }
                ]
            ),
            METADATA_CACHE_BACKEND="none",
            REQUEST_RETRY_COUNT=2,
        )

        service = MetadataService.from_settings(source)

        assert [provider.name for provider in service.providers] == [
            "VideoSite",
            "Unknown",
        ]
        assert service._cache is None
        assert service.config.request_retry_count == 2
