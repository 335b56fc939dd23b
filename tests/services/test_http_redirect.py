# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for manual redirect following."""

import httpx
import pytest
from conftest import (
    ChunkedBody,
    RoutingHandler,
    html_response,
    redirect_response,
    status_response,
    streamed_response,
)

from linkembed.core.config import ServiceConfig
from linkembed.services.http.client import build_user_agent, create_http_client
from linkembed.services.http.redirect import follow_redirects, read_limited


def _client(handler: RoutingHandler) -> httpx.AsyncClient:
    return create_http_client(ServiceConfig(), httpx.MockTransport(handler))


class TestFollowRedirects:
    """Tests for follow_redirects."""

    @pytest.mark.asyncio
    async def test_no_redirect(self):
        """Test that a direct answer has no moved-to URL."""
        handler = RoutingHandler({"https://a.example/": html_response("<html></html>")})
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/")

        assert result.response.status_code == 200
        assert result.moved_to_url is None

    @pytest.mark.asyncio
    async def test_relative_location_chain(self):
        """Test that relative locations resolve against the current URL."""
        handler = RoutingHandler(
            {
                "https://a.example/start": redirect_response("/middle", 302),
                "https://a.example/middle": redirect_response(
                    "https://b.example/end", 308
                ),
                "https://b.example/end": html_response("<html></html>"),
            }
        )
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/start")

        assert result.moved_to_url == "https://b.example/end"
        assert result.response.status_code == 200
        assert handler.total_calls == 3

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        """Test that a loop stops after max_redirects hops."""
        handler = RoutingHandler(
            {
                "https://a.example/x": redirect_response("https://a.example/y"),
                "https://a.example/y": redirect_response("https://a.example/x"),
            }
        )
        async with _client(handler) as client:
            with pytest.raises(httpx.TooManyRedirects):
                await follow_redirects(client, "https://a.example/x", max_redirects=3)

        assert handler.total_calls == 4

    @pytest.mark.asyncio
    async def test_redirect_status_without_location(self):
        """Test that a 3xx without Location is returned as is."""
        handler = RoutingHandler({"https://a.example/": status_response(301)})
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/")

        assert result.response.status_code == 301
        assert result.moved_to_url is None

    @pytest.mark.asyncio
    async def test_final_body_is_not_downloaded(self):
        """Test that only headers of the final response are received."""
        body = ChunkedBody([b"\x00" * 65536] * 1000)
        handler = RoutingHandler(
            {"https://a.example/clip.mp4": streamed_response("video/mp4", body)}
        )
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/clip.mp4")
            await result.response.aclose()

        assert result.response.headers["content-type"] == "video/mp4"
        assert body.served == 0

    @pytest.mark.asyncio
    async def test_hop_responses_are_closed(self):
        """Test that every redirect hop is closed and the last one is left open."""
        sent = []

        def hop(location):
            def _respond(request):
                response = httpx.Response(
                    302,
                    headers={"location": location},
                    content=ChunkedBody([b"moved"]),
                )
                sent.append(response)
                return response

            return _respond

        handler = RoutingHandler(
            {
                "https://a.example/1": hop("/2"),
                "https://a.example/2": hop("/3"),
                "https://a.example/3": streamed_response(
                    "text/html", ChunkedBody([b"<html></html>"]), sent
                ),
            }
        )
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/1")

            assert [response.is_closed for response in sent] == [True, True, False]
            assert result.response is sent[-1]
            await result.response.aclose()


class TestReadLimited:
    """Tests for reading a capped prefix of a streaming body."""

    @pytest.mark.asyncio
    async def test_stops_at_limit(self):
        """Test that reading stops once the limit is reached."""
        body = ChunkedBody([b"a" * 512] * 100)
        handler = RoutingHandler(
            {"https://a.example/": streamed_response("text/html", body)}
        )
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/")
            content = await read_limited(result.response, 1200)
            await result.response.aclose()

        assert content == b"a" * 1200
        assert body.served == 3

    @pytest.mark.asyncio
    async def test_short_body_read_whole(self):
        """Test that a body under the limit is returned unchanged."""
        body = ChunkedBody([b"<html>", b"</html>"])
        handler = RoutingHandler(
            {"https://a.example/": streamed_response("text/html", body)}
        )
        async with _client(handler) as client:
            result = await follow_redirects(client, "https://a.example/")
            content = await read_limited(result.response, 1024)
            await result.response.aclose()

        assert content == b"<html></html>"


class TestUserAgent:
    """Tests for the fixed user agent."""

    def test_without_url(self):
        """Test the default comment."""
        agent = build_user_agent()

        assert agent.startswith("Mozilla/5.0 (compatible; LinkEmbed/")
        assert "+" not in agent

    def test_with_url(self):
        """Test that the contact URL is appended."""
        assert build_user_agent("https://bot.example").endswith(
            "; +https://bot.example)"
        )
