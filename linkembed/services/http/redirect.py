# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Manual redirect following that remembers where a resource moved to.

Responses are streamed: only headers are received until the caller decides
the body is worth reading, so a direct link to a large video costs one
round trip instead of a full download.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import httpx

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})


@dataclass
class RedirectResult:
    """Final response of a redirect chain.

    The response body is not read yet; callers must ``aclose()`` it.
    """

    response: httpx.Response
    # None when the first response was not a redirect
    moved_to_url: Optional[str] = None


async def follow_redirects(
    client: httpx.AsyncClient, url: str, max_redirects: int = 10
) -> RedirectResult:
    """
    GET a URL and follow Location headers by hand.

    Args:
        client: Client configured with follow_redirects=False
        url: URL to request
        max_redirects: Maximum number of Location hops

    Returns:
        RedirectResult with the last (streaming) response and the final URL
        if it moved

    Raises:
        httpx.TooManyRedirects: If the chain is longer than max_redirects
        httpx.HTTPError: On transport failures
    """
    current_url = url
    moved_to_url = None

    for _ in range(max_redirects + 1):
        request = client.build_request("GET", current_url)
        response = await client.send(request, stream=True)
        location = response.headers.get("location")
        if response.status_code not in REDIRECT_STATUS_CODES or not location:
            return RedirectResult(response=response, moved_to_url=moved_to_url)

        # Hop bodies are never needed
        await response.aclose()
        next_url = urljoin(current_url, location.strip())
        logger.debug(f"Redirect {response.status_code}: {current_url} -> {next_url}")
        current_url = next_url
        moved_to_url = next_url

    raise httpx.TooManyRedirects(
        f"Exceeded {max_redirects} redirects starting at {url}",
        request=response.request,
    )


async def read_limited(response: httpx.Response, max_bytes: int) -> bytes:
    """
    Read at most ``max_bytes`` of a streaming response body.

    Reading stops as soon as the limit is reached; the rest of the body is
    left on the wire and discarded when the response is closed.
    """
    chunks = []
    size = 0
    async for chunk in response.aiter_bytes():
        remaining = max_bytes - size
        chunks.append(chunk[:remaining])
        size += min(len(chunk), remaining)
        if size >= max_bytes:
            logger.debug(f"Truncated body of {response.url} at {max_bytes} bytes")
            break
    return b"".join(chunks)
