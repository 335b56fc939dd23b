# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Outbound HTTP client factory.

The resolver never lets httpx follow redirects on its own: every hop is
followed by :mod:`linkembed.services.http.redirect` so the final URL can be
recorded and handed back to provider selection.
"""

import logging
from typing import Optional

import httpx

from linkembed import __version__
from linkembed.core.config import ServiceConfig

logger = logging.getLogger(__name__)

PRODUCT_NAME = "LinkEmbed"


def build_user_agent(url: str = "") -> str:
    """Build the fixed product/version/comment User-Agent string.

    Args:
        url: Optional contact URL appended to the comment as "+<url>"

    Returns:
        e.g. "Mozilla/5.0 (compatible; LinkEmbed/0.1.0; +https://host/bot)"
    """
    comment = f"compatible; {PRODUCT_NAME}/{__version__}"
    if url:
        comment = f"{comment}; +{url}"
    return f"Mozilla/5.0 ({comment})"


def create_http_client(
    config: ServiceConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Create the long-lived client shared by all resolutions of a service.

    Args:
        config: Service configuration (timeout, user agent URL)
        transport: Optional transport override, used by tests

    Returns:
        httpx.AsyncClient with redirect following disabled
    """
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_request_timeout),
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
        ),
        follow_redirects=False,
        headers={
            "User-Agent": build_user_agent(config.user_agent_url),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
        transport=transport,
    )
    logger.info(
        f"Created shared HTTP client (timeout={config.http_request_timeout}s, "
        f"redirects=manual)"
    )
    return client
