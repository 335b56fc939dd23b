# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Catch-all provider scraping Open Graph metadata from any http(s) URL."""

from typing import Optional
from urllib.parse import urlparse

from linkembed.schemas.embed import ConsumerRequest
from linkembed.services.metadata import UnknownMetadata
from linkembed.services.providers.base import MetadataProvider


class UnknownMetadataProvider(MetadataProvider):
    """Fallback provider matching every host."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled

    @property
    def name(self) -> str:
        return "Unknown"

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def try_create(self, request: ConsumerRequest) -> Optional[UnknownMetadata]:
        try:
            parsed = urlparse(request.url)
            hostname = parsed.hostname
        except ValueError:
            # e.g. an unbalanced IPv6 bracket
            return None
        if parsed.scheme not in ("http", "https") or not hostname:
            return None
        return UnknownMetadata(url=request.url)
