# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Generic provider for sites publishing an oEmbed endpoint."""

import fnmatch
import json
import logging
from typing import List, Optional, Sequence

from linkembed.schemas.embed import ConsumerRequest
from linkembed.services.metadata import OEmbedMetadata
from linkembed.services.providers.base import MetadataProvider

logger = logging.getLogger(__name__)


class OEmbedProvider(MetadataProvider):
    """
    Provider that delegates to an oEmbed endpoint.

    URL schemes use shell-style wildcards as in the oEmbed provider list,
    e.g. "https://*.youtube.com/watch*". Without schemes every URL on the
    configured hosts is accepted.
    """

    def __init__(
        self,
        name: str,
        endpoint: str,
        hosts: Sequence[str],
        schemes: Sequence[str] = (),
        enabled: bool = True,
    ):
        self._name = name
        self.endpoint = endpoint
        self.hosts = tuple(hosts)
        self.schemes = tuple(schemes)
        self._enabled = enabled

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def matches(self, url: str) -> bool:
        if not self.schemes:
            return True
        return any(fnmatch.fnmatchcase(url, scheme) for scheme in self.schemes)

    def try_create(self, request: ConsumerRequest) -> Optional[OEmbedMetadata]:
        if not self.matches(request.url):
            return None
        return OEmbedMetadata(
            url=request.url, endpoint=self.endpoint, provider_name=self.name
        )


def load_oembed_providers(config_json: str) -> List[OEmbedProvider]:
    """
    Build oEmbed providers from the OEMBED_PROVIDERS setting.

    Invalid JSON or entries missing ``name``/``endpoint``/``hosts`` are
    logged and skipped so a bad entry does not take the service down.

    Args:
        config_json: JSON list of provider objects

    Returns:
        Providers in configuration order
    """
    try:
        entries = json.loads(config_json or "[]")
    except json.JSONDecodeError as e:
        logger.error(f"Invalid OEMBED_PROVIDERS JSON: {e}")
        return []

    if not isinstance(entries, list):
        logger.error("OEMBED_PROVIDERS must be a JSON list")
        return []

    providers: List[OEmbedProvider] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping oEmbed provider entry: {entry!r}")
            continue
        name = entry.get("name")
        endpoint = entry.get("endpoint")
        hosts = entry.get("hosts")
        if not name or not endpoint or not hosts:
            logger.warning(f"Skipping incomplete oEmbed provider entry: {entry!r}")
            continue
        providers.append(
            OEmbedProvider(
                name=name,
                endpoint=endpoint,
                hosts=hosts,
                schemes=entry.get("schemes") or (),
                enabled=entry.get("enabled", True),
            )
        )
    return providers
