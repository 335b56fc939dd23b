# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Metadata providers package.

This module provides the factory for the default provider list and exports
all provider classes.
"""

from typing import List

from linkembed.core.config import Settings
from linkembed.services.providers.base import MetadataProvider
from linkembed.services.providers.oembed import OEmbedProvider, load_oembed_providers
from linkembed.services.providers.registry import ProviderCollection
from linkembed.services.providers.unknown import UnknownMetadataProvider

__all__ = [
    "MetadataProvider",
    "OEmbedProvider",
    "UnknownMetadataProvider",
    "ProviderCollection",
    "load_oembed_providers",
    "build_default_providers",
]


def build_default_providers(source: Settings) -> List[MetadataProvider]:
    """
    Build the configured providers in selection order.

    oEmbed providers come first; the catch-all scraper is always last so any
    http(s) URL resolves to at least its Open Graph data.

    Args:
        source: Application settings

    Returns:
        Provider list, possibly including disabled providers
    """
    providers: List[MetadataProvider] = list(
        load_oembed_providers(source.OEMBED_PROVIDERS)
    )
    providers.append(UnknownMetadataProvider(enabled=source.UNKNOWN_PROVIDER_ENABLED))
    return providers
