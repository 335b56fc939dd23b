# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Ordered provider registry with host filtering."""

from typing import Iterable, Iterator, List

from linkembed.services.providers.base import MetadataProvider


class ProviderCollection:
    """
    Providers in registration order.

    Selection is first-match, so specific providers must be added before the
    catch-all one.
    """

    def __init__(self, providers: Iterable[MetadataProvider] = ()):
        self._providers: List[MetadataProvider] = list(providers)

    def add(self, provider: MetadataProvider) -> None:
        self._providers.append(provider)

    def extend(self, providers: Iterable[MetadataProvider]) -> None:
        self._providers.extend(providers)

    def get_by_host(self, host: str) -> Iterator[MetadataProvider]:
        """Yield providers that accept ``host``, preserving order."""
        for provider in self._providers:
            if provider.supports_host(host):
                yield provider

    def __iter__(self) -> Iterator[MetadataProvider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)
