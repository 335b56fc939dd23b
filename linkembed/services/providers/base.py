# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Base class for metadata providers.

A provider decides whether it can handle a request and, if so, hands out a
fresh resolution object. It must not touch the network: all remote work
happens later in ``Metadata.fetch``.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from linkembed.schemas.embed import ConsumerRequest
from linkembed.services.metadata import Metadata


class MetadataProvider(ABC):
    """Abstract base class for metadata providers."""

    # Hosts this provider serves; empty means any host (catch-all)
    hosts: Sequence[str] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for display."""
        pass

    @property
    def is_enabled(self) -> bool:
        """Disabled providers are not registered by the service."""
        return True

    @property
    def is_catch_all(self) -> bool:
        return not self.hosts

    def supports_host(self, host: str) -> bool:
        """
        Check whether this provider may handle URLs on ``host``.

        A configured host matches itself and its subdomains, so "youtube.com"
        also covers "www.youtube.com".
        """
        if self.is_catch_all:
            return True
        host = (host or "").lower().rstrip(".")
        for known_host in self.hosts:
            known_host = known_host.lower()
            if host == known_host or host.endswith("." + known_host):
                return True
        return False

    @abstractmethod
    def try_create(self, request: ConsumerRequest) -> Optional[Metadata]:
        """
        Create a resolution object for the request.

        Returns:
            A new Metadata, or None if this provider does not handle the URL
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
