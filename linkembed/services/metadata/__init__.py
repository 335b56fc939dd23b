# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Resolution objects package.

Exports the Metadata capability, its variants and the helpers persistent
caches use to serialize them.
"""

from typing import Any, Dict

from linkembed.services.metadata.base import FetchMemo, Metadata, RequestContext
from linkembed.services.metadata.oembed import OEmbedMetadata
from linkembed.services.metadata.unknown import UnknownMetadata

__all__ = [
    "FetchMemo",
    "Metadata",
    "RequestContext",
    "UnknownMetadata",
    "OEmbedMetadata",
    "METADATA_KIND_MAP",
    "metadata_from_dict",
]

# Serialization tag to class mapping
METADATA_KIND_MAP = {
    UnknownMetadata.kind: UnknownMetadata,
    OEmbedMetadata.kind: OEmbedMetadata,
}


def metadata_from_dict(payload: Dict[str, Any]) -> Metadata:
    """
    Rebuild a Metadata from :meth:`Metadata.to_dict` output.

    Raises:
        ValueError: If the kind tag is unknown
    """
    kind = payload.get("kind")
    metadata_class = METADATA_KIND_MAP.get(kind)
    if metadata_class is None:
        raise ValueError(f"Unknown metadata kind: {kind!r}")
    return metadata_class.from_dict(payload)
