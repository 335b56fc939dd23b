# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Canonical embed preview schemas.

Every provider, whether it scrapes Open Graph tags or calls a structured
endpoint, normalizes into these models before the result leaves the service.
"""

from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class EmbedDataType(str, Enum):
    """Coarse classification of a resolved resource"""

    UNKNOWN = "Unknown"
    SINGLE_PHOTO = "SinglePhoto"
    SINGLE_VIDEO = "SingleVideo"
    SINGLE_AUDIO = "SingleAudio"
    RICH = "Rich"
    LINK = "Link"


class MediaType(str, Enum):
    """Kind of an embeddable media item"""

    IMAGE = "Image"
    VIDEO = "Video"
    AUDIO = "Audio"


class RestrictionPolicy(str, Enum):
    """Content maturity classification"""

    UNKNOWN = "Unknown"
    RESTRICTED = "Restricted"


class ConsumerRequest(BaseModel):
    """Incoming resolution request.

    Only ``url`` identifies the resource; size and format are rendering hints
    and are ignored by equality, hashing and cache keys.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    max_width: Optional[int] = None
    max_height: Optional[int] = None
    format: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return self.url

    @property
    def host(self) -> str:
        """Lower-cased host name, empty for URLs that do not parse"""
        try:
            return (urlparse(self.url).hostname or "").lower()
        except ValueError:
            return ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConsumerRequest):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)


class ImageInfo(BaseModel):
    """Image reference with optional dimensions"""

    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class Media(BaseModel):
    """One embeddable item found on a page"""

    type: MediaType = MediaType.IMAGE
    raw_url: Optional[str] = None
    thumbnail: Optional[ImageInfo] = None
    location: Optional[str] = None
    restriction_policy: RestrictionPolicy = RestrictionPolicy.UNKNOWN


class EmbedData(BaseModel):
    """Normalized preview of a resource"""

    type: EmbedDataType = EmbedDataType.UNKNOWN
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    provider_name: Optional[str] = None
    author_name: Optional[str] = None
    author_url: Optional[str] = None
    cache_age: Optional[int] = Field(None, description="Cache lifetime in seconds")
    restriction_policy: RestrictionPolicy = RestrictionPolicy.UNKNOWN
    metadata_image: Optional[Media] = Field(
        None, description="Representative image of the page itself"
    )
    medias: List[Media] = Field(default_factory=list)


class EmbedDataResult(BaseModel):
    """Outcome of a resolution, success with data or failure with a message"""

    succeeded: bool
    error_message: Optional[str] = None
    data: Optional[EmbedData] = None

    @classmethod
    def success(cls, data: EmbedData) -> "EmbedDataResult":
        return cls(succeeded=True, data=data)

    @classmethod
    def failure(cls, error_message: str) -> "EmbedDataResult":
        return cls(succeeded=False, error_message=error_message)
