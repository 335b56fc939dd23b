# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
HTML normalizer: decodes a page and maps its Open Graph metadata
(https://ogp.me/) onto the canonical EmbedData model, falling back to plain
HTML <title> and <meta name="description"> when Open Graph is absent.
"""

import codecs
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import chardet
from bs4 import BeautifulSoup

from linkembed.schemas.embed import (
    EmbedData,
    ImageInfo,
    Media,
    MediaType,
    RestrictionPolicy,
)
from linkembed.services.metadata.utils import is_absolute_url, parse_int

logger = logging.getLogger(__name__)

# Statistical detection below this confidence is ignored
MIN_DETECTION_CONFIDENCE = 0.8
# Bytes inspected by the statistical detector
DETECTION_SAMPLE_SIZE = 64 * 1024

OGP_ARRAY_ROOTS = ("og:image", "og:video", "og:audio")

# Author reference per structured type, highest priority first:
# article, book, music.album / music.song, music.playlist /
# music.radio_station, video.episode / video.movie / video.other / video.tv_show
AUTHOR_PROPERTIES = (
    "article:author",
    "book:author",
    "music:musician",
    "music:creator",
    "video:director",
)

RESTRICTION_AGE_PROPERTY = "og:restrictions:age"
# mixi marks adult content with content-rating "1"
ALTERNATE_RATING_PROPERTY = "mixi:content-rating"
ALTERNATE_RATING_RESTRICTED = "1"
RESTRICTED_MIN_AGE = 18

_AGE_PATTERN = re.compile(r"^\s*(\d+)\s*\+*\s*$")


def _lookup_encoding(name: Optional[str]) -> Optional[str]:
    """Normalize an encoding label, None if Python does not know it"""
    if not name:
        return None
    try:
        return codecs.lookup(name.strip().strip("\"'")).name
    except LookupError:
        logger.debug(f"Ignoring unknown encoding label: {name}")
        return None


def _encoding_from_bom(content: bytes) -> Optional[str]:
    if content.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    if content.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return "utf-16"
    return None


def _encoding_from_detector(content: bytes) -> Optional[str]:
    detected = chardet.detect(content[:DETECTION_SAMPLE_SIZE])
    encoding = detected.get("encoding")
    confidence = detected.get("confidence") or 0.0
    # Pure ASCII says nothing about how the non-ASCII parts are declared
    if not encoding or encoding.lower() == "ascii":
        return None
    if confidence < MIN_DETECTION_CONFIDENCE:
        return None
    return _lookup_encoding(encoding)


def _encoding_from_meta(content: bytes) -> Optional[str]:
    soup = BeautifulSoup(content.decode("utf-8", errors="replace"), "html.parser")
    head = soup.head or soup
    meta = head.find("meta", attrs={"charset": True})
    if meta is None:
        return None
    return _lookup_encoding(meta.get("charset"))


def detect_encoding(content: bytes, header_charset: Optional[str] = None) -> str:
    """
    Resolve the character encoding of an HTML document.

    Order, first match wins:
    1. charset of the HTTP Content-Type header
    2. byte order mark, then statistical detection over the raw bytes
    3. <meta charset> of the document read permissively as UTF-8
    4. UTF-8

    Args:
        content: Raw response body
        header_charset: charset parameter of the Content-Type header

    Returns:
        Python codec name
    """
    return (
        _lookup_encoding(header_charset)
        or _encoding_from_bom(content)
        or _encoding_from_detector(content)
        or _encoding_from_meta(content)
        or "utf-8"
    )


def decode_html(content: bytes, header_charset: Optional[str] = None) -> str:
    """Decode an HTML body using :func:`detect_encoding`"""
    encoding = detect_encoding(content, header_charset)
    logger.debug(f"Decoding HTML as {encoding}")
    return content.decode(encoding, errors="replace")


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip a value; blank becomes None. Entities are decoded by the parser."""
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class OpenGraph:
    """
    Open Graph properties of a document.

    Plain properties keep their first value. ``og:image``, ``og:video`` and
    ``og:audio`` are arrays of structured entries: the root property (or a
    repeated ``:url`` / ``:secure_url``) starts a new entry and the following
    ``<root>:<sub>`` properties attach to it.
    """

    properties: Dict[str, str] = field(default_factory=dict)
    arrays: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {root: [] for root in OGP_ARRAY_ROOTS}
    )

    def get(self, name: str) -> Optional[str]:
        return self.properties.get(name)

    @property
    def images(self) -> List[Dict[str, str]]:
        return self.arrays["og:image"]

    @property
    def videos(self) -> List[Dict[str, str]]:
        return self.arrays["og:video"]

    @property
    def audios(self) -> List[Dict[str, str]]:
        return self.arrays["og:audio"]

    def _add_structured(self, root: str, sub: str, value: str) -> None:
        entries = self.arrays[root]
        current = entries[-1] if entries else None
        starts_entry = sub == "url" or sub == "secure_url"
        # og:image followed by an identical og:image:url describes one image
        if current is None or (
            starts_entry and sub in current and current[sub] != value
        ):
            current = {}
            entries.append(current)
        current.setdefault(sub, value)

    def add(self, name: str, value: str) -> None:
        for root in OGP_ARRAY_ROOTS:
            if name == root:
                self._add_structured(root, "url", value)
                return
            if name.startswith(root + ":"):
                self._add_structured(root, name[len(root) + 1 :], value)
                return
        self.properties.setdefault(name, value)

    @classmethod
    def from_soup(cls, soup: BeautifulSoup) -> "OpenGraph":
        graph = cls()
        for meta in soup.find_all("meta"):
            name = meta.get("property") or meta.get("name")
            value = _clean(meta.get("content"))
            if not name or value is None:
                continue
            graph.add(name.strip().lower(), value)
        return graph


def resolve_restriction(graph: OpenGraph) -> RestrictionPolicy:
    """
    Restricted when the declared minimum age is 18 or above ("18", "21+")
    or when the alternate rating property carries the restricted sentinel.
    """
    age = graph.get(RESTRICTION_AGE_PROPERTY)
    if age:
        match = _AGE_PATTERN.match(age)
        if match and int(match.group(1)) >= RESTRICTED_MIN_AGE:
            return RestrictionPolicy.RESTRICTED

    if graph.get(ALTERNATE_RATING_PROPERTY) == ALTERNATE_RATING_RESTRICTED:
        return RestrictionPolicy.RESTRICTED

    return RestrictionPolicy.UNKNOWN


def _apply_author(data: EmbedData, graph: OpenGraph) -> None:
    for name in AUTHOR_PROPERTIES:
        reference = graph.get(name) or graph.get(f"{name}:url")
        if reference is None:
            continue
        if is_absolute_url(reference):
            data.author_url = reference
            # :title is not part of the profile reference type, but some
            # sites set it and it is the only name available without
            # loading the profile page
            data.author_name = graph.get(f"{name}:title")
        else:
            # Site-local identifier such as a user name
            data.author_name = reference
        return


def _image_info(url: Optional[str], entry: Dict[str, str], prefix: str = "") -> ImageInfo:
    return ImageInfo(
        url=url,
        width=parse_int(entry.get(f"{prefix}width")),
        height=parse_int(entry.get(f"{prefix}height")),
    )


def _build_medias(
    graph: OpenGraph, location: str, policy: RestrictionPolicy
) -> List[Media]:
    medias: List[Media] = []

    for entry in graph.images:
        url = entry.get("secure_url") or entry.get("url")
        if url is None:
            continue
        medias.append(
            Media(
                type=MediaType.IMAGE,
                raw_url=url,
                thumbnail=_image_info(url, entry),
                location=location,
                restriction_policy=policy,
            )
        )

    for media_type, entries in (
        (MediaType.VIDEO, graph.videos),
        (MediaType.AUDIO, graph.audios),
    ):
        for entry in entries:
            url = entry.get("secure_url") or entry.get("url")
            if url is None:
                continue
            image_url = (
                entry.get("image:secure_url")
                or entry.get("image")
                or entry.get("image:url")
            )
            medias.append(
                Media(
                    type=media_type,
                    raw_url=url,
                    thumbnail=_image_info(image_url, entry, "image:")
                    if image_url
                    else None,
                    location=location,
                    restriction_policy=policy,
                )
            )

    return medias


def _collapse_single_thumbnail(data: EmbedData) -> None:
    """A page with one depicting image gets it as its own image, not a media"""
    with_thumbnail = [
        media for media in data.medias if media.thumbnail and media.thumbnail.url
    ]
    if len(with_thumbnail) != 1:
        return

    media = with_thumbnail[0]
    data.metadata_image = Media(
        type=MediaType.IMAGE,
        thumbnail=media.thumbnail.model_copy(),
        restriction_policy=data.restriction_policy,
    )
    data.medias.remove(media)


def load_html(document: str, url: str) -> EmbedData:
    """
    Build EmbedData from an HTML document.

    Args:
        document: Decoded HTML
        url: Requested page URL, used when og:url is missing

    Returns:
        EmbedData; fields absent from the page stay None
    """
    soup = BeautifulSoup(document, "html.parser")
    graph = OpenGraph.from_soup(soup)
    policy = resolve_restriction(graph)

    title = graph.get("og:title")
    if title is None and soup.title is not None:
        title = _clean(soup.title.get_text())

    data = EmbedData(
        url=graph.get("og:url") or url,
        title=title,
        description=graph.get("og:description") or graph.get("description"),
        provider_name=graph.get("og:site_name"),
        cache_age=parse_int(graph.get("og:ttl")),
        restriction_policy=policy,
    )

    _apply_author(data, graph)
    data.medias = _build_medias(graph, data.url, policy)
    _collapse_single_thumbnail(data)

    logger.debug(
        f"Parsed HTML {url}: title={data.title!r}, medias={len(data.medias)}, "
        f"image={data.metadata_image is not None}, policy={policy.value}"
    )
    return data
