# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Helpers shared by resolution variants."""

import posixpath
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional
from urllib.parse import unquote, urlparse

_MAX_AGE_PATTERN = re.compile(r"(?:^|[,\s])max-age\s*=\s*\"?(\d+)", re.IGNORECASE)


def parse_int(value: Optional[str]) -> Optional[int]:
    """Parse a non-negative integer, returning None for anything else"""
    if value is None:
        return None
    value = str(value).strip()
    if not value.isdigit():
        return None
    return int(value)


def is_absolute_url(value: Optional[str]) -> bool:
    """Check whether a reference is an absolute URL with scheme and host"""
    if not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def title_from_url(url: str) -> Optional[str]:
    """
    Derive a title from the last path segment of a URL.

    Example:
        "https://x/images/cat.jpg?size=2" -> "cat"
    """
    path = unquote(urlparse(url).path or "")
    stem, _ = posixpath.splitext(posixpath.basename(path))
    return stem or None


def media_type_of(content_type: Optional[str]) -> str:
    """Extract the lower-cased media type from a Content-Type header"""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cache_age_from_headers(headers: Mapping[str, str]) -> Optional[int]:
    """
    Compute a cache age in seconds from response headers.

    ``Cache-Control: max-age`` wins over ``Expires``; an Expires value is
    measured against the ``Date`` header when present, otherwise against now.
    Unparseable Expires values mean "already expired" (0).
    """
    cache_control = headers.get("cache-control")
    if cache_control:
        match = _MAX_AGE_PATTERN.search(cache_control)
        if match:
            return int(match.group(1))

    expires = headers.get("expires")
    if not expires:
        return None

    expires_at = _parse_http_date(expires)
    if expires_at is None:
        return 0

    now = _parse_http_date(headers.get("date")) or datetime.now(timezone.utc)
    return max(0, int((expires_at - now).total_seconds()))
