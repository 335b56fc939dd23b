# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Embed preview endpoint.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from linkembed.api.dependencies import get_metadata_service
from linkembed.core.exceptions import UnsupportedFormatException
from linkembed.schemas.embed import ConsumerRequest, EmbedDataResult
from linkembed.services.metadata_service import MetadataService

logger = logging.getLogger(__name__)

router = APIRouter()

SUPPORTED_FORMATS = ("json",)


@router.get("/embed", response_model=EmbedDataResult)
async def get_embed(
    response: Response,
    url: str = Query(..., description="The URL to build an embed preview for"),
    maxwidth: Optional[int] = Query(None, ge=1, description="Maximum embed width"),
    maxheight: Optional[int] = Query(None, ge=1, description="Maximum embed height"),
    format: Optional[str] = Query(None, description="Response format, only json"),
    service: MetadataService = Depends(get_metadata_service),
) -> EmbedDataResult:
    """
    Resolve a URL into a normalized embed preview.

    - **url**: Page or media URL to resolve
    - **maxwidth** / **maxheight**: Size hints forwarded to oEmbed endpoints
    - **format**: Must be omitted or "json"

    Returns:
        EmbedDataResult with status 200 when resolution succeeded, otherwise
        the same body with status 404
    """
    if format is not None and format.lower() not in SUPPORTED_FORMATS:
        raise UnsupportedFormatException(format)

    request = ConsumerRequest(
        url=url,
        max_width=maxwidth,
        max_height=maxheight,
        format=format,
    )
    result = await service.get_data(request)
    if not result.succeeded:
        response.status_code = status.HTTP_404_NOT_FOUND
    return result
