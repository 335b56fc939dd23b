# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import List, Optional

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LinkEmbedError(Exception):
    """Base class for resolution errors raised inside the pipeline"""


class FetchError(LinkEmbedError):
    """A remote resource could not be fetched after all retries"""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        message = f"Failed to fetch {url}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class UnsupportedFormatException(HTTPException):
    """Requested response format is not supported"""

    def __init__(self, format: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported format: {format}",
        )


def _invalid_parameters(exc: RequestValidationError) -> List[str]:
    """Names of the query parameters that failed validation, in order"""
    names = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        name = str(loc[-1]) if loc else "request"
        if name not in names:
            names.append(name)
    return names


async def http_exception_handler(request: Request, exc: HTTPException):
    """Answer a rejected embed request with its status and reason"""
    logger.info(
        f"Rejected {request.method} {request.url.path} "
        f"url={request.query_params.get('url')!r}: {exc.status_code} {exc.detail}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error_code": exc.status_code, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Name the embed query parameters that are missing or out of range"""
    names = _invalid_parameters(exc)
    logger.info(f"Invalid parameters for {request.url.path}: {', '.join(names)}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "detail": f"Invalid query parameters: {', '.join(names)}",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


async def python_exception_handler(request: Request, exc: Exception):
    """Fallback handler, the pipeline itself never raises to the route"""
    logger.exception(
        f"Unhandled error serving {request.url.path} "
        f"url={request.query_params.get('url')!r}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "detail": "Internal server error",
        },
    )
