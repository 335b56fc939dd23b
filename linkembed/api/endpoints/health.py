# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import APIRouter

from linkembed.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Liveness check endpoint.

    Resolution depends on remote sites only, so there is nothing local to
    check beyond the process answering.
    """
    return {"status": "healthy", "version": settings.VERSION}
