# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from linkembed.api.endpoints import embed, health
from linkembed.api.router import api_router

# Health check endpoints (no prefix, directly under the API prefix)
api_router.include_router(health.router, tags=["health"])
api_router.include_router(embed.router, tags=["embed"])
