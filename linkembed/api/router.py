# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
API router module, providing a global API router instance
"""
from fastapi import APIRouter

# Create a global API router instance
api_router = APIRouter()
