# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import Request

from linkembed.services.metadata_service import MetadataService


def get_metadata_service(request: Request) -> MetadataService:
    """
    Metadata service created by the application lifespan.

    Tests replace this dependency through ``app.dependency_overrides``.
    """
    return request.app.state.metadata_service
