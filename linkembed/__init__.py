# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

# Main application package initialization file
from pathlib import Path

__version__ = "0.1.0"

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
