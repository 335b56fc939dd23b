# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
import sys

# Third-party loggers that are too chatty at INFO for a proxy-like service
_QUIET_LOGGERS = ["httpx", "httpcore", "chardet.charsetprober"]


def setup_logging(level: str = "INFO") -> None:
    """Configure stdout logging for the embed service.

    Args:
        level: Root log level name, e.g. "DEBUG" or "WARNING"
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-4s %(name)s : %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=logging.getLevelName(level.upper()),
    )

    # Route uvicorn/fastapi through the root handler
    for name in ["uvicorn", "uvicorn.error", "fastapi"]:
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
