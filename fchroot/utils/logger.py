# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Logging setup for the command line entrypoint."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, Tuple

STREAM_FORMATTER = logging.Formatter("%(levelname)s: %(message)s")
FILE_FORMATTER = logging.Formatter(
    "[%(asctime)s] - [%(levelname)s] - [%(name)s] - %(message)s"
)


def init_logger(
    logger_name: str,
    log_level: int = logging.INFO,
    log_file: Optional[str] = None,
    max_bytes: int = 1024 * 1024,
    backup_count: int = 2,
) -> Tuple[logging.Logger, logging.Handler]:
    """Set up logging for fchroot.

    Logs go to stderr so they never mix with the confined command's stdout, unless
    `log_file` is given, in which case they are appended to a rotating file.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    handler: logging.Handler
    if log_file is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(STREAM_FORMATTER)
    else:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            log_file, mode="a", maxBytes=max_bytes, backupCount=backup_count
        )
        handler.setFormatter(FILE_FORMATTER)
    logger.addHandler(handler)

    return logger, handler
