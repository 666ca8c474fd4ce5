# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import logging
from typing import Iterator

import pytest


@pytest.fixture(autouse=True)
def reset_fchroot_logger() -> Iterator[None]:
    """The CLI attaches handlers to the 'fchroot' logger on every invocation."""
    logger = logging.getLogger("fchroot")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.setLevel(level)
