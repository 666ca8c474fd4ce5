# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import time
from typing import Protocol


class Clock(Protocol):
    """An object that can pass time."""

    def sleep(self, duration_sec: float) -> None:
        """Block until the given duration has passed."""


class ClockImpl:
    def sleep(self, duration_sec: float) -> None:
        time.sleep(duration_sec)
