# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import os
import subprocess
from typing import List, Optional

from fchroot.errors import CommandNotFound


def run_command(
    command: List[str], timeout_secs: Optional[int] = None
) -> "subprocess.CompletedProcess[str]":
    """Run `command` and return its combined stdout/stderr as a UTF-8 string.

    Raises:
        CommandNotFound if the executable is not on PATH.
    """
    try:
        return subprocess.run(
            command,
            encoding="utf-8",
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout_secs,
        )
    except FileNotFoundError as e:
        raise CommandNotFound(command[0], os.environ.get("PATH", "")) from e


def last_line(output: Optional[str]) -> str:
    """The last non-empty line of some command output, for one-line diagnostics."""
    lines = [line.strip() for line in (output or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""
