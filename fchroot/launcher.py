# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import ctypes
import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from fchroot.config import ChrootConfig, UserSpec
from fchroot.errors import EXIT_CANNOT_EXECUTE, EXIT_NOT_FOUND, LaunchFailed

logger = logging.getLogger(__name__)

PR_SET_PDEATHSIG = 1

libc = ctypes.CDLL(None, use_errno=True)


def set_parent_death_signal(sig: int = signal.SIGTERM) -> None:
    """Ask the kernel to send `sig` to the calling process when its parent dies.

    Runs in the child between fork and exec so the confined command cannot outlive the
    process which holds its mounts.
    """
    if libc.prctl(PR_SET_PDEATHSIG, sig, 0, 0, 0) < 0:
        errno = ctypes.get_errno()
        raise OSError(errno, os.strerror(errno))


def build_command(
    root: Path, user_spec: Optional[UserSpec], command: Sequence[str]
) -> List[str]:
    """
    >>> build_command(Path("/mnt/chroot"), UserSpec("nobody"), ["/bin/sh"])
    ['chroot', '--userspec', 'nobody', '/mnt/chroot', '/bin/sh']
    """
    args = ["chroot"]
    if user_spec is not None:
        args += ["--userspec", str(user_spec)]
    args.append(str(root))
    args += command
    return args


@dataclass
class ChrootLauncher:
    popen: Callable[..., Any] = subprocess.Popen
    preexec_fn: Optional[Callable[[], None]] = set_parent_death_signal

    def run(self, config: ChrootConfig) -> int:
        """Run the command inside the chroot with inherited stdio and return its exit
        code. A child killed by a signal reports 128 + the signal number.

        Raises:
            LaunchFailed if the chroot tool could not be started at all.
        """
        args = build_command(config.root, config.user_spec, config.command)
        logger.info(f"Executing: {shlex.join(args)}")
        try:
            proc = self.popen(args, preexec_fn=self.preexec_fn)
        except FileNotFoundError as e:
            raise LaunchFailed(
                f"Could not find executable '{args[0]}'. Current PATH: {os.environ.get('PATH', '')}",
                exit_code=EXIT_NOT_FOUND,
            ) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise LaunchFailed(
                f"Could not execute '{args[0]}': {e}", exit_code=EXIT_CANNOT_EXECUTE
            ) from e

        returncode = proc.wait()
        if returncode < 0:
            returncode = 128 - returncode

        if returncode == 0:
            logger.info("chroot completed successfully")
        else:
            logger.info(f"chroot exited with code {returncode}")
        return returncode
