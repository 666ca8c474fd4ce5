# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Mounting and unmounting the essential filesystems under a chroot root."""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Protocol, Sequence

from fchroot.clock import Clock, ClockImpl
from fchroot.decorators import fixed_schedule, OutOfRetries, retry, Retry
from fchroot.errors import (
    DirectoryCreateFailed,
    FchrootError,
    MountFailed,
    TeardownFailure,
)
from fchroot.probe import MountStateProbe
from fchroot.resolv import remove_resolv_symlink
from fchroot.schemas.mount import ESSENTIAL_MOUNTS, MountSpec
from fchroot.utils.shell import last_line, run_command

logger = logging.getLogger(__name__)


class MountOps(Protocol):
    """The system operations which change the mount table."""

    def mount(
        self, spec: MountSpec, target: Path
    ) -> "subprocess.CompletedProcess[str]": ...

    def umount(self, target: Path) -> "subprocess.CompletedProcess[str]": ...


@dataclass
class MountCliOps:
    run: Callable[[List[str]], "subprocess.CompletedProcess[str]"] = run_command

    def mount(
        self, spec: MountSpec, target: Path
    ) -> "subprocess.CompletedProcess[str]":
        if spec.is_bind:
            cmd = ["mount", "--bind", spec.source, str(target)]
        else:
            assert spec.filesystem_type is not None
            cmd = ["mount", "-t", spec.filesystem_type, spec.source, str(target)]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        return self.run(cmd)

    def umount(self, target: Path) -> "subprocess.CompletedProcess[str]":
        cmd = ["umount", str(target)]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        return self.run(cmd)


@dataclass
class EssentialMounter:
    probe: MountStateProbe
    ops: MountOps = field(default_factory=MountCliOps)
    specs: Sequence[MountSpec] = ESSENTIAL_MOUNTS
    makedirs: Callable[[Path], None] = lambda p: os.makedirs(
        p, mode=0o755, exist_ok=True
    )

    def mount_all(self, root: Path) -> None:
        """Mount every spec under `root` in order, skipping what is already mounted.

        Stops at the first failure without undoing earlier mounts; the caller is
        expected to run `EssentialUnmounter.unmount_all` afterwards.

        Raises:
            DirectoryCreateFailed if a mount point cannot be created.
            MountFailed if the mount operation fails.
        """
        logger.debug("Mounting essential filesystems...")
        for spec in self.specs:
            target = spec.target(root)
            try:
                self.makedirs(target)
            except OSError as e:
                raise DirectoryCreateFailed(target, e.strerror or str(e)) from e

            if self.probe.is_mounted(target):
                logger.debug(f"{target} is already mounted, skipping")
                continue

            kind = "bind" if spec.is_bind else spec.filesystem_type
            logger.debug(f"Mounting {spec.source} ({kind}) -> {target}")
            out = self.ops.mount(spec, target)
            if out.returncode != 0:
                reason = last_line(out.stdout) or f"exit code {out.returncode}"
                raise MountFailed(spec.source, target, reason)
            logger.info(f"Mounted {spec.name}")


@dataclass
class EssentialUnmounter:
    probe: MountStateProbe
    ops: MountOps = field(default_factory=MountCliOps)
    specs: Sequence[MountSpec] = ESSENTIAL_MOUNTS
    clock: Clock = field(default_factory=ClockImpl)
    attempts: int = 3
    retry_delay: float = 1.0

    def unmount_all(self, root: Path) -> List[TeardownFailure]:
        """Unmount every spec under `root` in reverse order and remove a resolv.conf
        symlink left behind by provisioning.

        Never raises. Safe to call repeatedly or after a partial setup since it only
        touches what is actually mounted or linked. Returns the targets which could not
        be unmounted.
        """
        logger.info("Unmounting filesystems...")
        failures: List[TeardownFailure] = []
        for spec in reversed(self.specs):
            target = spec.target(root)
            try:
                if not self.probe.is_mounted(target):
                    logger.debug(f"{target} is not mounted, skipping")
                    continue
                logger.debug(f"Unmounting {target}")
                self._unmount_with_retries(target)
            except OutOfRetries as e:
                reason = str(e.__cause__) or "device or resource busy"
                failures.append(
                    self._report(
                        target,
                        f"Failed to unmount {target} after {self.attempts} attempts: {reason}",
                    )
                )
            except FchrootError as e:
                failures.append(
                    self._report(target, f"Failed to unmount {target}: {e}")
                )
            else:
                logger.info(f"Unmounted {target}")

        remove_resolv_symlink(root / "etc" / "resolv.conf")
        logger.info("Cleanup completed")
        return failures

    def _unmount_with_retries(self, target: Path) -> None:
        attempt = 0

        @retry(
            retry_schedule_factory=lambda: fixed_schedule(
                attempts=self.attempts, delay=self.retry_delay
            ),
            sleep=self.clock.sleep,
        )
        def umount_once() -> None:
            nonlocal attempt
            attempt += 1
            out = self.ops.umount(target)
            if out.returncode != 0:
                if attempt < self.attempts:
                    logger.debug(
                        f"Attempt {attempt} failed, retrying in {self.retry_delay}s..."
                    )
                raise Retry(last_line(out.stdout) or f"exit code {out.returncode}")

        umount_once()

    def _report(self, target: Path, message: str) -> TeardownFailure:
        logger.error(message)
        logger.error(f"You may need to unmount it manually: umount {target}")
        return TeardownFailure(target=target, message=message)
