# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Host name resolution inside the chroot via <root>/etc/resolv.conf."""

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from fchroot.config import HOST_RESOLV_CONF
from fchroot.errors import ResolvSetupFailed

logger = logging.getLogger(__name__)


@dataclass
class ResolvConfProvisioner:
    """Symlink the host's resolv.conf into the chroot, copying it when linking fails.

    A symlink follows later changes to the host resolver configuration; the copy is the
    fallback for when linking is not possible or something is already in the way.
    """

    host_resolv: Path = HOST_RESOLV_CONF
    symlink: Callable[[Path, Path], None] = os.symlink

    def provision(self, root: Path) -> None:
        """
        Raises:
            ResolvSetupFailed if <root>/etc cannot be created, an existing file cannot
            be replaced or the host file cannot be copied.
        """
        etc = root / "etc"
        chroot_resolv = etc / "resolv.conf"
        logger.debug("Setting up resolv.conf...")

        try:
            os.makedirs(etc, mode=0o755, exist_ok=True)
        except OSError as e:
            raise ResolvSetupFailed(
                f"Failed to create /etc in chroot: {e.strerror or e}"
            ) from e

        try:
            self.symlink(self.host_resolv, chroot_resolv)
        except OSError as e:
            logger.debug(f"Could not symlink {chroot_resolv}: {e.strerror or e}")
        else:
            logger.info(f"resolv.conf: symlinked {self.host_resolv} -> {chroot_resolv}")
            return

        self._copy(chroot_resolv)

    def _copy(self, chroot_resolv: Path) -> None:
        if os.path.lexists(chroot_resolv):
            try:
                os.remove(chroot_resolv)
            except OSError as e:
                raise ResolvSetupFailed(
                    f"Failed to remove existing {chroot_resolv}: {e.strerror or e}"
                ) from e
            logger.debug(f"Removed existing {chroot_resolv}")

        logger.debug(f"resolv.conf: copying {self.host_resolv} -> {chroot_resolv}")
        try:
            src = open(self.host_resolv, "rb")
        except OSError as e:
            raise ResolvSetupFailed(
                f"Failed to open {self.host_resolv}: {e.strerror or e}"
            ) from e
        with src:
            try:
                with open(chroot_resolv, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except OSError as e:
                raise ResolvSetupFailed(
                    f"Failed to copy resolv.conf: {e.strerror or e}"
                ) from e
        logger.info(f"resolv.conf: copied {self.host_resolv} -> {chroot_resolv}")


def remove_resolv_symlink(chroot_resolv: Path) -> None:
    """Remove `chroot_resolv` if it is a symlink. Regular files are left alone since
    they cannot be told apart from content owned by the chroot.
    """
    try:
        if not stat.S_ISLNK(os.lstat(chroot_resolv).st_mode):
            return
        os.remove(chroot_resolv)
    except FileNotFoundError:
        return
    except OSError:
        logger.debug(f"Could not remove {chroot_resolv}", exc_info=True)
    else:
        logger.debug("Removed resolv.conf symlink")
