# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Live queries of the kernel mount table.

Nothing here is cached: another process may mount or unmount the same targets at any
time, so every mount and unmount step asks again.
"""

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Protocol

from fchroot.config import PROBE_KIND
from fchroot.schemas.mount import MountInfo
from fchroot.utils.shell import run_command

logger = logging.getLogger(__name__)

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


class MountStateProbe(Protocol):
    def is_mounted(self, path: Path) -> bool:
        """Whether `path` is exactly a mount point. Never raises for paths which do not
        exist or are not mounted.
        """


@dataclass
class FindmntProbe:
    """Ask `findmnt` for the mount whose target is exactly `path`."""

    run: Callable[[List[str]], "subprocess.CompletedProcess[str]"] = run_command

    def is_mounted(self, path: Path) -> bool:
        out = self.run(["findmnt", "-n", "-o", "TARGET", "--mountpoint", str(path)])
        if out.returncode != 0:
            # findmnt exits 1 when nothing matches
            return False
        return any(line.strip() == str(path) for line in out.stdout.splitlines())


def unescape_mount_field(value: str) -> str:
    r"""Undo the octal escaping the kernel applies to mountinfo fields.

    >>> unescape_mount_field("/mnt/with\\040space")
    '/mnt/with space'
    """
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), value)


def as_mount_info(line: str) -> MountInfo:
    mount_info = line.split()
    separator_idx = mount_info.index("-")
    return MountInfo(
        mount_id=int(mount_info[0]),
        parent_id=int(mount_info[1]),
        device_id=mount_info[2],
        root=Path(unescape_mount_field(mount_info[3])),
        mount_point=Path(unescape_mount_field(mount_info[4])),
        mount_options=mount_info[5].split(","),
        optional_fields=mount_info[6:separator_idx],
        filesystem_type=mount_info[separator_idx + 1],
        mount_source=mount_info[separator_idx + 2],
        super_options=mount_info[separator_idx + 3].split(","),
    )


def read_mountinfo(path: str = "/proc/self/mountinfo") -> Iterable[MountInfo]:
    with open(path, "r") as file:
        for line in file:
            yield as_mount_info(line)


@dataclass
class MountInfoProbe:
    """Look for `path` in /proc/self/mountinfo. Useful where findmnt is unavailable."""

    get_all_mount_info: Callable[[], Iterable[MountInfo]] = field(
        default=read_mountinfo
    )

    def is_mounted(self, path: Path) -> bool:
        try:
            return any(m.mount_point == path for m in self.get_all_mount_info())
        except OSError:
            logger.debug("Could not read the mount table", exc_info=True)
            return False


def make_probe(kind: PROBE_KIND) -> MountStateProbe:
    if kind == "findmnt":
        return FindmntProbe()
    if kind == "mountinfo":
        return MountInfoProbe()
    raise ValueError(f"Unknown probe '{kind}'")
