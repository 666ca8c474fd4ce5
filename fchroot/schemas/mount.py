# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class MountSpec:
    """A filesystem which is mounted at `<root>/<name>`.

    `filesystem_type` of None means `source` is bind mounted.
    """

    name: str
    source: str
    filesystem_type: Optional[str] = None

    @property
    def is_bind(self) -> bool:
        return self.filesystem_type is None

    def target(self, root: Path) -> Path:
        return root / self.name


# Order matters: teardown walks this in reverse.
ESSENTIAL_MOUNTS: Tuple[MountSpec, ...] = (
    MountSpec(name="proc", source="/proc", filesystem_type="proc"),
    MountSpec(name="sys", source="/sys", filesystem_type="sysfs"),
    MountSpec(name="dev", source="/dev"),
)


@dataclass
class MountInfo:
    """https://man7.org/linux/man-pages/man5/proc.5.html"""

    mount_id: int
    parent_id: int
    device_id: str
    root: Path
    mount_point: Path
    mount_options: List[str]
    optional_fields: List[str]
    filesystem_type: str
    mount_source: str
    super_options: List[str]
