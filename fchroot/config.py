# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Tuple

DEFAULT_COMMAND: Tuple[str, ...] = ("/bin/bash",)
HOST_RESOLV_CONF = Path("/etc/resolv.conf")

PROBE_KIND = Literal["findmnt", "mountinfo"]


@dataclass(frozen=True)
class UserSpec:
    user: str
    group: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "UserSpec":
        """Parse `user[:group]`.

        >>> UserSpec.parse("nobody:nogroup")
        UserSpec(user='nobody', group='nogroup')
        """
        user, sep, group = value.partition(":")
        if not user:
            raise ValueError(f"missing user in '{value}'")
        if sep and not group:
            raise ValueError(f"missing group after ':' in '{value}'")
        return cls(user=user, group=group or None)

    def __str__(self) -> str:
        if self.group is None:
            return self.user
        return f"{self.user}:{self.group}"


@dataclass(frozen=True)
class ChrootConfig:
    """Everything a single invocation needs. Built once by the CLI."""

    root: Path
    command: Tuple[str, ...] = DEFAULT_COMMAND
    user_spec: Optional[UserSpec] = None
    skip_resolv: bool = False
    host_resolv: Path = HOST_RESOLV_CONF
    unmount_attempts: int = 3
    unmount_retry_delay: float = 1.0
    probe: PROBE_KIND = "findmnt"

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            raise ValueError(f"chroot root must be absolute, but got {self.root}")
        if not self.command:
            # frozen, so go through object.__setattr__
            object.__setattr__(self, "command", DEFAULT_COMMAND)
