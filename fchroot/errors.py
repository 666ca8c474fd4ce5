# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Errors raised while setting up the chroot and the exit codes they map to."""

from dataclasses import dataclass
from pathlib import Path

# Reserved for setup failures, failed preconditions and interruption.
EXIT_FAILURE = 125
# Same meaning as for a shell: found but not executable / not found at all.
EXIT_CANNOT_EXECUTE = 126
EXIT_NOT_FOUND = 127


class FchrootError(Exception):
    """Base class for errors which are reported to the user as a single line."""

    exit_code: int = EXIT_FAILURE


class SetupError(FchrootError):
    """Preparing the chroot failed. Mounts made before the failure are left in place."""


class DirectoryCreateFailed(SetupError):
    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to create directory {path}: {reason}")
        self.path = path


class MountFailed(SetupError):
    def __init__(self, source: str, target: Path, reason: str):
        super().__init__(f"Failed to mount {source} -> {target}: {reason}")
        self.source = source
        self.target = target


class ResolvSetupFailed(SetupError):
    pass


class LaunchFailed(FchrootError):
    """The confinement command could not be started at all."""

    def __init__(self, message: str, exit_code: int = EXIT_CANNOT_EXECUTE):
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True)
class TeardownFailure:
    """A target which could not be cleaned up. Never fatal."""

    target: Path
    message: str


class CommandNotFound(FchrootError):
    def __init__(self, executable: str, path: str):
        super().__init__(f"Could not find executable '{executable}'. Current PATH: {path}")
        self.executable = executable
