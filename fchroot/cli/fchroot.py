# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Simple chroot wrapper with auto-mounting.

This file is intentionally lightweight: it validates the invocation, builds the
configuration and hands over to `LifecycleController`.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, get_args, Optional, Protocol, runtime_checkable, Tuple

import click
from typeguard import typechecked

from fchroot._version import __version__
from fchroot.click import (
    log_level_option,
    ReportedError,
    toml_config_option,
    UserSpecParamType,
)
from fchroot.config import ChrootConfig, HOST_RESOLV_CONF, PROBE_KIND, UserSpec
from fchroot.errors import FchrootError
from fchroot.lifecycle import LifecycleController
from fchroot.utils.logger import init_logger

LOGGER_NAME = "fchroot"

EPILOG = """\b
Examples:
  fchroot /mnt/chroot
  fchroot -u nobody /mnt/chroot /bin/sh
  fchroot -v /mnt/chroot /bin/bash -l

Default command: /bin/bash
"""


class Controller(Protocol):
    def run(self) -> int: ...


@runtime_checkable
class CliObject(Protocol):
    def geteuid(self) -> int: ...

    def make_controller(self, config: ChrootConfig) -> Controller: ...


@dataclass
class CliObjectImpl:
    geteuid: Callable[[], int] = os.geteuid

    def make_controller(self, config: ChrootConfig) -> Controller:
        return LifecycleController.from_config(config)


@click.command(
    epilog=EPILOG,
    context_settings={
        "help_option_names": ["-h", "--help"],
        "allow_interspersed_args": False,
    },
)
@toml_config_option("fchroot")
@click.option(
    "-u",
    "--userspec",
    "user_spec",
    type=UserSpecParamType(),
    default=None,
    help="Run as the specified user[:group].",
)
@click.option(
    "-r",
    "--skip-resolv",
    is_flag=True,
    default=False,
    help="Do not update resolv.conf inside the chroot.",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose output.")
@log_level_option
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append logs to this file instead of writing them to stderr.",
)
@click.option(
    "--probe",
    type=click.Choice(get_args(PROBE_KIND)),
    default="findmnt",
    show_default=True,
    help="How to tell whether a path is a mount point.",
)
@click.option(
    "--host-resolv",
    type=click.Path(dir_okay=False, path_type=Path),
    default=HOST_RESOLV_CONF,
    show_default=True,
    help="The host resolver configuration to make available inside the chroot.",
)
@click.argument("chroot_dir", type=click.Path(path_type=Path))
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.version_option(__version__)
@click.pass_context
@typechecked
def main(
    ctx: click.Context,
    user_spec: Optional[UserSpec],
    skip_resolv: bool,
    verbose: bool,
    log_level: Optional[str],
    log_file: Optional[str],
    probe: PROBE_KIND,
    host_resolv: Path,
    chroot_dir: Path,
    command: Tuple[str, ...],
) -> None:
    """Run COMMAND inside CHROOT_DIR with /proc, /sys and /dev mounted.

    The mounts are removed again when the command exits or fchroot is interrupted.
    """
    obj = ctx.obj if isinstance(ctx.obj, CliObject) else CliObjectImpl()
    level = log_level or ("DEBUG" if verbose else "INFO")
    logger, _ = init_logger(
        logger_name=LOGGER_NAME,
        log_level=getattr(logging, level),
        log_file=log_file,
    )

    if obj.geteuid() != 0:
        raise ReportedError("This program must be run as root")
    if not chroot_dir.exists():
        raise ReportedError(f"Chroot directory does not exist: {chroot_dir}")
    if not chroot_dir.is_dir():
        raise ReportedError(f"Chroot path is not a directory: {chroot_dir}")

    config = ChrootConfig(
        root=chroot_dir.resolve(),
        command=command,
        user_spec=user_spec,
        skip_resolv=skip_resolv,
        host_resolv=host_resolv,
        probe=probe,
    )
    logger.debug(f"Using chroot directory: {config.root}")

    try:
        exit_code = obj.make_controller(config).run()
    except FchrootError as e:
        raise ReportedError(str(e), exit_code=e.exit_code) from e
    ctx.exit(exit_code)


if __name__ == "__main__":
    main()
