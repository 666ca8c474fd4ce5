# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

import click
import tomli
from typeguard import typechecked
from typing_extensions import ParamSpec

from fchroot.config import UserSpec
from fchroot.errors import EXIT_FAILURE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/fchroot/config.toml"


class ReportedError(click.ClickException):
    """A one-line error shown to the user, exiting with a chosen code."""

    def __init__(self, message: str, exit_code: int = EXIT_FAILURE):
        super().__init__(message)
        self.exit_code = exit_code


@typechecked
def ensure_dict(x: Any) -> Dict[str, Any]:
    return x


log_level_option = click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Logging verbosity level. Defaults to INFO, or DEBUG with --verbose.",
)


_Tv = TypeVar("_Tv")
_ClickCallback = Callable[[click.Context, click.Parameter, _Tv], None]


def _set_default_map(name: str) -> _ClickCallback[Path]:
    @typechecked
    def cb(ctx: click.Context, param: click.Parameter, path: Path) -> None:
        if not path.exists() or path == Path("/dev/null"):
            return

        logger.debug(f"Reading config from {path}...")
        with path.open("rb") as f:
            try:
                conf = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise click.BadParameter(
                    f"{path} does not contain valid TOML.",
                    ctx=ctx,
                    param=param,
                ) from e
        try:
            default_map = ensure_dict(conf[name])
        except KeyError as e:
            raise click.BadParameter(
                f"'{name}' is not a top-level table name in {path}. Valid names: {list(conf.keys())}",
                ctx=ctx,
                param=param,
            ) from e
        logger.debug(f"Loaded table '{name}'.")

        ctx.default_map = {**(ctx.default_map or {}), **default_map}

    return cb


_P = ParamSpec("_P")
_R = TypeVar("_R")


def toml_config_option(
    name: str,
    *,
    default_config_path: Union[str, Path] = DEFAULT_CONFIG_PATH,
) -> Callable[[Callable[_P, _R]], Callable[_P, _R]]:
    """Shared decorator for loading default option values from a TOML config file.
    Adds a `--config` option to the given command which takes a path. A non-existent
    path or `/dev/null` is treated as an empty dictionary.

    Precedence (lowest to highest):
    * `default` argument to `click.option`
    * the value in the config file
    * value passed at the command line

    Parameters:
        name: The top-level table name in the config file containing the default values
            to use.
        default_config_path: The path from which to load the config if the option is
            omitted at the command line.
    """

    def decorator(f: Callable[_P, _R]) -> Callable[_P, _R]:
        return click.option(
            "--config",
            type=click.Path(dir_okay=False, path_type=Path),
            callback=_set_default_map(name),
            default=default_config_path,
            show_default=True,
            is_eager=True,
            expose_value=False,
            help=(
                f"Load option values from table '{name}' in the given TOML config file. "
                "A non-existent path or '/dev/null' are ignored and treated as empty tables."
            ),
        )(f)

    return decorator


class TypedParamType(click.ParamType, ABC, Generic[_Tv]):
    """Typesafe click.ParamType which is generic in the return type of `convert`"""

    @abstractmethod
    def convert(
        self,
        value: Any,
        param: Optional[click.Parameter],
        ctx: Optional[click.Context],
    ) -> _Tv:
        pass


class UserSpecParamType(TypedParamType[UserSpec]):
    """Convert `user[:group]` into a `UserSpec`. Names are resolved by chroot itself."""

    name = "user[:group]"

    def convert(
        self,
        value: Any,
        param: Optional[click.Parameter],
        ctx: Optional[click.Context],
    ) -> UserSpec:
        if isinstance(value, UserSpec):
            return value
        if not isinstance(value, str):
            self.fail(
                f"Expected string, but got {value!r} of type {type(value).__name__}",
                param,
                ctx,
            )
        try:
            return UserSpec.parse(value)
        except ValueError as e:
            self.fail(f"Invalid user spec: {e}.", param, ctx)
