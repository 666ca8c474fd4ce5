# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, Union

import click
import pytest
from click.testing import CliRunner
from typeguard import typechecked

from fchroot.click import toml_config_option, UserSpecParamType
from fchroot.config import UserSpec


def _write_contents(path: Path, contents: str) -> Path:
    with path.open("w") as f:
        f.write(contents)
    return path


FnGetArgs = Callable[[Path, str], Sequence[str]]


def _case_different_config() -> Tuple[FnGetArgs, str]:
    return (
        lambda p, name: [
            "--config",
            str(
                _write_contents(
                    p / "other_config",
                    f"""
                    [{name}]
                    foo = "baz"
                    """,
                )
            ),
        ],
        "baz\n",
    )


def _case_different_config_with_command_line() -> Tuple[FnGetArgs, str]:
    return (
        lambda p, name: [
            "--config",
            str(
                _write_contents(
                    p / "other_config",
                    f"""
                    [{name}]
                    foo = "baz"
                    """,
                )
            ),
            "--foo",
            "bar",
        ],
        "bar\n",
    )


class TestTomlConfigOption:
    @staticmethod
    @pytest.mark.parametrize(
        "get_args, expected_stdout",
        [
            # passing no args should use the value in the default config
            ([], "hello, world!\n"),
            # setting the option at the command line should override the default config
            # value
            (["--foo", "bar"], "bar\n"),
            # setting a different config path should ignore the default config
            _case_different_config(),
            # a value passed at the command line still wins over a different config
            _case_different_config_with_command_line(),
            # nonexistent config should be ignored and treated as an empty table
            (lambda p, name: ["--config", str(p / "does_not_exist")], "foo default\n"),
            # /dev/null is the same as a nonexistent config
            (["--config", "/dev/null"], "foo default\n"),
        ],
    )
    @typechecked
    def test_uses_correct_value(
        tmp_path: Path,
        get_args: Union[Sequence[str], FnGetArgs],
        expected_stdout: str,
    ) -> None:
        name = "main"
        config_path = _write_contents(
            tmp_path / "config.toml",
            f"""
            [{name}]
            foo = "hello, world!"

            [not-{name}]
            foo = "oops"
            """,
        )
        args = get_args(tmp_path, name) if callable(get_args) else get_args

        @click.command()
        @toml_config_option(name, default_config_path=config_path)
        @click.option("--foo", default="foo default")
        def main(foo: Optional[str]) -> None:
            print(foo)

        r = CliRunner().invoke(main, args, catch_exceptions=False)

        assert r.exit_code == 0
        assert r.stdout == expected_stdout

    @staticmethod
    def test_invalid_toml_errors(tmp_path: Path) -> None:
        config_path = _write_contents(tmp_path / "not_toml", "]] oops")

        @click.command()
        @toml_config_option("main", default_config_path="/dev/null")
        @click.option("--foo")
        def main(foo: Optional[str]) -> None:
            print(foo)

        r = CliRunner().invoke(
            main, ["--config", str(config_path)], catch_exceptions=False
        )

        assert r.exit_code != 0
        assert r.stdout == ""
        assert f"{config_path} does not contain valid TOML." in r.stderr

    @staticmethod
    def test_missing_table_errors(tmp_path: Path) -> None:
        config_path = _write_contents(
            tmp_path / "config.toml",
            """
            [not-main]
            hello = "world"
            """,
        )

        @click.command()
        @toml_config_option("main", default_config_path=config_path)
        @click.option("--foo")
        def main(foo: Optional[str]) -> None:
            print(foo)

        r = CliRunner().invoke(main, catch_exceptions=False)

        assert r.exit_code != 0
        assert r.stdout == ""
        assert "'main' is not a top-level table name" in r.stderr


class TestUserSpecParamType:
    @staticmethod
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("nobody", UserSpec("nobody")),
            ("1000:1000", UserSpec("1000", "1000")),
            ("build:wheel", UserSpec("build", "wheel")),
        ],
    )
    @typechecked
    def test_convert(value: str, expected: UserSpec) -> None:
        assert UserSpecParamType().convert(value, None, None) == expected

    @staticmethod
    @pytest.mark.parametrize("value", ["", ":wheel", "build:", 1000])
    def test_rejects(value: object) -> None:
        with pytest.raises(click.BadParameter):
            UserSpecParamType().convert(value, None, None)
