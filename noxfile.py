# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from typing import Dict, Optional

import nox

SRC_DIRS = [
    "fchroot",
]


@nox.session
def tests(session: nox.Session) -> None:
    session.install("-r", "dev-requirements.txt")
    session.install("--no-deps", "-e", ".")
    session.run(
        "pytest",
        "-n",
        "auto",
        *session.posargs,
        env=_env_or_none(session, ".env"),
    )


def _env_or_none(session: nox.Session, fname: str) -> Optional[Dict[str, str]]:
    try:
        return _env_from_file(fname)
    except FileNotFoundError:
        session.debug(
            f"File '{fname}' does not exist. Not running with modified environment."
        )
        return None


def _env_from_file(fname: str) -> Dict[str, str]:
    with open(fname) as f:
        env = {}
        for line in f:
            k, v = line.rstrip().split("=", maxsplit=1)
            env[k] = v
        return env


@nox.session
def lint(session: nox.Session) -> None:
    session.install("-r", "dev-requirements.txt")
    session.install("--no-deps", "-e", ".")
    session.run(
        "flake8",
        "--per-file-ignores=fchroot/_version.py:F401",
        *SRC_DIRS,
    )


@nox.session
def format(session: nox.Session) -> None:
    session.install("-r", "dev-requirements.txt")
    session.install("--no-deps", "-e", ".")
    session.run(
        "ufmt",
        "check",
        *SRC_DIRS,
    )


@nox.session
def typecheck(session: nox.Session) -> None:
    session.install("-r", "dev-requirements.txt")
    session.install("--no-deps", "-e", ".")
    session.run("mypy", *SRC_DIRS)
