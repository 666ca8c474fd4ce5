# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Orchestrates a single chroot session: mount, provision resolv.conf, run, clean up.

An interrupt or termination signal received while mounting, provisioning or running
tears the mounts down right away and ends the session with `EXIT_FAILURE`. Otherwise
the mounts are released once the command has exited, whatever its exit code.
"""

import logging
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import auto, Enum
from types import FrameType
from typing import Any, Callable, Dict, Generator, Optional, Sequence

from fchroot.clock import Clock, ClockImpl
from fchroot.config import ChrootConfig
from fchroot.errors import EXIT_FAILURE
from fchroot.launcher import ChrootLauncher
from fchroot.mounts import EssentialMounter, EssentialUnmounter
from fchroot.probe import make_probe, MountStateProbe
from fchroot.resolv import ResolvConfProvisioner

logger = logging.getLogger(__name__)

SignalInstaller = Callable[[int, Any], Any]


class LifecycleState(Enum):
    INIT = auto()
    MOUNTING_ESSENTIALS = auto()
    RESOLV_SETUP = auto()
    RUNNING = auto()
    CLEANING_UP = auto()
    DONE = auto()
    INTERRUPTED = auto()


INTERRUPTIBLE_STATES = frozenset(
    {
        LifecycleState.MOUNTING_ESSENTIALS,
        LifecycleState.RESOLV_SETUP,
        LifecycleState.RUNNING,
    }
)


class Interrupted(Exception):
    def __init__(self, signum: int):
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum


@dataclass
class SignalWatcher:
    """Calls `on_signal` when one of `signals` is delivered while the watcher is entered.

    `fired` is set before `on_signal` runs and stays set, so the main sequence can tell
    that cleanup was already taken care of.
    """

    on_signal: Callable[[int], None]
    signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM)
    install: SignalInstaller = signal.signal
    fired: threading.Event = field(default_factory=threading.Event)
    _previous: Dict[int, Any] = field(init=False, default_factory=dict)

    def __enter__(self) -> "SignalWatcher":
        for signum in self.signals:
            self._previous[signum] = self.install(signum, self._handle)
        return self

    def __exit__(self, *exc_info: object) -> None:
        for signum, previous in self._previous.items():
            self.install(signum, previous)
        self._previous.clear()

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        if self.fired.is_set():
            logger.debug(f"Ignoring signal {signum}, already handling one")
            return
        self.fired.set()
        self.on_signal(signum)


@dataclass
class LifecycleController:
    config: ChrootConfig
    probe: MountStateProbe
    mounter: EssentialMounter
    unmounter: EssentialUnmounter
    provisioner: ResolvConfProvisioner
    launcher: ChrootLauncher
    install_signal: SignalInstaller = signal.signal
    state: LifecycleState = field(init=False, default=LifecycleState.INIT)

    @classmethod
    def from_config(
        cls, config: ChrootConfig, clock: Optional[Clock] = None
    ) -> "LifecycleController":
        probe = make_probe(config.probe)
        return cls(
            config=config,
            probe=probe,
            mounter=EssentialMounter(probe=probe),
            unmounter=EssentialUnmounter(
                probe=probe,
                clock=clock or ClockImpl(),
                attempts=config.unmount_attempts,
                retry_delay=config.unmount_retry_delay,
            ),
            provisioner=ResolvConfProvisioner(host_resolv=config.host_resolv),
            launcher=ChrootLauncher(),
        )

    def run(self) -> int:
        """Run the whole session and return the exit code for the process.

        Raises:
            SetupError if mounting or resolv.conf provisioning fails.
            LaunchFailed if the command could not be started.
        """
        self.check_root_mountpoint()
        watcher = SignalWatcher(self._on_signal, install=self.install_signal)
        try:
            with watcher:
                self._transition(LifecycleState.MOUNTING_ESSENTIALS)
                self.mounter.mount_all(self.config.root)
                with self._mounted():
                    if self.config.skip_resolv:
                        logger.debug("Skipping resolv.conf setup")
                    else:
                        self._transition(LifecycleState.RESOLV_SETUP)
                        self.provisioner.provision(self.config.root)
                    self._transition(LifecycleState.RUNNING)
                    return self.launcher.run(self.config)
        except Interrupted:
            return EXIT_FAILURE

    def check_root_mountpoint(self) -> None:
        root = self.config.root
        if self.probe.is_mounted(root):
            logger.debug(f"Chroot directory {root} is a mountpoint")
        else:
            logger.warning(
                f"{root} is not a mountpoint (this might be intentional for a directory chroot)"
            )

    @contextmanager
    def _mounted(self) -> Generator[None, None, None]:
        try:
            yield
        finally:
            # the signal handler already tore everything down
            if self.state != LifecycleState.INTERRUPTED:
                self._transition(LifecycleState.CLEANING_UP)
                self.unmounter.unmount_all(self.config.root)
                self._transition(LifecycleState.DONE)

    def _on_signal(self, signum: int) -> None:
        if self.state not in INTERRUPTIBLE_STATES:
            logger.warning(
                f"Received signal {signum} while {self.state.name}, ignoring"
            )
            return
        self._transition(LifecycleState.INTERRUPTED)
        logger.info("Received interrupt signal, unmounting...")
        self.unmounter.unmount_all(self.config.root)
        raise Interrupted(signum)

    def _transition(self, state: LifecycleState) -> None:
        logger.debug(f"{self.state.name} -> {state.name}")
        self.state = state
