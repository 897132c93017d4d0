"""Top-level driver: register files, wait for writes, relaunch the command."""

import logging
import sys
import threading
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, List, Optional, Sequence, Union

from .config import RelaunchConfig
from .event_source import EventSource
from .exceptions import ArgumentError, RelaunchError
from .supervisor import Supervisor


logger = logging.getLogger(__name__)


class LoopState(Enum):
    """States of the watch loop."""
    INITIALIZING = "initializing"
    WATCHING = "watching"
    EXITING_ON_EMPTY_COMMAND = "exiting_on_empty_command"
    EXITING_ON_ERROR = "exiting_on_error"
    STOPPED = "stopped"


def print_header(paths: Iterable[Union[str, Path]], command: str, stream: Optional[IO[str]] = None) -> None:
    """Print the watched files and the command."""
    stream = stream or sys.stderr
    stream.write("Files:\n")
    for path in paths:
        stream.write(f"    {path}\n")
    stream.write(f"Command: {command}\n")
    stream.flush()


class WatchLoop:
    """
    Forwards every write to a watched file to the supervisor.

    The loop runs on the calling thread; ``EventSource.wait`` is its only
    blocking call.
    """

    def __init__(
        self,
        event_source: EventSource,
        supervisor: Supervisor,
        command: str,
        paths: Sequence[Union[str, Path]],
        config: Optional[RelaunchConfig] = None,
        stream: Optional[IO[str]] = None,
    ):
        """
        Initialize the watch loop.

        Args:
            event_source: Source of file events
            supervisor: Supervisor that runs the command
            command: Shell command to run on every event
            paths: Files to watch
            config: Relaunch configuration
            stream: Where the startup header goes (defaults to stderr)
        """
        self.event_source = event_source
        self.supervisor = supervisor
        self.command = command
        self.paths: List[Union[str, Path]] = list(paths)
        self.config = config or RelaunchConfig()
        self.stream = stream
        self.state = LoopState.INITIALIZING
        self.trigger_count = 0
        self._stop_event = threading.Event()

    def start(self) -> None:
        """
        Register every path, then print the header.

        Registration stops at the first failing path.

        Raises:
            ArgumentError: If no paths were given
            NotRegularFileError: If a path is not a regular file
            WatchSetupError: If a native watch cannot be created
        """
        if self.state is not LoopState.INITIALIZING:
            return
        try:
            if not self.paths:
                raise ArgumentError("must watch at least one file")
            for path in self.paths:
                self.event_source.register(path)
        except RelaunchError:
            self.state = LoopState.EXITING_ON_ERROR
            raise

        if self.config.show_header:
            print_header(self.paths, self.command, self.stream)
        self.state = LoopState.WATCHING
        logger.info(f"Watching {len(self.paths)} file(s)")

    def run(self) -> int:
        """
        Watch until stopped.

        Returns:
            Exit status: 0 on the empty-command sentinel or after ``stop``

        Raises:
            RelaunchError: On a registration or wait failure
        """
        self.start()

        try:
            while not self._stop_event.is_set():
                event = self.event_source.wait(timeout=self.config.poll_interval)
                if event is None:
                    continue

                self.trigger_count += 1
                if not self.command and self.config.stop_on_empty_command:
                    logger.info("Empty command, stopping")
                    self.state = LoopState.EXITING_ON_EMPTY_COMMAND
                    return 0

                logger.info(f"{event.path} changed, running: {self.command}")
                self.supervisor.trigger(self.command)
        except RelaunchError:
            if self._stop_event.is_set():
                # close() from stop handling wakes wait() with an error.
                self.state = LoopState.STOPPED
                return 0
            self.state = LoopState.EXITING_ON_ERROR
            raise

        self.state = LoopState.STOPPED
        logger.info("Watch loop stopped")
        return 0

    def stop(self) -> None:
        """Ask ``run`` to return; safe to call from any thread."""
        self._stop_event.set()
