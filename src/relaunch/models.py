"""Data models for the relaunch package."""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class JobState(Enum):
    """Lifecycle of a single run of the command."""
    LAUNCHING = "launching"
    RUNNING = "running"
    KILLING = "killing"
    EXITED = "exited"
    KILLED = "killed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.EXITED, JobState.KILLED, JobState.FAILED)


class SupervisorState(Enum):
    """State of the supervisor, derived from its current job."""
    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    KILLING = "killing"


@dataclass
class WatchTarget:
    """
    A watched file and its native subscription.
    
    Attributes:
        path: Absolute path to the regular file
        handle: Backend-specific watch handle
        armed: Whether the next write will be reported
        fire_count: Number of events delivered for this target
    """
    path: Path
    handle: Any = None
    armed: bool = True
    fire_count: int = 0

    def __post_init__(self):
        if not self.path.is_absolute():
            raise ValueError(f"path must be absolute: {self.path}")


@dataclass(frozen=True)
class WatchEvent:
    """
    A write-completion notification for a watched file.
    
    Attributes:
        path: The file that was written
        kind: "close_write" for persistent backends, "write" for one-shot ones
        timestamp: Unix timestamp when the event was received
    """
    path: Path
    kind: str = "close_write"
    timestamp: float = field(default_factory=time.time)


class Job:
    """
    One run of the command, from spawn to reap.
    
    State changes are made by the owning Supervisor while it holds its lock;
    other threads only read the attributes or wait for the job to finish.
    """

    def __init__(self, command: str, generation: int):
        self.command = command
        self.generation = generation
        self.pid: Optional[int] = None
        self.state = JobState.LAUNCHING
        self.returncode: Optional[int] = None
        self.error: Optional[BaseException] = None
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self._finished = threading.Event()

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the job reaches a terminal state.
        
        Returns:
            True if the job finished, False on timeout
        """
        return self._finished.wait(timeout)

    def _finish(self, state: JobState) -> None:
        self.state = state
        self.finished_at = time.time()
        self._finished.set()

    def __repr__(self) -> str:
        return (
            f"Job(generation={self.generation}, command={self.command!r}, "
            f"pid={self.pid}, state={self.state.value})"
        )
