"""
Relaunch Package

Watches a set of regular files and reruns a shell command whenever one of
them has been written, killing the previous run first.

Features:
- inotify (persistent) and kqueue (one-shot) backends via watchdog
- Optional re-arming of one-shot watches
- At most one live child process, always for the latest change
- Process-group termination of the command and its descendants
- In-memory event source for tests
"""

from .models import (
    JobState,
    SupervisorState,
    WatchTarget,
    WatchEvent,
    Job,
)

from .config import RelaunchConfig

from .exceptions import (
    RelaunchError,
    ArgumentError,
    NotRegularFileError,
    OSFailureError,
    WatchSetupError,
    WaitError,
    EventSourceClosedError,
    SpawnError,
)

from .launcher import ProcessLauncher
from .supervisor import Supervisor
from .event_source import (
    EventSource,
    InotifyEventSource,
    KqueueEventSource,
    MemoryEventSource,
    create_event_source,
)
from .watch_loop import WatchLoop, LoopState, print_header


__all__ = [
    # Models
    "JobState",
    "SupervisorState",
    "WatchTarget",
    "WatchEvent",
    "Job",
    # Config
    "RelaunchConfig",
    # Exceptions
    "RelaunchError",
    "ArgumentError",
    "NotRegularFileError",
    "OSFailureError",
    "WatchSetupError",
    "WaitError",
    "EventSourceClosedError",
    "SpawnError",
    # Components
    "ProcessLauncher",
    "Supervisor",
    "EventSource",
    "InotifyEventSource",
    "KqueueEventSource",
    "MemoryEventSource",
    "create_event_source",
    # Main loop
    "WatchLoop",
    "LoopState",
    "print_header",
]

__version__ = "0.1.0"
