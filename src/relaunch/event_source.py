"""File event sources built on the watchdog library."""

import errno
import logging
import os
import queue
import stat
import sys
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type, Union

from watchdog.events import (
    FileClosedEvent,
    FileModifiedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)

from .config import RelaunchConfig
from .exceptions import (
    EventSourceClosedError,
    NotRegularFileError,
    WaitError,
    WatchSetupError,
)
from .models import WatchEvent, WatchTarget


logger = logging.getLogger(__name__)

# Upper bound on a single blocking queue read, so closing and observer
# failures are noticed while waiting without a timeout.
_WAIT_SLICE = 0.5

_CLOSED = object()


class TargetEventHandler(FileSystemEventHandler):
    """Forwards watchdog events of the given types to an EventSource."""

    def __init__(
        self,
        source: "EventSource",
        event_types: Tuple[Type[FileSystemEvent], ...],
        kind: str,
    ):
        super().__init__()
        self._source = source
        self._event_types = event_types
        self._kind = kind

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if not isinstance(event, self._event_types):
            return
        self._source._deliver(Path(os.fsdecode(event.src_path)), self._kind)


class EventSource(ABC):
    """
    Blocks until one of the registered files was written.

    Backends push notifications from their own thread with ``_deliver``;
    the thread running the watch loop consumes them with ``wait``.

    Persistent backends report every qualifying write of a target. One-shot
    backends (``one_shot = True``) disarm a target when it fires; it is
    re-armed by ``wait`` when ``config.rearm_one_shot`` is set and otherwise
    never fires again.
    """

    one_shot = False
    event_kind = "close_write"

    def __init__(self, config: Optional[RelaunchConfig] = None):
        self.config = config or RelaunchConfig()
        self._targets: Dict[Path, WatchTarget] = {}
        self._events: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def targets(self) -> List[WatchTarget]:
        """Registered targets in registration order."""
        with self._lock:
            return list(self._targets.values())

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, path: Union[str, Path]) -> WatchTarget:
        """
        Start watching a regular file.

        Registering the same file twice returns the existing target.

        Args:
            path: Path to the file

        Returns:
            The new watch target

        Raises:
            NotRegularFileError: If the path is not a regular file
            WatchSetupError: If the path cannot be queried or watched
        """
        path = Path(path)
        try:
            st = os.stat(path)
        except OSError as e:
            raise WatchSetupError.from_os_error(e, f"cannot watch {path}") from e
        if not stat.S_ISREG(st.st_mode):
            raise NotRegularFileError(path)

        resolved = path.resolve()
        with self._lock:
            if self._closed:
                raise WatchSetupError("event source is closed")
            existing = self._targets.get(resolved)
            if existing is not None:
                return existing

            target = WatchTarget(path=resolved)
            try:
                target.handle = self._attach(target)
            except OSError as e:
                raise WatchSetupError.from_os_error(e, f"cannot watch {path}") from e
            self._targets[resolved] = target

        logger.debug(f"Watching {resolved}")
        return target

    def wait(self, timeout: Optional[float] = None) -> Optional[WatchEvent]:
        """
        Block until a registered file fires.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            The event, or None if the timeout expired

        Raises:
            WaitError: If the backend failed or the source is closed
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if self._closed:
                raise EventSourceClosedError("event source is closed")
            self._check_alive()

            block = _WAIT_SLICE
            if deadline is not None:
                block = min(block, max(0.0, deadline - time.monotonic()))
            try:
                item = self._events.get(timeout=block)
            except queue.Empty:
                if deadline is not None and time.monotonic() >= deadline:
                    return None
                continue

            if item is _CLOSED:
                raise EventSourceClosedError("event source is closed")
            if isinstance(item, WaitError):
                raise item

            self._after_fire(item)
            return item

    def close(self) -> None:
        """Remove all native watches and wake up a blocked ``wait``."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            targets = list(self._targets.values())
            self._targets.clear()

        self._events.put(_CLOSED)
        self._detach_all(targets)

    def _deliver(self, path: Path, kind: Optional[str] = None) -> bool:
        """Queue an event for ``path`` if it is a registered, armed target."""
        with self._lock:
            target = self._targets.get(path)
            if target is None:
                return False
            if not target.armed:
                logger.debug(f"Ignoring write to {path}: watch already fired")
                return False
            if not self._accepts(target):
                return False
            target.fire_count += 1
            if self.one_shot:
                target.armed = False

        self._events.put(WatchEvent(path=path, kind=kind or self.event_kind))
        return True

    def _fail(self, error: WaitError) -> None:
        """Make the next ``wait`` raise ``error``."""
        self._events.put(error)

    def _after_fire(self, event: WatchEvent) -> None:
        if not (self.one_shot and self.config.rearm_one_shot):
            return
        with self._lock:
            target = self._targets.get(event.path)
            if target is None or target.armed:
                return
            try:
                self._rearm(target)
            except OSError as e:
                raise WaitError.from_os_error(e, f"cannot re-arm watch on {target.path}") from e
            target.armed = True

    def _accepts(self, target: WatchTarget) -> bool:
        """Whether a notification for an armed target counts. Caller holds the lock."""
        return True

    def _rearm(self, target: WatchTarget) -> None:
        """Renew the native subscription of a fired one-shot target."""
        pass

    def _check_alive(self) -> None:
        """Raise WaitError if the backend can no longer deliver events."""
        pass

    @abstractmethod
    def _attach(self, target: WatchTarget):
        """Create the native watch for a target and return its handle."""
        pass

    @abstractmethod
    def _detach_all(self, targets: List[WatchTarget]) -> None:
        """Release the native watches of all targets."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ObserverEventSource(EventSource):
    """
    Base for backends driven by a watchdog observer.

    Each target's parent directory is scheduled non-recursively, once per
    directory, and the handler drops events for files that were not
    registered.
    """

    watched_events: Tuple[Type[FileSystemEvent], ...] = ()

    def __init__(self, config: Optional[RelaunchConfig] = None):
        super().__init__(config)
        self._observer = self._create_observer()
        self._handler = TargetEventHandler(self, self.watched_events, self.event_kind)
        self._watches: Dict[Path, object] = {}
        self._started = False

    @abstractmethod
    def _create_observer(self):
        pass

    def _attach(self, target: WatchTarget):
        directory = target.path.parent
        watch = self._watches.get(directory)
        if watch is None:
            watch = self._observer.schedule(self._handler, str(directory), recursive=False)
            self._watches[directory] = watch
        if not self._started:
            self._observer.start()
            self._started = True
        return watch

    def _check_alive(self) -> None:
        if self._started and not self._observer.is_alive() and not self._closed:
            raise WaitError("file event observer stopped unexpectedly")

    def _detach_all(self, targets: List[WatchTarget]) -> None:
        self._watches.clear()
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=5.0)


class InotifyEventSource(ObserverEventSource):
    """Persistent backend: inotify IN_CLOSE_WRITE through watchdog."""

    event_kind = "close_write"
    watched_events = (FileClosedEvent,)

    def _create_observer(self):
        from watchdog.observers.inotify import InotifyObserver
        return InotifyObserver()


class KqueueEventSource(ObserverEventSource):
    """
    One-shot backend: kqueue NOTE_WRITE through watchdog.

    watchdog keeps its kqueue descriptors registered, so the one-shot rule
    is applied per target: a fired target reports nothing until re-armed.
    watchdog also turns NOTE_ATTRIB into FileModifiedEvent, so a
    notification only counts when the file's mtime or size moved.
    """

    one_shot = True
    event_kind = "write"
    watched_events = (FileModifiedEvent,)

    def __init__(self, config: Optional[RelaunchConfig] = None):
        super().__init__(config)
        self._stamps: Dict[Path, Tuple[int, int]] = {}

    def _create_observer(self):
        from watchdog.observers.kqueue import KqueueObserver
        return KqueueObserver()

    def _attach(self, target: WatchTarget):
        self._stamps[target.path] = content_stamp(target.path)
        return super()._attach(target)

    def _accepts(self, target: WatchTarget) -> bool:
        try:
            stamp = content_stamp(target.path)
        except OSError:
            logger.debug(f"Ignoring event for {target.path}: file is gone")
            return False
        if stamp == self._stamps.get(target.path):
            logger.debug(f"Ignoring attribute change on {target.path}")
            return False
        self._stamps[target.path] = stamp
        return True

    def _rearm(self, target: WatchTarget) -> None:
        # The file may have been replaced since it was registered.
        if not target.path.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(target.path))
        self._stamps[target.path] = content_stamp(target.path)
        target.handle = self._watches[target.path.parent]


def content_stamp(path: Path) -> Tuple[int, int]:
    """Return ``(st_mtime_ns, st_size)``, which changes when the file is written."""
    st = os.stat(path)
    return st.st_mtime_ns, st.st_size


class MemoryEventSource(EventSource):
    """
    In-memory backend driven by ``fire``.

    Registration still requires real regular files; no OS watch is made.
    """

    def __init__(self, config: Optional[RelaunchConfig] = None, one_shot: bool = False):
        super().__init__(config)
        self.one_shot = one_shot
        self.event_kind = "write" if one_shot else "close_write"
        self.rearm_count = 0

    def fire(self, path: Union[str, Path]) -> bool:
        """
        Simulate a completed write to a registered file.

        Returns:
            True if an event was queued, False if the target is disarmed

        Raises:
            KeyError: If the path was never registered
        """
        resolved = Path(path).resolve()
        with self._lock:
            if resolved not in self._targets:
                raise KeyError(str(path))
        return self._deliver(resolved)

    def fail(self, error: WaitError) -> None:
        """Make the next ``wait`` raise ``error``."""
        self._fail(error)

    def _attach(self, target: WatchTarget):
        return f"memory:{target.path}"

    def _rearm(self, target: WatchTarget) -> None:
        self.rearm_count += 1

    def _detach_all(self, targets: List[WatchTarget]) -> None:
        pass


def create_event_source(config: Optional[RelaunchConfig] = None) -> EventSource:
    """
    Create the event source selected by ``config.backend``.

    "auto" selects inotify on Linux and kqueue on macOS and the BSDs.

    Raises:
        WatchSetupError: If no backend is available for this platform
    """
    config = config or RelaunchConfig()
    backend = config.backend

    if backend == "auto":
        if sys.platform.startswith("linux"):
            backend = "inotify"
        elif sys.platform == "darwin" or "bsd" in sys.platform:
            backend = "kqueue"
        else:
            raise WatchSetupError(f"no file event backend available on {sys.platform}")

    try:
        if backend == "inotify":
            return InotifyEventSource(config)
        if backend == "kqueue":
            return KqueueEventSource(config)
    except (ImportError, OSError) as e:
        raise WatchSetupError(f"{backend} backend unavailable: {e}") from e
    if backend == "memory":
        return MemoryEventSource(config)

    raise WatchSetupError(f"unknown backend: {backend}")
