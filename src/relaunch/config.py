"""Configuration for the relaunch package."""

import os
import signal
from dataclasses import dataclass, fields

from .exceptions import ArgumentError


BACKENDS = ("auto", "inotify", "kqueue", "memory")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    value = value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ArgumentError(f"{name} must be a boolean, got {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ArgumentError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class RelaunchConfig:
    """
    Configuration options for watching files and relaunching a command.
    
    Attributes:
        backend: Event backend ("auto", "inotify", "kqueue" or "memory")
        rearm_one_shot: Re-arm one-shot watches after every event; when False
            each file triggers at most once on one-shot backends
        kill_process_group: Start each job in its own session and signal the
            whole process group instead of only the shell
        kill_signal: Signal used to preempt a running job
        shell: Shell used to run the command as ``<shell> -c <command>``
        stop_on_empty_command: Treat an empty command as a request to stop
        show_header: Print the watched files and command on startup
        max_files: Maximum number of files that can be watched
        poll_interval_ms: How often the watch loop checks for a stop request
    """
    backend: str = "auto"
    rearm_one_shot: bool = True
    kill_process_group: bool = True
    kill_signal: int = signal.SIGKILL
    shell: str = "sh"
    stop_on_empty_command: bool = True
    show_header: bool = True
    max_files: int = 1024
    poll_interval_ms: int = 500

    @classmethod
    def from_env(cls, **overrides) -> "RelaunchConfig":
        """
        Create a config from RELAUNCH_* environment variables.
        
        Keyword arguments whose value is not None take precedence over
        the environment.
        
        Raises:
            ArgumentError: If a variable cannot be parsed
        """
        config = cls(
            backend=os.environ.get("RELAUNCH_BACKEND") or cls.backend,
            rearm_one_shot=_env_bool("RELAUNCH_REARM", cls.rearm_one_shot),
            kill_process_group=_env_bool("RELAUNCH_KILL_GROUP", cls.kill_process_group),
            shell=os.environ.get("RELAUNCH_SHELL") or cls.shell,
            poll_interval_ms=_env_int("RELAUNCH_POLL_INTERVAL_MS", cls.poll_interval_ms),
        )
        known = {f.name for f in fields(cls)}
        for name, value in overrides.items():
            if name not in known:
                raise TypeError(f"unknown config option: {name}")
            if value is not None:
                setattr(config, name, value)
        return config

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0

    def validate(self) -> None:
        """
        Check option values.
        
        Raises:
            ArgumentError: If an option is out of range
        """
        if self.backend not in BACKENDS:
            raise ArgumentError(
                f"unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}"
            )
        if self.max_files <= 0:
            raise ArgumentError("max_files must be positive")
        if self.poll_interval_ms <= 0:
            raise ArgumentError("poll_interval_ms must be positive")
        if not self.shell:
            raise ArgumentError("shell must not be empty")
