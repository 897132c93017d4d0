"""Starting, signalling and reaping shell commands."""

import logging
import os
import subprocess
from typing import Optional

from .config import RelaunchConfig
from .exceptions import SpawnError


logger = logging.getLogger(__name__)


class ProcessLauncher:
    """
    Runs a command string through a shell as a child process.
    
    Waiting is split in two steps: ``wait_exited`` blocks until the child
    has terminated but leaves it unreaped, so its pid stays reserved, and
    ``wait`` collects the exit status.
    """

    def __init__(self, config: Optional[RelaunchConfig] = None):
        self.config = config or RelaunchConfig()

    def spawn(self, command: str) -> subprocess.Popen:
        """
        Start ``<shell> -c <command>``.
        
        Args:
            command: Shell command line
            
        Returns:
            The started process
            
        Raises:
            SpawnError: If the process could not be created
        """
        argv = [self.config.shell, "-c", command]
        try:
            process = subprocess.Popen(
                argv,
                start_new_session=self.config.kill_process_group,
            )
        except OSError as e:
            raise SpawnError.from_os_error(e, f"failed to run {command!r}") from e
        except ValueError as e:
            raise SpawnError(f"failed to run {command!r}: {e}") from e
        logger.debug(f"Spawned pid {process.pid}: {command}")
        return process

    def wait_exited(self, process: subprocess.Popen) -> None:
        """Block until the process has terminated, without reaping it."""
        if process.returncode is not None:
            return
        if not hasattr(os, "waitid"):
            process.wait()
            return
        try:
            os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOWAIT)
        except ChildProcessError:
            # Already collected elsewhere; wait() picks up the status.
            pass

    def has_exited(self, process: subprocess.Popen) -> bool:
        """Whether the process has terminated; leaves it unreaped where possible."""
        if process.returncode is not None:
            return True
        if not hasattr(os, "waitid"):
            return process.poll() is not None
        try:
            result = os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
        except ChildProcessError:
            return True
        return result is not None

    def wait(self, process: subprocess.Popen) -> int:
        """
        Reap the process.
        
        Returns:
            Exit status; a negative value -N means it was killed by signal N
        """
        return process.wait()

    def kill(self, process: subprocess.Popen, sig: Optional[int] = None) -> bool:
        """
        Send a signal to the process, or to its whole group.
        
        Must only be called while the process is unreaped.
        
        Returns:
            True if the signal was delivered, False if the process was
            already gone
        """
        sig = self.config.kill_signal if sig is None else sig
        try:
            if self.config.kill_process_group:
                os.killpg(process.pid, sig)
            else:
                os.kill(process.pid, sig)
        except ProcessLookupError:
            logger.debug(f"Process {process.pid} already exited")
            return False
        except PermissionError:
            # macOS reports EPERM for a group whose only member is a zombie.
            logger.debug(f"Process group {process.pid} no longer signalable")
            return False
        return True
