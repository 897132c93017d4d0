"""Single-slot supervisor that kills the previous job before starting the next."""

import logging
import subprocess
import threading
import time
from typing import Dict, Optional

from .config import RelaunchConfig
from .exceptions import RelaunchError, SpawnError
from .launcher import ProcessLauncher
from .models import Job, JobState, SupervisorState


logger = logging.getLogger(__name__)


class Supervisor:
    """
    Keeps at most one live child process, always for the latest trigger.

    Every trigger preempts the current job and hands the new one to a
    worker thread that spawns the child, waits for it, and clears the
    current job if nothing newer replaced it meanwhile. All job state
    changes happen under one lock, and a child is only reaped while that
    lock is held, so a kill can never reach a reused pid.
    """

    def __init__(
        self,
        config: Optional[RelaunchConfig] = None,
        launcher: Optional[ProcessLauncher] = None,
    ):
        """
        Initialize the supervisor.

        Args:
            config: Relaunch configuration
            launcher: Process launcher (defaults to one built from config)
        """
        self.config = config or RelaunchConfig()
        self._launcher = launcher or ProcessLauncher(self.config)
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._current: Optional[Job] = None
        self._processes: Dict[int, subprocess.Popen] = {}
        self._workers: Dict[int, threading.Thread] = {}
        self._generation = 0
        self._stopped = False

    @property
    def current(self) -> Optional[Job]:
        """The job for the most recent trigger, or None when idle."""
        with self._lock:
            return self._current

    @property
    def state(self) -> SupervisorState:
        with self._lock:
            job = self._current
            if job is None:
                return SupervisorState.IDLE
            return SupervisorState(job.state.value)

    @property
    def is_idle(self) -> bool:
        return self.state is SupervisorState.IDLE

    def trigger(self, command: str) -> Job:
        """
        Preempt the current job, if any, and start ``command``.

        Returns immediately; the returned job can be waited on.

        Raises:
            RelaunchError: If the supervisor was stopped
        """
        with self._lock:
            if self._stopped:
                raise RelaunchError("supervisor is stopped")
            if self._current is not None:
                self._preempt(self._current)

            self._generation += 1
            job = Job(command, self._generation)
            self._current = job

            worker = threading.Thread(
                target=self._run_job,
                args=(job,),
                name=f"relaunch-job-{job.generation}",
                daemon=True,
            )
            self._workers[job.generation] = worker
            worker.start()

        logger.info(f"Starting job {job.generation}: {command}")
        return job

    def _preempt(self, job: Job) -> None:
        """Move a live job to KILLING. Caller holds the lock."""
        if job.state is JobState.RUNNING:
            process = self._processes[job.generation]
            if self._launcher.has_exited(process):
                # Exited on its own; the worker reaps it as EXITED.
                logger.debug(f"Job {job.generation} (pid {job.pid}) already exited")
                return
            logger.info(f"Killing job {job.generation} (pid {job.pid})")
            self._launcher.kill(process)
            job.state = JobState.KILLING
        elif job.state is JobState.LAUNCHING:
            # The worker kills the child as soon as it has a pid.
            job.state = JobState.KILLING

    def _run_job(self, job: Job) -> None:
        """Worker body: spawn, wait for exit, then reap under the lock."""
        try:
            process = self._launcher.spawn(job.command)
        except SpawnError as e:
            logger.error(f"Job {job.generation} failed to start: {e}")
            with self._lock:
                job.error = e
                self._finish(job, JobState.FAILED)
            return

        with self._lock:
            job.pid = process.pid
            job.started_at = time.time()
            self._processes[job.generation] = process
            if job.state is JobState.KILLING:
                logger.info(f"Killing job {job.generation} (pid {job.pid}) right after start")
                self._launcher.kill(process)
            else:
                job.state = JobState.RUNNING

        self._launcher.wait_exited(process)

        with self._lock:
            job.returncode = self._launcher.wait(process)
            del self._processes[job.generation]
            if job.state is JobState.KILLING:
                final = JobState.KILLED
            else:
                final = JobState.EXITED
            self._finish(job, final)

        logger.info(f"Job {job.generation} (pid {job.pid}) {final.value} with status {job.returncode}")

    def _finish(self, job: Job, state: JobState) -> None:
        """Record a terminal state. Caller holds the lock."""
        job._finish(state)
        if self._current is job:
            self._current = None
        self._workers.pop(job.generation, None)
        self._idle.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every job started so far has finished.

        Returns:
            True if idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._workers, timeout)

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Kill the current job and wait for all workers.

        No new jobs are accepted afterwards.

        Returns:
            True if every worker finished within the timeout
        """
        with self._lock:
            self._stopped = True
            if self._current is not None:
                self._preempt(self._current)
        return self.wait_idle(timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
