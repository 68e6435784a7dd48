"""Supervision of external subprocesses (sox, whisper.cpp)."""

import logging
import subprocess
import threading
from enum import Enum
from typing import Callable, List, Optional, IO

logger = logging.getLogger(__name__)


class ProcessState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class ManagedProcess:
    """One external process with an explicit not-started/running/exited lifecycle.

    Graceful stop (``terminate_and_wait``) sends SIGTERM and waits for the
    process to exit so it can finalize its output. Forced stop (``kill``)
    sends SIGKILL and returns immediately.
    """

    def __init__(self, args: List[str], name: Optional[str] = None):
        self.args = [str(a) for a in args]
        self.name = name or self.args[0]
        self._process: Optional[subprocess.Popen] = None
        self._exit_callbacks: List[Callable[[int], None]] = []
        self._watcher: Optional[threading.Thread] = None
        self._exited = threading.Event()

    @property
    def state(self) -> ProcessState:
        if self._process is None:
            return ProcessState.NOT_STARTED
        if self._exited.is_set() or self._process.poll() is not None:
            return ProcessState.EXITED
        return ProcessState.RUNNING

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def stdout(self) -> Optional[IO[str]]:
        return self._process.stdout if self._process else None

    @property
    def stderr(self) -> Optional[IO[str]]:
        return self._process.stderr if self._process else None

    def on_exit(self, callback: Callable[[int], None]) -> None:
        """Register a callback invoked from the watcher thread with the exit code."""
        self._exit_callbacks.append(callback)

    def start(self, capture_stdout: bool = False, new_session: bool = False) -> None:
        """Spawn the process with stderr piped (and stdout if requested).

        With ``new_session`` the child leads its own session and process group,
        so a terminal Ctrl+C aimed at the CLI does not reach it.

        Raises:
            OSError: If the executable cannot be started
            RuntimeError: If this process was already started
        """
        if self._process is not None:
            raise RuntimeError(f"{self.name} already started")

        logger.debug(f"Spawning {self.name}: {' '.join(self.args)}")
        self._process = subprocess.Popen(
            self.args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if capture_stdout else subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=new_session,
        )

        self._watcher = threading.Thread(target=self._watch_exit, daemon=True)
        self._watcher.name = f"{self.name}-watcher"
        self._watcher.start()
        logger.info(f"Started {self.name} (pid {self._process.pid})")

    def _watch_exit(self) -> None:
        code = self._process.wait()
        self._exited.set()
        logger.debug(f"{self.name} exited with code {code}")
        for callback in list(self._exit_callbacks):
            try:
                callback(code)
            except Exception as e:
                logger.error(f"Exit callback for {self.name} failed: {e}")

    def wait(self, timeout: Optional[float] = None) -> int:
        """Block until the process exits and the exit callbacks have run."""
        if self._process is None:
            raise RuntimeError(f"{self.name} was never started")
        code = self._process.wait(timeout=timeout)
        if self._watcher and self._watcher is not threading.current_thread():
            self._watcher.join(timeout)
        return code

    def terminate_and_wait(self, timeout: Optional[float] = None) -> int:
        """Send SIGTERM and wait for the process to exit on its own terms."""
        if self.state == ProcessState.RUNNING:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        return self.wait(timeout)

    def kill(self) -> None:
        """Send SIGKILL without waiting for exit."""
        if self.state != ProcessState.RUNNING:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            pass
        logger.warning(f"Killed {self.name} (pid {self._process.pid})")
