"""System audio capture through a supervised sox subprocess."""

import time
import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Thread, Event, RLock
from typing import Optional, Callable, Deque, IO

from ..errors import (
    AlreadyActiveError,
    NotRecordingError,
    EmptyRecordingError,
    CaptureFailedError,
)
from ..models.capture import CaptureStarted, CaptureStatus, RecordingResult
from ..process import ManagedProcess
from ..storage import naming
from .devices import find_capture_device

logger = logging.getLogger(__name__)

SAMPLE_RATE = 48000
BIT_DEPTH = 16
CHANNELS = 2
MAX_RECORDING_SIZE = 1024 * 1024 * 1024  # 1 GiB
SIZE_CHECK_INTERVAL_SECONDS = 30.0
DIAGNOSTIC_TAIL_LINES = 20


def next_recording_path(recordings_dir: Path, now: datetime) -> Path:
    """Return a free recording path for ``now``, advancing a second at a time on collision."""
    timestamp = now.replace(microsecond=0)
    candidate = recordings_dir / naming.recording_filename(timestamp)
    while candidate.exists():
        timestamp += timedelta(seconds=1)
        candidate = recordings_dir / naming.recording_filename(timestamp)
    return candidate


class CaptureSession:
    """Owns at most one running sox process writing system audio to a WAV file."""

    def __init__(
        self,
        output_dir: str,
        executable: str = "sox",
        device_resolver: Callable[[], str] = find_capture_device,
        size_check_interval: float = SIZE_CHECK_INTERVAL_SECONDS,
        max_file_size: int = MAX_RECORDING_SIZE,
        error_callback: Optional[Callable[[CaptureFailedError], None]] = None,
    ):
        """Initialize capture session.

        Args:
            output_dir: Base directory; recordings go to its recordings/ subdirectory
            executable: sox executable name or path
            device_resolver: Returns the capture device name, raises DeviceNotFoundError
            size_check_interval: Seconds between output size checks
            max_file_size: Size in bytes above which a warning is issued
            error_callback: Called when sox exits while still recording
        """
        self.output_dir = Path(output_dir)
        self.recordings_dir = self.output_dir / naming.RECORDINGS_DIRNAME
        self.executable = executable
        self.device_resolver = device_resolver
        self.size_check_interval = size_check_interval
        self.max_file_size = max_file_size
        self.error_callback = error_callback

        self.is_recording = False
        self.current_file: Optional[Path] = None
        self.start_time: Optional[datetime] = None
        self.last_error: Optional[CaptureFailedError] = None

        self._lock = RLock()
        self._process: Optional[ManagedProcess] = None
        self._stopping = False
        self._started_monotonic = 0.0
        self._monitor_stop = Event()
        self._monitor_thread: Optional[Thread] = None
        self._drain_thread: Optional[Thread] = None
        self._diagnostics: Deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)

    def _build_command(self, device: str, file_path: Path) -> list:
        return [
            self.executable,
            "-t", "coreaudio",       # CoreAudio input driver
            device,
            "-r", str(SAMPLE_RATE),
            "-b", str(BIT_DEPTH),
            "-c", str(CHANNELS),
            str(file_path),
        ]

    def start(self, warning_callback: Optional[Callable[[str], None]] = None) -> CaptureStarted:
        """Start capturing system audio in the background.

        Args:
            warning_callback: Receives a message when the file grows past the size ceiling

        Returns:
            CaptureStarted with the new file path and start time

        Raises:
            AlreadyActiveError: If a capture is already running
            DeviceNotFoundError: If the virtual capture device is missing
            CaptureFailedError: If sox cannot be started
        """
        with self._lock:
            if self.is_recording:
                raise AlreadyActiveError("Already recording. Stop the current recording first.")

            device = self.device_resolver()

            self.recordings_dir.mkdir(parents=True, exist_ok=True)
            file_path = next_recording_path(self.recordings_dir, datetime.now(timezone.utc))

            process = ManagedProcess(self._build_command(device, file_path), name="sox")
            process.on_exit(lambda code: self._on_process_exit(process, code))

            self._diagnostics.clear()
            self._stopping = False
            self.last_error = None
            try:
                process.start(new_session=True)
            except OSError as e:
                raise CaptureFailedError(
                    f"Failed to start recording: {e}\n"
                    "Install sox with: brew install sox") from e

            self._process = process
            self.current_file = file_path
            self.start_time = datetime.now()
            self._started_monotonic = time.monotonic()
            self.is_recording = True

            self._drain_thread = Thread(target=self._drain_diagnostics, args=(process.stderr,), daemon=True)
            self._drain_thread.name = "SoxDiagnosticsThread"
            self._drain_thread.start()

            self._monitor_stop = Event()
            if warning_callback:
                self._monitor_thread = Thread(
                    target=self._monitor_size,
                    args=(file_path, warning_callback, self._monitor_stop),
                    daemon=True,
                )
                self._monitor_thread.name = "RecordingSizeMonitor"
                self._monitor_thread.start()

            logger.info(f"Recording started: {file_path}")
            return CaptureStarted(file_path=file_path, started_at=self.start_time)

    def stop(self) -> RecordingResult:
        """Stop sox gracefully and verify the recording.

        Blocks until sox has exited, since it finalizes the WAV header on exit.

        Returns:
            RecordingResult with path, wall-clock duration and size

        Raises:
            NotRecordingError: If no capture is running
            EmptyRecordingError: If the file is missing or empty after sox exits
        """
        with self._lock:
            if not self.is_recording or self._process is None:
                raise NotRecordingError("Not currently recording")
            self._stopping = True
            process = self._process
            file_path = self.current_file
            self._monitor_stop.set()

        if self._monitor_thread and self._monitor_thread.is_alive():
            self._monitor_thread.join(timeout=2.0)
        self._monitor_thread = None

        logger.info("Stopping recording, waiting for sox to finalize the file")
        code = process.terminate_and_wait()
        duration = time.monotonic() - self._started_monotonic

        with self._lock:
            self.is_recording = False

        if self._drain_thread and self._drain_thread.is_alive():
            self._drain_thread.join(timeout=2.0)

        logger.debug(f"sox exited with code {code}")

        if not file_path.exists():
            raise EmptyRecordingError(
                f"Recording file was not created: {file_path}\n"
                "Check audio routing to the BlackHole device.")

        size = file_path.stat().st_size
        if size == 0:
            raise EmptyRecordingError(
                "Recording file is empty. Check audio routing.\n"
                "System output must go through a Multi-Output Device that includes BlackHole.")

        logger.info(f"Recording stopped: {file_path} ({duration:.1f}s, {size} bytes)")
        return RecordingResult(file_path=file_path, duration_seconds=duration, size_bytes=size)

    def get_status(self) -> Optional[CaptureStatus]:
        """Snapshot of the active capture, or None when idle."""
        with self._lock:
            if not self.is_recording:
                return None
            return CaptureStatus(
                is_recording=True,
                duration_seconds=time.monotonic() - self._started_monotonic,
                file_path=self.current_file,
            )

    def cleanup(self) -> None:
        """Emergency shutdown: kill sox without waiting or verifying output."""
        with self._lock:
            self._monitor_stop.set()
            self._stopping = True
            if self._process is not None and self.is_recording:
                self._process.kill()
            self.is_recording = False
        logger.info("Capture session cleaned up")

    def _on_process_exit(self, process: ManagedProcess, code: int) -> None:
        with self._lock:
            if process is not self._process or self._stopping or not self.is_recording:
                return
            self.is_recording = False
            self._monitor_stop.set()
            tail = "\n".join(self._diagnostics)
            error = CaptureFailedError(
                f"sox process exited unexpectedly (code {code})\n{tail}".rstrip(),
                exit_code=code,
            )
            self.last_error = error

        logger.error(f"sox process exited unexpectedly: code={code}")
        if self.error_callback:
            self.error_callback(error)

    def _drain_diagnostics(self, stream: Optional[IO[str]]) -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                line = line.rstrip()
                if line:
                    self._diagnostics.append(line)
                    logger.debug(f"sox stderr: {line}")

    def _monitor_size(self, file_path: Path, callback: Callable[[str], None], stop_event: Event) -> None:
        while not stop_event.wait(self.size_check_interval):
            try:
                size = file_path.stat().st_size
            except OSError:
                # File might not exist yet
                continue

            if size > self.max_file_size:
                size_mb = round(size / (1024 * 1024))
                message = f"Recording size is {size_mb}MB. Consider stopping to avoid disk space issues."
                logger.warning(message)
                callback(message)

    def __del__(self):
        """Make sure sox does not outlive the session object."""
        if getattr(self, "is_recording", False):
            self.cleanup()
