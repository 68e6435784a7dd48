"""Pipeline coordinator: recording -> transcript -> notes, plus artifact lifecycle."""

import asyncio
import logging
import shutil
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from ..audio.capture import CaptureSession, SAMPLE_RATE, BIT_DEPTH, CHANNELS
from ..config import Notes4MeConfig
from ..errors import CaptureFailedError, EmptyRecordingError, SummarizationError
from ..models.capture import CaptureStarted, CaptureStatus, RecordingResult
from ..models.pipeline import (
    DependencyStatus,
    PipelineStage,
    PipelineState,
    ProcessingResult,
)
from ..models.recording import Recording, StorageStats
from ..storage import naming
from ..storage.artifact_store import ArtifactStore
from ..summarization.ollama import SummarizationJob
from ..transcription.whisper import TranscriptionJob
from .publisher import PipelinePublisher

logger = logging.getLogger(__name__)

BYTES_PER_SECOND = SAMPLE_RATE * CHANNELS * (BIT_DEPTH // 8)
SECONDS_PER_HOUR = 60 * 60


class PipelineCoordinator:
    """Owns the capture session, the processing jobs and the artifact store.

    Recording is exclusive: one capture at a time. Processing is not: every
    stop with auto-process enabled starts its own background chain, and chains
    for different recordings may run side by side.
    """

    def __init__(
        self,
        config: Notes4MeConfig,
        capture: Optional[CaptureSession] = None,
        transcriber: Optional[TranscriptionJob] = None,
        summarizer: Optional[SummarizationJob] = None,
        store: Optional[ArtifactStore] = None,
        publisher: Optional[PipelinePublisher] = None,
    ):
        """Initialize pipeline coordinator.

        Args:
            config: Settings store
            capture: Capture session, built from config if None
            transcriber: Transcription job, built from config if None
            summarizer: Summarization job, built from config if None
            store: Artifact store, built from config if None
            publisher: Event publisher, defaults to the "pipeline" topics
        """
        self.config = config
        output_dir = config.get_output_directory()

        self.store = store or ArtifactStore(output_dir)
        self.publisher = publisher or PipelinePublisher()

        self.capture = capture or CaptureSession(
            str(output_dir),
            size_check_interval=float(config.get('capture.size_check_seconds', 30)),
        )
        if self.capture.error_callback is None:
            self.capture.error_callback = self._on_capture_failed

        self.transcriber = transcriber or TranscriptionJob(
            str(output_dir),
            binary_path=config.get('whisper.binary_path'),
            model_path=config.get('whisper.model_path'),
        )
        self.summarizer = summarizer or SummarizationJob(
            base_url=config.get('ollama.base_url', "http://localhost:11434"),
            model=config.get('ollama.model', "llama3.2"),
        )

        self._states: Dict[Path, PipelineState] = {}
        self._states_lock = threading.Lock()
        self._workers: List[threading.Thread] = []
        self._sweeper_stop = threading.Event()
        self._sweeper_thread: Optional[threading.Thread] = None

        self.store.ensure_layout()
        logger.info(f"PipelineCoordinator initialized with output dir: {output_dir}")

    # State tracking

    def _set_state(self, recording_path: Path, stage: PipelineStage, **changes) -> None:
        with self._states_lock:
            state = self._states.get(recording_path) or PipelineState(recording_path=recording_path)
            state.stage = stage
            for key, value in changes.items():
                setattr(state, key, value)
            state.updated_at = datetime.now()
            self._states[recording_path] = state

    def get_state(self, recording_path: Union[str, Path]) -> Optional[PipelineState]:
        """Snapshot of one recording's pipeline state, None if never seen."""
        path = self.store.resolve_recording(recording_path)
        with self._states_lock:
            state = self._states.get(path)
            return replace(state) if state else None

    def states(self) -> Dict[Path, PipelineState]:
        with self._states_lock:
            return {path: replace(state) for path, state in self._states.items()}

    # Recording

    def start_recording(self, warning_callback: Optional[Callable[[str], None]] = None) -> CaptureStarted:
        """Start capturing system audio.

        Size warnings are published on the warning topic and forwarded to
        ``warning_callback`` if given.
        """
        def on_warning(message: str) -> None:
            self.publisher.warning(self.capture.current_file, PipelineStage.RECORDING, message)
            if warning_callback:
                warning_callback(message)

        started = self.capture.start(warning_callback=on_warning)
        with self._states_lock:
            # sox may already have crashed and been marked failed
            if started.file_path not in self._states:
                self._states[started.file_path] = PipelineState(
                    recording_path=started.file_path, stage=PipelineStage.RECORDING)
        return started

    def stop_recording(self) -> RecordingResult:
        """Stop capturing and, if auto-process is enabled, process the recording in the background.

        Raises:
            NotRecordingError: If nothing is being recorded
            EmptyRecordingError: If the recording is missing or empty; nothing is processed
        """
        file_path = self.capture.current_file
        try:
            result = self.capture.stop()
        except EmptyRecordingError as e:
            if file_path is not None:
                self._set_state(file_path, PipelineStage.FAILED, reason=e.summary)
                self.publisher.failed(file_path, PipelineStage.RECORDING, e)
            raise

        self._set_state(result.file_path, PipelineStage.IDLE)

        if self.config.get_auto_process():
            logger.info(f"Auto-processing recording: {result.file_path.name}")
            self.process_in_background(result.file_path)

        return result

    def get_recording_status(self) -> Optional[CaptureStatus]:
        return self.capture.get_status()

    def _on_capture_failed(self, error: CaptureFailedError) -> None:
        file_path = self.capture.current_file
        if file_path is not None:
            self._set_state(file_path, PipelineStage.FAILED, reason=error.summary)
        self.publisher.failed(file_path, PipelineStage.RECORDING, error)

    # Processing

    def transcribe(self, recording_path: Union[str, Path]) -> Path:
        """Transcribe one recording, publishing progress and one terminal event.

        Returns:
            Path to the transcript
        """
        path = self.store.resolve_recording(recording_path)
        try:
            transcript_path = self._transcribe_stage(path)
        except Exception as e:
            self._fail(path, e)
            raise
        self._set_state(path, PipelineStage.IDLE)
        self.publisher.completed(path, PipelineStage.TRANSCRIBING, f"Transcript saved: {transcript_path.name}")
        return transcript_path

    def summarize(self, transcript_path: Union[str, Path]) -> Path:
        """Generate notes for an existing transcript, publishing progress and one terminal event.

        Returns:
            Path to the notes file
        """
        transcript_path = Path(transcript_path)
        path = self._recording_for_transcript(transcript_path)
        try:
            notes_path = self._summarize_stage(path, transcript_path)
        except Exception as e:
            self._fail(path, e)
            raise
        self._set_state(path, PipelineStage.IDLE)
        self.publisher.completed(path, PipelineStage.SUMMARIZING, f"Notes saved: {notes_path.name}")
        return notes_path

    def process_recording(self, recording_path: Union[str, Path]) -> ProcessingResult:
        """Transcribe then summarize one recording.

        Publishes progress events followed by exactly one completed or failed
        event. Nothing is retried; on failure the artifacts already produced
        are left in place and the error is re-raised.
        """
        path = self.store.resolve_recording(recording_path)
        logger.info(f"Processing recording: {path.name}")
        try:
            transcript_path = self._transcribe_stage(path)
            notes_path = self._summarize_stage(path, transcript_path)
        except Exception as e:
            self._fail(path, e)
            raise

        self._set_state(path, PipelineStage.IDLE)
        self.publisher.completed(path, PipelineStage.SUMMARIZING, f"Notes saved: {notes_path.name}")
        logger.info(f"Processing complete: {path.name}")
        return ProcessingResult(recording_path=path, transcript_path=transcript_path, notes_path=notes_path)

    def process_in_background(self, recording_path: Union[str, Path]) -> threading.Thread:
        """Run ``process_recording`` in a daemon thread. Failures are published, not raised."""
        path = self.store.resolve_recording(recording_path)
        worker = threading.Thread(target=self._process_quietly, args=(path,), daemon=True)
        worker.name = f"Pipeline-{path.stem}"
        self._workers = [w for w in self._workers if w.is_alive()]
        self._workers.append(worker)
        worker.start()
        return worker

    def wait_for_background(self, timeout: Optional[float] = None) -> None:
        """Join background processing threads started so far."""
        for worker in list(self._workers):
            worker.join(timeout)

    def _process_quietly(self, path: Path) -> None:
        try:
            self.process_recording(path)
        except Exception as e:
            logger.error(f"Background processing failed for {path.name}: {e}")

    def _transcribe_stage(self, path: Path) -> Path:
        self._set_state(path, PipelineStage.TRANSCRIBING, progress=0, chars_emitted=0, reason=None)
        self.publisher.progress(path, PipelineStage.TRANSCRIBING, progress=0, message="Transcribing...")

        try:
            duration = path.stat().st_size / BYTES_PER_SECOND
            logger.info(f"Estimated transcription time: {self.transcriber.estimate_time(duration):.0f}s")
        except OSError:
            pass

        def on_progress(percent: int) -> None:
            self._set_state(path, PipelineStage.TRANSCRIBING, progress=percent)
            self.publisher.progress(path, PipelineStage.TRANSCRIBING, progress=percent)

        return self.transcriber.transcribe(str(path), progress_callback=on_progress)

    def _summarize_stage(self, path: Path, transcript_path: Path) -> Path:
        self._set_state(path, PipelineStage.SUMMARIZING, chars_emitted=0, reason=None)
        self.publisher.progress(path, PipelineStage.SUMMARIZING, chars_emitted=0, message="Generating notes...")

        def on_progress(chars: int) -> None:
            self._set_state(path, PipelineStage.SUMMARIZING, chars_emitted=chars)
            self.publisher.progress(path, PipelineStage.SUMMARIZING, chars_emitted=chars)

        return asyncio.run(self.summarizer.generate_notes(str(transcript_path), progress_callback=on_progress))

    def _fail(self, path: Path, error: Exception) -> None:
        with self._states_lock:
            state = self._states.get(path)
            stage = state.stage if state else PipelineStage.IDLE
        reason = getattr(error, "summary", str(error))
        self._set_state(path, PipelineStage.FAILED, reason=reason)
        self.publisher.failed(path, stage, error)
        logger.error(f"{stage.value.capitalize()} failed for {path.name}: {reason}")

    def _recording_for_transcript(self, transcript_path: Path) -> Path:
        name = transcript_path.name
        if naming.is_transcript_file(name):
            stem = name[:-len(naming.TRANSCRIPT_SUFFIX)]
            return self.store.recordings_dir / f"{stem}{naming.AUDIO_EXTENSION}"
        return transcript_path

    # Artifacts

    def list_recordings(self) -> List[Recording]:
        return self.store.list_recordings()

    def storage_stats(self) -> StorageStats:
        return self.store.stats()

    def run_cleanup(self) -> List[str]:
        """Apply the configured retention policy to recordings."""
        deleted = self.store.cleanup(self.config.get_retention_policy())
        with self._states_lock:
            for name in deleted:
                self._states.pop(self.store.recordings_dir / name, None)
        return deleted

    def delete_recording(self, recording: Union[str, Path]) -> List[str]:
        """Delete a recording along with its transcript and notes.

        Returns:
            Names of the files actually deleted
        """
        path = self.store.resolve_recording(recording)
        if not naming.is_recording_file(path):
            logger.warning(f"Not a recording, refusing to delete: {path}")
            return []

        deleted = []
        transcript_path = self.store.transcript_path_for(path)
        notes_path = naming.notes_path_for(transcript_path)

        if self.store.delete_one(path):
            deleted.append(path.name)

        for derived in (transcript_path, notes_path):
            if not derived.exists():
                continue
            try:
                derived.unlink()
                deleted.append(derived.name)
            except OSError as e:
                logger.error(f"Failed to delete {derived.name}: {e}")

        with self._states_lock:
            self._states.pop(path, None)

        logger.info(f"Deleted {len(deleted)} file(s) for {path.name}")
        return deleted

    def start_retention_sweeper(self, interval_seconds: Optional[float] = None) -> threading.Thread:
        """Run retention cleanup now and then periodically until ``shutdown``."""
        if self._sweeper_thread and self._sweeper_thread.is_alive():
            return self._sweeper_thread

        if interval_seconds is None:
            interval_seconds = float(self.config.get('pipeline.retention_sweep_hours', 24)) * SECONDS_PER_HOUR

        self._sweeper_stop = threading.Event()
        self._sweeper_thread = threading.Thread(
            target=self._sweep, args=(interval_seconds, self._sweeper_stop), daemon=True)
        self._sweeper_thread.name = "RetentionSweeper"
        self._sweeper_thread.start()
        return self._sweeper_thread

    def _sweep(self, interval_seconds: float, stop_event: threading.Event) -> None:
        while True:
            try:
                deleted = self.run_cleanup()
                if deleted:
                    logger.info(f"Retention sweep removed {len(deleted)} recording(s)")
            except Exception as e:
                logger.error(f"Retention sweep failed: {e}")
            if stop_event.wait(interval_seconds):
                return

    # Environment

    def check_dependencies(self) -> DependencyStatus:
        """Check that sox, whisper.cpp and Ollama are available."""
        status = DependencyStatus()

        sox_path = shutil.which(self.capture.executable)
        status.sox = sox_path is not None
        status.details["sox"] = sox_path or "sox not found. Install with: brew install sox"

        installation = self.transcriber.verify_installation()
        status.whisper = installation.installed
        status.details["whisper"] = (
            f"{installation.binary_path} ({installation.model_path.name})"
            if installation.installed else installation.error)

        try:
            models = asyncio.run(self.summarizer.check_health())
            status.ollama = True
            status.details["ollama"] = ", ".join(models)
        except SummarizationError as e:
            status.details["ollama"] = str(e)

        logger.info(f"Dependency check: sox={status.sox} whisper={status.whisper} ollama={status.ollama}")
        return status

    def shutdown(self) -> None:
        """Force-stop any capture and the retention sweeper. Processing threads are daemons."""
        self._sweeper_stop.set()
        self.capture.cleanup()
        logger.info("PipelineCoordinator shut down")
