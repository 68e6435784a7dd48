"""Speech-to-text through a supervised whisper.cpp subprocess."""

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, IO

from ..errors import (
    BinaryNotFoundError,
    ModelNotFoundError,
    SourceNotFoundError,
    EmptyTranscriptError,
    EngineFailureError,
)
from ..models.pipeline import InstallationStatus
from ..process import ManagedProcess
from ..storage import naming
from .progress import ProgressParser

logger = logging.getLogger(__name__)

LANGUAGE = "en"
THREADS = 4
MODEL_FILENAME = "ggml-base.en.bin"
# base.en runs at roughly 5x real-time on Apple Silicon
REALTIME_SPEEDUP = 5

BINARY_INSTRUCTIONS = (
    "whisper.cpp binary not found.\n"
    "Run ./setup.sh or compile whisper.cpp manually:\n"
    "  git clone https://github.com/ggerganov/whisper.cpp.git\n"
    "  cd whisper.cpp && cmake -B build && cmake --build build --config Release"
)

MODEL_INSTRUCTIONS = (
    "Whisper model not found.\n"
    "Run ./setup.sh or download it manually:\n"
    "  cd whisper.cpp\n"
    "  bash ./models/download-ggml-model.sh base.en\n"
    f"  cp models/{MODEL_FILENAME} ../models/"
)


def _search_roots() -> List[Path]:
    roots = [Path.cwd(), Path(__file__).resolve().parents[2]]
    unique = []
    for root in roots:
        if root not in unique:
            unique.append(root)
    return unique


def default_binary_candidates() -> List[Path]:
    """Ordered locations where the whisper.cpp CLI is commonly installed."""
    candidates = []
    for root in _search_roots():
        candidates.append(root / "whisper.cpp" / "build" / "bin" / "whisper-cli")  # CMake build
        candidates.append(root / "whisper.cpp" / "main")                          # Makefile build
    candidates.extend([
        Path("/usr/local/bin/whisper"),
        Path("/opt/homebrew/bin/whisper"),
        Path("/opt/homebrew/bin/whisper-cli"),
        Path.home() / ".local" / "bin" / "whisper",
    ])
    return candidates


def default_model_candidates() -> List[Path]:
    """Ordered locations where the ggml model weights are commonly stored."""
    candidates = []
    for root in _search_roots():
        candidates.append(root / "models" / MODEL_FILENAME)
        candidates.append(root / "whisper.cpp" / "models" / MODEL_FILENAME)
    candidates.append(Path.home() / ".whisper" / "models" / MODEL_FILENAME)
    return candidates


def _first_existing(candidates: Sequence[Path]) -> Optional[Path]:
    for candidate in candidates:
        resolved = Path(candidate).expanduser().resolve()
        if resolved.is_file():
            return resolved
    return None


def find_whisper_binary(candidates: Optional[Sequence[Path]] = None) -> Path:
    """Find the whisper.cpp executable.

    Raises:
        BinaryNotFoundError: If no candidate exists
    """
    found = _first_existing(candidates if candidates is not None else default_binary_candidates())
    if found is None:
        raise BinaryNotFoundError(BINARY_INSTRUCTIONS)
    logger.debug(f"Found whisper binary at: {found}")
    return found


def find_whisper_model(candidates: Optional[Sequence[Path]] = None) -> Path:
    """Find the whisper model weights.

    Raises:
        ModelNotFoundError: If no candidate exists
    """
    found = _first_existing(candidates if candidates is not None else default_model_candidates())
    if found is None:
        raise ModelNotFoundError(MODEL_INSTRUCTIONS)
    logger.debug(f"Found whisper model at: {found}")
    return found


class TranscriptionJob:
    """Runs whisper.cpp against recordings and reports progress."""

    def __init__(
        self,
        output_dir: str,
        binary_path: Optional[str] = None,
        model_path: Optional[str] = None,
        language: str = LANGUAGE,
        threads: int = THREADS,
    ):
        """Initialize transcription job.

        Args:
            output_dir: Base directory; transcripts go to its processed/ subdirectory
            binary_path: Explicit whisper.cpp executable, searched before the defaults
            model_path: Explicit model file, searched before the defaults
            language: Spoken language passed to the engine
            threads: Engine thread count
        """
        self.output_dir = Path(output_dir)
        self.processed_dir = self.output_dir / naming.PROCESSED_DIRNAME
        self.binary_path = Path(binary_path) if binary_path else None
        self.model_path = Path(model_path) if model_path else None
        self.language = language
        self.threads = threads

    def binary_candidates(self) -> List[Path]:
        explicit = [self.binary_path] if self.binary_path else []
        return explicit + default_binary_candidates()

    def model_candidates(self) -> List[Path]:
        explicit = [self.model_path] if self.model_path else []
        return explicit + default_model_candidates()

    def resolve(self) -> Tuple[Path, Path]:
        """Locate binary and model. Re-run on every call so late installs are picked up."""
        return find_whisper_binary(self.binary_candidates()), find_whisper_model(self.model_candidates())

    def verify_installation(self) -> InstallationStatus:
        """Report whether whisper.cpp is usable, without raising."""
        status = InstallationStatus()
        try:
            status.binary_path = find_whisper_binary(self.binary_candidates())
            status.model_path = find_whisper_model(self.model_candidates())
        except (BinaryNotFoundError, ModelNotFoundError) as e:
            status.error = str(e)
            return status
        status.installed = True
        return status

    def transcribe(self, audio_path: str, progress_callback: Optional[Callable[[int], None]] = None) -> Path:
        """Transcribe one recording, blocking until the engine finishes.

        Args:
            audio_path: Recording to transcribe
            progress_callback: Called with each new percentage (0-100), never repeated

        Returns:
            Path to the transcript file

        Raises:
            SourceNotFoundError: If the recording does not exist
            BinaryNotFoundError / ModelNotFoundError: If whisper.cpp is not installed
            EngineFailureError: If the engine fails to start or exits non-zero
            EmptyTranscriptError: If the engine produced no text
        """
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise SourceNotFoundError(f"Audio file not found: {audio_path}")

        binary, model = self.resolve()

        self.processed_dir.mkdir(parents=True, exist_ok=True)
        transcript_path = naming.transcript_path_for(audio_path, self.processed_dir)
        output_prefix = naming.transcript_output_prefix(audio_path, self.processed_dir)

        if transcript_path.exists():
            # Existence after the run is the success signal, so drop the old output first
            logger.info(f"Replacing existing transcript: {transcript_path}")
            transcript_path.unlink()

        logger.info(f"Starting transcription: {audio_path}")
        logger.info(f"Output prefix: {output_prefix}")

        process = ManagedProcess([
            binary,
            "-m", model,
            "-f", audio_path,
            "-otxt",
            "-of", output_prefix,
            "--print-progress",
            "--language", self.language,
            "--threads", str(self.threads),
        ], name="whisper")

        try:
            process.start(capture_stdout=True)
        except OSError as e:
            raise EngineFailureError(f"Failed to start whisper.cpp: {e}") from e

        stdout_thread = threading.Thread(target=self._log_stdout, args=(process.stdout,), daemon=True)
        stdout_thread.name = "WhisperStdoutThread"
        stdout_thread.start()

        diagnostics = self._consume_diagnostics(process.stderr, progress_callback)
        code = process.wait()
        stdout_thread.join(timeout=2.0)

        if code != 0:
            raise EngineFailureError(
                f"whisper.cpp failed with exit code {code}\n{diagnostics}".rstrip(),
                exit_code=code,
                diagnostics=diagnostics,
            )

        if not transcript_path.exists():
            raise EmptyTranscriptError(
                f"Transcript file not created: {transcript_path}\n"
                "Audio may be silent or corrupted.")

        if not transcript_path.read_text(encoding="utf-8", errors="replace").strip():
            # A blank file would otherwise count as "transcribed"
            transcript_path.unlink()
            raise EmptyTranscriptError("Transcript file is empty. Audio may be silent or corrupted.")

        logger.info(f"Transcription complete: {transcript_path}")
        return transcript_path

    def _consume_diagnostics(self, stream: Optional[IO[str]],
                             progress_callback: Optional[Callable[[int], None]]) -> str:
        """Read the engine's stderr to the end, reporting progress as it goes."""
        if stream is None:
            return ""

        parser = ProgressParser()
        collected = []
        with stream:
            for line in stream:
                collected.append(line)
                self._report(parser.feed(line), progress_callback)
        self._report(parser.flush(), progress_callback)
        return "".join(collected)

    def _report(self, values: List[int], progress_callback: Optional[Callable[[int], None]]) -> None:
        for value in values:
            logger.debug(f"Transcription progress: {value}%")
            if progress_callback is None:
                continue
            try:
                progress_callback(value)
            except Exception as e:
                logger.error(f"Transcription progress callback failed: {e}")

    def _log_stdout(self, stream: Optional[IO[str]]) -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                line = line.strip()
                if line:
                    logger.debug(f"whisper stdout: {line}")

    @staticmethod
    def estimate_time(duration_seconds: float) -> float:
        """Advisory transcription time in seconds for a recording of the given length."""
        return duration_seconds / REALTIME_SPEEDUP
